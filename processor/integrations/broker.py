"""Message broker publishing over AMQP via kombu."""

from typing import Any, Dict, Optional

import structlog
from kombu import Connection, Exchange, Producer

from processor.config import settings

logger = structlog.get_logger()

# kombu retry policy for a single publish
PUBLISH_RETRY_POLICY = {
    "max_retries": 2,
    "interval_start": 0,
    "interval_step": 1,
    "interval_max": 2,
}


class BrokerError(Exception):
    """Raised when a message cannot be handed to the broker."""

    pass


class BrokerClient:
    """Publishes JSON messages to a durable topic exchange.

    The connection is opened lazily and reused across publishes. Any kombu or
    socket error drops the connection so the next publish reconnects.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        exchange_name: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.url = url or settings.BROKER_URL
        self.exchange = Exchange(
            exchange_name or settings.BROKER_EXCHANGE,
            type="topic",
            durable=True,
        )
        self.timeout = timeout or settings.BROKER_PUBLISH_TIMEOUT
        self._connection: Optional[Connection] = None

    def _get_connection(self) -> Connection:
        if self._connection is None:
            self._connection = Connection(self.url, connect_timeout=self.timeout)
        return self._connection

    def publish(
        self,
        routing_key: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Publish one message.

        Raises:
            BrokerError: If the broker rejects the message or is unreachable
        """
        try:
            connection = self._get_connection()
            producer = Producer(connection, exchange=self.exchange)
            producer.publish(
                payload,
                routing_key=routing_key,
                headers=headers or {},
                serializer="json",
                content_type="application/json",
                delivery_mode=2,
                declare=[self.exchange],
                retry=True,
                retry_policy=PUBLISH_RETRY_POLICY,
                timeout=self.timeout,
            )
        except Exception as e:
            self.close()
            raise BrokerError(f"Publish to {routing_key} failed: {e}") from e

        logger.debug("Message published", routing_key=routing_key, exchange=self.exchange.name)

    def close(self) -> None:
        if self._connection is not None:
            try:
                self._connection.release()
            except Exception as e:
                logger.warning("Error releasing broker connection", error=str(e))
            self._connection = None

from api.models import OutboxEvent
from api.services.outbox import (
    APPLICATION_CREATED,
    APPLICATION_STATUS_CHANGED,
    EVALUATION_REQUESTED,
    INTERVIEW_REQUESTED,
    outbox,
    outbox_status,
    routing_key_for,
)
from processor.outbox_dispatcher import OutboxDispatcher


def _record(session_factory, event_type=APPLICATION_CREATED, aggregate_id=1, payload=None):
    with session_factory() as session:
        event = outbox.record(
            session,
            "application",
            aggregate_id,
            event_type,
            payload or {"applicationId": aggregate_id},
        )
        session.commit()
        return event.id


def _get(session_factory, event_id):
    with session_factory() as session:
        return session.get(OutboxEvent, event_id)


def test_routing_table():
    assert routing_key_for(APPLICATION_CREATED) == "application.created"
    assert routing_key_for(APPLICATION_STATUS_CHANGED) == "application.status-changed"
    assert routing_key_for(INTERVIEW_REQUESTED) == "interview.requested"
    assert routing_key_for(EVALUATION_REQUESTED) == "application.evaluation-requested"
    assert routing_key_for("SomethingElse") == "events.generic"


def test_record_does_not_commit(session_factory):
    with session_factory() as session:
        outbox.record(session, "application", 1, APPLICATION_CREATED, {"applicationId": 1})
        session.rollback()

    with session_factory() as session:
        assert session.query(OutboxEvent).count() == 0


def test_dispatch_delivers_in_creation_order_with_headers(session_factory, broker):
    first = _record(session_factory, APPLICATION_CREATED, 1)
    second = _record(session_factory, APPLICATION_STATUS_CHANGED, 1)
    third = _record(session_factory, "Custom", 2)

    stats = OutboxDispatcher(session_factory, broker).dispatch_once()

    assert stats == {"delivered": 3, "failed": 0, "dead_lettered": 0}
    assert [m["routing_key"] for m in broker.published] == [
        "application.created",
        "application.status-changed",
        "events.generic",
    ]
    headers = broker.published[0]["headers"]
    assert headers == {
        "eventType": APPLICATION_CREATED,
        "aggregateType": "application",
        "aggregateId": 1,
        "outboxEventId": first,
    }
    for event_id in (first, second, third):
        event = _get(session_factory, event_id)
        assert event.processed is True
        assert event.processed_at is not None


def test_delivered_events_are_not_sent_twice(session_factory, broker):
    _record(session_factory)
    dispatcher = OutboxDispatcher(session_factory, broker)

    dispatcher.dispatch_once()
    dispatcher.dispatch_once()

    assert len(broker.published) == 1


def test_one_failure_does_not_block_others(session_factory, broker):
    failing = _record(session_factory, aggregate_id=7)
    ok = _record(session_factory, aggregate_id=8)
    broker.fail_for = {7}

    stats = OutboxDispatcher(session_factory, broker).dispatch_once()

    assert stats == {"delivered": 1, "failed": 1, "dead_lettered": 0}
    failed_event = _get(session_factory, failing)
    assert failed_event.processed is False
    assert failed_event.retry_count == 1
    assert "broker refused" in failed_event.error_message
    assert _get(session_factory, ok).processed is True


def test_dead_letter_after_five_failures(session_factory, broker):
    event_id = _record(session_factory, aggregate_id=7)
    broker.fail_for = {7}
    dispatcher = OutboxDispatcher(session_factory, broker, max_retries=5)

    outcomes = [dispatcher.dispatch_once() for _ in range(7)]

    assert [o["failed"] for o in outcomes[:4]] == [1, 1, 1, 1]
    assert outcomes[4]["dead_lettered"] == 1
    # Never attempted a sixth time
    assert outcomes[5] == outcomes[6] == {"delivered": 0, "failed": 0, "dead_lettered": 0}

    event = _get(session_factory, event_id)
    assert event.processed is True
    assert event.processed_at is None
    assert event.retry_count == 5
    assert event.error_message
    assert event.dead_lettered is True


def test_retry_dead_event_rearms_delivery(session_factory, broker):
    event_id = _record(session_factory, aggregate_id=7)
    broker.fail_for = {7}
    dispatcher = OutboxDispatcher(session_factory, broker, max_retries=1)
    dispatcher.dispatch_once()

    with session_factory() as session:
        assert outbox_status(session) == {"pending": 0, "delivered": 0, "dead": 1}

    broker.fail_for = set()
    assert dispatcher.retry_dead_event(event_id) is True
    assert dispatcher.retry_dead_event(event_id) is False

    dispatcher.dispatch_once()
    event = _get(session_factory, event_id)
    assert event.processed_at is not None
    assert event.error_message is None

    with session_factory() as session:
        assert outbox_status(session) == {"pending": 0, "delivered": 1, "dead": 0}


def test_invalid_payload_is_a_delivery_failure(session_factory, broker):
    with session_factory() as session:
        event = OutboxEvent(
            aggregate_type="application",
            aggregate_id=1,
            event_type=APPLICATION_CREATED,
            payload="{not json",
            processed=False,
            retry_count=0,
        )
        session.add(event)
        session.commit()
        event_id = event.id

    stats = OutboxDispatcher(session_factory, broker).dispatch_once()

    assert stats["failed"] == 1
    assert "invalid payload" in _get(session_factory, event_id).error_message
    assert broker.published == []


def test_batch_size_limits_a_tick(session_factory, broker):
    for i in range(5):
        _record(session_factory, aggregate_id=i)

    stats = OutboxDispatcher(session_factory, broker, batch_size=2).dispatch_once()

    assert stats["delivered"] == 2
    with session_factory() as session:
        assert outbox_status(session)["pending"] == 3


def test_stop_closes_broker(session_factory, broker):
    dispatcher = OutboxDispatcher(session_factory, broker)
    dispatcher.running = True

    dispatcher.stop()

    assert dispatcher.running is False
    assert broker.closed is True

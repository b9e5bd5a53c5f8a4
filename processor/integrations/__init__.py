"""External service clients used by the processor."""

from .broker import BrokerClient, BrokerError
from .scoring import ScoringClient

__all__ = [
    "BrokerClient",
    "BrokerError",
    "ScoringClient",
]

"""Job processors for the processing pipeline.

1. EvaluateProcessor - AI scoring and auto-decision for submitted applications
"""

from .base import BaseProcessor
from .evaluate import EvaluateProcessor

__all__ = [
    "BaseProcessor",
    "EvaluateProcessor",
]

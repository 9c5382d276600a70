"""
Observability module - Logging, Metrics, and Tracing.
"""

from marketplace.observability.logging import get_logger, setup_logging
from marketplace.observability.metrics import metrics
from marketplace.observability.tracing import setup_tracing

__all__ = [
    "get_logger",
    "setup_logging",
    "metrics",
    "setup_tracing",
]

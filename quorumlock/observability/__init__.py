"""
Observability module.
Contains logging, metrics, and tracing setup.
"""

from quorumlock.observability.logging import get_logger, setup_logging
from quorumlock.observability.metrics import (
    MetricsCollector,
    get_metrics,
    setup_metrics,
)
from quorumlock.observability.tracing import create_span, get_tracer, setup_tracing

__all__ = [
    "setup_logging",
    "get_logger",
    "setup_metrics",
    "get_metrics",
    "MetricsCollector",
    "setup_tracing",
    "get_tracer",
    "create_span",
]

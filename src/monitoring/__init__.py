"""
Monitoring and metrics infrastructure for WizardDAO.

This package provides:
- Engine and HTTP metrics (counters, gauges, histograms)
- Structured logging with JSON output and address redaction
- Request timing middleware

Usage:
    from monitoring import metrics, get_logger

    metrics.increment("mint_submitted_total")
    logger = get_logger(__name__)
    logger.info("Mint fulfilled", extra={"request_id": "vrf-1"})
"""

from monitoring.logging import LoggingContext, configure_logging, get_logger
from monitoring.metrics import MetricsCollector, metrics
from monitoring.middleware import setup_request_logging, timed

__all__ = [
    "MetricsCollector",
    "metrics",
    "get_logger",
    "configure_logging",
    "LoggingContext",
    "setup_request_logging",
    "timed",
]

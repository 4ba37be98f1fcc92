"""Observability package for libapp."""

from .logging import VERBOSE, setup_logging, setup_logging_from_config
from .event_timer import EventTimer, EventTypes
from .access import AccessLogger, access_event
from .prometheus_metrics import (
    setup_prometheus_metrics,
    record_package_metrics,
    record_request_timings,
    PrometheusMiddleware,
    libapp_registry
)

__all__ = [
    'VERBOSE',
    'setup_logging',
    'setup_logging_from_config',
    'EventTimer',
    'EventTypes',
    'AccessLogger',
    'access_event',
    'setup_prometheus_metrics',
    'record_package_metrics',
    'record_request_timings',
    'PrometheusMiddleware',
    'libapp_registry'
]

"""Heroku log-drain receiver with bucketed dashboard metrics."""

from drainmetrics.app import create_app
from drainmetrics.config import ConfigError, Settings
from drainmetrics.core.models import MetricRecord, MetricType, PathClass

__all__ = [
    "ConfigError",
    "MetricRecord",
    "MetricType",
    "PathClass",
    "Settings",
    "create_app",
]

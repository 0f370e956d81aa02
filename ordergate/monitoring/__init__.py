"""Monitoring utilities."""

from ordergate.monitoring.decision_log import DecisionLogger
from ordergate.monitoring.logging import configure_logging
from ordergate.monitoring.metrics import Metrics

__all__ = ["configure_logging", "Metrics", "DecisionLogger"]

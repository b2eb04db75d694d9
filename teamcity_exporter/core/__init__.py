"""
Core Infrastructure - Logging, Metrics Store, Cycle Tracking

This package provides the infrastructure shared by every scheduler and
pipeline task.

Usage:
    from teamcity_exporter.core import FingerprintStore, get_logger, setup_logging

    setup_logging(level="INFO", json_output=True)
    store = FingerprintStore()
"""

from .cycle_metrics import CycleTracker, get_current_tracker, record_instance_status, track_cycle
from .logging_config import get_logger, log_with_context, setup_logging
from .metrics_store import FingerprintStore

__all__ = [
    # Logging
    "get_logger",
    "log_with_context",
    "setup_logging",
    # Store
    "FingerprintStore",
    # Cycle tracking
    "CycleTracker",
    "get_current_tracker",
    "record_instance_status",
    "track_cycle",
]

"""
HTTP listener for the TeamCity exporter

Serves the Prometheus exposition of the fingerprint store.
"""

from .app import create_app
from .exposition import StoreCollector

__all__ = ["create_app", "StoreCollector"]

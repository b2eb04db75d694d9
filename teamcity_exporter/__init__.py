"""
TeamCity Exporter

Polls TeamCity instances for build statistics and exposes the latest values
as Prometheus metrics.

Package Structure:
    - core: Infrastructure (logging, metrics store, cycle tracking)
    - domain: Domain models (Instance, BuildFilter, Build, MetricSample)
    - collectors: TeamCity REST client and the scrape pipeline
    - api: Prometheus exposition and the HTTP listener
"""

__version__ = "1.0.0"
__author__ = "Build Metrics Team"

"""
Data Collectors - Fetch build statistics from TeamCity

This package contains the TeamCity REST client and the stages of a scrape cycle:
    - filter_expander: Build filters to concrete locators
    - build_resolver: Locators to builds
    - statistics_fetcher: Builds to statistics properties
    - statistics_transformer: Statistics to metric samples
    - cycle_pipeline: The four stages wired together
    - instance_scheduler: Per-instance timer driving the pipeline

Schedulers run for the lifetime of the process and write into the shared
fingerprint store.
"""

__all__ = []

#!/usr/bin/env python3
"""
Tests for Application Constants Module

Verifies immutability and values of label names and scheduler defaults.
"""

from dataclasses import FrozenInstanceError

import pytest

from teamcity_exporter.domain.constants import NAMESPACE, OVERLAP_POLICIES, labels, scheduler_defaults


class TestLabelNames:
    """Test LabelNames constants"""

    def test_label_names(self):
        assert labels.INSTANCE == "exporter_instance"
        assert labels.FILTER == "exporter_filter"
        assert labels.BUILD_CONFIGURATION == "build_configuration"
        assert labels.BRANCH == "branch"
        assert labels.OTHER == "other"

    def test_does_not_shadow_prometheus_instance_label(self):
        assert labels.INSTANCE != "instance"

    def test_immutable(self):
        with pytest.raises(FrozenInstanceError):
            labels.INSTANCE = "instance"  # type: ignore[misc]


class TestSchedulerDefaults:
    """Test SchedulerDefaults constants"""

    def test_defaults(self):
        assert scheduler_defaults.SCRAPE_INTERVAL_SECONDS == 60
        assert scheduler_defaults.BUILD_COUNT == 1
        assert scheduler_defaults.OVERLAP_POLICY in OVERLAP_POLICIES

    def test_immutable(self):
        with pytest.raises(FrozenInstanceError):
            scheduler_defaults.BUILD_COUNT = 2  # type: ignore[misc]


def test_namespace():
    assert NAMESPACE == "teamcity"

"""
Root conftest.py for pytest configuration

Registers the domain markers and applies them automatically based on the
test's location under tests/unit/<package>/.
"""
import os

import pytest

# Settings are read at import time; keep test runs off real credentials and files
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("LOG_FORMAT", "text")

DOMAIN_MARKERS = {
    "core": "Settings, logging and exception tests",
    "d0_gateway": "Gateway, cache and vendor client tests",
    "d1_metrics": "Metric reconstruction tests",
    "d2_snapshots": "Daily snapshot tests",
}


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "unit: Fast isolated unit tests")
    config.addinivalue_line("markers", "critical: Tests for behaviour other domains depend on")
    for marker_name, description in DOMAIN_MARKERS.items():
        config.addinivalue_line("markers", f"{marker_name}: {description}")


def pytest_collection_modifyitems(config, items):
    """Apply the domain marker matching each test's directory"""
    for item in items:
        parts = str(item.fspath).split(os.sep)
        for marker_name in DOMAIN_MARKERS:
            if marker_name in parts:
                item.add_marker(getattr(pytest.mark, marker_name))

"""
Pytest configuration for the apps.

Marks tests by filename so that `pytest -m unit` runs the fast, isolated
tests and `pytest -m integration` the ones that drive several layers
through faked S3 and external tools.
"""

import pytest


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_services.py, test_tasks.py → integration (fake S3 + fake tools)
    - test_exceptions.py, test_events.py, test_commands.py, etc. → unit
    - Unmatched files → unit

    Explicit markers on test functions/classes take precedence.
    """
    integration_patterns = [
        "test_services.py",
        "test_tasks.py",
    ]

    for item in items:
        # Skip if test already has unit/integration/e2e marker
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)

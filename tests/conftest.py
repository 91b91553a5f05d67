import os
from pathlib import Path

import pytest
from helpers import mark_by_dir


TESTS = Path(__file__).parent


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    # Keep a developer's APPVET_* environment out of the tests
    for key in list(os.environ):
        if key.startswith("APPVET_"):
            monkeypatch.delenv(key, raising=False)
    yield


def pytest_collection_modifyitems(config, items):
    # Mark tests by directory structure
    mark_by_dir(items, TESTS / "appvet" / "core", pytest.mark.unit)
    mark_by_dir(items, TESTS / "appvet" / "infra", pytest.mark.integration)
    mark_by_dir(items, TESTS / "appvet" / "app", pytest.mark.e2e)
    mark_by_dir(items, TESTS / "appvet" / "shared", pytest.mark.unit)

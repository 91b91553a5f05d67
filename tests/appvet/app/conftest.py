"""Shared fixtures for app-level tests."""
import pytest

from appvet.app.config import (
    ApiConfig,
    AppConfig,
    DirectoryConfig,
    EnginesConfig,
    ScanConfig,
)
from appvet.app.container import create_container
from tests.appvet.fakes import MANIFEST


@pytest.fixture
def test_config(tmp_path):
    """Create test configuration with explicit values.

    Only the local heuristic engine runs, so no daemon or network is needed.
    """
    return AppConfig(
        directories=DirectoryConfig(home=tmp_path),
        engines=EnginesConfig(enabled=["heuristic"]),
        scan=ScanConfig(retry_delay=0.01, sweep_interval=0),
        api=ApiConfig(public_base_url="https://store.example.com"),
    )


@pytest.fixture
def inline_container(test_config):
    container = create_container(test_config, scan_mode="inline")
    yield container
    container.shutdown_resources()


@pytest.fixture
def cli_config(test_config, monkeypatch):
    """Point every CLI command at the test configuration."""
    monkeypatch.setattr("appvet.app.cli.AppConfig", lambda: test_config)
    return test_config


@pytest.fixture
def package_files(tmp_path):
    """Write a package archive and its manifest to disk, return both paths."""
    import json

    def _write(data: bytes, manifest: dict = MANIFEST, name: str = "app.zip"):
        package_path = tmp_path / name
        package_path.write_bytes(data)
        manifest_path = tmp_path / f"{name}.manifest.json"
        manifest_path.write_text(json.dumps(manifest), encoding="utf-8")
        return package_path, manifest_path

    return _write

from __future__ import annotations

from typing import Any, Mapping

from .config import AppConfig
from .container import create_container
from ..core.domain.models import Manifest


def ingest(
    data: bytes,
    manifest: Manifest | str | bytes | Mapping[str, Any],
    *,
    wait: bool = False,
    config: AppConfig | None = None,
) -> dict[str, object]:
    """Ingest a package archive.

    Args:
        data: Raw archive bytes
        manifest: Manifest object, JSON text, or mapping
        wait: Scan before returning and include the verdict
        config: Optional config for testing. If None, loads from env vars.

    Returns:
        Intake response dictionary ``{packageId, name, version, iconUrl, status}``,
        plus ``verified`` and ``scanResults`` when ``wait`` is set

    Raises:
        InvalidInput, InvalidArchive, ArchiveTooLarge, DuplicatePackage,
        MaliciousContent, StorageFailure
    """
    container = create_container(config, scan_mode="inline" if wait else "deferred")
    try:
        package = container.ingest_uc().execute(data=data, manifest=manifest)
        public_base_url = container.config.api.public_base_url()
        if not wait:
            return package.public_view(public_base_url)

        package = container.show_uc().execute(package_id=package.id)
        body = package.public_view(public_base_url)
        body["verified"] = package.verified
        body["scanResults"] = package.scan_results
        return body
    finally:
        container.shutdown_resources()


def scan(package_id: str, *, config: AppConfig | None = None) -> dict[str, object]:
    """Scan a stored package now.

    Returns:
        Verdict dictionary ``{status, threats, perEngine, responded, conclusive, scannedAt}``

    Raises:
        PackageNotFound: If the package id is unknown
    """
    container = create_container(config, scan_mode="deferred")
    try:
        verdict = container.scan_uc().execute(package_id=package_id)
        return verdict.to_dict()
    finally:
        container.shutdown_resources()


def get_package(package_id: str, *, config: AppConfig | None = None) -> dict[str, object]:
    container = create_container(config, scan_mode="deferred")
    try:
        return container.show_uc().execute(package_id=package_id).to_dict()
    finally:
        container.shutdown_resources()


def list_threats(package_id: str | None = None, *, config: AppConfig | None = None) -> list[dict[str, object]]:
    container = create_container(config, scan_mode="deferred")
    try:
        return [e.to_dict() for e in container.threats_uc().execute(package_id=package_id)]
    finally:
        container.shutdown_resources()

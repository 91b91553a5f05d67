from __future__ import annotations

import hashlib
from typing import Any, Mapping

from ..domain.exceptions import (
    ArchiveTooLarge,
    DuplicatePackage,
    InvalidInput,
    MaliciousContent,
    StorageFailure,
)
from ..domain.models import InspectionReport, Manifest, Package, ScanRequest
from ..ports import ContentStorePort, LoggerPort, MetadataStorePort, ScanQueuePort
from .archive_inspector import ArchiveInspector


PACKAGE_NAMESPACE = "packages"
ICON_NAMESPACE = "icons"
SCREENSHOT_NAMESPACE = "screenshots"


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class IntakeService:
    """Entry point for package uploads.

    Validates, deduplicates and persists a package, then hands it to the scan
    queue. Scanning is not on the critical path: ``ingest`` returns as soon as
    the record exists.
    """

    def __init__(
        self,
        *,
        inspector: ArchiveInspector,
        content_store: ContentStorePort,
        metadata_store: MetadataStorePort,
        scan_queue: ScanQueuePort,
        logger: LoggerPort,
        max_package_bytes: int = 100 * 1024 * 1024,
    ) -> None:
        self._inspector = inspector
        self._content = content_store
        self._metadata = metadata_store
        self._queue = scan_queue
        self._logger = logger
        self._max_package_bytes = max_package_bytes

    def ingest(self, raw: bytes, manifest: Manifest | str | bytes | Mapping[str, Any] | None) -> Package:
        """Ingest one uploaded package.

        Args:
            raw: Raw archive bytes as uploaded
            manifest: Parsed manifest or its JSON form

        Returns:
            The stored package at status ``uploaded``

        Raises:
            InvalidInput: Missing file or malformed manifest
            DuplicatePackage: Identical content already ingested
            InvalidArchive / ArchiveTooLarge: Structural rejection
            MaliciousContent: Denylisted entries found
            StorageFailure: Blob or record write failed (rolled back)
        """
        if not raw:
            raise InvalidInput("Package file required")
        if not isinstance(manifest, Manifest):
            manifest = Manifest.parse(manifest)
        if len(raw) > self._max_package_bytes:
            raise ArchiveTooLarge(
                f"Package is {len(raw)} bytes (limit {self._max_package_bytes})"
            )

        # 1) Dedup before any write
        content_hash = sha256_hex(raw)
        existing = self._metadata.find_by_hash(content_hash)
        if existing is not None:
            self._logger.info(
                "intake_rejected",
                reason="duplicate",
                content_hash=content_hash,
                existing_id=existing.id,
            )
            raise DuplicatePackage(content_hash, existing.id)

        # 2) Structural inspection, nothing persisted yet
        report = self._inspector.inspect(raw)
        if not report.is_clean:
            self._logger.warning(
                "intake_rejected",
                reason="malicious_content",
                content_hash=content_hash,
                files=report.malicious_findings,
            )
            raise MaliciousContent(report.malicious_findings)

        # 3) Blobs + record as one unit
        package = self._persist(raw, content_hash, manifest, report)

        self._logger.info(
            "package_ingested",
            package_id=package.id,
            content_hash=content_hash,
            package_name=manifest.name,
            package_version=manifest.version,
            size_bytes=package.size_bytes,
            screenshots=len(package.screenshot_refs),
            has_icon=package.icon_ref is not None,
        )

        # 4) Hand off to the scanner
        self._trigger_scan(package)
        return package

    def _persist(
        self,
        raw: bytes,
        content_hash: str,
        manifest: Manifest,
        report: InspectionReport,
    ) -> Package:
        created: list[str] = []

        def put(key: str, data: bytes) -> str:
            if self._content.exists(key):
                return key
            locator = self._content.put(key, data)
            created.append(locator)
            return locator

        try:
            blob_ref = put(f"{PACKAGE_NAMESPACE}/{content_hash}", raw)
            icon_ref = None
            if report.icon is not None:
                icon_ref = put(f"{ICON_NAMESPACE}/{sha256_hex(report.icon.data)}", report.icon.data)
            screenshot_refs = [
                put(f"{SCREENSHOT_NAMESPACE}/{sha256_hex(shot.data)}", shot.data)
                for shot in report.screenshots
            ]

            return self._metadata.insert(
                Package(
                    content_hash=content_hash,
                    manifest=manifest,
                    blob_ref=blob_ref,
                    size_bytes=len(raw),
                    icon_ref=icon_ref,
                    screenshot_refs=screenshot_refs,
                )
            )
        except DuplicatePackage:
            # Lost the race to a concurrent upload of the same bytes. The
            # blobs are content-addressed and now belong to the winner.
            self._logger.info("intake_rejected", reason="duplicate_race", content_hash=content_hash)
            raise
        except Exception as exc:
            self._rollback(created, content_hash)
            self._logger.error(
                "intake_storage_failed",
                exc_info=True,
                content_hash=content_hash,
                error=str(exc),
            )
            if isinstance(exc, StorageFailure):
                raise
            raise StorageFailure(f"Failed to persist package {content_hash}: {exc}") from exc

    def _rollback(self, created: list[str], content_hash: str) -> None:
        # A concurrent intake that found one of these keys via exists() loses it
        # here; that window is one failed insert wide.
        for locator in reversed(created):
            try:
                self._content.delete(locator)
            except Exception:
                self._logger.exception(
                    "intake_rollback_failed",
                    locator=locator,
                    content_hash=content_hash,
                )

    def _trigger_scan(self, package: Package) -> None:
        assert package.id is not None
        request = ScanRequest(
            package_id=package.id,
            content_hash=package.content_hash,
            blob_ref=package.blob_ref,
        )
        try:
            self._queue.submit(request)
        except Exception:
            # The queue's redelivery sweep picks up packages left at uploaded.
            self._logger.exception("scan_trigger_failed", package_id=package.id)

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional, Protocol

from .domain.models import (
    AggregateVerdict,
    EngineResult,
    Package,
    PackageStatus,
    ScanRequest,
    ThreatLogEntry,
)


class ContentStorePort(Protocol):
    """Port for content-addressed blob storage.

    Keys are ``<namespace>/<sha256 hex>``. Writes of the same key always carry
    the same bytes, so ``put`` is idempotent.
    """

    def put(self, key: str, data: bytes) -> str:
        """Store bytes under key and return a locator for ``get``/``delete``.

        Raises:
            StorageFailure: If the write fails
        """
        ...

    def get(self, locator: str) -> bytes:
        """Raises StorageFailure if the blob is missing or unreadable."""
        ...

    def delete(self, locator: str) -> None:
        """Delete a blob; deleting a missing blob is not an error."""
        ...

    def exists(self, key: str) -> bool:
        ...


class MetadataStorePort(Protocol):
    """Port for the durable package/scan/threat records.

    Implementations must enforce uniqueness of ``content_hash``: a second
    insert of the same hash raises DuplicatePackage even when the caller's
    own ``find_by_hash`` check raced.
    """

    def insert(self, package: Package) -> Package:
        """Insert a new package, assigning its id.

        Raises:
            DuplicatePackage: If the content hash is already recorded
            StorageFailure: For any other write failure
        """
        ...

    def find_by_hash(self, content_hash: str) -> Optional[Package]:
        ...

    def get(self, package_id: str) -> Optional[Package]:
        ...

    def mark_scanning(self, package_id: str) -> bool:
        """Move ``uploaded`` to ``scanning``. Returns False if no row changed."""
        ...

    def apply_verdict(
        self,
        package_id: str,
        *,
        status: PackageStatus,
        verified: bool,
        scan_results: dict[str, Any],
        scanned_at: datetime,
    ) -> None:
        """Write all verdict fields of one package in a single statement."""
        ...

    def store_scan_results(self, package_id: str, *, scan_results: dict[str, Any], scanned_at: datetime) -> None:
        """Record the latest results without touching status/verified."""
        ...

    def record_scan_run(self, package_id: str, verdict: AggregateVerdict) -> int:
        ...

    def append_threat_log(self, entry: ThreatLogEntry) -> ThreatLogEntry:
        ...

    def list_threat_logs(self, package_id: Optional[str] = None) -> list[ThreatLogEntry]:
        ...

    def list_by_status(self, statuses: Iterable[PackageStatus]) -> list[Package]:
        ...

    def append_admin_notification(self, package_id: str, threats: list[str], *, priority: str = "high") -> None:
        ...


class ScanEnginePort(Protocol):
    """Uniform contract every scan engine adapter implements.

    The orchestrator treats all engines identically; adding or removing one
    never touches orchestration code.
    """

    name: str
    timeout: float

    def scan(self, data: bytes, content_hash: str, source_url: Optional[str] = None) -> EngineResult:
        """Scan raw package bytes.

        Raises:
            EngineUnavailable: Engine not configured or unreachable
            EngineTimeout: Engine did not answer in time
        """
        ...


class ScanQueuePort(Protocol):
    """Port for handing a freshly ingested package to the scanner."""

    def submit(self, request: ScanRequest) -> None:
        ...


class ScanRunnerPort(Protocol):
    def scan(self, package_id: str) -> AggregateVerdict:
        ...


class AdminNotifierPort(Protocol):
    """Best-effort admin alerting for malicious verdicts."""

    def notify(self, package_id: str, threats: list[str]) -> None:
        ...


class LoggerPort(Protocol):
    """Port for structured logging.

    Extra keyword fields are attached to the log record and serialised by the
    JSON formatter.
    """

    def debug(self, message: str, **fields: Any) -> None:
        ...

    def info(self, message: str, **fields: Any) -> None:
        ...

    def warning(self, message: str, **fields: Any) -> None:
        ...

    def error(self, message: str, exc_info: bool = False, **fields: Any) -> None:
        ...

    def exception(self, message: str, **fields: Any) -> None:
        ...

"""Domain exceptions for appvet."""

from __future__ import annotations


class AppVetError(Exception):
    """Base class for every error raised by the intake and scan pipeline."""


class InvalidInput(AppVetError):
    """Raised when the package file or manifest is missing or malformed."""


class DuplicatePackage(AppVetError):
    """Raised when a package with the same content hash already exists.

    Not a system fault: the upload is simply rejected with no side effects.
    """

    def __init__(self, content_hash: str, existing_id: str | None = None) -> None:
        self.content_hash = content_hash
        self.existing_id = existing_id
        super().__init__(f"Package already exists: {content_hash}")


class InvalidArchive(AppVetError):
    """Raised when the uploaded bytes are not a readable archive."""


class ArchiveTooLarge(AppVetError):
    """Raised when an archive exceeds the configured size or entry bounds."""


class MaliciousContent(AppVetError):
    """Raised when the archive contains denylisted entries.

    ``files`` carries every offending entry name, in archive order.
    """

    def __init__(self, files: list[str]) -> None:
        self.files = list(files)
        super().__init__(f"Malicious files detected: {', '.join(self.files)}")


class StorageFailure(AppVetError):
    """Raised when a blob or metadata write/read fails."""


class PackageNotFound(AppVetError):
    def __init__(self, package_id: str) -> None:
        self.package_id = package_id
        super().__init__(f"Package not found: {package_id}")


class EngineError(AppVetError):
    """Base class for scan engine failures; recovered by the orchestrator."""

    def __init__(self, engine: str, message: str) -> None:
        self.engine = engine
        super().__init__(f"{engine}: {message}")


class EngineUnavailable(EngineError):
    """Raised when a scan engine cannot be reached or is not configured."""


class EngineTimeout(EngineError):
    """Raised when a scan engine does not answer within its timeout."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from .exceptions import InvalidInput


class PackageStatus(str, Enum):
    UPLOADED = "uploaded"
    SCANNING = "scanning"
    CLEAN = "clean"
    MALICIOUS = "malicious"

    @property
    def is_terminal(self) -> bool:
        return self in (PackageStatus.CLEAN, PackageStatus.MALICIOUS)


class EngineState(str, Enum):
    OK = "ok"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Manifest:
    """Package manifest as submitted by the uploader."""
    name: str
    version: str
    type: str | None = None
    entry_point: str | None = None
    permissions: tuple[str, ...] = ()
    description: str | None = None
    author: str | None = None
    license: str | None = None

    @classmethod
    def parse(cls, raw: str | bytes | Mapping[str, Any] | None) -> "Manifest":
        """Build a manifest from JSON text or an already-decoded mapping.

        Raises:
            InvalidInput: If the manifest is missing, not JSON, or lacks name/version
        """
        if raw is None or raw == "" or raw == b"":
            raise InvalidInput("Manifest required")

        if isinstance(raw, (str, bytes)):
            try:
                data = json.loads(raw)
            except (json.JSONDecodeError, UnicodeDecodeError) as exc:
                raise InvalidInput(f"Manifest is not valid JSON: {exc}") from exc
        else:
            data = raw

        if not isinstance(data, Mapping):
            raise InvalidInput("Manifest must be a JSON object")

        name = data.get("name")
        version = data.get("version")
        if not isinstance(name, str) or not name.strip():
            raise InvalidInput("Manifest field 'name' is required")
        if not isinstance(version, str) or not version.strip():
            raise InvalidInput("Manifest field 'version' is required")

        permissions = data.get("permissions") or []
        if not isinstance(permissions, list) or not all(isinstance(p, str) for p in permissions):
            raise InvalidInput("Manifest field 'permissions' must be a list of strings")

        def _opt(key: str, *aliases: str) -> str | None:
            for k in (key, *aliases):
                value = data.get(k)
                if value is None:
                    continue
                if not isinstance(value, str):
                    raise InvalidInput(f"Manifest field '{k}' must be a string")
                return value
            return None

        return cls(
            name=name.strip(),
            version=version.strip(),
            type=_opt("type"),
            entry_point=_opt("entryPoint", "entry_point"),
            permissions=tuple(permissions),
            description=_opt("description"),
            author=_opt("author"),
            license=_opt("license"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "type": self.type,
            "entryPoint": self.entry_point,
            "permissions": list(self.permissions),
            "description": self.description,
            "author": self.author,
            "license": self.license,
        }


@dataclass
class Package:
    """The unit of trust.

    Created by intake at ``uploaded``; only the scan orchestrator moves it to
    ``scanning`` and then to a terminal status.
    """
    content_hash: str
    manifest: Manifest
    blob_ref: str
    size_bytes: int
    id: str | None = None
    icon_ref: str | None = None
    screenshot_refs: list[str] = field(default_factory=list)
    uploaded_at: datetime = field(default_factory=utcnow)
    verified: bool = False
    status: PackageStatus = PackageStatus.UPLOADED
    scan_results: dict[str, Any] | None = None
    last_scan_at: datetime | None = None
    downloads: int = 0
    rating: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "contentHash": self.content_hash,
            "manifest": self.manifest.to_dict(),
            "iconRef": self.icon_ref,
            "screenshotRefs": list(self.screenshot_refs),
            "blobRef": self.blob_ref,
            "sizeBytes": self.size_bytes,
            "uploadedAt": self.uploaded_at.isoformat(),
            "verified": self.verified,
            "status": self.status.value,
            "scanResults": self.scan_results,
            "lastScanAt": self.last_scan_at.isoformat() if self.last_scan_at else None,
            "downloads": self.downloads,
            "rating": self.rating,
        }

    def public_view(self, public_base_url: str | None = None) -> dict[str, Any]:
        """Intake response body: ids, manifest name/version and icon URL."""
        icon_url = None
        if self.icon_ref is not None:
            base = (public_base_url or "").rstrip("/")
            icon_url = f"{base}/blobs/{self.icon_ref}" if base else self.icon_ref
        return {
            "packageId": self.id,
            "name": self.manifest.name,
            "version": self.manifest.version,
            "iconUrl": icon_url,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class ExtractedAsset:
    name: str
    data: bytes


@dataclass
class InspectionReport:
    """Result of the structural pass over an uploaded archive."""
    entries: list[str]
    icon: ExtractedAsset | None = None
    screenshots: list[ExtractedAsset] = field(default_factory=list)
    malicious_findings: list[str] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not self.malicious_findings


@dataclass
class HeuristicReport:
    suspicious: bool
    reasons: list[str]
    entropy: float
    file_count: int = 0
    error: str | None = None


@dataclass
class EngineResult:
    """Outcome of one engine for one scan run."""
    engine: str
    state: EngineState = EngineState.OK
    positive: bool = False
    detail: str = ""
    raw: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @property
    def responded(self) -> bool:
        return self.state is EngineState.OK

    def to_dict(self) -> dict[str, Any]:
        return {
            "engine": self.engine,
            "state": self.state.value,
            "positive": self.positive,
            "detail": self.detail,
            "raw": self.raw,
            "error": self.error,
        }


@dataclass
class AggregateVerdict:
    status: PackageStatus
    threats: list[str]
    per_engine: list[EngineResult]
    responded: int
    conclusive: bool
    scanned_at: datetime = field(default_factory=utcnow)

    @property
    def is_malicious(self) -> bool:
        return self.status is PackageStatus.MALICIOUS

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "threats": list(self.threats),
            "perEngine": [r.to_dict() for r in self.per_engine],
            "responded": self.responded,
            "conclusive": self.conclusive,
            "scannedAt": self.scanned_at.isoformat(),
        }


@dataclass(frozen=True)
class ThreatLogEntry:
    """Immutable audit record written for every malicious verdict."""
    package_id: str
    content_hash: str
    threats: tuple[str, ...]
    detected_at: datetime
    scan_results: dict[str, Any] | None = None
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "packageId": self.package_id,
            "contentHash": self.content_hash,
            "threats": list(self.threats),
            "detectedAt": self.detected_at.isoformat(),
            "scanResults": self.scan_results,
        }


@dataclass(frozen=True)
class ScanRequest:
    """Handoff from intake to the scan queue."""
    package_id: str
    content_hash: str
    blob_ref: str
    attempt: int = 1

from __future__ import annotations

import io
import re
import zipfile
import zlib
from dataclasses import dataclass

from ..domain.exceptions import ArchiveTooLarge, InvalidArchive
from ..domain.models import ExtractedAsset, InspectionReport
from ..domain.rules import ScanRules


_DRIVE_LETTER = re.compile(r"^[a-zA-Z]:")

# Entries smaller than this are exempt from the ratio check; tiny files of
# repeated bytes compress extremely well without being dangerous.
_RATIO_MIN_SIZE = 1024 * 1024

_ARCHIVE_ERRORS = (
    zipfile.BadZipFile,
    zipfile.LargeZipFile,
    EOFError,
    ValueError,
    OSError,
    NotImplementedError,
    zlib.error,
)


@dataclass(frozen=True)
class ArchiveLimits:
    max_entries: int = 10_000
    max_uncompressed_bytes: int = 512 * 1024 * 1024
    max_compression_ratio: float = 200.0
    max_asset_bytes: int = 10 * 1024 * 1024


class ArchiveInspector:
    """Structural pass over an untrusted in-memory archive.

    No network or storage I/O: the report carries extracted asset buffers and
    the caller decides what to persist.
    """

    def __init__(self, *, rules: ScanRules, limits: ArchiveLimits | None = None) -> None:
        self._rules = rules
        self._limits = limits or ArchiveLimits()

    def inspect(self, raw: bytes) -> InspectionReport:
        """Enumerate, bound-check and scan entry names, then extract assets.

        Raises:
            InvalidArchive: If the bytes are not a readable zip archive
            ArchiveTooLarge: If entry count, total size or compression ratio
                exceed the configured limits (checked before decompression)
        """
        try:
            zf = zipfile.ZipFile(io.BytesIO(raw))
        except _ARCHIVE_ERRORS as exc:
            raise InvalidArchive(f"Not a readable archive: {exc}") from exc

        with zf:
            infos = zf.infolist()
            self._check_bounds(infos)

            names = [info.filename for info in infos]
            findings = [name for name in names if self._is_malicious_name(name)]
            report = InspectionReport(entries=names, malicious_findings=findings)
            if findings:
                # Nothing from a rejected archive gets decompressed.
                return report

            files = {info.filename: info for info in infos if not info.is_dir()}
            report.icon = self._extract_icon(zf, files)
            report.screenshots = self._extract_screenshots(zf, files)
            return report

    def _check_bounds(self, infos: list[zipfile.ZipInfo]) -> None:
        limits = self._limits
        if len(infos) > limits.max_entries:
            raise ArchiveTooLarge(
                f"Archive has {len(infos)} entries (limit {limits.max_entries})"
            )

        total = 0
        for info in infos:
            total += info.file_size
            if total > limits.max_uncompressed_bytes:
                raise ArchiveTooLarge(
                    f"Archive expands beyond {limits.max_uncompressed_bytes} bytes"
                )
            if info.file_size >= _RATIO_MIN_SIZE:
                ratio = info.file_size / max(info.compress_size, 1)
                if ratio > limits.max_compression_ratio:
                    raise ArchiveTooLarge(
                        f"Entry {info.filename!r} has compression ratio {ratio:.0f} "
                        f"(limit {limits.max_compression_ratio:.0f})"
                    )

    def _is_malicious_name(self, name: str) -> bool:
        lowered = name.lower()
        if lowered.endswith(self._rules.denylist_suffixes):
            return True
        if any(marker in lowered for marker in self._rules.junk_markers):
            return True
        return _is_unsafe_path(name)

    def _extract_icon(self, zf: zipfile.ZipFile, files: dict[str, zipfile.ZipInfo]) -> ExtractedAsset | None:
        for candidate in self._rules.icon_candidates:
            info = files.get(candidate)
            if info is None:
                continue
            data = self._read(zf, info)
            if data is not None:
                return ExtractedAsset(name=candidate, data=data)
        return None

    def _extract_screenshots(
        self, zf: zipfile.ZipFile, files: dict[str, zipfile.ZipInfo]
    ) -> list[ExtractedAsset]:
        marker = self._rules.screenshot_marker
        candidates = sorted(
            name for name in files
            if marker in name.lower() and name.lower().endswith(self._rules.image_suffixes)
        )

        shots: list[ExtractedAsset] = []
        for name in candidates:
            if len(shots) >= self._rules.max_screenshots:
                break
            data = self._read(zf, files[name])
            if data is not None:
                shots.append(ExtractedAsset(name=name, data=data))
        return shots

    def _read(self, zf: zipfile.ZipFile, info: zipfile.ZipInfo) -> bytes | None:
        if info.file_size > self._limits.max_asset_bytes:
            return None
        try:
            with zf.open(info) as fh:
                return fh.read(self._limits.max_asset_bytes + 1)
        except _ARCHIVE_ERRORS + (RuntimeError,) as exc:
            raise InvalidArchive(f"Unreadable entry {info.filename!r}: {exc}") from exc


def _is_unsafe_path(name: str) -> bool:
    normalized = name.replace("\\", "/")
    if normalized.startswith("/") or _DRIVE_LETTER.match(normalized):
        return True
    return ".." in normalized.split("/")

from __future__ import annotations

import hashlib
import io
import json
import math
import re
import zipfile
import zlib
from collections import Counter

from ..domain.models import HeuristicReport
from ..domain.rules import ScanRules


_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")
_ANDROID_DEBUGGABLE = 'android:debuggable="true"'
_MAX_MANIFEST_BYTES = 1024 * 1024


def shannon_entropy(data: bytes) -> float:
    """Shannon entropy in bits per byte, 0.0 for empty input."""
    total = len(data)
    if total == 0:
        return 0.0
    entropy = 0.0
    for count in Counter(data).values():
        p = count / total
        entropy -= p * math.log2(p)
    return entropy


class HeuristicAnalyzer:
    """Local static analysis of a package archive.

    Self-contained: it re-opens the archive rather than trusting the intake
    pass, so it can run anywhere an engine can. Findings here are soft
    evidence feeding the verdict, never an intake-time reject.
    """

    def __init__(self, *, rules: ScanRules) -> None:
        self._rules = rules

    def analyze(self, data: bytes) -> HeuristicReport:
        entropy = shannon_entropy(data)
        reasons: list[str] = []

        try:
            with zipfile.ZipFile(io.BytesIO(data)) as zf:
                names = zf.namelist()
                reasons.extend(self._check_names(names))
                reasons.extend(self._check_manifest(zf, names))
                reasons.extend(self._check_certificates(zf, names))
        except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError, ValueError,
                OSError, NotImplementedError, RuntimeError, zlib.error) as exc:
            return HeuristicReport(
                suspicious=False,
                reasons=[],
                entropy=entropy,
                error=f"archive unreadable: {exc}",
            )

        if entropy > self._rules.entropy_threshold:
            reasons.append(f"High entropy detected: {entropy:.2f}")

        return HeuristicReport(
            suspicious=bool(reasons),
            reasons=reasons,
            entropy=entropy,
            file_count=len(names),
        )

    def _check_names(self, names: list[str]) -> list[str]:
        rules = self._rules
        suspicious: list[str] = []
        executables: list[str] = []

        for name in names:
            lowered = name.lower()
            tokens = set(_TOKEN_SPLIT.split(lowered))
            if tokens & rules.suspicious_keywords:
                suspicious.append(name)
            elif lowered.endswith(rules.native_suffixes) and "lib" in lowered:
                suspicious.append(name)

            if lowered.endswith(rules.embedded_executable_suffixes):
                executables.append(name)

        reasons: list[str] = []
        if suspicious:
            reasons.append(f"Suspicious files: {', '.join(suspicious)}")
        reasons.extend(f"Embedded executable: {name}" for name in executables)
        return reasons

    def _check_manifest(self, zf: zipfile.ZipFile, names: list[str]) -> list[str]:
        present = set(names)
        manifest_name = next((m for m in self._rules.manifest_files if m in present), None)
        if manifest_name is None:
            return []

        info = zf.getinfo(manifest_name)
        if info.file_size > _MAX_MANIFEST_BYTES:
            return [f"Oversized manifest: {manifest_name}"]
        text = zf.read(info).decode("utf-8", errors="replace")

        reasons: list[str] = []
        found = [p for p in self._rules.dangerous_permissions if p in text]
        if len(found) > self._rules.permission_threshold:
            reasons.append(f"Excessive permissions: {', '.join(found)}")

        if _debug_enabled(manifest_name, text):
            reasons.append("Debug mode enabled")
        return reasons

    def _check_certificates(self, zf: zipfile.ZipFile, names: list[str]) -> list[str]:
        bad = self._rules.known_bad_certificates
        if not bad:
            return []

        reasons: list[str] = []
        for name in names:
            upper = name.upper()
            if not upper.startswith("META-INF/"):
                continue
            if not name.lower().endswith(self._rules.certificate_suffixes):
                continue
            if zf.getinfo(name).file_size > _MAX_MANIFEST_BYTES:
                continue
            digest = hashlib.sha256(zf.read(name)).hexdigest()
            if digest in bad:
                reasons.append(f"Known malicious certificate: {name}")
        return reasons


def _debug_enabled(manifest_name: str, text: str) -> bool:
    if _ANDROID_DEBUGGABLE in text:
        return True
    if not manifest_name.endswith(".json"):
        return False
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return False
    if not isinstance(parsed, dict):
        return False
    return parsed.get("debug") is True or parsed.get("debuggable") is True

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from pathlib import Path


DEFAULT_DENYLIST_SUFFIXES = (
    ".exe", ".bat", ".sh", ".php", ".py", ".js",
    ".dll", ".cmd", ".ps1", ".vbs", ".scr",
)
DEFAULT_JUNK_MARKERS = ("__macosx", ".ds_store")
DEFAULT_ICON_CANDIDATES = ("icon.png", "assets/icon.png", "res/drawable/icon.png")
DEFAULT_IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg")
DEFAULT_SUSPICIOUS_KEYWORDS = frozenset({
    "malware", "virus", "exploit", "backdoor", "trojan", "rat",
    "keylogger", "rootkit", "spyware",
})
DEFAULT_NATIVE_SUFFIXES = (".so", ".dex", ".apk", ".jar")
DEFAULT_EMBEDDED_EXECUTABLE_SUFFIXES = (".exe", ".dll", ".bat", ".sh")
DEFAULT_MANIFEST_FILES = ("AndroidManifest.xml", "manifest.json")
DEFAULT_DANGEROUS_PERMISSIONS = (
    "READ_SMS", "SEND_SMS", "RECEIVE_SMS",
    "ACCESS_FINE_LOCATION", "RECORD_AUDIO",
    "CAMERA", "READ_CONTACTS", "READ_CALENDAR",
)
DEFAULT_CERTIFICATE_SUFFIXES = (".rsa", ".dsa", ".ec")


@dataclass(frozen=True)
class ScanRules:
    """Immutable rule set shared by the archive inspector and heuristics.

    Built once at process start and injected; nothing reads these sets from
    module globals at scan time.
    """
    denylist_suffixes: tuple[str, ...] = DEFAULT_DENYLIST_SUFFIXES
    junk_markers: tuple[str, ...] = DEFAULT_JUNK_MARKERS
    icon_candidates: tuple[str, ...] = DEFAULT_ICON_CANDIDATES
    screenshot_marker: str = "screenshot"
    image_suffixes: tuple[str, ...] = DEFAULT_IMAGE_SUFFIXES
    max_screenshots: int = 5

    suspicious_keywords: frozenset[str] = DEFAULT_SUSPICIOUS_KEYWORDS
    native_suffixes: tuple[str, ...] = DEFAULT_NATIVE_SUFFIXES
    embedded_executable_suffixes: tuple[str, ...] = DEFAULT_EMBEDDED_EXECUTABLE_SUFFIXES
    manifest_files: tuple[str, ...] = DEFAULT_MANIFEST_FILES
    dangerous_permissions: tuple[str, ...] = DEFAULT_DANGEROUS_PERMISSIONS
    permission_threshold: int = 5
    entropy_threshold: float = 7.5
    certificate_suffixes: tuple[str, ...] = DEFAULT_CERTIFICATE_SUFFIXES
    known_bad_certificates: frozenset[str] = field(default_factory=frozenset)


def load_known_certificates(path: Path) -> frozenset[str]:
    """Load a JSON list of SHA-256 certificate fingerprints (hex)."""
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"Known certificate file must hold a JSON list: {path}")
    return frozenset(str(item).strip().lower() for item in data if str(item).strip())


def build_rules(
    *,
    known_bad_certs_path: Path | None = None,
    entropy_threshold: float = 7.5,
    permission_threshold: int = 5,
    max_screenshots: int = 5,
) -> ScanRules:
    rules = ScanRules(
        entropy_threshold=entropy_threshold,
        permission_threshold=permission_threshold,
        max_screenshots=max_screenshots,
    )
    if known_bad_certs_path is not None:
        rules = replace(rules, known_bad_certificates=load_known_certificates(known_bad_certs_path))
    return rules

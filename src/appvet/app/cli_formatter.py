"""CLI output formatting utilities for human-readable display."""

from __future__ import annotations

from ..core.domain.models import AggregateVerdict, Package, ThreatLogEntry


def format_package(package: Package) -> str:
    """Format a stored package for human-readable CLI output.

    Args:
        package: Package record

    Returns:
        Formatted string for display
    """
    lines = []
    lines.append("=" * 80)
    lines.append("PACKAGE")
    lines.append("=" * 80)

    manifest = package.manifest
    lines.append(f"\nID: {package.id}")
    lines.append(f"Name: {manifest.name} {manifest.version}")
    if manifest.author:
        lines.append(f"Author: {manifest.author}")
    lines.append(f"SHA-256: {package.content_hash}")
    lines.append(f"Size: {package.size_bytes} bytes")
    lines.append(f"Uploaded: {package.uploaded_at.isoformat()}")

    lines.append("\n" + "-" * 80)
    lines.append("TRUST")
    lines.append("-" * 80)
    lines.append(f"\nStatus: {package.status.value.upper()}")
    lines.append(f"Verified: {'yes' if package.verified else 'no'}")
    if package.last_scan_at:
        lines.append(f"Last scan: {package.last_scan_at.isoformat()}")

    results = package.scan_results or {}
    threats = results.get("threats") or []
    if threats:
        lines.append("\nThreats:")
        for i, threat in enumerate(threats, 1):
            lines.append(f"  {i}. {threat}")

    per_engine = results.get("perEngine") or []
    if per_engine:
        lines.append("\nEngines:")
        for r in per_engine:
            lines.append(f"  - {_engine_line(r)}")

    lines.append("\n" + "=" * 80)
    return "\n".join(lines)


def format_verdict(package_id: str, verdict: AggregateVerdict) -> str:
    lines = [f"Package {package_id}: {verdict.status.value.upper()}"]
    if not verdict.conclusive:
        lines.append(f"  Inconclusive: only {verdict.responded} engine(s) responded")
    for threat in verdict.threats:
        lines.append(f"  ! {threat}")
    for result in verdict.per_engine:
        lines.append(f"  - {_engine_line(result.to_dict())}")
    return "\n".join(lines)


def format_threat_logs(entries: list[ThreatLogEntry]) -> str:
    if not entries:
        return "No threats recorded."

    lines = []
    for entry in entries:
        lines.append(f"[{entry.detected_at.isoformat()}] {entry.package_id} ({entry.content_hash[:12]})")
        for threat in entry.threats:
            lines.append(f"    {threat}")
    return "\n".join(lines)


def _engine_line(result: dict) -> str:
    engine = result.get("engine")
    state = result.get("state")
    if state != "ok":
        return f"{engine}: {state} ({result.get('error') or 'no detail'})"
    if result.get("positive"):
        return f"{engine}: POSITIVE {result.get('detail')}"
    return f"{engine}: clean"

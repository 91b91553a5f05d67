from __future__ import annotations

from .archive_inspector import ArchiveInspector, ArchiveLimits
from .heuristics import HeuristicAnalyzer, shannon_entropy
from .intake_service import IntakeService, sha256_hex
from .scan_orchestrator import ScanOrchestrator, aggregate

__all__ = [
    "ArchiveInspector",
    "ArchiveLimits",
    "HeuristicAnalyzer",
    "shannon_entropy",
    "IntakeService",
    "sha256_hex",
    "ScanOrchestrator",
    "aggregate",
]

from __future__ import annotations

from typing import Optional

from ...core.domain.models import EngineResult
from ...core.services.heuristics import HeuristicAnalyzer


ENGINE_NAME = "heuristic"


class HeuristicEngine:
    name = ENGINE_NAME

    def __init__(self, *, analyzer: HeuristicAnalyzer, timeout: float = 30.0) -> None:
        self.timeout = timeout
        self._analyzer = analyzer

    def scan(self, data: bytes, content_hash: str, source_url: Optional[str] = None) -> EngineResult:
        report = self._analyzer.analyze(data)
        return EngineResult(
            engine=self.name,
            positive=report.suspicious,
            detail=f"Heuristic: {', '.join(report.reasons)}" if report.suspicious else "",
            raw={
                "entropy": round(report.entropy, 4),
                "reasons": list(report.reasons),
                "fileCount": report.file_count,
                "error": report.error,
            },
        )

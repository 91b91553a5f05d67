from __future__ import annotations

from ..domain.models import AggregateVerdict
from ..ports import ScanRunnerPort


class ScanUseCase:
    """Use case for (re-)scanning a stored package synchronously."""

    def __init__(self, *, orchestrator: ScanRunnerPort) -> None:
        self._orchestrator = orchestrator

    def execute(self, *, package_id: str) -> AggregateVerdict:
        return self._orchestrator.scan(package_id)

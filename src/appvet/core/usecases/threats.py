from __future__ import annotations

from ..domain.models import ThreatLogEntry
from ..ports import MetadataStorePort


class ThreatsUseCase:
    def __init__(self, *, metadata_store: MetadataStorePort) -> None:
        self._metadata = metadata_store

    def execute(self, *, package_id: str | None = None) -> list[ThreatLogEntry]:
        return self._metadata.list_threat_logs(package_id)

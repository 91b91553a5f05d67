from __future__ import annotations

from typing import Any, Mapping

from ..domain.models import Manifest, Package
from ..services import IntakeService


class IngestUseCase:
    """Use case for uploading a package.

    Thin layer over IntakeService.
    """

    def __init__(self, *, intake: IntakeService) -> None:
        self._intake = intake

    def execute(self, *, data: bytes, manifest: Manifest | str | bytes | Mapping[str, Any] | None) -> Package:
        return self._intake.ingest(data, manifest)

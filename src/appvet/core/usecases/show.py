from __future__ import annotations

from ..domain.exceptions import PackageNotFound
from ..domain.models import Package
from ..ports import MetadataStorePort


class ShowPackageUseCase:
    def __init__(self, *, metadata_store: MetadataStorePort) -> None:
        self._metadata = metadata_store

    def execute(self, *, package_id: str) -> Package:
        package = self._metadata.get(package_id)
        if package is None:
            raise PackageNotFound(package_id)
        return package

from __future__ import annotations

from ..domain.exceptions import PackageNotFound
from ..domain.models import ScanRequest
from ..ports import MetadataStorePort, ScanQueuePort


class RescanUseCase:
    """Queue another scan run for an existing package."""

    def __init__(self, *, metadata_store: MetadataStorePort, scan_queue: ScanQueuePort) -> None:
        self._metadata = metadata_store
        self._queue = scan_queue

    def execute(self, *, package_id: str) -> ScanRequest:
        package = self._metadata.get(package_id)
        if package is None:
            raise PackageNotFound(package_id)
        request = ScanRequest(
            package_id=package_id,
            content_hash=package.content_hash,
            blob_ref=package.blob_ref,
        )
        self._queue.submit(request)
        return request

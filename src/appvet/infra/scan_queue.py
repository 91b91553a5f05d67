from __future__ import annotations

import queue
import threading
from dataclasses import replace
from typing import Optional

from dependency_injector.resources import Resource

from ..core.domain.exceptions import PackageNotFound
from ..core.domain.models import PackageStatus, ScanRequest
from ..core.ports import LoggerPort, MetadataStorePort, ScanRunnerPort


class ThreadedScanQueue(Resource):
    """In-process scan queue backed by ``queue.Queue`` and worker threads.

    Delivery is at-least-once. A failed scan is resubmitted until
    ``max_attempts`` is reached. On start, and then every ``sweep_interval``
    seconds, packages the store still holds at ``uploaded`` are resubmitted,
    so work lost to a crash or submitted by another process is picked up.
    Packages stuck at ``scanning`` are redelivered on start only.
    """

    def init(
        self,
        *,
        runner: ScanRunnerPort,
        metadata_store: MetadataStorePort,
        logger: LoggerPort,
        workers: int = 2,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        sweep_interval: float = 60.0,
    ) -> "ThreadedScanQueue":
        """Start worker threads and redeliver unfinished packages.

        Returns:
            Self for dependency_injector Resource pattern
        """
        self._runner = runner
        self._metadata = metadata_store
        self._logger = logger
        self._max_attempts = max(1, max_attempts)
        self._retry_delay = retry_delay
        self._sweep_interval = sweep_interval

        self._queue: queue.Queue[Optional[ScanRequest]] = queue.Queue()
        self._pending: set[str] = set()
        self._pending_lock = threading.Lock()
        self._stopping = threading.Event()

        self._threads = [
            threading.Thread(target=self._work, name=f"scan-worker-{i}", daemon=True)
            for i in range(max(1, workers))
        ]
        for thread in self._threads:
            thread.start()

        self._redeliver((PackageStatus.UPLOADED, PackageStatus.SCANNING))

        if sweep_interval > 0:
            sweeper = threading.Thread(target=self._sweep, name="scan-sweeper", daemon=True)
            sweeper.start()
            self._threads.append(sweeper)

        return self

    def shutdown(self, resource: "ThreadedScanQueue") -> None:
        """Stop workers after their current delivery.

        Requests still queued are dropped; their packages remain at
        ``uploaded`` and are redelivered on the next start.
        """
        self._stopping.set()
        for _ in self._threads:
            self._queue.put(None)
        for thread in self._threads:
            thread.join(timeout=5.0)

    def submit(self, request: ScanRequest) -> None:
        with self._pending_lock:
            if request.attempt == 1 and request.package_id in self._pending:
                return
            self._pending.add(request.package_id)
        self._queue.put(request)

    def join(self) -> None:
        """Block until every submitted request has been delivered."""
        self._queue.join()

    def _work(self) -> None:
        while True:
            request = self._queue.get()
            try:
                if request is None or self._stopping.is_set():
                    return
                self._deliver(request)
            finally:
                self._queue.task_done()

    def _deliver(self, request: ScanRequest) -> None:
        try:
            self._runner.scan(request.package_id)
        except PackageNotFound:
            self._logger.warning("scan_delivery_dropped", package_id=request.package_id)
        except Exception as exc:
            self._logger.error(
                "scan_delivery_failed",
                exc_info=True,
                package_id=request.package_id,
                attempt=request.attempt,
                max_attempts=self._max_attempts,
                error=str(exc),
            )
            if request.attempt < self._max_attempts and not self._stopping.wait(self._retry_delay):
                self._queue.put(replace(request, attempt=request.attempt + 1))
                return
        with self._pending_lock:
            self._pending.discard(request.package_id)

    def _redeliver(self, statuses: tuple[PackageStatus, ...]) -> None:
        try:
            packages = self._metadata.list_by_status(statuses)
        except Exception:
            self._logger.exception("scan_redelivery_failed")
            return
        for package in packages:
            assert package.id is not None
            self.submit(
                ScanRequest(
                    package_id=package.id,
                    content_hash=package.content_hash,
                    blob_ref=package.blob_ref,
                )
            )
        if packages:
            self._logger.info("scan_redelivered", count=len(packages))

    def _sweep(self) -> None:
        while not self._stopping.wait(self._sweep_interval):
            self._redeliver((PackageStatus.UPLOADED,))


class InlineScanQueue:
    """Runs the scan in the submitting thread; errors propagate to the caller."""

    def __init__(self, *, runner: ScanRunnerPort) -> None:
        self._runner = runner

    def submit(self, request: ScanRequest) -> None:
        self._runner.scan(request.package_id)


class DeferredScanQueue:
    """Leaves the package at ``uploaded`` for a running server's sweep."""

    def __init__(self, *, logger: LoggerPort) -> None:
        self._logger = logger

    def submit(self, request: ScanRequest) -> None:
        self._logger.info("scan_deferred", package_id=request.package_id)

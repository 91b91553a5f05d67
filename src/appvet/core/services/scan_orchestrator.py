from __future__ import annotations

import hashlib
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from contextlib import contextmanager
from typing import Iterator, Sequence

from ..domain.exceptions import EngineTimeout, EngineUnavailable, PackageNotFound, StorageFailure
from ..domain.models import (
    AggregateVerdict,
    EngineResult,
    EngineState,
    PackageStatus,
    ThreatLogEntry,
    utcnow,
)
from ..ports import (
    AdminNotifierPort,
    ContentStorePort,
    LoggerPort,
    MetadataStorePort,
    ScanEnginePort,
)


def aggregate(results: Sequence[EngineResult], *, min_responding: int = 1) -> AggregateVerdict:
    """Fold per-engine results into one verdict.

    Any positive answer from an engine that responded makes the verdict
    malicious. Failed or timed-out engines contribute nothing. Threat strings
    keep each engine's own phrasing, in engine order. ``min_responding``
    only gates clean verdicts; a malicious one is always conclusive.
    """
    responded = [r for r in results if r.responded]
    threats = [r.detail for r in responded if r.positive]
    status = PackageStatus.MALICIOUS if threats else PackageStatus.CLEAN
    return AggregateVerdict(
        status=status,
        threats=threats,
        per_engine=list(results),
        responded=len(responded),
        conclusive=bool(threats) or len(responded) >= min_responding,
    )


class ScanOrchestrator:
    """Fans a package out to every configured engine and persists the verdict.

    The orchestrator is the only writer of a package's ``status``,
    ``verified`` and ``scan_results``.
    """

    def __init__(
        self,
        *,
        engines: Sequence[ScanEnginePort],
        content_store: ContentStorePort,
        metadata_store: MetadataStorePort,
        notifier: AdminNotifierPort,
        logger: LoggerPort,
        min_responding_engines: int = 1,
    ) -> None:
        self._engines = list(engines)
        self._content = content_store
        self._metadata = metadata_store
        self._notifier = notifier
        self._logger = logger
        self._min_responding = min_responding_engines
        # package id -> [lock, holders]; entries go away with their last holder
        self._locks: dict[str, list] = {}
        self._locks_guard = threading.Lock()

    def scan(self, package_id: str) -> AggregateVerdict:
        """Run a full scan for one package.

        Safe to call more than once for the same package: each run overwrites
        the verdict and appends its own scan-run and threat-log rows.

        Raises:
            PackageNotFound: Unknown package id
            StorageFailure: Blob missing or its hash does not match the record
        """
        with self._package_lock(package_id):
            package = self._metadata.get(package_id)
            if package is None:
                raise PackageNotFound(package_id)

            self._metadata.mark_scanning(package_id)
            self._logger.info(
                "scan_started",
                package_id=package_id,
                content_hash=package.content_hash,
                engines=[e.name for e in self._engines],
            )

            data = self._content.get(package.blob_ref)
            actual = hashlib.sha256(data).hexdigest()
            if actual != package.content_hash:
                self._logger.error(
                    "blob_integrity_failed",
                    package_id=package_id,
                    expected=package.content_hash,
                    actual=actual,
                )
                raise StorageFailure(f"Stored blob for {package_id} does not match its content hash")

            results = self._dispatch(data, package.content_hash, package.blob_ref)
            verdict = aggregate(results, min_responding=self._min_responding)
            self._persist(package_id, package.content_hash, verdict, previous=package.status)
            return verdict

    @contextmanager
    def _package_lock(self, package_id: str) -> Iterator[None]:
        with self._locks_guard:
            entry = self._locks.setdefault(package_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[package_id]

    def _dispatch(self, data: bytes, content_hash: str, source_url: str | None) -> list[EngineResult]:
        if not self._engines:
            return []

        executor = ThreadPoolExecutor(
            max_workers=len(self._engines),
            thread_name_prefix="scan-engine",
        )
        try:
            started = time.monotonic()
            futures: list[tuple[ScanEnginePort, Future[EngineResult]]] = [
                (engine, executor.submit(engine.scan, data, content_hash, source_url))
                for engine in self._engines
            ]
            results: list[EngineResult] = []
            for engine, future in futures:
                # Every engine started at the same instant, so waiting on
                # absolute deadlines bounds the whole join by the largest
                # timeout.
                remaining = max(0.0, started + engine.timeout - time.monotonic())
                results.append(self._collect(engine, future, remaining))
            return results
        finally:
            # Abandon hung engine calls rather than block on them.
            executor.shutdown(wait=False, cancel_futures=True)

    def _collect(self, engine: ScanEnginePort, future: Future[EngineResult], wait: float) -> EngineResult:
        try:
            result = future.result(timeout=wait)
        except FutureTimeout:
            future.cancel()
            result = EngineResult(
                engine=engine.name,
                state=EngineState.TIMEOUT,
                error=f"no answer within {engine.timeout:g}s",
            )
        except EngineTimeout as exc:
            result = EngineResult(engine=engine.name, state=EngineState.TIMEOUT, error=str(exc))
        except EngineUnavailable as exc:
            result = EngineResult(engine=engine.name, state=EngineState.UNAVAILABLE, error=str(exc))
        except Exception as exc:
            self._logger.exception("engine_crashed", engine=engine.name)
            result = EngineResult(
                engine=engine.name,
                state=EngineState.UNAVAILABLE,
                error=f"{type(exc).__name__}: {exc}",
            )

        if result.responded:
            self._logger.info(
                "engine_result",
                engine=result.engine,
                positive=result.positive,
                detail=result.detail,
            )
        else:
            self._logger.warning(
                "engine_failed",
                engine=result.engine,
                state=result.state.value,
                error=result.error,
            )
        return result

    def _persist(
        self,
        package_id: str,
        content_hash: str,
        verdict: AggregateVerdict,
        *,
        previous: PackageStatus,
    ) -> None:
        scan_results = verdict.to_dict()
        run_id = self._metadata.record_scan_run(package_id, verdict)

        if not verdict.conclusive:
            # A settled verdict keeps the evidence it was settled on; the
            # inconclusive run is still in the scan-run history.
            settled = previous.is_terminal
            if not settled:
                self._metadata.store_scan_results(
                    package_id,
                    scan_results=scan_results,
                    scanned_at=verdict.scanned_at,
                )
            self._logger.warning(
                "scan_inconclusive",
                package_id=package_id,
                scan_run_id=run_id,
                responded=verdict.responded,
                required=self._min_responding,
                kept_previous=settled,
            )
            return

        if verdict.is_malicious:
            entry = self._metadata.append_threat_log(
                ThreatLogEntry(
                    package_id=package_id,
                    content_hash=content_hash,
                    threats=tuple(verdict.threats),
                    detected_at=utcnow(),
                    scan_results=scan_results,
                )
            )
            self._logger.warning(
                "threat_logged",
                package_id=package_id,
                threat_log_id=entry.id,
                threats=verdict.threats,
            )

        self._metadata.apply_verdict(
            package_id,
            status=verdict.status,
            verified=not verdict.is_malicious,
            scan_results=scan_results,
            scanned_at=verdict.scanned_at,
        )
        self._logger.info(
            "scan_completed",
            package_id=package_id,
            scan_run_id=run_id,
            status=verdict.status.value,
            responded=verdict.responded,
            threats=verdict.threats,
        )

        if verdict.is_malicious:
            try:
                self._notifier.notify(package_id, verdict.threats)
            except Exception:
                self._logger.exception("admin_notify_failed", package_id=package_id)

from __future__ import annotations

from dependency_injector import containers, providers

from .config import AppConfig
from ..core.domain.rules import build_rules
from ..core.services import ArchiveInspector, ArchiveLimits, HeuristicAnalyzer, IntakeService, ScanOrchestrator
from ..core.usecases.ingest import IngestUseCase
from ..core.usecases.rescan import RescanUseCase
from ..core.usecases.scan import ScanUseCase
from ..core.usecases.show import ShowPackageUseCase
from ..core.usecases.threats import ThreatsUseCase
from ..infra.content_store import FilesystemContentStore
from ..infra.engines.registry import build_engines
from ..infra.logging import ServiceLogger
from ..infra.metadata_store import SqlMetadataStore
from ..infra.notifier import AdminNotifier
from ..infra.scan_queue import DeferredScanQueue, InlineScanQueue, ThreadedScanQueue


SCAN_MODES = ("threaded", "inline", "deferred")


class Container(containers.DeclarativeContainer):
    """DI container with Pydantic BaseSettings support."""

    # Configuration - supports Pydantic models
    config = providers.Configuration(pydantic_settings=[AppConfig()])

    # Logger (Resource: manages lifecycle with init/shutdown)
    logger = providers.Resource(
        ServiceLogger,
        logs_dir=config.directories.logs_dir,
        logger_name=config.logging.logger_name,
        console_output=config.logging.console_output,
        level=config.logging.level,
        max_bytes=config.logging.max_bytes,
        backup_count=config.logging.backup_count,
    )

    # Rules and pure services
    rules = providers.Singleton(
        build_rules,
        known_bad_certs_path=config.rules.known_bad_certs_path,
        entropy_threshold=config.rules.entropy_threshold,
        permission_threshold=config.rules.permission_threshold,
        max_screenshots=config.rules.max_screenshots,
    )

    archive_limits = providers.Singleton(
        ArchiveLimits,
        max_entries=config.limits.max_entries,
        max_uncompressed_bytes=config.limits.max_uncompressed_bytes,
        max_compression_ratio=config.limits.max_compression_ratio,
        max_asset_bytes=config.limits.max_asset_bytes,
    )

    inspector = providers.Singleton(ArchiveInspector, rules=rules, limits=archive_limits)

    analyzer = providers.Singleton(HeuristicAnalyzer, rules=rules)

    # Storage adapters
    content_store = providers.Singleton(
        FilesystemContentStore,
        root=config.directories.blobs_dir,
    )

    metadata_store = providers.Singleton(
        SqlMetadataStore,
        url=config.database_url,
        echo=config.database.echo,
    )

    # Scan engines, in verdict order
    engines = providers.Singleton(
        build_engines,
        enabled=config.engines.enabled,
        analyzer=analyzer,
        default_timeout=config.engines.default_timeout,
        clamav=config.engines.clamav,
        virustotal=config.engines.virustotal,
        yara=config.engines.yara,
    )

    notifier = providers.Singleton(
        AdminNotifier,
        metadata_store=metadata_store,
        logger=logger,
        webhook_url=config.notify.webhook_url,
        timeout=config.notify.timeout,
        priority=config.notify.priority,
    )

    # Singleton: the per-package scan locks must be shared
    scan_orchestrator = providers.Singleton(
        ScanOrchestrator,
        engines=engines,
        content_store=content_store,
        metadata_store=metadata_store,
        notifier=notifier,
        logger=logger,
        min_responding_engines=config.scan.min_responding_engines,
    )

    scan_queue = providers.Resource(
        ThreadedScanQueue,
        runner=scan_orchestrator,
        metadata_store=metadata_store,
        logger=logger,
        workers=config.scan.workers,
        max_attempts=config.scan.max_attempts,
        retry_delay=config.scan.retry_delay,
        sweep_interval=config.scan.sweep_interval,
    )

    intake = providers.Factory(
        IntakeService,
        inspector=inspector,
        content_store=content_store,
        metadata_store=metadata_store,
        scan_queue=scan_queue,
        logger=logger,
        max_package_bytes=config.limits.max_package_bytes,
    )

    # Use cases
    ingest_uc = providers.Factory(IngestUseCase, intake=intake)

    scan_uc = providers.Factory(ScanUseCase, orchestrator=scan_orchestrator)

    rescan_uc = providers.Factory(
        RescanUseCase,
        metadata_store=metadata_store,
        scan_queue=scan_queue,
    )

    show_uc = providers.Factory(ShowPackageUseCase, metadata_store=metadata_store)

    threats_uc = providers.Factory(ThreatsUseCase, metadata_store=metadata_store)


def create_container(config: AppConfig | None = None, *, scan_mode: str = "threaded") -> Container:
    """Create and initialize a container.

    Args:
        config: Optional config. If None, loads from environment variables.
        scan_mode: ``threaded`` starts the worker queue, ``inline`` scans in
            the submitting call, ``deferred`` leaves packages for a running
            server to pick up.

    Returns:
        Initialized container instance
    """
    if scan_mode not in SCAN_MODES:
        raise ValueError(f"Unknown scan mode {scan_mode!r}")

    container = Container()

    if config is None:
        # Load from environment variables (BaseSettings default behavior)
        config = AppConfig()

    container.config.from_pydantic(config)

    if scan_mode == "inline":
        container.scan_queue.override(
            providers.Singleton(InlineScanQueue, runner=container.scan_orchestrator)
        )
    elif scan_mode == "deferred":
        container.scan_queue.override(
            providers.Singleton(DeferredScanQueue, logger=container.logger)
        )

    container.init_resources()
    return container

from __future__ import annotations

import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterable, Iterator, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..core.domain.exceptions import DuplicatePackage, StorageFailure
from ..core.domain.models import (
    AggregateVerdict,
    Manifest,
    Package,
    PackageStatus,
    ThreatLogEntry,
    utcnow,
)


Base = declarative_base()


class PackageRow(Base):
    __tablename__ = "packages"

    id = Column(String(32), primary_key=True)
    content_hash = Column(String(64), unique=True, index=True, nullable=False)

    # Manifest
    name = Column(String(255), nullable=False)
    version = Column(String(64), nullable=False)
    type = Column(String(64))
    entry_point = Column(String(512))
    permissions = Column(JSON, nullable=False, default=list)
    description = Column(Text)
    author = Column(String(255))
    license = Column(String(128))

    # Stored blobs
    icon_ref = Column(String(128))
    screenshot_refs = Column(JSON, nullable=False, default=list)
    blob_ref = Column(String(128), nullable=False)
    size_bytes = Column(BigInteger, nullable=False)
    uploaded_at = Column(DateTime(timezone=True), nullable=False)

    # Trust state, written only by the scan orchestrator
    verified = Column(Boolean, nullable=False, default=False)
    status = Column(String(16), nullable=False, index=True)
    scan_results = Column(JSON)
    last_scan_at = Column(DateTime(timezone=True))

    # Usage counters
    downloads = Column(Integer, nullable=False, default=0)
    rating = Column(Float, nullable=False, default=0.0)


class ScanRunRow(Base):
    __tablename__ = "scan_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    package_id = Column(String(32), ForeignKey("packages.id"), nullable=False, index=True)
    status = Column(String(16), nullable=False)
    conclusive = Column(Boolean, nullable=False)
    responded = Column(Integer, nullable=False)
    verdict = Column(JSON, nullable=False)
    scanned_at = Column(DateTime(timezone=True), nullable=False, index=True)


class ThreatLogRow(Base):
    __tablename__ = "threat_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    package_id = Column(String(32), ForeignKey("packages.id"), nullable=False, index=True)
    content_hash = Column(String(64), nullable=False, index=True)
    threats = Column(JSON, nullable=False)
    scan_results = Column(JSON)
    detected_at = Column(DateTime(timezone=True), nullable=False, index=True)


class AdminNotificationRow(Base):
    __tablename__ = "admin_notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String(64), nullable=False)
    package_id = Column(String(32), nullable=False, index=True)
    threats = Column(JSON, nullable=False)
    priority = Column(String(16), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


def _aware(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo; everything is stored in UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_package(row: PackageRow) -> Package:
    return Package(
        id=row.id,
        content_hash=row.content_hash,
        manifest=Manifest(
            name=row.name,
            version=row.version,
            type=row.type,
            entry_point=row.entry_point,
            permissions=tuple(row.permissions or ()),
            description=row.description,
            author=row.author,
            license=row.license,
        ),
        icon_ref=row.icon_ref,
        screenshot_refs=list(row.screenshot_refs or []),
        blob_ref=row.blob_ref,
        size_bytes=row.size_bytes,
        uploaded_at=_aware(row.uploaded_at),
        verified=row.verified,
        status=PackageStatus(row.status),
        scan_results=row.scan_results,
        last_scan_at=_aware(row.last_scan_at),
        downloads=row.downloads,
        rating=row.rating,
    )


def _to_threat(row: ThreatLogRow) -> ThreatLogEntry:
    return ThreatLogEntry(
        id=row.id,
        package_id=row.package_id,
        content_hash=row.content_hash,
        threats=tuple(row.threats or ()),
        scan_results=row.scan_results,
        detected_at=_aware(row.detected_at),
    )


class SqlMetadataStore:
    """Relational store for packages, scan runs, threat logs and admin alerts.

    Any SQLAlchemy URL works; SQLite is the default. The unique index on
    ``packages.content_hash`` is the final authority on deduplication.
    """

    def __init__(self, *, url: str, echo: bool = False) -> None:
        kwargs: dict[str, Any] = {"echo": echo, "future": True}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
                kwargs["poolclass"] = StaticPool
        self._engine = create_engine(url, **kwargs)
        self._sessions = sessionmaker(bind=self._engine, expire_on_commit=False)
        Base.metadata.create_all(self._engine)

    def close(self) -> None:
        self._engine.dispose()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._sessions()
        try:
            yield session
            session.commit()
        except IntegrityError:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageFailure(f"Metadata store error: {exc}") from exc
        finally:
            session.close()

    def insert(self, package: Package) -> Package:
        package_id = package.id or uuid.uuid4().hex
        manifest = package.manifest
        row = PackageRow(
            id=package_id,
            content_hash=package.content_hash,
            name=manifest.name,
            version=manifest.version,
            type=manifest.type,
            entry_point=manifest.entry_point,
            permissions=list(manifest.permissions),
            description=manifest.description,
            author=manifest.author,
            license=manifest.license,
            icon_ref=package.icon_ref,
            screenshot_refs=list(package.screenshot_refs),
            blob_ref=package.blob_ref,
            size_bytes=package.size_bytes,
            uploaded_at=package.uploaded_at,
            verified=package.verified,
            status=package.status.value,
            scan_results=package.scan_results,
            last_scan_at=package.last_scan_at,
            downloads=package.downloads,
            rating=package.rating,
        )
        try:
            with self._session() as session:
                session.add(row)
        except IntegrityError as exc:
            existing = self.find_by_hash(package.content_hash)
            if existing is None:
                raise StorageFailure(f"Failed to insert package: {exc}") from exc
            raise DuplicatePackage(package.content_hash, existing.id) from exc
        return _to_package(row)

    def find_by_hash(self, content_hash: str) -> Optional[Package]:
        with self._session() as session:
            row = session.scalars(
                select(PackageRow).where(PackageRow.content_hash == content_hash)
            ).first()
            return _to_package(row) if row is not None else None

    def get(self, package_id: str) -> Optional[Package]:
        with self._session() as session:
            row = session.get(PackageRow, package_id)
            return _to_package(row) if row is not None else None

    def mark_scanning(self, package_id: str) -> bool:
        with self._session() as session:
            result = session.execute(
                update(PackageRow)
                .where(PackageRow.id == package_id)
                .where(PackageRow.status == PackageStatus.UPLOADED.value)
                .values(status=PackageStatus.SCANNING.value)
            )
            return result.rowcount > 0

    def apply_verdict(
        self,
        package_id: str,
        *,
        status: PackageStatus,
        verified: bool,
        scan_results: dict[str, Any],
        scanned_at: datetime,
    ) -> None:
        with self._session() as session:
            session.execute(
                update(PackageRow)
                .where(PackageRow.id == package_id)
                .values(
                    status=status.value,
                    verified=verified and status is PackageStatus.CLEAN,
                    scan_results=scan_results,
                    last_scan_at=scanned_at,
                )
            )

    def store_scan_results(self, package_id: str, *, scan_results: dict[str, Any], scanned_at: datetime) -> None:
        with self._session() as session:
            session.execute(
                update(PackageRow)
                .where(PackageRow.id == package_id)
                .values(scan_results=scan_results, last_scan_at=scanned_at)
            )

    def record_scan_run(self, package_id: str, verdict: AggregateVerdict) -> int:
        row = ScanRunRow(
            package_id=package_id,
            status=verdict.status.value,
            conclusive=verdict.conclusive,
            responded=verdict.responded,
            verdict=verdict.to_dict(),
            scanned_at=verdict.scanned_at,
        )
        with self._session() as session:
            session.add(row)
            session.flush()
            return row.id

    def list_scan_runs(self, package_id: str) -> list[dict[str, Any]]:
        with self._session() as session:
            rows = session.scalars(
                select(ScanRunRow)
                .where(ScanRunRow.package_id == package_id)
                .order_by(ScanRunRow.id)
            ).all()
            return [
                {
                    "id": r.id,
                    "status": r.status,
                    "conclusive": r.conclusive,
                    "responded": r.responded,
                    "scannedAt": _aware(r.scanned_at).isoformat(),
                }
                for r in rows
            ]

    def append_threat_log(self, entry: ThreatLogEntry) -> ThreatLogEntry:
        row = ThreatLogRow(
            package_id=entry.package_id,
            content_hash=entry.content_hash,
            threats=list(entry.threats),
            scan_results=entry.scan_results,
            detected_at=entry.detected_at,
        )
        with self._session() as session:
            session.add(row)
            session.flush()
            return _to_threat(row)

    def list_threat_logs(self, package_id: Optional[str] = None) -> list[ThreatLogEntry]:
        stmt = select(ThreatLogRow).order_by(ThreatLogRow.id)
        if package_id is not None:
            stmt = stmt.where(ThreatLogRow.package_id == package_id)
        with self._session() as session:
            return [_to_threat(r) for r in session.scalars(stmt).all()]

    def list_by_status(self, statuses: Iterable[PackageStatus]) -> list[Package]:
        values = [s.value for s in statuses]
        with self._session() as session:
            rows = session.scalars(
                select(PackageRow)
                .where(PackageRow.status.in_(values))
                .order_by(PackageRow.uploaded_at)
            ).all()
            return [_to_package(r) for r in rows]

    def append_admin_notification(self, package_id: str, threats: list[str], *, priority: str = "high") -> None:
        with self._session() as session:
            session.add(
                AdminNotificationRow(
                    type="malware_detected",
                    package_id=package_id,
                    threats=list(threats),
                    priority=priority,
                    created_at=utcnow(),
                )
            )

    def list_admin_notifications(self) -> list[dict[str, Any]]:
        with self._session() as session:
            rows = session.scalars(select(AdminNotificationRow).order_by(AdminNotificationRow.id)).all()
            return [
                {
                    "id": r.id,
                    "type": r.type,
                    "packageId": r.package_id,
                    "threats": list(r.threats or []),
                    "priority": r.priority,
                    "createdAt": _aware(r.created_at).isoformat(),
                }
                for r in rows
            ]

import threading
from datetime import datetime, timezone

import pytest

from appvet.core.domain.exceptions import DuplicatePackage
from appvet.core.domain.models import (
    AggregateVerdict,
    EngineResult,
    Manifest,
    Package,
    PackageStatus,
    ThreatLogEntry,
    utcnow,
)
from appvet.infra.metadata_store import SqlMetadataStore


@pytest.fixture
def store(tmp_path):
    s = SqlMetadataStore(url=f"sqlite:///{tmp_path / 'meta.db'}")
    yield s
    s.close()


def new_package(content_hash: str = "a" * 64) -> Package:
    return Package(
        content_hash=content_hash,
        manifest=Manifest(name="Notes", version="1.0", entry_point="index.html", permissions=("net",)),
        blob_ref=f"packages/{content_hash}",
        size_bytes=123,
        icon_ref="icons/" + "c" * 64,
        screenshot_refs=["screenshots/" + "d" * 64],
    )


def verdict(status: PackageStatus, threats=(), conclusive=True) -> AggregateVerdict:
    return AggregateVerdict(
        status=status,
        threats=list(threats),
        per_engine=[EngineResult(engine="clamav", positive=bool(threats), detail=", ".join(threats))],
        responded=1,
        conclusive=conclusive,
    )


def test_insert_and_get(store):
    created = store.insert(new_package())

    loaded = store.get(created.id)

    assert loaded is not None
    assert loaded.id == created.id
    assert loaded.manifest.entry_point == "index.html"
    assert loaded.manifest.permissions == ("net",)
    assert loaded.screenshot_refs == ["screenshots/" + "d" * 64]
    assert loaded.status is PackageStatus.UPLOADED
    assert loaded.verified is False
    assert loaded.uploaded_at.tzinfo is not None
    assert store.find_by_hash("a" * 64).id == created.id
    assert store.get("missing") is None
    assert store.find_by_hash("f" * 64) is None


def test_unique_content_hash(store):
    first = store.insert(new_package())

    with pytest.raises(DuplicatePackage) as exc_info:
        store.insert(new_package())

    assert exc_info.value.existing_id == first.id


def test_concurrent_inserts_produce_one_record(store):
    errors: list[Exception] = []
    winners: list[Package] = []

    def worker():
        try:
            winners.append(store.insert(new_package("e" * 64)))
        except DuplicatePackage as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(winners) == 1
    assert len(errors) == 4
    assert all(e.existing_id == winners[0].id for e in errors)


def test_mark_scanning_only_from_uploaded(store):
    pid = store.insert(new_package()).id

    assert store.mark_scanning(pid) is True
    assert store.mark_scanning(pid) is False
    assert store.get(pid).status is PackageStatus.SCANNING


def test_apply_verdict_writes_all_fields(store):
    pid = store.insert(new_package()).id
    v = verdict(PackageStatus.CLEAN)
    scanned_at = datetime(2024, 5, 1, tzinfo=timezone.utc)

    store.apply_verdict(pid, status=PackageStatus.CLEAN, verified=True, scan_results=v.to_dict(), scanned_at=scanned_at)

    loaded = store.get(pid)
    assert loaded.status is PackageStatus.CLEAN
    assert loaded.verified is True
    assert loaded.scan_results["status"] == "clean"
    assert loaded.last_scan_at == scanned_at


def test_malicious_verdict_is_never_verified(store):
    pid = store.insert(new_package()).id
    v = verdict(PackageStatus.MALICIOUS, ["ClamAV: x"])

    store.apply_verdict(pid, status=PackageStatus.MALICIOUS, verified=True, scan_results=v.to_dict(), scanned_at=utcnow())

    assert store.get(pid).verified is False


def test_store_scan_results_keeps_status(store):
    pid = store.insert(new_package()).id
    store.mark_scanning(pid)

    store.store_scan_results(pid, scan_results={"conclusive": False}, scanned_at=utcnow())

    loaded = store.get(pid)
    assert loaded.status is PackageStatus.SCANNING
    assert loaded.scan_results == {"conclusive": False}


def test_scan_runs_and_threat_logs_append(store):
    pid = store.insert(new_package()).id
    v = verdict(PackageStatus.MALICIOUS, ["ClamAV: x"])

    run_ids = [store.record_scan_run(pid, v), store.record_scan_run(pid, v)]
    for _ in range(2):
        store.append_threat_log(
            ThreatLogEntry(package_id=pid, content_hash="a" * 64, threats=("ClamAV: x",), detected_at=utcnow())
        )

    assert run_ids[0] < run_ids[1]
    assert [r["status"] for r in store.list_scan_runs(pid)] == ["malicious", "malicious"]
    logs = store.list_threat_logs(pid)
    assert len(logs) == 2
    assert logs[0].threats == ("ClamAV: x",)
    assert logs[0].id < logs[1].id
    assert store.list_threat_logs("other") == []
    assert len(store.list_threat_logs()) == 2


def test_list_by_status(store):
    a = store.insert(new_package("a" * 64)).id
    b = store.insert(new_package("b" * 64)).id
    store.mark_scanning(b)

    assert [p.id for p in store.list_by_status([PackageStatus.UPLOADED])] == [a]
    assert {p.id for p in store.list_by_status([PackageStatus.UPLOADED, PackageStatus.SCANNING])} == {a, b}


def test_admin_notifications(store):
    store.append_admin_notification("p1", ["ClamAV: x"])

    rows = store.list_admin_notifications()

    assert rows[0]["type"] == "malware_detected"
    assert rows[0]["priority"] == "high"
    assert rows[0]["threats"] == ["ClamAV: x"]


def test_in_memory_url():
    store = SqlMetadataStore(url="sqlite://")
    pid = store.insert(new_package()).id

    assert store.get(pid) is not None
    store.close()

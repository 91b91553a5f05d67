import pytest
import requests

from appvet.infra.metadata_store import SqlMetadataStore
from appvet.infra.notifier import AdminNotifier
from tests.appvet.fakes import FakeLogger, InMemoryMetadataStore


class FakeResponse:
    def __init__(self, status_code=200):
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    def __init__(self, response=None, raises=None):
        self.response = response or FakeResponse()
        self.raises = raises
        self.posts = []

    def post(self, url, json=None, timeout=None):
        self.posts.append((url, json, timeout))
        if self.raises is not None:
            raise self.raises
        return self.response


def test_notify_records_alert_without_webhook():
    metadata = InMemoryMetadataStore()
    session = FakeSession()
    logger = FakeLogger()
    notifier = AdminNotifier(metadata_store=metadata, logger=logger, session=session)

    notifier.notify("p1", ["ClamAV: x"])

    assert metadata.notifications == [
        {"type": "malware_detected", "package_id": "p1", "threats": ["ClamAV: x"], "priority": "high"}
    ]
    assert session.posts == []
    assert logger.find("admin_notified")[0]["package_id"] == "p1"


def test_notify_posts_webhook_payload():
    session = FakeSession()
    notifier = AdminNotifier(
        metadata_store=InMemoryMetadataStore(),
        logger=FakeLogger(),
        webhook_url="https://hooks.example.com/alerts",
        timeout=2.5,
        session=session,
    )

    notifier.notify("p1", ["YARA: Suspicious_APK"])

    assert session.posts == [
        (
            "https://hooks.example.com/alerts",
            {"type": "malware_detected", "packageId": "p1", "threats": ["YARA: Suspicious_APK"], "priority": "high"},
            2.5,
        )
    ]


@pytest.mark.parametrize(
    "session",
    [FakeSession(response=FakeResponse(500)), FakeSession(raises=requests.ConnectionError("refused"))],
)
def test_webhook_failure_keeps_stored_alert(session):
    metadata = InMemoryMetadataStore()
    logger = FakeLogger()
    notifier = AdminNotifier(metadata_store=metadata, logger=logger, webhook_url="https://hooks.example.com", session=session)

    notifier.notify("p1", ["ClamAV: x"])

    assert len(metadata.notifications) == 1
    assert logger.find("admin_webhook_failed")[0]["package_id"] == "p1"


def test_alert_persists_in_sql_store():
    store = SqlMetadataStore(url="sqlite://")
    try:
        AdminNotifier(metadata_store=store, logger=FakeLogger()).notify("p1", ["ClamAV: x"])

        [alert] = store.list_admin_notifications()
        assert alert["type"] == "malware_detected"
        assert alert["packageId"] == "p1"
        assert alert["threats"] == ["ClamAV: x"]
        assert alert["priority"] == "high"
    finally:
        store.close()

from __future__ import annotations

from typing import Optional

import requests

from ..core.ports import LoggerPort, MetadataStorePort


class AdminNotifier:
    """Raises an admin alert for a malicious package.

    The alert is always recorded in the metadata store. When a webhook URL is
    configured, a JSON payload is POSTed as well; webhook failures are logged
    and do not undo the stored alert.
    """

    def __init__(
        self,
        *,
        metadata_store: MetadataStorePort,
        logger: LoggerPort,
        webhook_url: Optional[str] = None,
        timeout: float = 10.0,
        priority: str = "high",
        session: Optional[requests.Session] = None,
    ) -> None:
        self._metadata = metadata_store
        self._logger = logger
        self._webhook_url = webhook_url
        self._timeout = timeout
        self._priority = priority
        self._session = session or requests.Session()

    def notify(self, package_id: str, threats: list[str]) -> None:
        self._metadata.append_admin_notification(package_id, threats, priority=self._priority)
        self._logger.info("admin_notified", package_id=package_id, threats=threats)

        if not self._webhook_url:
            return
        payload = {
            "type": "malware_detected",
            "packageId": package_id,
            "threats": threats,
            "priority": self._priority,
        }
        try:
            response = self._session.post(self._webhook_url, json=payload, timeout=self._timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            self._logger.warning(
                "admin_webhook_failed",
                package_id=package_id,
                error=str(exc),
            )

from __future__ import annotations

from typing import Any, Optional

import requests

from ...core.domain.exceptions import EngineTimeout, EngineUnavailable
from ...core.domain.models import EngineResult


ENGINE_NAME = "virustotal"
DEFAULT_BASE_URL = "https://www.virustotal.com/api/v3"


class VirusTotalEngine:
    """Hash reputation lookup against the VirusTotal v3 files endpoint.

    Only the content hash leaves the host; the package bytes are never
    uploaded. A hash VirusTotal has never seen counts as a clean answer.
    """

    name = ENGINE_NAME

    def __init__(
        self,
        *,
        api_key: Optional[str],
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.timeout = timeout
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._session = session or requests.Session()

    def scan(self, data: bytes, content_hash: str, source_url: Optional[str] = None) -> EngineResult:
        if not self._api_key:
            raise EngineUnavailable(self.name, "no API key configured")

        url = f"{self._base_url}/files/{content_hash}"
        try:
            response = self._session.get(
                url,
                headers={"x-apikey": self._api_key},
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise EngineTimeout(self.name, f"request timed out: {exc}") from exc
        except requests.RequestException as exc:
            raise EngineUnavailable(self.name, f"request failed: {exc}") from exc

        if response.status_code == 404:
            return EngineResult(
                engine=self.name,
                raw={"status": "not_found", "positives": 0, "total": 0},
            )
        if response.status_code != 200:
            raise EngineUnavailable(self.name, f"HTTP {response.status_code}")

        try:
            attributes = response.json()["data"]["attributes"]
            positives = int(attributes["last_analysis_stats"]["malicious"])
            total = len(attributes.get("last_analysis_results") or {})
        except (ValueError, KeyError, TypeError) as exc:
            raise EngineUnavailable(self.name, f"malformed response: {exc}") from exc

        raw: dict[str, Any] = {"positives": positives, "total": total}
        return EngineResult(
            engine=self.name,
            positive=positives > 0,
            detail=f"VirusTotal: {positives}/{total} engines detected threats",
            raw=raw,
        )

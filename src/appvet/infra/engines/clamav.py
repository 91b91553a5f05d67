from __future__ import annotations

import io
import socket
from typing import Any, Callable, Optional

import clamd

from ...core.domain.exceptions import EngineTimeout, EngineUnavailable
from ...core.domain.models import EngineResult


ENGINE_NAME = "clamav"


def connect(
    *,
    unix_socket: Optional[str] = None,
    host: Optional[str] = None,
    port: int = 3310,
    timeout: float = 30.0,
) -> Any:
    """Build a clamd client, preferring the unix socket when both are set."""
    if unix_socket:
        return clamd.ClamdUnixSocket(path=unix_socket, timeout=timeout)
    if host:
        return clamd.ClamdNetworkSocket(host=host, port=port, timeout=timeout)
    raise EngineUnavailable(ENGINE_NAME, "no clamd socket or host configured")


class ClamAVEngine:
    """Signature scan through a running clamd daemon (INSTREAM)."""

    name = ENGINE_NAME

    def __init__(
        self,
        *,
        unix_socket: Optional[str] = None,
        host: Optional[str] = None,
        port: int = 3310,
        timeout: float = 30.0,
        client_factory: Optional[Callable[[], Any]] = None,
    ) -> None:
        self.timeout = timeout
        self._client_factory = client_factory or (
            lambda: connect(unix_socket=unix_socket, host=host, port=port, timeout=timeout)
        )

    def scan(self, data: bytes, content_hash: str, source_url: Optional[str] = None) -> EngineResult:
        try:
            client = self._client_factory()
            result = client.instream(io.BytesIO(data))
        except socket.timeout as exc:
            raise EngineTimeout(self.name, f"clamd timed out: {exc}") from exc
        except (clamd.ConnectionError, clamd.BufferTooLongError, clamd.ResponseError, OSError) as exc:
            raise EngineUnavailable(self.name, f"clamd error: {exc}") from exc

        if not result or "stream" not in result:
            raise EngineUnavailable(self.name, f"unexpected clamd reply: {result!r}")

        status, signature = result["stream"]
        status = str(status or "").upper()
        if status == "OK":
            return EngineResult(engine=self.name, raw={"status": "OK"})
        if status == "FOUND":
            signature = str(signature or "unknown")
            return EngineResult(
                engine=self.name,
                positive=True,
                detail=f"ClamAV: {signature}",
                raw={"status": "FOUND", "signature": signature},
            )
        raise EngineUnavailable(self.name, f"clamd reported {status}: {signature}")

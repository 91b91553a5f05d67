"""Tests for the scan engine adapters."""
import socket
import zipfile

import pytest
import requests

from appvet.core.domain.exceptions import EngineTimeout, EngineUnavailable
from appvet.core.domain.rules import ScanRules
from appvet.core.services import HeuristicAnalyzer
from appvet.infra.engines.heuristic import HeuristicEngine
from appvet.infra.engines.registry import build_engines
from appvet.infra.engines.virustotal import VirusTotalEngine
from tests.appvet.fakes import make_zip


HASH = "0" * 64


class FakeClamd:
    def __init__(self, reply=None, raises=None):
        self.reply = reply
        self.raises = raises
        self.streamed = None

    def instream(self, buff):
        if self.raises is not None:
            raise self.raises
        self.streamed = buff.read()
        return self.reply


class TestClamAVEngine:
    @pytest.fixture(autouse=True)
    def _clamd(self):
        self.clamd = pytest.importorskip("clamd")
        from appvet.infra.engines.clamav import ClamAVEngine

        self.engine_cls = ClamAVEngine

    def test_found_is_positive(self):
        client = FakeClamd({"stream": ("FOUND", "Eicar-Test-Signature")})
        engine = self.engine_cls(client_factory=lambda: client)

        result = engine.scan(b"data", HASH)

        assert client.streamed == b"data"
        assert result.positive is True
        assert result.detail == "ClamAV: Eicar-Test-Signature"

    def test_ok_is_clean(self):
        engine = self.engine_cls(client_factory=lambda: FakeClamd({"stream": ("OK", None)}))

        result = engine.scan(b"data", HASH)

        assert result.positive is False
        assert result.responded

    def test_connection_error_is_unavailable(self):
        client = FakeClamd(raises=self.clamd.ConnectionError("no socket"))
        engine = self.engine_cls(client_factory=lambda: client)

        with pytest.raises(EngineUnavailable):
            engine.scan(b"data", HASH)

    def test_socket_timeout(self):
        engine = self.engine_cls(client_factory=lambda: FakeClamd(raises=socket.timeout("slow")))

        with pytest.raises(EngineTimeout):
            engine.scan(b"data", HASH)

    def test_error_reply_is_unavailable(self):
        engine = self.engine_cls(client_factory=lambda: FakeClamd({"stream": ("ERROR", "INSTREAM size limit exceeded")}))

        with pytest.raises(EngineUnavailable):
            engine.scan(b"data", HASH)

    def test_unconfigured_daemon_is_unavailable(self):
        engine = self.engine_cls(unix_socket=None, host=None)

        with pytest.raises(EngineUnavailable):
            engine.scan(b"data", HASH)


class FakeResponse:
    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, response=None, raises=None):
        self.response = response
        self.raises = raises
        self.requests = []

    def get(self, url, headers=None, timeout=None):
        self.requests.append((url, headers, timeout))
        if self.raises is not None:
            raise self.raises
        return self.response


def vt_payload(malicious: int, total: int) -> dict:
    return {
        "data": {
            "attributes": {
                "last_analysis_stats": {"malicious": malicious, "undetected": total - malicious},
                "last_analysis_results": {f"av{i}": {} for i in range(total)},
            }
        }
    }


class TestVirusTotalEngine:
    def test_detection_is_positive(self):
        session = FakeSession(FakeResponse(200, vt_payload(3, 70)))
        engine = VirusTotalEngine(api_key="k", session=session, timeout=5.0)

        result = engine.scan(b"ignored", HASH)

        url, headers, timeout = session.requests[0]
        assert url == f"https://www.virustotal.com/api/v3/files/{HASH}"
        assert headers == {"x-apikey": "k"}
        assert timeout == 5.0
        assert result.positive is True
        assert result.detail == "VirusTotal: 3/70 engines detected threats"
        assert result.raw == {"positives": 3, "total": 70}

    def test_no_detection_is_clean(self):
        engine = VirusTotalEngine(api_key="k", session=FakeSession(FakeResponse(200, vt_payload(0, 70))))

        assert engine.scan(b"", HASH).positive is False

    def test_unknown_hash_is_clean_not_found(self):
        engine = VirusTotalEngine(api_key="k", session=FakeSession(FakeResponse(404)))

        result = engine.scan(b"", HASH)

        assert result.responded
        assert result.positive is False
        assert result.raw["status"] == "not_found"

    def test_missing_api_key_is_unavailable(self):
        session = FakeSession(FakeResponse(200, vt_payload(0, 1)))
        engine = VirusTotalEngine(api_key=None, session=session)

        with pytest.raises(EngineUnavailable):
            engine.scan(b"", HASH)
        assert session.requests == []

    @pytest.mark.parametrize("status", [401, 429, 500])
    def test_http_errors_are_unavailable(self, status):
        engine = VirusTotalEngine(api_key="k", session=FakeSession(FakeResponse(status)))

        with pytest.raises(EngineUnavailable):
            engine.scan(b"", HASH)

    def test_malformed_body_is_unavailable(self):
        engine = VirusTotalEngine(api_key="k", session=FakeSession(FakeResponse(200, {"data": {}})))

        with pytest.raises(EngineUnavailable):
            engine.scan(b"", HASH)

    def test_timeout(self):
        engine = VirusTotalEngine(api_key="k", session=FakeSession(raises=requests.Timeout("slow")))

        with pytest.raises(EngineTimeout):
            engine.scan(b"", HASH)

    def test_connection_error(self):
        engine = VirusTotalEngine(api_key="k", session=FakeSession(raises=requests.ConnectionError("dns")))

        with pytest.raises(EngineUnavailable):
            engine.scan(b"", HASH)


class TestYaraEngine:
    @pytest.fixture(autouse=True)
    def _yara(self):
        pytest.importorskip("yara")
        from appvet.infra.engines.yara_matcher import YaraEngine

        self.engine_cls = YaraEngine

    def test_builtin_rule_matches_suspicious_apk(self):
        archive = make_zip({"AndroidManifest.xml": b"<manifest/>", "classes.dex": b"Runtime.exec(cmd)"})

        result = self.engine_cls().scan(archive, HASH)

        assert result.positive is True
        assert result.detail == "YARA: Suspicious_APK"

    def test_builtin_rule_ignores_benign_apk(self):
        archive = make_zip({"AndroidManifest.xml": b"<manifest/>", "classes.dex": b"hello"})

        result = self.engine_cls().scan(archive, HASH)

        assert result.positive is False
        assert result.raw == {"matches": []}

    def test_rules_file(self, tmp_path):
        rules = tmp_path / "custom.yar"
        rules.write_text('rule Has_Marker { strings: $a = "MARKER" condition: $a }', encoding="utf-8")

        result = self.engine_cls(rules_path=rules).scan(b"xx MARKER xx", HASH)

        assert result.detail == "YARA: Has_Marker"

    def test_broken_rules_file_is_unavailable(self, tmp_path):
        rules = tmp_path / "broken.yar"
        rules.write_text("rule {", encoding="utf-8")

        engine = self.engine_cls(rules_path=rules)

        with pytest.raises(EngineUnavailable, match="rule compilation failed"):
            engine.scan(b"data", HASH)

    def test_broken_rules_file_leaves_other_engines_building(self, tmp_path):
        rules = tmp_path / "broken.yar"
        rules.write_text("rule {", encoding="utf-8")

        engines = build_engines(
            enabled=["yara", "heuristic"],
            analyzer=HeuristicAnalyzer(rules=ScanRules()),
            yara={"rules_path": rules},
        )

        assert [e.name for e in engines] == ["yara", "heuristic"]


class TestHeuristicEngine:
    def test_reasons_become_detail(self):
        engine = HeuristicEngine(analyzer=HeuristicAnalyzer(rules=ScanRules()))
        archive = make_zip({"AndroidManifest.xml": b'android:debuggable="true"'})

        result = engine.scan(archive, HASH)

        assert result.positive is True
        assert result.detail == "Heuristic: Debug mode enabled"
        assert result.raw["fileCount"] == 1

    def test_benign_is_clean(self):
        engine = HeuristicEngine(analyzer=HeuristicAnalyzer(rules=ScanRules()))

        result = engine.scan(make_zip({"index.html": b"hi"}, compression=zipfile.ZIP_STORED), HASH)

        assert result.positive is False
        assert result.detail == ""


class TestRegistry:
    def test_builds_engines_in_configured_order(self):
        engines = build_engines(
            enabled=["heuristic", "virustotal"],
            analyzer=HeuristicAnalyzer(rules=ScanRules()),
            default_timeout=12.0,
            virustotal={"api_key": "k", "timeout": 3.0},
        )

        assert [e.name for e in engines] == ["heuristic", "virustotal"]
        assert engines[0].timeout == 12.0
        assert engines[1].timeout == 3.0

    def test_unknown_engine(self):
        with pytest.raises(ValueError):
            build_engines(enabled=["norton"], analyzer=HeuristicAnalyzer(rules=ScanRules()))

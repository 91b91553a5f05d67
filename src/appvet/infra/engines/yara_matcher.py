from __future__ import annotations

from pathlib import Path
from typing import Optional

import yara

from ...core.domain.exceptions import EngineTimeout, EngineUnavailable
from ...core.domain.models import EngineResult


ENGINE_NAME = "yara"

BUILTIN_RULES = r"""
rule Suspicious_APK {
    meta:
        description = "Detects suspicious APK patterns"
    strings:
        $magic = { 50 4B 03 04 }
        $manifest = "AndroidManifest.xml"
        $dex = "classes.dex"
        $suspicious_string = "Runtime.exec" nocase
        $root_string = "/system/xbin/su" nocase
        $crypto_mining = "cryptonight" nocase
        $spyware = "getSimSerialNumber" nocase
    condition:
        $magic at 0 and
        ($manifest or $dex) and
        ($suspicious_string or $root_string or $crypto_mining or $spyware)
}
"""


def compile_rules(rules_path: Optional[Path] = None) -> yara.Rules:
    try:
        if rules_path is not None:
            return yara.compile(filepath=str(rules_path))
        return yara.compile(source=BUILTIN_RULES)
    except yara.Error as exc:
        raise EngineUnavailable(ENGINE_NAME, f"rule compilation failed: {exc}") from exc


class YaraEngine:
    """Matches the raw package bytes against a compiled YARA rule set.

    A rule set that fails to compile does not stop construction; every scan
    then reports the engine as unavailable with the compile error.
    """

    name = ENGINE_NAME

    def __init__(self, *, rules_path: Optional[Path] = None, timeout: float = 30.0) -> None:
        self.timeout = timeout
        self._rules: Optional[yara.Rules] = None
        self._compile_error: Optional[str] = None
        try:
            self._rules = compile_rules(rules_path)
        except EngineUnavailable as exc:
            self._compile_error = str(exc.__cause__)

    def scan(self, data: bytes, content_hash: str, source_url: Optional[str] = None) -> EngineResult:
        if self._compile_error is not None:
            raise EngineUnavailable(self.name, f"rule compilation failed: {self._compile_error}")
        # yara's own timeout is whole seconds
        budget = max(1, int(self.timeout))
        try:
            matches = self._rules.match(data=data, timeout=budget)
        except yara.TimeoutError as exc:
            raise EngineTimeout(self.name, f"matching timed out: {exc}") from exc
        except yara.Error as exc:
            raise EngineUnavailable(self.name, f"matching failed: {exc}") from exc

        rule_names = [m.rule for m in matches]
        return EngineResult(
            engine=self.name,
            positive=bool(rule_names),
            detail=f"YARA: {', '.join(rule_names)}" if rule_names else "",
            raw={"matches": rule_names},
        )

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

from ...core.ports import ScanEnginePort
from ...core.services.heuristics import HeuristicAnalyzer


KNOWN_ENGINES = ("clamav", "virustotal", "yara", "heuristic")


def build_engines(
    *,
    enabled: Sequence[str],
    analyzer: HeuristicAnalyzer,
    default_timeout: float = 30.0,
    clamav: Optional[Mapping[str, Any]] = None,
    virustotal: Optional[Mapping[str, Any]] = None,
    yara: Optional[Mapping[str, Any]] = None,
) -> list[ScanEnginePort]:
    """Instantiate the configured engines, in the configured order.

    Raises:
        ValueError: Unknown engine name
    """
    clamav = clamav or {}
    virustotal = virustotal or {}
    yara = yara or {}

    def timeout_of(section: Mapping[str, Any]) -> float:
        return float(section.get("timeout") or default_timeout)

    engines: list[ScanEnginePort] = []
    for name in enabled:
        if name == "clamav":
            from .clamav import ClamAVEngine

            engines.append(
                ClamAVEngine(
                    unix_socket=clamav.get("unix_socket"),
                    host=clamav.get("host"),
                    port=int(clamav.get("port") or 3310),
                    timeout=timeout_of(clamav),
                )
            )
        elif name == "virustotal":
            from .virustotal import DEFAULT_BASE_URL, VirusTotalEngine

            engines.append(
                VirusTotalEngine(
                    api_key=virustotal.get("api_key"),
                    base_url=virustotal.get("base_url") or DEFAULT_BASE_URL,
                    timeout=timeout_of(virustotal),
                )
            )
        elif name == "yara":
            from .yara_matcher import YaraEngine

            rules_path = yara.get("rules_path")
            engines.append(
                YaraEngine(
                    rules_path=Path(rules_path) if rules_path else None,
                    timeout=timeout_of(yara),
                )
            )
        elif name == "heuristic":
            from .heuristic import HeuristicEngine

            engines.append(HeuristicEngine(analyzer=analyzer, timeout=default_timeout))
        else:
            raise ValueError(f"Unknown scan engine {name!r}; expected one of {', '.join(KNOWN_ENGINES)}")
    return engines

from dataclasses import dataclass
from datetime import datetime, timezone

from appvet.core.domain.models import EngineResult, EngineState, PackageStatus
from appvet.shared.to_jsonable import to_jsonable


def test_basic_types():
    assert to_jsonable(None) is None
    assert to_jsonable("x") == "x"
    assert to_jsonable(3) == 3
    assert to_jsonable(True) is True


def test_collections():
    assert to_jsonable((1, 2)) == [1, 2]
    assert to_jsonable({"a": (1,)}) == {"a": [1]}
    assert to_jsonable(frozenset({"b", "a"})) == ["a", "b"]


def test_enums_use_their_value():
    assert to_jsonable(PackageStatus.MALICIOUS) == "malicious"
    assert to_jsonable([EngineState.TIMEOUT]) == ["timeout"]


def test_datetimes_and_bytes():
    ts = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    assert to_jsonable(ts) == "2024-05-01T12:00:00+00:00"
    assert to_jsonable(b"\x01\xff") == "01ff"


def test_domain_objects_use_to_dict():
    result = EngineResult(engine="yara", positive=True, detail="YARA: r")

    assert to_jsonable(result)["state"] == "ok"
    assert to_jsonable(result)["detail"] == "YARA: r"


def test_plain_dataclass():
    @dataclass
    class Point:
        x: int
        y: int

    assert to_jsonable(Point(1, 2)) == {"x": 1, "y": 2}

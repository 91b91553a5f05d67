from datetime import date, datetime
from enum import Enum


def to_jsonable(obj):
    """Convert domain objects to a JSON-serializable form.

    Handles:
    - Basic types (str, int, float, bool, None)
    - Enums (by value) and datetimes (ISO 8601)
    - Collections (list, tuple, set, frozenset, dict)
    - Bytes/Bytearray (hex)
    - Objects with to_dict method (domain models)
    - Pydantic models and dataclasses

    Args:
        obj: Any Python object

    Returns:
        A JSON-serializable version of the object
    """
    if obj is None or isinstance(obj, (bool, int, float)):
        return obj
    elif isinstance(obj, Enum):
        return to_jsonable(obj.value)
    elif isinstance(obj, str):
        return obj
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, (bytes, bytearray)):
        return obj.hex()
    elif isinstance(obj, (list, tuple)):
        return [to_jsonable(item) for item in obj]
    elif isinstance(obj, (set, frozenset)):
        return sorted(to_jsonable(item) for item in obj)
    elif isinstance(obj, dict):
        return {str(k): to_jsonable(v) for k, v in obj.items()}
    elif hasattr(obj, 'to_dict'):
        return to_jsonable(obj.to_dict())
    elif hasattr(obj, 'model_dump'):  # Pydantic v2
        return to_jsonable(obj.model_dump())
    elif hasattr(obj, '__dataclass_fields__'):
        from dataclasses import asdict
        return to_jsonable(asdict(obj))
    else:
        return str(obj)

"""Field access for records that may be dicts (API/JSON rows) or dataclasses."""

from collections.abc import Mapping


def read_field(record, *names, default=None):
    """Return the first present, non-None field among `names`."""
    if record is None:
        return default
    for name in names:
        if isinstance(record, Mapping):
            value = record.get(name)
        else:
            value = getattr(record, name, None)
        if value is not None:
            return value
    return default


def as_float(value, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def as_int(value, default: int = 0) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default

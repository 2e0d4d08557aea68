# validators.py
import math
import re
from typing import Any, Dict, List

from protocol.errors import ValidationError

REQUIRED_FIELDS = ["emg1", "emg2", "gyrox", "gyroy", "gyroz"]
ORIENTATION_FIELDS = ["roll", "pitch", "yaw"]
BOUNDARY_FIELDS = ["issessionboundary", "sessionend"]
NEUTRAL_VALUE = 0.0

_EMG_KEY = re.compile(r"^emg(\d+)$")
_VOLTAGE_KEY = re.compile(r"^voltage(\d+)$")


def normalize_key(key: str) -> str:
    """`GyroX`, `gyro_x` and `Gyro X` all become `gyrox`."""
    return re.sub(r"[\s_\-]", "", str(key)).lower()


def normalize_record(record: Dict[str, Any]) -> Dict[str, Any]:
    return {normalize_key(k): v for k, v in record.items()}


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def has_required_fields(record: Dict[str, Any]) -> bool:
    return all(field in record for field in REQUIRED_FIELDS)


def require_fields(record: Any) -> Dict[str, Any]:
    if not isinstance(record, dict):
        raise ValidationError(f"expected a keyed record, got {type(record).__name__}")
    normalized = normalize_record(record)
    missing = [f for f in REQUIRED_FIELDS if f not in normalized]
    if missing:
        raise ValidationError(f"missing required fields: {', '.join(missing)}")
    bad = [f for f in REQUIRED_FIELDS if not is_number(normalized[f])]
    if bad:
        raise ValidationError(f"non-numeric channel values: {', '.join(bad)}")
    return normalized


def indexed_channels(record: Dict[str, Any], pattern: "re.Pattern[str]") -> List[float]:
    """Numeric values of `<name>1..N` keys, ordered by index; gaps get the neutral value."""
    found: Dict[int, float] = {}
    for key, value in record.items():
        match = pattern.match(key)
        if match and is_number(value):
            found[int(match.group(1))] = float(value)
    if not found:
        return []
    return [found.get(i, NEUTRAL_VALUE) for i in range(1, max(found) + 1)]


def emg_channels(record: Dict[str, Any], channel_count: int) -> List[float]:
    values = indexed_channels(record, _EMG_KEY)
    if len(values) < channel_count:
        values.extend([NEUTRAL_VALUE] * (channel_count - len(values)))
    return values[:max(channel_count, 2)]


def voltage_channels(record: Dict[str, Any]) -> List[float]:
    return indexed_channels(record, _VOLTAGE_KEY)


def optional_number(record: Dict[str, Any], field: str):
    value = record.get(field)
    return float(value) if is_number(value) else None


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


def is_boundary(record: Dict[str, Any]) -> bool:
    return any(_truthy(record.get(field)) for field in BOUNDARY_FIELDS)

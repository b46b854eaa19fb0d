"""Explicit shape discrimination for decoded JSON values.

Backend responses are loosely typed: the same key may hold a string, a number,
an object or an array depending on the producer. Call sites classify a value
with ``json_kind`` (or one of the ``as_*`` accessors) before using it.
"""

import math
from enum import Enum


class JsonKind(Enum):
    """Shape of a decoded JSON value."""

    NULL = "null"
    BOOL = "bool"
    NUMBER = "number"
    STRING = "string"
    ARRAY = "array"
    OBJECT = "object"
    UNKNOWN = "unknown"


def json_kind(value: object) -> JsonKind:
    """Classify a value produced by ``json.loads``."""
    if value is None:
        return JsonKind.NULL
    # bool is an int subclass and must be checked first
    if isinstance(value, bool):
        return JsonKind.BOOL
    if isinstance(value, int | float):
        return JsonKind.NUMBER
    if isinstance(value, str):
        return JsonKind.STRING
    if isinstance(value, list):
        return JsonKind.ARRAY
    if isinstance(value, dict):
        return JsonKind.OBJECT
    return JsonKind.UNKNOWN


def as_string(value: object) -> str | None:
    """Return the value if it is a JSON string."""
    if json_kind(value) is JsonKind.STRING:
        return value  # type: ignore[return-value]
    return None


def as_number(value: object) -> float | None:
    """Return the value as a finite float if it is a JSON number."""
    if json_kind(value) is not JsonKind.NUMBER:
        return None
    try:
        number = float(value)  # type: ignore[arg-type]
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def as_bool(value: object) -> bool | None:
    """Return the value if it is a JSON boolean."""
    if json_kind(value) is JsonKind.BOOL:
        return value  # type: ignore[return-value]
    return None


def as_array(value: object) -> list[object] | None:
    """Return the value if it is a JSON array."""
    if json_kind(value) is JsonKind.ARRAY:
        return value  # type: ignore[return-value]
    return None


def as_object(value: object) -> dict[str, object] | None:
    """Return the value if it is a JSON object."""
    if json_kind(value) is JsonKind.OBJECT:
        return value  # type: ignore[return-value]
    return None


def as_identifier(value: object) -> str | None:
    """Return a string identifier from a string or integral number value."""
    kind = json_kind(value)
    if kind is JsonKind.STRING:
        return value or None  # type: ignore[return-value]
    if kind is not JsonKind.NUMBER:
        return None
    if isinstance(value, int):
        return str(value)
    number = as_number(value)
    if number is None or not number.is_integer():
        return None
    return str(int(number))

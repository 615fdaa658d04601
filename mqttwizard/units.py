"""Table-driven conversion and bounds for unit-qualified fields."""

from __future__ import annotations

from enum import Enum
from typing import Mapping

from .models import DataSizeUnit, TimeUnit

Unit = TimeUnit | DataSizeUnit


class UnitConversionError(ValueError):
    """Raised when a conversion would lose precision or mixes unit families."""


class FieldFamily(str, Enum):
    """Unit-qualified fields that carry protocol-legal maxima."""

    KEEP_ALIVE = "keep_alive"
    SESSION_EXPIRY_INTERVAL = "session_expiry_interval"
    MAX_PACKET_SIZE = "max_packet_size"


# Canonical units are milliseconds and bytes.
_TIME_FACTORS: Mapping[TimeUnit, int] = {
    TimeUnit.MILLISECONDS: 1,
    TimeUnit.SECONDS: 1_000,
    TimeUnit.MINUTES: 60_000,
    TimeUnit.HOURS: 3_600_000,
}

_SIZE_FACTORS: Mapping[DataSizeUnit, int] = {
    DataSizeUnit.BYTE: 1,
    DataSizeUnit.KILOBYTE: 1_024,
    DataSizeUnit.MEGABYTE: 1_048_576,
}

MAXIMUMS: Mapping[FieldFamily, Mapping[Unit, int]] = {
    FieldFamily.KEEP_ALIVE: {
        TimeUnit.MILLISECONDS: 65_535_000,
        TimeUnit.SECONDS: 65_535,
        TimeUnit.MINUTES: 1_092,
        TimeUnit.HOURS: 18,
    },
    FieldFamily.SESSION_EXPIRY_INTERVAL: {
        TimeUnit.MILLISECONDS: 4_294_967_295_000,
        TimeUnit.SECONDS: 4_294_967_295,
        TimeUnit.MINUTES: 71_582_788,
        TimeUnit.HOURS: 1_193_046,
    },
    FieldFamily.MAX_PACKET_SIZE: {
        DataSizeUnit.BYTE: 268_435_456,
        DataSizeUnit.KILOBYTE: 262_144,
        DataSizeUnit.MEGABYTE: 256,
    },
}


def max_value(family: FieldFamily, unit: Unit) -> int:
    """Return the inclusive maximum for a field family expressed in `unit`."""

    table = MAXIMUMS[family]
    try:
        return table[unit]
    except KeyError as exc:
        raise UnitConversionError(f"Unit {unit.value} is not valid for {family.value}") from exc


def within_bounds(family: FieldFamily, value: int, unit: Unit) -> bool:
    """True when 0 <= value <= the family maximum for `unit`."""

    return 0 <= value <= max_value(family, unit)


def to_canonical(value: int, unit: Unit) -> int:
    """Express `value` in milliseconds (time) or bytes (size)."""

    return value * _factor(unit)


def from_canonical(value: int, unit: Unit) -> int:
    """Express a canonical value in `unit`, refusing to round."""

    factor = _factor(unit)
    quotient, remainder = divmod(value, factor)
    if remainder:
        raise UnitConversionError(f"{value} is not a whole number of {unit.value}")
    return quotient


def convert(value: int, source: Unit, target: Unit) -> int:
    """Convert between units of the same family without losing precision."""

    if type(source) is not type(target):
        raise UnitConversionError(f"Cannot convert {source.value} to {target.value}")
    return from_canonical(to_canonical(value, source), target)


def _factor(unit: Unit) -> int:
    if isinstance(unit, TimeUnit):
        return _TIME_FACTORS[unit]
    return _SIZE_FACTORS[unit]


__all__ = [
    "FieldFamily",
    "MAXIMUMS",
    "Unit",
    "UnitConversionError",
    "convert",
    "from_canonical",
    "max_value",
    "to_canonical",
    "within_bounds",
]

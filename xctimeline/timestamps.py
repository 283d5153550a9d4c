"""Bring backend timestamps onto a single Unix-epoch axis."""

from __future__ import annotations

import math
from typing import Any, Optional

# Seconds between 1970-01-01T00:00:00Z and 2001-01-01T00:00:00Z.
REFERENCE_DATE_OFFSET = 978_307_200.0
# Values below this are read as seconds since the 2001 reference date.
REFERENCE_DATE_CUTOFF = 1_000_000_000.0


def coerce_timestamp(value: Any) -> Optional[float]:
    """Return value as a finite float, or None when it cannot be read as one."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def normalize_timestamp(value: Any) -> Optional[float]:
    number = coerce_timestamp(value)
    if number is None:
        return None
    if 0 < number < REFERENCE_DATE_CUTOFF:
        return number + REFERENCE_DATE_OFFSET
    return number


def identity_timestamp(value: Any) -> Optional[float]:
    """Normalizer for sources whose timestamps are already on the target axis."""
    return coerce_timestamp(value)

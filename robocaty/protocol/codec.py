"""
Width-tag value conversion between ADS symbols and robot signals.

Representation per width tag:

    BOOL   -> bool
    UINT8  -> numpy.uint8
    UINT16 -> numpy.uint16
    UINT32 -> numpy.uint32
    REAL   -> float (double precision)

Robot signals are always read as doubles. Narrowing a double to an unsigned
width truncates toward zero, then wraps modulo 2**bits (C-style unsigned
cast): 300.0 -> 44 and -1.0 -> 255 for UINT8.
"""

from __future__ import annotations

import math
from typing import Any

import numpy as np

from robocaty.protocol.types import Width

_UINT_DTYPES: dict[Width, type[np.unsignedinteger]] = {
    Width.UINT8: np.uint8,
    Width.UINT16: np.uint16,
    Width.UINT32: np.uint32,
}

_FALSE_STRINGS = frozenset({"", "0", "false", "no", "off"})


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


def narrow(value: float, width: Width) -> np.unsignedinteger:
    """Truncate and wrap a double into the unsigned integer type of ``width``."""
    dtype = _UINT_DTYPES[width]
    if not math.isfinite(value):
        raise ValueError(
            f"cannot narrow non-finite value {value!r} to {np.dtype(dtype).name}"
        )
    modulus = 1 << np.iinfo(dtype).bits
    return dtype(math.trunc(value) % modulus)


def to_target(width: Width, source_value: Any) -> bool | float:
    """Convert an ADS value to what is written into a robot signal."""
    if width is Width.BOOL:
        return _truthy(source_value)
    return float(source_value)


def to_source(width: Width, signal_value: float) -> bool | np.unsignedinteger | float:
    """Convert a robot signal value to what is written into an ADS symbol."""
    match width:
        case Width.BOOL:
            return signal_value == 1
        case Width.UINT8 | Width.UINT16 | Width.UINT32:
            return narrow(float(signal_value), width)
        case Width.REAL:
            return float(signal_value)
    raise ValueError(f"Unknown width tag: {width!r}")


def format_number(value: float) -> str:
    """Render with at most two fractional digits, trailing zeros trimmed."""
    text = f"{float(value):.2f}".rstrip("0").rstrip(".")
    return "0" if text == "-0" else text


def display(width: Width, value: Any) -> str:
    """Operator-facing rendering of a transferred value."""
    if width is Width.BOOL:
        return "TRUE" if _truthy(value) else "FALSE"
    return format_number(value)

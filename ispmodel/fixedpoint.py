"""Fixed-width integer helpers used to model hardware register arithmetic."""

from __future__ import annotations


def _mask(bits: int) -> int:
    if bits <= 0:
        raise ValueError(f"bit width must be positive, got {bits}")
    return (1 << bits) - 1


def _check_range(high: int, low: int) -> int:
    if low < 0 or high < low:
        raise ValueError(f"invalid bit range [{high}:{low}]")
    return high - low + 1


def wrap_unsigned(value: int, bits: int) -> int:
    """Truncate ``value`` to an unsigned integer of ``bits`` bits."""
    return value & _mask(bits)


def wrap_signed(value: int, bits: int) -> int:
    """Truncate ``value`` to a two's complement integer of ``bits`` bits."""
    unsigned = value & _mask(bits)
    if unsigned >> (bits - 1):
        return unsigned - (1 << bits)
    return unsigned


def field(word: int, high: int, low: int) -> int:
    """Return bits ``high`` down to ``low`` of ``word`` as an unsigned value."""
    width = _check_range(high, low)
    return (word >> low) & _mask(width)


def with_field(word: int, high: int, low: int, value: int) -> int:
    """Return ``word`` with bits ``high``..``low`` replaced by ``value``.

    The value is truncated to the width of the range, so negative values are
    stored in two's complement form.
    """
    width = _check_range(high, low)
    mask = _mask(width)
    return (word & ~(mask << low)) | ((int(value) & mask) << low)


def clip(value: int, lower: int, upper: int) -> int:
    """Clamp ``value`` into ``[lower, upper]``."""
    if lower > upper:
        raise ValueError(f"lower bound {lower} exceeds upper bound {upper}")
    if value < lower:
        return lower
    if value > upper:
        return upper
    return value
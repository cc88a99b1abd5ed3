"""Duration parsing and quantization utilities."""
import re
from decimal import Decimal, ROUND_CEILING, ROUND_FLOOR
from typing import Union

DEFAULT_GRID_MINUTES = 15

# Upper bound for a single booking; larger inputs count as unparseable
MAX_HOURS = Decimal(100000)

# Seconds this close below a whole second are division residue
_RESIDUE = Decimal("0.000001")

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_LEADING_NUMBER = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")

Number = Union[Decimal, int]


def _leading_int(text: str):
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else None


def parse_duration(text: str) -> Decimal:
    """
    Parse free-text time input into fractional hours.

    Accepts "H:MM", "1.5" and "1,5". Anything unparseable, or beyond
    ``MAX_HOURS`` in either direction, yields 0.

    Args:
        text: Raw user input

    Returns:
        Hours as Decimal

    Examples:
        >>> parse_duration("1:30")
        Decimal('1.5')
        >>> parse_duration("1,5")
        Decimal('1.5')
        >>> parse_duration("abc")
        Decimal('0')
    """
    if not text:
        return Decimal(0)

    if ":" in text:
        parts = text.split(":")
        hours = _leading_int(parts[0])
        if hours is None:
            return Decimal(0)
        minutes = _leading_int(parts[1]) if len(parts) > 1 else None
        minutes = 0 if minutes is None else min(59, max(0, minutes))
        return _bounded(Decimal(hours) + Decimal(minutes) / Decimal(60))

    # Only the first comma acts as decimal separator
    match = _LEADING_NUMBER.match(text.replace(",", ".", 1))
    if not match:
        return Decimal(0)
    return _bounded(Decimal(match.group(1)))


def _bounded(hours: Decimal) -> Decimal:
    if not hours.is_finite() or abs(hours) > MAX_HOURS:
        return Decimal(0)
    return hours


def round_up_to_grid(hours: Number, grid_minutes: int = DEFAULT_GRID_MINUTES) -> Decimal:
    """
    Round hours up to the next multiple of the grid.

    Ceiling, not nearest: worked time is never truncated.

    Examples:
        >>> round_up_to_grid(Decimal("0.1"))
        Decimal('0.25')
        >>> round_up_to_grid(Decimal("1.75"))
        Decimal('1.75')
    """
    hours = Decimal(hours)
    if hours <= 0:
        return Decimal(0)

    minutes = hours * 60
    slots = (minutes / grid_minutes).to_integral_value(rounding=ROUND_CEILING)
    return slots * grid_minutes / Decimal(60)


def parse_and_quantize(text: str, grid_minutes: int = DEFAULT_GRID_MINUTES) -> Decimal:
    """Parse a manual edit and round it up to the grid."""
    return round_up_to_grid(parse_duration(text), grid_minutes)


def hours_from_seconds(seconds: int) -> Decimal:
    """Convert elapsed seconds to fractional hours."""
    return Decimal(seconds) / Decimal(3600)


def format_for_display(hours: Number) -> str:
    """
    Format hours as "H:MM".

    Partial minutes are floored so the display never shows a minute
    that has not fully elapsed.

    Examples:
        >>> format_for_display(Decimal("1.5"))
        '1:30'
        >>> format_for_display(Decimal("0.25"))
        '0:15'
    """
    hours = Decimal(hours)
    if hours <= 0:
        return "0:00"

    seconds = hours * 3600
    whole_seconds = seconds.to_integral_value(rounding=ROUND_FLOOR)
    # Snap away division residue (e.g. 50/60 * 3600) before flooring
    if seconds - whole_seconds > 1 - _RESIDUE:
        whole_seconds += 1
    total_minutes = int(whole_seconds) // 60
    whole_hours, minutes = divmod(total_minutes, 60)
    return f"{whole_hours}:{minutes:02d}"

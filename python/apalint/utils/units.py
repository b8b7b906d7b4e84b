"""
Unit conversion between OOXML measurements and the units rules reason in.

OOXML stores page geometry and indentation in twips (1/1440 inch), font
sizes in half-points, and "auto" line spacing in 240ths of a line.
A missing or zero measurement converts to 0.
"""

from typing import Optional, Union

Number = Union[int, float]

TWIPS_PER_INCH = 1440
TWIPS_PER_POINT = 20
LINE_UNITS_PER_LINE = 240


def twips_to_inches(twips: Optional[Number]) -> float:
    if not twips:
        return 0
    return twips / TWIPS_PER_INCH


def twips_to_points(twips: Optional[Number]) -> float:
    if not twips:
        return 0
    return twips / TWIPS_PER_POINT


def half_points_to_points(half_points: Optional[Number]) -> float:
    if not half_points:
        return 0
    return half_points / 2


def line_to_multiple(line: Optional[Number]) -> float:
    """w:spacing/@w:line under lineRule="auto" -> line multiple (480 -> 2.0)."""
    if not line:
        return 0
    return line / LINE_UNITS_PER_LINE


def inches_to_twips(inches: Number) -> int:
    return int(round(inches * TWIPS_PER_INCH))


def points_to_half_points(points: Number) -> int:
    return int(round(points * 2))


def parse_measure(value: Optional[str]) -> Optional[int]:
    """
    Parse an OOXML measurement attribute into an int.
    Returns None for missing or unparseable values (e.g. "auto", "1.5in").
    """
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        try:
            return int(float(value))
        except ValueError:
            return None

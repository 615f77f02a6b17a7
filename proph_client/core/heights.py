from __future__ import annotations

import re

_DISPLAY_RE = re.compile(r"""^\s*(\d+)\s*'\s*(\d+)\s*"?\s*$""")


def to_display(inches: int) -> str:
    """Format integer inches as feet'inches", e.g. 74 -> 6'2"."""
    if inches < 0:
        raise ValueError("height must be non-negative")
    return f"{inches // 12}'{inches % 12}\""


def to_inches(feet: int, inches: int) -> int:
    return feet * 12 + inches


def display_feet(inches: int) -> int:
    return inches // 12


def display_remainder(inches: int) -> int:
    return inches % 12


def parse_display(value: str) -> int:
    match = _DISPLAY_RE.match(value)
    if match is None:
        raise ValueError(f"unrecognized height format: {value!r}")
    return to_inches(int(match.group(1)), int(match.group(2)))


def format_optional(inches: int | None) -> str:
    if not inches:
        return ""
    return to_display(inches)

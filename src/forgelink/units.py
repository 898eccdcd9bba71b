"""Scaled integer physical quantities and the distance codec.

Distances are held as integer micrometres and temperatures as integer
degrees Celsius, so coordinates read from the printer never go through a
float.  Both types are plain :class:`int` subclasses: they compare, sort and
serialise like integers, and keep their type under integer scaling.
"""

from __future__ import annotations

import re

from forgelink.errors import ParseFailure

MICROMETRES_PER_MILLIMETRE = 1000

# Optional minus, integer digits, optional fraction.  ASCII digits only.
_DECIMAL_RE = re.compile(r"(-?)([0-9]+)(?:\.([0-9]+))?")


class Distance(int):
    """A distance in micrometres."""

    __slots__ = ()

    @classmethod
    def from_mm(cls, millimetres: int) -> Distance:
        """Build a distance from a whole number of millimetres."""
        return cls(millimetres * MICROMETRES_PER_MILLIMETRE)

    def __add__(self, other: int) -> Distance:
        if not isinstance(other, int):
            return NotImplemented
        return Distance(int(self) + other)

    __radd__ = __add__

    def __sub__(self, other: int) -> Distance:
        if not isinstance(other, int):
            return NotImplemented
        return Distance(int(self) - other)

    def __mul__(self, scalar: int) -> Distance:
        if not isinstance(scalar, int):
            return NotImplemented
        return Distance(int(self) * scalar)

    __rmul__ = __mul__

    def __neg__(self) -> Distance:
        return Distance(-int(self))

    def __abs__(self) -> Distance:
        return Distance(abs(int(self)))

    def __repr__(self) -> str:
        return f"Distance({int(self)})"

    def __str__(self) -> str:
        return f"{format_distance(self)}mm"


class Temperature(int):
    """A temperature in whole degrees Celsius, as the firmware reports it."""

    __slots__ = ()

    def __mul__(self, scalar: int) -> Temperature:
        if not isinstance(scalar, int):
            return NotImplemented
        return Temperature(int(self) * scalar)

    __rmul__ = __mul__

    def __repr__(self) -> str:
        return f"Temperature({int(self)})"

    def __str__(self) -> str:
        return f"{int(self)}°C"


def parse_distance(text: str) -> Distance:
    """Decode a signed millimetre decimal such as ``"-12.34"``.

    The integer part is scaled to micrometres; each fractional digit is
    scaled by ``1000 // 10**position``, so digits finer than a micrometre
    are truncated rather than rounded.

    Raises:
        ParseFailure: If *text* is not ``-?digits(.digits)?``.
    """
    match = _DECIMAL_RE.fullmatch(text)
    if match is None:
        raise ParseFailure(f"invalid distance: {text!r}", text=text)
    sign, whole, fraction = match.groups()

    value = int(whole) * MICROMETRES_PER_MILLIMETRE
    scale = MICROMETRES_PER_MILLIMETRE
    for digit in fraction or "":
        scale //= 10
        value += int(digit) * scale
    return Distance(-value if sign else value)


def format_distance(distance: int) -> str:
    """Encode *distance* as millimetres with micrometre precision.

    ``format_distance(Distance(-12340))`` returns ``"-12.340"``; the result
    decodes back to the same value with :func:`parse_distance`.
    """
    sign = "-" if distance < 0 else ""
    whole, fraction = divmod(abs(int(distance)), MICROMETRES_PER_MILLIMETRE)
    return f"{sign}{whole}.{fraction:03d}"

"""
Time quantities for the latency simulation
==========================================

Cost coefficients in the simulation span many orders of magnitude: a single
vector element costs a fraction of a nanosecond to score while a scatter or
gather round trip is measured in milliseconds.  :class:`Duration` pairs a
scalar with a :class:`TimeUnit` so each coefficient can be written in the
unit it was measured in and normalised to seconds before any arithmetic.

Supported units
---------------
- ``s``  - seconds (canonical unit)
- ``ms`` - milliseconds, 1e-3 s
- ``µs`` - microseconds, 1e-6 s (``us`` is accepted when parsing)
- ``ns`` - nanoseconds, 1e-9 s
"""

from __future__ import annotations

import functools
import numbers
import re
from dataclasses import dataclass
from enum import Enum


# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------

class TimeUnit(Enum):
    """A time unit with its scale factor to seconds and display suffix."""
    SECONDS = ("s", 1.0)
    MILLISECONDS = ("ms", 1e-3)
    MICROSECONDS = ("µs", 1e-6)
    NANOSECONDS = ("ns", 1e-9)

    def __init__(self, suffix: str, scale: float) -> None:
        self.suffix = suffix
        self.scale = scale


# Suffixes accepted by parse_duration().  ``us`` is the ASCII spelling of µs;
# the Greek small letter mu is accepted alongside the micro sign.
_SUFFIXES: dict[str, TimeUnit] = {
    "s": TimeUnit.SECONDS,
    "ms": TimeUnit.MILLISECONDS,
    "µs": TimeUnit.MICROSECONDS,
    "us": TimeUnit.MICROSECONDS,
    "μs": TimeUnit.MICROSECONDS,
    "ns": TimeUnit.NANOSECONDS,
}

_DURATION_RE = re.compile(
    r"^\s*(?P<value>[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)\s*(?P<suffix>[a-zµμ]*)\s*$"
)


# ---------------------------------------------------------------------------
# Duration
# ---------------------------------------------------------------------------

@functools.total_ordering
@dataclass(frozen=True, eq=False)
class Duration:
    """A scalar duration tagged with its unit.

    Equality and ordering compare the normalised value in seconds, so
    ``milliseconds(1) == microseconds(1000)``.  Addition keeps the unit of
    the left operand; scaling and division keep the unit of the duration.
    """
    value: float
    unit: TimeUnit = TimeUnit.SECONDS

    @classmethod
    def from_seconds(
        cls, seconds: float, unit: TimeUnit = TimeUnit.SECONDS,
    ) -> Duration:
        """Build a duration in *unit* from a value given in seconds."""
        return cls(seconds / unit.scale, unit)

    def total_seconds(self) -> float:
        return self.value * self.unit.scale

    def to(self, unit: TimeUnit) -> Duration:
        """Return the same duration expressed in *unit*."""
        if unit is self.unit:
            return self
        return Duration.from_seconds(self.total_seconds(), unit)

    def as_seconds(self) -> Duration:
        return self.to(TimeUnit.SECONDS)

    def __add__(self, other: object) -> Duration:
        if not isinstance(other, Duration):
            return NotImplemented
        return Duration(self.value + other.to(self.unit).value, self.unit)

    def __radd__(self, other: object) -> Duration:
        # sum() starts from the integer 0.
        if isinstance(other, numbers.Number) and other == 0:
            return self
        return NotImplemented

    def __mul__(self, factor: object) -> Duration:
        if isinstance(factor, bool) or not isinstance(factor, numbers.Real):
            return NotImplemented
        return Duration(self.value * factor, self.unit)

    __rmul__ = __mul__

    def __truediv__(self, divisor: object) -> Duration:
        if isinstance(divisor, bool) or not isinstance(divisor, numbers.Real):
            return NotImplemented
        return Duration(self.value / divisor, self.unit)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Duration):
            return NotImplemented
        return self.total_seconds() == other.total_seconds()

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Duration):
            return NotImplemented
        return self.total_seconds() < other.total_seconds()

    def __hash__(self) -> int:
        return hash(self.total_seconds())

    def __str__(self) -> str:
        return f"{self.value} {self.unit.suffix}"


ZERO = Duration(0.0)


# ---------------------------------------------------------------------------
# Constructors and conversion helpers
# ---------------------------------------------------------------------------

def seconds(value: float) -> Duration:
    return Duration(value, TimeUnit.SECONDS)


def milliseconds(value: float) -> Duration:
    return Duration(value, TimeUnit.MILLISECONDS)


def microseconds(value: float) -> Duration:
    return Duration(value, TimeUnit.MICROSECONDS)


def nanoseconds(value: float) -> Duration:
    return Duration(value, TimeUnit.NANOSECONDS)


def as_duration(value: Duration | float) -> Duration:
    """Coerce *value* to a :class:`Duration`.

    Durations pass through unchanged; plain numbers are taken as seconds.

    Raises
    ------
    TypeError
        If *value* is neither a duration nor a real number (booleans are
        rejected).
    """
    if isinstance(value, Duration):
        return value
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise TypeError(
            f"expected a Duration or a number of seconds, got {value!r}"
        )
    return Duration(float(value), TimeUnit.SECONDS)


def parse_duration(text: str) -> Duration:
    """Parse a duration such as ``"200us"``, ``"0.5 ms"`` or ``"1.5"``.

    A missing suffix means seconds.  The output of ``str(duration)`` is
    accepted, so formatting and parsing round-trip.

    Raises
    ------
    ValueError
        If *text* is not a number followed by an optional known unit suffix.
    """
    match = _DURATION_RE.match(text)
    if match is None:
        raise ValueError(f"invalid duration: {text!r}")
    suffix = match.group("suffix") or "s"
    unit = _SUFFIXES.get(suffix)
    if unit is None:
        raise ValueError(
            f"unknown time unit {suffix!r} in {text!r}; "
            f"expected one of {', '.join(_SUFFIXES)}"
        )
    return Duration(float(match.group("value")), unit)

"""Calendar quarters and the ordered analysis window.

Quarters are encoded the same way the half-year panels encode ``yh``: a single
integer ``index = year * 4 + (quarter - 1)`` so that consecutive quarters
differ by exactly one.
"""

from __future__ import annotations

import re
from typing import Iterable, Iterator, NamedTuple, Sequence

_LABEL_RE = re.compile(r"^\s*(\d{4})\s*(?:[-:_ ]?\s*[qQ]|[-:_ ])\s*([1-4])\s*$")


class Quarter(NamedTuple):
    year: int
    quarter: int

    @classmethod
    def parse(cls, label: str) -> "Quarter":
        """Parse ``2019Q1`` (also ``2019q1``, ``2019-Q1``, ``2019:1``)."""
        m = _LABEL_RE.match(str(label))
        if not m:
            raise ValueError(f"Unrecognised quarter label: {label!r}")
        return cls(int(m.group(1)), int(m.group(2)))

    @classmethod
    def from_index(cls, index: int) -> "Quarter":
        return cls(index // 4, index % 4 + 1)

    @property
    def index(self) -> int:
        return self.year * 4 + (self.quarter - 1)

    @property
    def label(self) -> str:
        return f"{self.year}Q{self.quarter}"

    def prev(self) -> "Quarter":
        return Quarter.from_index(self.index - 1)

    def next(self) -> "Quarter":
        return Quarter.from_index(self.index + 1)

    def __str__(self) -> str:
        return self.label


def _as_quarter(value: Quarter | str | Sequence[int]) -> Quarter:
    if isinstance(value, Quarter):
        q = value
    elif isinstance(value, str):
        q = Quarter.parse(value)
    else:
        year, quarter = value
        q = Quarter(int(year), int(quarter))
    if q.quarter not in (1, 2, 3, 4):
        raise ValueError(f"Quarter must be 1-4, got {q.quarter} ({q.year})")
    return q


class QuarterWindow(Sequence[Quarter]):
    """Non-empty, strictly increasing list of quarters under analysis.

    Neighbour lookups only return quarters that are themselves part of the
    window; a quarter whose calendar predecessor is outside the window is
    treated as the start of the window.
    """

    def __init__(self, quarters: Iterable[Quarter | str | Sequence[int]]):
        qs = tuple(_as_quarter(q) for q in quarters)
        if not qs:
            raise ValueError("Analysis window must contain at least one quarter")
        for a, b in zip(qs, qs[1:]):
            if b.index <= a.index:
                raise ValueError(
                    f"Analysis window must be strictly increasing: {a} followed by {b}"
                )
        self._quarters = qs
        self._members = frozenset(qs)

    # -- construction ------------------------------------------------------

    @classmethod
    def from_range(cls, start: Quarter | str, end: Quarter | str) -> "QuarterWindow":
        lo, hi = _as_quarter(start), _as_quarter(end)
        if hi.index < lo.index:
            raise ValueError(f"Window end {hi} precedes start {lo}")
        return cls(Quarter.from_index(i) for i in range(lo.index, hi.index + 1))

    @classmethod
    def parse(cls, text: str) -> "QuarterWindow":
        """``"2018Q1:2020Q1"`` (inclusive range) or ``"2018Q1,2018Q2,..."``."""
        text = text.strip()
        if ":" in text and "," not in text and text.count(":") == 1 and "Q" in text.upper():
            start, end = text.split(":")
            return cls.from_range(start, end)
        return cls(part for part in (p.strip() for p in text.split(",")) if part)

    # -- sequence protocol -------------------------------------------------

    def __getitem__(self, item):
        return self._quarters[item]

    def __len__(self) -> int:
        return len(self._quarters)

    def __iter__(self) -> Iterator[Quarter]:
        return iter(self._quarters)

    def __contains__(self, item: object) -> bool:
        return item in self._members

    def __eq__(self, other: object) -> bool:
        if isinstance(other, QuarterWindow):
            return self._quarters == other._quarters
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._quarters)

    def __repr__(self) -> str:
        return f"QuarterWindow({', '.join(q.label for q in self._quarters)})"

    # -- neighbours --------------------------------------------------------

    @property
    def first(self) -> Quarter:
        return self._quarters[0]

    @property
    def last(self) -> Quarter:
        return self._quarters[-1]

    def prior(self, quarter: Quarter) -> Quarter | None:
        candidate = quarter.prev()
        return candidate if candidate in self._members else None

    def following(self, quarter: Quarter) -> Quarter | None:
        candidate = quarter.next()
        return candidate if candidate in self._members else None

    @property
    def labels(self) -> list[str]:
        return [q.label for q in self._quarters]

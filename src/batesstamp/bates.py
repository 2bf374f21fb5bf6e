# src/batesstamp/bates.py
from __future__ import annotations

from dataclasses import dataclass

from .exceptions import InvalidSequenceValue


@dataclass(frozen=True, eq=False)
class BatesNumber:
    """
    A prefixed, zero padded page identifier.

    Values are immutable; next() and previous() return new instances.
    Equality, hashing and ordering all go through format(), so the order is
    textual: "A002" < "A010", but "A10" < "A9" when the padding is too narrow.
    Two numbers with different prefix/padding that happen to format the same,
    e.g. ("X0", 1, 1) and ("X", 1, 2), compare equal.
    """
    prefix: str
    number: int = 1
    padding: int = 8

    def __post_init__(self):
        if self.number < 1:
            raise InvalidSequenceValue(f"Number must be greater than 0, got {self.number}")
        if self.padding < 0:
            raise InvalidSequenceValue(f"Padding must not be negative, got {self.padding}")

    def format(self) -> str:
        return f"{self.prefix}{self.number:0{self.padding}d}" if self.padding else f"{self.prefix}{self.number}"

    def next(self) -> "BatesNumber":
        return BatesNumber(self.prefix, self.number + 1, self.padding)

    def previous(self) -> "BatesNumber":
        return BatesNumber(self.prefix, self.number - 1, self.padding)

    def advance(self, count: int) -> "BatesNumber":
        """Return the number `count` pages further on."""
        if count < 0:
            raise InvalidSequenceValue(f"Cannot advance by a negative count, got {count}")
        return BatesNumber(self.prefix, self.number + count, self.padding)

    def __str__(self) -> str:
        return self.format()

    def __repr__(self) -> str:
        return f"BatesNumber({self.format()!r})"

    def __hash__(self) -> int:
        return hash(self.format())

    def __eq__(self, other):
        if not isinstance(other, BatesNumber):
            return NotImplemented
        return self.format() == other.format()

    def __lt__(self, other):
        if not isinstance(other, BatesNumber):
            return NotImplemented
        return self.format() < other.format()

    def __le__(self, other):
        if not isinstance(other, BatesNumber):
            return NotImplemented
        return self.format() <= other.format()

    def __gt__(self, other):
        if not isinstance(other, BatesNumber):
            return NotImplemented
        return self.format() > other.format()

    def __ge__(self, other):
        if not isinstance(other, BatesNumber):
            return NotImplemented
        return self.format() >= other.format()

"""Text and money matchers used by assertions."""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional, Protocol, Union

CURRENCY_CODES = ("USD", "EUR", "GBP", "CAD", "AUD")

# amounts next to a currency marker win over bare numbers ("Subtotal (2 items): $19.75");
# a minus counts only when it touches the symbol or the digits
_CURRENCY_PATTERN = re.compile(
    r"(?P<sign>-)?(?:[$€£]|\b(?:" + "|".join(CURRENCY_CODES) + r")\s)\s*(?P<sign2>-)?(?P<amount>\d[\d,]*(?:\.\d+)?)"
)
_BARE_PATTERN = re.compile(r"(?P<sign>-)?(?P<sign2>)(?P<amount>\d[\d,]*(?:\.\d+)?)")

Number = Union[int, float, str, Decimal]


class Matcher(Protocol):
    def matches(self, actual: Optional[str]) -> bool: ...

    def describe(self) -> str: ...


@dataclass(frozen=True)
class Exact:
    expected: str
    strip: bool = True

    def matches(self, actual: Optional[str]) -> bool:
        if actual is None:
            return False
        return (actual.strip() if self.strip else actual) == self.expected

    def describe(self) -> str:
        return f"text == {self.expected!r}"


@dataclass(frozen=True)
class Contains:
    expected: str
    ignore_case: bool = False

    def matches(self, actual: Optional[str]) -> bool:
        if actual is None:
            return False
        if self.ignore_case:
            return self.expected.lower() in actual.lower()
        return self.expected in actual

    def describe(self) -> str:
        return f"text contains {self.expected!r}"


@dataclass(frozen=True)
class Regex:
    pattern: str
    flags: int = 0

    def matches(self, actual: Optional[str]) -> bool:
        if actual is None:
            return False
        return re.search(self.pattern, actual, self.flags) is not None

    def describe(self) -> str:
        return f"text matches /{self.pattern}/"


@dataclass(frozen=True)
class CloseTo:
    """Money comparison absorbing rounding between independently computed totals."""

    expected: Decimal
    epsilon: Decimal = Decimal("0.01")

    @classmethod
    def of(cls, expected: Number, epsilon: Number = "0.01") -> "CloseTo":
        return cls(to_decimal(expected), to_decimal(epsilon))

    def matches(self, actual: Optional[str]) -> bool:
        if actual is None:
            return False
        amount = try_parse_money(actual)
        if amount is None:
            return False
        return self.matches_amount(amount)

    def matches_amount(self, amount: Decimal) -> bool:
        return abs(amount - self.expected) <= self.epsilon

    def describe(self) -> str:
        return f"amount within {self.epsilon} of {self.expected}"


@dataclass(frozen=True)
class Equals:
    """Matches integer counts."""

    expected: int

    def matches(self, actual: Optional[str]) -> bool:
        return actual is not None and actual.strip() == str(self.expected)

    def describe(self) -> str:
        return f"== {self.expected}"


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Not a number: {value!r}") from exc


def try_parse_money(text: str) -> Optional[Decimal]:
    """Parse ``$1,234.50`` style text; return None when no amount is present."""
    text = text.strip()
    match = _CURRENCY_PATTERN.search(text) or _BARE_PATTERN.search(text)
    if not match:
        return None
    raw = match.group("amount").replace(",", "")
    try:
        amount = Decimal(raw)
    except InvalidOperation:
        return None
    if match.group("sign") or match.group("sign2"):
        amount = -amount
    return amount


def as_matcher(value: "Matcher | str | int") -> Matcher:
    if isinstance(value, bool):
        raise TypeError("bool is not a valid matcher")
    if isinstance(value, int):
        return Equals(value)
    if isinstance(value, str):
        return Exact(value)
    return value

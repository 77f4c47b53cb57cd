"""Domain models for the settlement reconciliation pipeline.

These dataclasses capture the canonical schema every platform export is
normalized into, plus the reference data it is matched against.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Iterable, Iterator, Sequence

_WHITESPACE = re.compile(r"\s+")
_PUNCTUATION = re.compile(r"[^\w\s]")


class PlatformKey(str, Enum):
    MY_REAL_TRIP = "myRealTrip"
    ZOOM_ZOOM = "zoomZoom"
    TRIPLE = "triple"
    WAUG = "waug"

    @classmethod
    def from_source_code(cls, code: str) -> "PlatformKey":
        value = (code or "").strip().upper()
        for config in PLATFORMS.values():
            if config.source_code == value:
                return config.key
        raise ValueError(f"Unknown reservation source code: {code!r}")


@dataclass(frozen=True)
class PlatformConfig:
    key: PlatformKey
    label: str
    source_code: str


PLATFORMS: dict[PlatformKey, PlatformConfig] = {
    PlatformKey.MY_REAL_TRIP: PlatformConfig(PlatformKey.MY_REAL_TRIP, "MyRealTrip", "M"),
    PlatformKey.ZOOM_ZOOM: PlatformConfig(PlatformKey.ZOOM_ZOOM, "ZoomZoom Tour", "Z"),
    PlatformKey.TRIPLE: PlatformConfig(PlatformKey.TRIPLE, "Triple", "T"),
    PlatformKey.WAUG: PlatformConfig(PlatformKey.WAUG, "Waug", "W"),
}


def normalize_name(value: str, strip_punctuation: bool = False, honorifics: Iterable[str] = ()) -> str:
    """Trim, case-fold and collapse internal whitespace."""
    text = (value or "").casefold()
    if strip_punctuation:
        text = _PUNCTUATION.sub(" ", text)
    tokens = _WHITESPACE.split(text.strip())
    if honorifics:
        dropped = {h.casefold().rstrip(".") for h in honorifics}
        tokens = [t for t in tokens if t.rstrip(".") not in dropped]
    return " ".join(t for t in tokens if t)


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar date range."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"Date range ends before it starts: {self.start} > {self.end}")

    def __contains__(self, day: object) -> bool:
        return isinstance(day, date) and self.start <= day <= self.end

    def padded(self, days: int) -> "DateRange":
        return DateRange(self.start - timedelta(days=days), self.end + timedelta(days=days))

    def days(self) -> Iterator[date]:
        current = self.start
        while current <= self.end:
            yield current
            current += timedelta(days=1)

    @classmethod
    def covering(cls, days: Iterable[date]) -> "DateRange":
        ordered = sorted(days)
        if not ordered:
            raise ValueError("Cannot build a date range from no dates")
        return cls(ordered[0], ordered[-1])


@dataclass(frozen=True)
class SettlementRow:
    """One external sale line after normalization."""

    platform: PlatformKey
    external_ref: str | None
    tour_date: date
    customer_name: str
    units: int
    price: int
    line_number: int
    product_code: str | None = None
    partial_refund: bool = False

    @property
    def name_key(self) -> str:
        return normalize_name(self.customer_name)


@dataclass(frozen=True)
class RowError:
    line_number: int
    reason: str


@dataclass(frozen=True)
class ParseResult:
    platform: PlatformKey
    rows: Sequence[SettlementRow]
    errors: Sequence[RowError] = ()
    cancelled: Sequence[SettlementRow] = ()
    file_hash: str = ""

    def has_errors(self) -> bool:
        return bool(self.errors)


@dataclass(frozen=True)
class ProductPrice:
    platform: PlatformKey
    product_code: str
    unit_price: int
    valid_from: date
    valid_to: date | None = None

    def applies_on(self, day: date) -> bool:
        if day < self.valid_from:
            return False
        return self.valid_to is None or day <= self.valid_to


class PriceTable:
    """Pinned snapshot of product prices used to price one batch."""

    def __init__(self, prices: Iterable[ProductPrice]) -> None:
        self._by_key: dict[tuple[PlatformKey, str], list[ProductPrice]] = {}
        for price in prices:
            key = (price.platform, price.product_code.strip().upper())
            self._by_key.setdefault(key, []).append(price)
        for entries in self._by_key.values():
            entries.sort(key=lambda p: p.valid_from, reverse=True)

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._by_key.values())

    def __iter__(self) -> Iterator[ProductPrice]:
        for entries in self._by_key.values():
            yield from entries

    def expected_unit_price(self, platform: PlatformKey, product_code: str | None, on: date) -> int | None:
        if not product_code:
            return None
        for price in self._by_key.get((platform, product_code.strip().upper()), ()):
            if price.applies_on(on):
                return price.unit_price
        return None


CANCELLED_STATUSES = frozenset({"cancelled", "canceled", "취소"})


@dataclass(frozen=True)
class Reservation:
    """The booking system's own record, borrowed read-only."""

    id: str
    platform: PlatformKey
    tour_date: date
    customer_name: str
    units: int
    status: str = "confirmed"
    settled: bool = False
    product_code: str | None = None

    @property
    def is_matchable(self) -> bool:
        return not self.settled and self.status.strip().casefold() not in CANCELLED_STATUSES

"""Domain-level results for settlement reconciliation."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Iterable, Sequence

from .models import DateRange, PlatformKey, Reservation, SettlementRow


class MatchTag(str, Enum):
    MATCHED = "matched"
    UNMATCHED = "unmatched"
    AMBIGUOUS = "ambiguous"
    PRICE_MISMATCH = "price_mismatch"


@dataclass(frozen=True)
class MatchResult:
    """Outcome of matching one settlement row against the candidate window."""

    tag: MatchTag
    row: SettlementRow
    candidates: Sequence[Reservation] = ()
    expected_price: int | None = None
    price_delta: int | None = None
    notes: Sequence[str] = ()

    def __post_init__(self) -> None:
        count = len(self.candidates)
        if self.tag is MatchTag.AMBIGUOUS and count < 2:
            raise ValueError(f"Ambiguous result needs at least two candidates, got {count}")
        if self.tag in (MatchTag.MATCHED, MatchTag.PRICE_MISMATCH) and count != 1:
            raise ValueError(f"{self.tag.value} result needs exactly one candidate, got {count}")
        if self.tag is MatchTag.UNMATCHED and count:
            raise ValueError(f"Unmatched result cannot carry candidates, got {count}")
        if self.tag is MatchTag.MATCHED and self.price_delta is None:
            raise ValueError("Matched result must record its price delta")

    @property
    def reservation(self) -> Reservation | None:
        """The reservation this row claims, if it claims one."""
        if self.tag in (MatchTag.MATCHED, MatchTag.PRICE_MISMATCH):
            return self.candidates[0]
        return None

    @property
    def counts_toward_revenue(self) -> bool:
        return self.reservation is not None


@dataclass(frozen=True)
class SummaryLine:
    platform: PlatformKey | None
    bucket: date | None
    matched: int = 0
    price_mismatch: int = 0
    ambiguous: int = 0
    unmatched: int = 0
    partial_refunds: int = 0
    reported_total: int = 0
    expected_total: int = 0
    clean_revenue: int = 0

    @property
    def net_discrepancy(self) -> int:
        return self.reported_total - self.expected_total

    @property
    def row_count(self) -> int:
        return self.matched + self.price_mismatch + self.ambiguous + self.unmatched


@dataclass(frozen=True)
class SettlementSummary:
    lines: Sequence[SummaryLine]
    total: SummaryLine
    generated_at: datetime

    def has_issues(self) -> bool:
        return any(
            [
                self.total.price_mismatch,
                self.total.ambiguous,
                self.total.unmatched,
            ]
        )


class BatchStatus(str, Enum):
    DRAFT = "draft"
    CONFIRMED = "confirmed"


@dataclass
class SettlementBatch:
    """Unit of confirmation; moves from draft to confirmed exactly once."""

    batch_id: str
    platform: PlatformKey
    period: DateRange
    results: Sequence[MatchResult]
    created_at: datetime
    status: BatchStatus = BatchStatus.DRAFT
    confirmed_at: datetime | None = None
    file_hash: str = ""
    unclaimed: Sequence[Reservation] = field(default_factory=tuple)
    carry_over: Sequence[Reservation] = field(default_factory=tuple)

    @property
    def is_confirmed(self) -> bool:
        return self.status is BatchStatus.CONFIRMED

    def claimed_reservation_ids(self) -> list[str]:
        return [result.reservation.id for result in self.results if result.reservation is not None]

    def results_with(self, *tags: MatchTag) -> list[MatchResult]:
        return [result for result in self.results if result.tag in tags]

    def iter_rows(self) -> Iterable[SettlementRow]:
        for result in self.results:
            yield result.row

"""Match engine pairing export rows with the system's own reservations."""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Sequence

from .models import DateRange, PlatformKey, PriceTable, Reservation, SettlementRow, normalize_name
from .results import MatchResult, MatchTag

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchPolicy:
    """Tunable rules for candidate selection and price checks.

    ``price_tolerance`` is an absolute amount in minor currency units.
    ``date_tolerance_days`` widens the search to neighbouring days when no
    reservation on the exact tour date fits the name. Containment covers
    truncated or reordered export names; ``min_containment_length`` stops
    one-letter names from matching everyone.
    """

    price_tolerance: int = 0
    date_tolerance_days: int = 1
    allow_containment: bool = True
    min_containment_length: int = 2
    require_name_match: bool = True
    strip_punctuation: bool = False
    honorifics: tuple[str, ...] = ()

    def name_key(self, value: str) -> str:
        return normalize_name(value, self.strip_punctuation, self.honorifics)


def _names_overlap(left: str, right: str, min_length: int) -> bool:
    if not left or not right:
        return False
    if sorted(left.split()) == sorted(right.split()):
        return True
    left_compact = left.replace(" ", "")
    right_compact = right.replace(" ", "")
    shorter, longer = sorted((left_compact, right_compact), key=len)
    if len(shorter) < min_length:
        return False
    return shorter in longer


class _CandidatePool:
    """Reservations still available to claim within one batch run."""

    def __init__(self, reservations: Iterable[Reservation]) -> None:
        self._by_day: dict[tuple[PlatformKey, date], list[Reservation]] = {}
        for reservation in reservations:
            if not reservation.is_matchable:
                continue
            key = (reservation.platform, reservation.tour_date)
            self._by_day.setdefault(key, []).append(reservation)

    def on(self, platform: PlatformKey, day: date) -> list[Reservation]:
        return list(self._by_day.get((platform, day), ()))

    def claim(self, reservation: Reservation) -> None:
        self._by_day[(reservation.platform, reservation.tour_date)].remove(reservation)


class SettlementMatcher:
    """Classifies each settlement row as matched, mismatched, ambiguous or unmatched."""

    def __init__(self, policy: MatchPolicy | None = None) -> None:
        if policy is None:
            policy = MatchPolicy()
        self._policy = policy

    @property
    def policy(self) -> MatchPolicy:
        return self._policy

    def match(
        self,
        rows: Sequence[SettlementRow],
        reservations: Sequence[Reservation],
        prices: PriceTable,
    ) -> list[MatchResult]:
        pool = _CandidatePool(reservations)
        results = [self._match_row(row, pool, prices) for row in sorted(rows, key=lambda r: r.line_number)]
        counts = Counter(result.tag.value for result in results)
        logger.info("Matched %d rows against %d reservations: %s", len(results), len(reservations), dict(counts))
        return results

    def _match_row(self, row: SettlementRow, pool: _CandidatePool, prices: PriceTable) -> MatchResult:
        notes: list[str] = []
        if row.partial_refund:
            notes.append("booking includes a partial refund")
        exact = pool.on(row.platform, row.tour_date)
        nearby = self._nearby(row, pool)
        if not exact and not nearby:
            notes.append("no reservation on or near the tour date")
            return MatchResult(tag=MatchTag.UNMATCHED, row=row, notes=tuple(notes))

        candidates = self._filter_by_name(row, exact, notes)
        if not candidates:
            for offset, reservations in nearby:
                candidates = self._filter_by_name(row, reservations, notes)
                if candidates:
                    notes.append(f"tour date off by {offset} day(s)")
                    break
        if not candidates:
            if self._policy.require_name_match:
                seen = len(exact) + sum(len(reservations) for _, reservations in nearby)
                notes.append(f"no name match among {seen} reservation(s) near the tour date")
                return MatchResult(tag=MatchTag.UNMATCHED, row=row, notes=tuple(notes))
            if exact:
                candidates = exact
            else:
                offset, candidates = nearby[0]
                notes.append(f"tour date off by {offset} day(s)")

        if len(candidates) > 1:
            same_units = [c for c in candidates if c.units == row.units]
            if same_units:
                candidates = same_units

        if len(candidates) > 1:
            notes.append(f"{len(candidates)} reservations fit equally well")
            return MatchResult(
                tag=MatchTag.AMBIGUOUS,
                row=row,
                candidates=tuple(candidates),
                notes=tuple(notes),
            )

        chosen = candidates[0]
        pool.claim(chosen)
        return self._price(row, chosen, prices, notes)

    def _nearby(self, row: SettlementRow, pool: _CandidatePool) -> list[tuple[int, list[Reservation]]]:
        found = []
        for offset in range(1, self._policy.date_tolerance_days + 1):
            reservations = pool.on(row.platform, row.tour_date - timedelta(days=offset))
            reservations += pool.on(row.platform, row.tour_date + timedelta(days=offset))
            if reservations:
                found.append((offset, reservations))
        return found

    def _filter_by_name(
        self, row: SettlementRow, candidates: list[Reservation], notes: list[str]
    ) -> list[Reservation]:
        key = self._policy.name_key(row.customer_name)
        exact = [c for c in candidates if self._policy.name_key(c.customer_name) == key]
        if exact or not self._policy.allow_containment:
            return exact
        partial = [
            c
            for c in candidates
            if _names_overlap(key, self._policy.name_key(c.customer_name), self._policy.min_containment_length)
        ]
        if partial:
            notes.append("name matched by containment")
        return partial

    def _price(
        self, row: SettlementRow, chosen: Reservation, prices: PriceTable, notes: list[str]
    ) -> MatchResult:
        product_code = row.product_code or chosen.product_code
        unit_price = prices.expected_unit_price(row.platform, product_code, row.tour_date)
        if unit_price is None:
            notes.append(f"no product price for {product_code or 'unknown product'}")
            return MatchResult(
                tag=MatchTag.PRICE_MISMATCH,
                row=row,
                candidates=(chosen,),
                notes=tuple(notes),
            )
        expected = unit_price * chosen.units
        delta = row.price - expected
        tag = MatchTag.MATCHED if abs(delta) <= self._policy.price_tolerance else MatchTag.PRICE_MISMATCH
        return MatchResult(
            tag=tag,
            row=row,
            candidates=(chosen,),
            expected_price=expected,
            price_delta=delta,
            notes=tuple(notes),
        )


def match_rows(
    rows: Sequence[SettlementRow],
    reservations: Sequence[Reservation],
    prices: PriceTable,
    policy: MatchPolicy | None = None,
) -> list[MatchResult]:
    return SettlementMatcher(policy).match(rows, reservations, prices)


def find_unclaimed(
    reservations: Iterable[Reservation],
    results: Iterable[MatchResult],
    period: DateRange,
    platform: PlatformKey,
) -> list[Reservation]:
    """Reservations inside the period that no export row claimed."""
    claimed = {result.reservation.id for result in results if result.reservation is not None}
    return [
        r
        for r in reservations
        if r.platform == platform and r.is_matchable and r.tour_date in period and r.id not in claimed
    ]

"""Roll match results up into per-platform, per-day totals."""
from __future__ import annotations

from dataclasses import fields, replace
from datetime import date, datetime, timezone
from typing import Iterable, Sequence

from .models import PlatformKey
from .results import MatchResult, MatchTag, SettlementSummary, SummaryLine

_TAG_FIELDS = {
    MatchTag.MATCHED: "matched",
    MatchTag.PRICE_MISMATCH: "price_mismatch",
    MatchTag.AMBIGUOUS: "ambiguous",
    MatchTag.UNMATCHED: "unmatched",
}
_SUMMED_FIELDS = tuple(f.name for f in fields(SummaryLine) if f.name not in ("platform", "bucket"))


def _line_for(platform: PlatformKey, bucket: date, results: Sequence[MatchResult]) -> SummaryLine:
    counts = {name: 0 for name in _TAG_FIELDS.values()}
    reported = expected = clean = refunds = 0
    for result in results:
        counts[_TAG_FIELDS[result.tag]] += 1
        if result.row.partial_refund:
            refunds += 1
        if not result.counts_toward_revenue:
            continue
        reported += result.row.price
        expected += result.expected_price or 0
        if result.tag is MatchTag.MATCHED:
            clean += result.row.price
    return SummaryLine(
        platform=platform,
        bucket=bucket,
        reported_total=reported,
        expected_total=expected,
        clean_revenue=clean,
        partial_refunds=refunds,
        **counts,
    )


def _add(left: SummaryLine, right: SummaryLine) -> SummaryLine:
    return replace(left, **{name: getattr(left, name) + getattr(right, name) for name in _SUMMED_FIELDS})


def summarize(results: Iterable[MatchResult], generated_at: datetime | None = None) -> SettlementSummary:
    grouped: dict[tuple[PlatformKey, date], list[MatchResult]] = {}
    for result in results:
        grouped.setdefault((result.row.platform, result.row.tour_date), []).append(result)

    lines = [
        _line_for(platform, bucket, grouped[(platform, bucket)])
        for platform, bucket in sorted(grouped, key=lambda key: (key[0].value, key[1]))
    ]
    total = SummaryLine(platform=None, bucket=None)
    for line in lines:
        total = _add(total, line)
    return SettlementSummary(
        lines=tuple(lines),
        total=total,
        generated_at=generated_at or datetime.now(timezone.utc),
    )

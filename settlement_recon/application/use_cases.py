"""Application services orchestrating the settlement workflow."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from settlement_recon.application.dto import ReconciliationRequest, ReconciliationResponse
from settlement_recon.application.reference_loader import ReferenceDataLoader, ReferenceSnapshot
from settlement_recon.config import SETTINGS, Settings
from settlement_recon.domain.confirmation import ConfirmationCoordinator
from settlement_recon.domain.matching import SettlementMatcher, find_unclaimed
from settlement_recon.domain.models import DateRange, ParseResult, PlatformKey
from settlement_recon.domain.repositories import ReferenceDataRepository, SettlementLedger
from settlement_recon.domain.results import SettlementBatch
from settlement_recon.domain.summary import summarize
from settlement_recon.infrastructure.parsing.registry import parse_settlement_file

logger = logging.getLogger(__name__)


def make_batch_id(platform: PlatformKey, period: DateRange, file_hash: str) -> str:
    return f"{platform.value}-{period.start:%Y%m%d}-{period.end:%Y%m%d}-{file_hash[:12] or 'manual'}"


@dataclass(slots=True)
class SettlementContext:
    reference_repository: ReferenceDataRepository
    ledger: SettlementLedger
    settings: Settings = field(default=SETTINGS)


class ReconcileSettlementUseCase:
    """Parse an export, load reference data, match and summarise into a draft batch."""

    def __init__(self, context: SettlementContext) -> None:
        self._context = context
        settings = context.settings
        self._loader = ReferenceDataLoader(
            context.reference_repository,
            padding_days=settings.window_padding_days,
            timeout=settings.fetch_timeout_seconds,
        )
        self._matcher = SettlementMatcher(settings.match_policy)

    def execute(self, request: ReconciliationRequest) -> ReconciliationResponse:
        parse_result = parse_settlement_file(request.platform, request.source)
        return self.reconcile(parse_result, request.period)

    def reconcile(self, parse_result: ParseResult, period: DateRange | None = None) -> ReconciliationResponse:
        period = self._resolve_period(parse_result, period)
        snapshot = self._loader.load_sync(parse_result.platform, period)
        return self._build(parse_result, period, snapshot)

    async def reconcile_async(self, parse_result: ParseResult, period: DateRange | None = None) -> ReconciliationResponse:
        period = self._resolve_period(parse_result, period)
        snapshot = await self._loader.load(parse_result.platform, period)
        return self._build(parse_result, period, snapshot)

    @staticmethod
    def _resolve_period(parse_result: ParseResult, period: DateRange | None) -> DateRange:
        if period is not None:
            return period
        if not parse_result.rows:
            raise ValueError("Export has no settlement rows; an explicit period is required")
        return DateRange.covering(row.tour_date for row in parse_result.rows)

    def _build(self, parse_result: ParseResult, period: DateRange, snapshot: ReferenceSnapshot) -> ReconciliationResponse:
        results = self._matcher.match(parse_result.rows, snapshot.reservations, snapshot.prices)
        claimed = {result.reservation.id for result in results if result.reservation is not None}
        batch = SettlementBatch(
            batch_id=make_batch_id(parse_result.platform, period, parse_result.file_hash),
            platform=parse_result.platform,
            period=period,
            results=tuple(results),
            created_at=datetime.now(timezone.utc),
            file_hash=parse_result.file_hash,
            unclaimed=tuple(find_unclaimed(snapshot.reservations, results, period, parse_result.platform)),
            carry_over=tuple(r for r in snapshot.carry_over if r.id not in claimed),
        )
        summary = summarize(results)
        logger.info(
            "Draft batch %s: %d rows, reported %d, expected %d",
            batch.batch_id,
            summary.total.row_count,
            summary.total.reported_total,
            summary.total.expected_total,
        )
        return ReconciliationResponse(parse_result=parse_result, batch=batch, summary=summary)


class ConfirmSettlementUseCase:
    def __init__(self, context: SettlementContext) -> None:
        self._coordinator = ConfirmationCoordinator(context.ledger)

    def execute(self, batch: SettlementBatch) -> SettlementBatch:
        return self._coordinator.confirm(batch)

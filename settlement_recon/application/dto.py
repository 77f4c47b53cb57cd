"""Application-level DTOs for settlement reconciliation."""
from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from pathlib import Path

from settlement_recon.domain.models import DateRange, ParseResult, PlatformKey
from settlement_recon.domain.results import SettlementBatch, SettlementSummary


@dataclass(slots=True, frozen=True)
class ReconciliationRequest:
    platform: PlatformKey
    source: BytesIO | Path | bytes
    period: DateRange | None = None


@dataclass(slots=True, frozen=True)
class ReconciliationResponse:
    parse_result: ParseResult
    batch: SettlementBatch
    summary: SettlementSummary

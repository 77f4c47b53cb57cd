"""Waug supplier report parser (US-style dates, two-decimal amounts)."""
from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path

from settlement_recon.domain.models import ParseResult, PlatformKey
from settlement_recon.infrastructure.parsing.layout import ColumnLayout, collect_rows, simple_row_builder
from settlement_recon.infrastructure.parsing.utils import compute_file_hash, ensure_bytes, read_table

logger = logging.getLogger(__name__)

LAYOUT = ColumnLayout(
    platform=PlatformKey.WAUG,
    aliases={
        "external_ref": ("Booking ID",),
        "product_code": ("Option ID", "Activity ID"),
        "tour_date": ("Activity Date", "Use Date"),
        "customer_name": ("Traveler", "Traveler Name"),
        "units": ("Pax",),
        "price": ("Net Price", "Net Amount"),
    },
    required=frozenset({"tour_date", "customer_name", "units", "price"}),
    date_formats=("%m/%d/%Y", "%Y-%m-%d"),
    allow_serial_dates=True,
)


def parse_waug(source: BytesIO | Path | bytes) -> ParseResult:
    raw = ensure_bytes(source)
    rows, errors = collect_rows(read_table(raw), LAYOUT, simple_row_builder(LAYOUT))
    logger.info("Parsed Waug export: %d rows, %d rejected", len(rows), len(errors))
    return ParseResult(
        platform=LAYOUT.platform,
        rows=tuple(rows),
        errors=tuple(errors),
        file_hash=compute_file_hash(raw),
    )

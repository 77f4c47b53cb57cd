"""ZoomZoom Tour partner CSV export parser."""
from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path

from settlement_recon.domain.models import ParseResult, PlatformKey
from settlement_recon.infrastructure.parsing.layout import ColumnLayout, collect_rows, simple_row_builder
from settlement_recon.infrastructure.parsing.utils import compute_file_hash, ensure_bytes, read_table

logger = logging.getLogger(__name__)

LAYOUT = ColumnLayout(
    platform=PlatformKey.ZOOM_ZOOM,
    aliases={
        "external_ref": ("Booking No", "Booking Number"),
        "product_code": ("Product Code",),
        "tour_date": ("Travel Date",),
        "customer_name": ("Guest Name", "Lead Guest"),
        "units": ("Qty", "Quantity"),
        "price": ("Total (KRW)", "Total"),
    },
    required=frozenset({"tour_date", "customer_name", "units", "price"}),
    date_formats=("%d/%m/%Y", "%d-%m-%Y"),
)


def parse_zoom_zoom(source: BytesIO | Path | bytes) -> ParseResult:
    raw = ensure_bytes(source)
    rows, errors = collect_rows(read_table(raw), LAYOUT, simple_row_builder(LAYOUT))
    logger.info("Parsed ZoomZoom export: %d rows, %d rejected", len(rows), len(errors))
    return ParseResult(
        platform=LAYOUT.platform,
        rows=tuple(rows),
        errors=tuple(errors),
        file_hash=compute_file_hash(raw),
    )

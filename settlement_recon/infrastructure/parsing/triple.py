"""Triple partner-center export parser.

Dates arrive as compact ``YYYYMMDD`` strings and amounts carry a ``원`` suffix.
"""
from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path

from settlement_recon.domain.models import ParseResult, PlatformKey
from settlement_recon.infrastructure.parsing.layout import ColumnLayout, collect_rows, simple_row_builder
from settlement_recon.infrastructure.parsing.utils import compute_file_hash, ensure_bytes, read_table

logger = logging.getLogger(__name__)

LAYOUT = ColumnLayout(
    platform=PlatformKey.TRIPLE,
    aliases={
        "external_ref": ("주문번호",),
        "product_code": ("옵션코드", "상품코드"),
        "tour_date": ("이용일", "사용일"),
        "customer_name": ("구매자명", "예약자명"),
        "units": ("수량",),
        "price": ("판매가", "결제금액"),
    },
    required=frozenset({"tour_date", "customer_name", "units", "price"}),
    date_formats=("%Y%m%d", "%Y-%m-%d"),
)


def parse_triple(source: BytesIO | Path | bytes) -> ParseResult:
    raw = ensure_bytes(source)
    rows, errors = collect_rows(read_table(raw), LAYOUT, simple_row_builder(LAYOUT))
    logger.info("Parsed Triple export: %d rows, %d rejected", len(rows), len(errors))
    return ParseResult(
        platform=LAYOUT.platform,
        rows=tuple(rows),
        errors=tuple(errors),
        file_hash=compute_file_hash(raw),
    )

"""MyRealTrip settlement export parser.

MyRealTrip writes one line per product option, so a single booking can span
several lines, including negative refund lines. Lines sharing a booking
number are merged into one settlement row; a booking whose amounts net to
zero or less was cancelled and is reported apart from the matchable rows.
A booking that still nets above zero but carries a refund line, or a line
marked 취소, is kept and flagged as a partial refund.
"""
from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path
from typing import Mapping

from settlement_recon.config import SETTINGS
from settlement_recon.domain.errors import RowParseError
from settlement_recon.domain.models import ParseResult, PlatformKey, SettlementRow
from settlement_recon.infrastructure.parsing.layout import ColumnLayout, collect_rows
from settlement_recon.infrastructure.parsing.utils import (
    compute_file_hash,
    ensure_bytes,
    parse_calendar_date,
    parse_count,
    parse_minor_units,
    read_table,
)

logger = logging.getLogger(__name__)

CANCEL_MARK = "취소"

LAYOUT = ColumnLayout(
    platform=PlatformKey.MY_REAL_TRIP,
    aliases={
        "external_ref": ("예약번호", "주문번호", "Reservation No"),
        "product_code": ("상품코드", "상품명", "Product"),
        "tour_date": ("여행일", "투어일", "이용일", "Tour Date"),
        "adults": ("성인", "대인", "Adult"),
        "children": ("아동", "소인", "Child"),
        "price": ("결제금액", "정산금액", "판매금액", "Amount"),
        "customer_name": ("예약자", "고객명", "Customer"),
        "status": ("예약상태", "상태", "Status"),
    },
    required=frozenset({"external_ref", "tour_date", "adults", "price", "customer_name"}),
    date_formats=("%Y-%m-%d", "%Y.%m.%d", "%Y/%m/%d"),
    allow_serial_dates=True,
)


def _build_row(record: Mapping[str, str], line_number: int) -> SettlementRow:
    name = record.get("customer_name", "")
    if not name:
        raise RowParseError("missing customer name")
    adults = parse_count(record.get("adults"), default=0)
    children = parse_count(record.get("children"), default=0)
    price = parse_minor_units(record.get("price"), SETTINGS.currency_exponent)
    product_code = record.get("product_code") or None
    refund_marked = any(CANCEL_MARK in (record.get(field) or "") for field in ("status", "product_code"))
    return SettlementRow(
        platform=LAYOUT.platform,
        external_ref=record.get("external_ref") or None,
        tour_date=parse_calendar_date(record.get("tour_date"), LAYOUT.date_formats, LAYOUT.allow_serial_dates),
        customer_name=name,
        units=adults + children,
        price=price,
        line_number=line_number,
        product_code=product_code,
        partial_refund=price < 0 or refund_marked,
    )


def merge_booking_lines(lines: list[SettlementRow]) -> SettlementRow:
    first = lines[0]
    if len(lines) == 1:
        return first
    return SettlementRow(
        platform=first.platform,
        external_ref=first.external_ref,
        tour_date=first.tour_date,
        customer_name=first.customer_name,
        units=sum(line.units for line in lines if line.price > 0),
        price=sum(line.price for line in lines),
        line_number=first.line_number,
        product_code=first.product_code,
        partial_refund=any(line.partial_refund for line in lines),
    )


def parse_my_real_trip(source: BytesIO | Path | bytes) -> ParseResult:
    raw = ensure_bytes(source)
    lines, errors = collect_rows(read_table(raw), LAYOUT, _build_row)

    bookings: dict[str, list[SettlementRow]] = {}
    for line in lines:
        key = line.external_ref or f"line:{line.line_number}"
        bookings.setdefault(key, []).append(line)

    rows: list[SettlementRow] = []
    cancelled: list[SettlementRow] = []
    for group in bookings.values():
        merged = merge_booking_lines(group)
        if merged.price <= 0:
            cancelled.append(merged)
        else:
            rows.append(merged)

    logger.info(
        "Parsed MyRealTrip export: %d lines -> %d bookings (%d cancelled), %d rejected",
        len(lines),
        len(rows),
        len(cancelled),
        len(errors),
    )
    return ParseResult(
        platform=LAYOUT.platform,
        rows=tuple(rows),
        errors=tuple(errors),
        cancelled=tuple(cancelled),
        file_hash=compute_file_hash(raw),
    )

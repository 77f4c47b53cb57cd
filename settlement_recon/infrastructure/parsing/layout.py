"""Column layouts mapping platform headers onto canonical settlement fields."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterator, Mapping, Sequence

import pandas as pd

from settlement_recon.config import SETTINGS
from settlement_recon.domain.errors import RowParseError, UnsupportedFormatError
from settlement_recon.domain.models import PlatformKey, RowError, SettlementRow
from settlement_recon.infrastructure.parsing.utils import (
    clean_text,
    normalize_header,
    parse_calendar_date,
    parse_count,
    parse_minor_units,
)

logger = logging.getLogger(__name__)

HEADER_SCAN_ROWS = 15

RowBuilder = Callable[[Mapping[str, str], int], SettlementRow]


@dataclass(frozen=True)
class ColumnLayout:
    """Header aliases per canonical field; the first alias present wins."""

    platform: PlatformKey
    aliases: Mapping[str, tuple[str, ...]]
    required: frozenset[str]
    date_formats: tuple[str, ...]
    allow_serial_dates: bool = False

    def resolve(self, headers: Sequence[str]) -> dict[str, int] | None:
        positions = {name: idx for idx, name in reversed(list(enumerate(headers))) if name}
        columns: dict[str, int] = {}
        for field, names in self.aliases.items():
            for name in names:
                idx = positions.get(normalize_header(name))
                if idx is not None:
                    columns[field] = idx
                    break
        if not self.required.issubset(columns):
            return None
        return columns


def locate_header(table: pd.DataFrame, layout: ColumnLayout) -> tuple[int, dict[str, int]]:
    for idx in range(min(len(table), HEADER_SCAN_ROWS)):
        headers = [normalize_header(value) for value in table.iloc[idx]]
        columns = layout.resolve(headers)
        if columns is not None:
            return idx, columns
    first = [clean_text(value) for value in table.iloc[0]] if len(table) else []
    missing = sorted(layout.required)
    raise UnsupportedFormatError(
        f"No {layout.platform.value} header row found (expected columns for {', '.join(missing)})",
        headers=[h for h in first if h],
    )


def iter_records(table: pd.DataFrame, layout: ColumnLayout) -> Iterator[tuple[int, dict[str, str]]]:
    """Yield (1-based source line, field -> cell text) for each non-blank data row."""
    header_idx, columns = locate_header(table, layout)
    for idx in range(header_idx + 1, len(table)):
        values = table.iloc[idx]
        record = {field: clean_text(values.iloc[col]) for field, col in columns.items()}
        if not any(record.values()):
            continue
        yield idx + 1, record


def collect_rows(
    table: pd.DataFrame, layout: ColumnLayout, build_row: RowBuilder
) -> tuple[list[SettlementRow], list[RowError]]:
    rows: list[SettlementRow] = []
    errors: list[RowError] = []
    for line_number, record in iter_records(table, layout):
        try:
            rows.append(build_row(record, line_number))
        except RowParseError as exc:
            logger.debug("%s line %d rejected: %s", layout.platform.value, line_number, exc)
            errors.append(RowError(line_number=line_number, reason=str(exc)))
    return rows, errors


def simple_row_builder(layout: ColumnLayout) -> RowBuilder:
    """Builder for exports with one booking per line and a single units column."""

    def build(record: Mapping[str, str], line_number: int) -> SettlementRow:
        name = record.get("customer_name", "")
        if not name:
            raise RowParseError("missing customer name")
        return SettlementRow(
            platform=layout.platform,
            external_ref=record.get("external_ref") or None,
            tour_date=parse_calendar_date(record.get("tour_date"), layout.date_formats, layout.allow_serial_dates),
            customer_name=name,
            units=parse_count(record.get("units")),
            price=parse_minor_units(record.get("price"), SETTINGS.currency_exponent),
            line_number=line_number,
            product_code=record.get("product_code") or None,
        )

    return build

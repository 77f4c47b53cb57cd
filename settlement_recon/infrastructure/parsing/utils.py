"""Shared parsing utilities for platform export ingestion."""
from __future__ import annotations

import hashlib
import io
import re
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from io import BytesIO
from pathlib import Path
from typing import Sequence
from zipfile import BadZipFile

import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException
from xlrd import XLRDError

from settlement_recon.domain.errors import RowParseError, UnsupportedFormatError

XLSX_SIGNATURE = b"PK\x03\x04"
XLS_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
EXCEL_EPOCH = date(1899, 12, 30)

_CURRENCY_MARKS = (",", "₩", "원", "KRW", "krw", " ")
_EXCEL_DATETIME = re.compile(r"^(\d{4}-\d{2}-\d{2})[ T]\d{2}:\d{2}(:\d{2})?$")


def ensure_bytes(source: BytesIO | Path | bytes) -> bytes:
    if isinstance(source, bytes):
        return source
    if isinstance(source, BytesIO):
        return source.getvalue()
    if isinstance(source, Path):
        return source.read_bytes()
    raise TypeError(f"Unsupported source type: {type(source)!r}")


def compute_file_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def read_table(raw: bytes) -> pd.DataFrame:
    """Load the first sheet (or CSV body) with no header row and every cell as text."""
    try:
        if raw.startswith(XLSX_SIGNATURE):
            frame = pd.read_excel(BytesIO(raw), sheet_name=0, engine="openpyxl", header=None, dtype=str)
        elif raw.startswith(XLS_SIGNATURE):
            frame = pd.read_excel(BytesIO(raw), sheet_name=0, engine="xlrd", header=None, dtype=str)
        else:
            frame = _read_csv(raw)
    except (
        pd.errors.ParserError,
        ValueError,
        KeyError,
        OSError,
        BadZipFile,
        XLRDError,
        InvalidFileException,
    ) as exc:
        raise UnsupportedFormatError(f"Unreadable export file: {exc}") from exc
    return frame.fillna("")


def _read_csv(raw: bytes) -> pd.DataFrame:
    # Preamble lines are narrower than the table, so size the columns up front
    text = raw.decode("utf-8-sig")
    width = max((line.count(",") for line in text.splitlines()), default=0) + 1
    return pd.read_csv(
        io.StringIO(text),
        header=None,
        names=list(range(width)),
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=False,
    )


def clean_text(value: object) -> str:
    if value is None:
        return ""
    text = str(value).strip()
    if text.upper() in {"NAN", "NONE", "NAT"}:
        return ""
    return text


def normalize_header(value: object) -> str:
    return " ".join(clean_text(value).casefold().split())


def parse_minor_units(value: object, exponent: int = 0) -> int:
    """Parse an amount into integer minor currency units."""
    s = clean_text(value)
    if not s:
        raise RowParseError("missing amount")
    negative = False
    if s.startswith("(") and s.endswith(")"):
        negative = True
        s = s[1:-1]
    for mark in _CURRENCY_MARKS:
        s = s.replace(mark, "")
    try:
        amount = Decimal(s)
    except InvalidOperation:
        raise RowParseError(f"amount {clean_text(value)!r} is not numeric") from None
    if not amount.is_finite():
        raise RowParseError(f"amount {clean_text(value)!r} is not numeric")
    scaled = amount.scaleb(exponent)
    if scaled != scaled.to_integral_value():
        raise RowParseError(f"amount {clean_text(value)!r} is not a whole number of minor units")
    result = int(scaled)
    return -result if negative else result


def parse_count(value: object, default: int | None = None) -> int:
    s = clean_text(value)
    if not s:
        if default is None:
            raise RowParseError("missing unit count")
        return default
    try:
        number = Decimal(s.replace(",", ""))
    except InvalidOperation:
        raise RowParseError(f"unit count {s!r} is not numeric") from None
    if not number.is_finite() or number != number.to_integral_value() or number < 0:
        raise RowParseError(f"unit count {s!r} is not a whole non-negative number")
    return int(number)


def parse_calendar_date(value: object, formats: Sequence[str], allow_serial: bool = False) -> date:
    s = clean_text(value)
    if not s:
        raise RowParseError("missing date")
    match = _EXCEL_DATETIME.match(s)
    if match:
        try:
            return date.fromisoformat(match.group(1))
        except ValueError:
            raise RowParseError(f"date {s!r} is not a calendar date") from None
    for fmt in formats:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    if allow_serial and s.isdigit() and len(s) <= 5:
        return EXCEL_EPOCH + timedelta(days=int(s))
    raise RowParseError(f"date {s!r} does not match {', '.join(formats)}")


def format_minor_units(amount: int, exponent: int = 0) -> str:
    """Inverse of :func:`parse_minor_units` for display."""
    if exponent == 0:
        return str(amount)
    return str(Decimal(amount).scaleb(-exponent))

"""Review tables and exports for parsed rows, match results and summaries."""
from __future__ import annotations

import csv
import html
import io
from typing import Sequence

from settlement_recon.config import SETTINGS
from settlement_recon.domain.models import RowError, SettlementRow
from settlement_recon.domain.results import MatchResult, SettlementSummary, SummaryLine
from settlement_recon.infrastructure.parsing.utils import format_minor_units


def _amount(value: int | None) -> str:
    return "" if value is None else format_minor_units(value, SETTINGS.currency_exponent)


def row_to_display(row: SettlementRow) -> dict[str, str]:
    return {
        "line": str(row.line_number),
        "external_ref": row.external_ref or "",
        "tour_date": row.tour_date.isoformat(),
        "customer_name": row.customer_name,
        "units": str(row.units),
        "price": _amount(row.price),
        "product_code": row.product_code or "",
    }


def errors_to_rows(errors: Sequence[RowError]) -> list[dict[str, str]]:
    return [{"line": str(error.line_number), "reason": error.reason} for error in errors]


def results_to_rows(results: Sequence[MatchResult]) -> list[dict[str, str]]:
    rows: list[dict[str, str]] = []
    for result in results:
        display = row_to_display(result.row)
        display.update(
            {
                "status": result.tag.value,
                "partial_refund": "yes" if result.row.partial_refund else "",
                "reservations": ", ".join(candidate.id for candidate in result.candidates),
                "expected_price": _amount(result.expected_price),
                "price_delta": _amount(result.price_delta),
                "notes": "; ".join(result.notes),
            }
        )
        rows.append(display)
    return rows


def _summary_row(line: SummaryLine) -> dict[str, str]:
    return {
        "platform": line.platform.value if line.platform else "TOTAL",
        "date": line.bucket.isoformat() if line.bucket else "",
        "matched": str(line.matched),
        "price_mismatch": str(line.price_mismatch),
        "ambiguous": str(line.ambiguous),
        "unmatched": str(line.unmatched),
        "partial_refunds": str(line.partial_refunds),
        "reported": _amount(line.reported_total),
        "expected": _amount(line.expected_total),
        "clean_revenue": _amount(line.clean_revenue),
        "net_discrepancy": _amount(line.net_discrepancy),
    }


def summary_to_rows(summary: SettlementSummary) -> list[dict[str, str]]:
    return [_summary_row(line) for line in summary.lines] + [_summary_row(summary.total)]


def render_csv(rows: Sequence[dict[str, str]]) -> bytes:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(rows[0].keys()) if rows else [])
    if rows:
        writer.writeheader()
        writer.writerows(rows)
    return buffer.getvalue().encode("utf-8")


def render_html(summary: SettlementSummary) -> str:
    rows = summary_to_rows(summary)
    if not summary.lines:
        return "<p>No settlement rows.</p>"
    header = "".join(f"<th>{html.escape(col)}</th>" for col in rows[0].keys())
    body_parts = []
    for row in rows:
        body_parts.append("<tr>" + "".join(f"<td>{html.escape(value)}</td>" for value in row.values()) + "</tr>")
    body_html = "".join(body_parts)
    return f"<table><thead><tr>{header}</tr></thead><tbody>{body_html}</tbody></table>"

"""JSON-friendly conversion for reference data and confirmed batches."""
from __future__ import annotations

from datetime import date
from typing import Any

from settlement_recon.domain.models import PlatformKey, ProductPrice, Reservation, SettlementRow
from settlement_recon.domain.results import MatchResult, SettlementBatch


def _platform(raw: dict[str, Any]) -> PlatformKey:
    if raw.get("platform"):
        return PlatformKey(raw["platform"])
    return PlatformKey.from_source_code(str(raw.get("source", "")))


def _optional_date(value: Any) -> date | None:
    return date.fromisoformat(str(value)) if value else None


def reservation_from_dict(raw: dict[str, Any]) -> Reservation:
    return Reservation(
        id=str(raw["id"]),
        platform=_platform(raw),
        tour_date=date.fromisoformat(str(raw["tour_date"])),
        customer_name=str(raw.get("name") or raw.get("customer_name") or "").strip(),
        units=int(raw.get("units") or raw.get("pax") or 0),
        status=str(raw.get("status") or "confirmed"),
        settled=bool(raw.get("settled", False)),
        product_code=raw.get("product_code") or None,
    )


def reservation_to_dict(reservation: Reservation) -> dict[str, Any]:
    return {
        "id": reservation.id,
        "platform": reservation.platform.value,
        "tour_date": reservation.tour_date.isoformat(),
        "name": reservation.customer_name,
        "units": reservation.units,
        "status": reservation.status,
        "settled": reservation.settled,
        "product_code": reservation.product_code,
    }


def product_price_from_dict(raw: dict[str, Any]) -> ProductPrice:
    return ProductPrice(
        platform=_platform(raw),
        product_code=str(raw["product_code"]),
        unit_price=int(raw["unit_price"]),
        valid_from=_optional_date(raw.get("valid_from")) or date.min,
        valid_to=_optional_date(raw.get("valid_to")),
    )


def row_to_dict(row: SettlementRow) -> dict[str, Any]:
    return {
        "platform": row.platform.value,
        "external_ref": row.external_ref,
        "tour_date": row.tour_date.isoformat(),
        "customer_name": row.customer_name,
        "units": row.units,
        "price": row.price,
        "line_number": row.line_number,
        "product_code": row.product_code,
        "partial_refund": row.partial_refund,
    }


def match_result_to_dict(result: MatchResult) -> dict[str, Any]:
    return {
        "tag": result.tag.value,
        "row": row_to_dict(result.row),
        "candidates": [candidate.id for candidate in result.candidates],
        "expected_price": result.expected_price,
        "price_delta": result.price_delta,
        "notes": list(result.notes),
    }


def batch_to_dict(batch: SettlementBatch) -> dict[str, Any]:
    return {
        "batch_id": batch.batch_id,
        "platform": batch.platform.value,
        "period": {"start": batch.period.start.isoformat(), "end": batch.period.end.isoformat()},
        "status": batch.status.value,
        "created_at": batch.created_at.isoformat(),
        "confirmed_at": batch.confirmed_at.isoformat() if batch.confirmed_at else None,
        "file_hash": batch.file_hash,
        "results": [match_result_to_dict(result) for result in batch.results],
        "unclaimed": [reservation.id for reservation in batch.unclaimed],
        "carry_over": [reservation.id for reservation in batch.carry_over],
    }

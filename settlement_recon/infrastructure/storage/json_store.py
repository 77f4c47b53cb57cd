"""JSON-file backed reference data and settlement ledger.

The data directory holds ``reservations.json`` and ``product_prices.json``
(lists of objects, as exported from the booking database). Reservations may
name their platform directly or carry the database's one-letter source code.
Settled flags are written back into ``reservations.json``; confirmed batches
go to a :class:`FileSystemBatchArchive`. Stores opened on the same directory
in one process share a lock, so the settled-flag flip is a compare-and-set
across them; separate processes are not coordinated.
"""
from __future__ import annotations

import json
import logging
import os
import threading
from datetime import date
from pathlib import Path
from typing import Any, Sequence

from settlement_recon.domain.models import DateRange, PlatformKey, ProductPrice, Reservation
from settlement_recon.domain.results import SettlementBatch
from settlement_recon.infrastructure.archive.file_repository import FileSystemBatchArchive
from settlement_recon.infrastructure.storage.serialization import product_price_from_dict, reservation_from_dict

logger = logging.getLogger(__name__)

RESERVATIONS_FILE = "reservations.json"
PRICES_FILE = "product_prices.json"

_DIR_LOCKS: dict[Path, threading.Lock] = {}
_DIR_LOCKS_GUARD = threading.Lock()


def load_records(path: Path) -> list[dict[str, Any]]:
    if not path.exists():
        return []
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"{path.name} must contain a JSON list")
    return [item for item in data if isinstance(item, dict)]


def save_records(records: list[dict[str, Any]], path: Path) -> None:
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(json.dumps(records, ensure_ascii=False, indent=2), encoding="utf-8")
    os.replace(tmp_path, path)


def _lock_for(data_dir: Path) -> threading.Lock:
    """One lock per resolved data directory, shared by every store opened on it."""
    key = data_dir.resolve()
    with _DIR_LOCKS_GUARD:
        return _DIR_LOCKS.setdefault(key, threading.Lock())


class JsonFileStore:
    def __init__(self, data_dir: Path, archive: FileSystemBatchArchive | None = None) -> None:
        self._data_dir = Path(data_dir)
        self._archive = archive or FileSystemBatchArchive(self._data_dir / "confirmed")
        self._lock = _lock_for(self._data_dir)

    @property
    def reservations_path(self) -> Path:
        return self._data_dir / RESERVATIONS_FILE

    @property
    def prices_path(self) -> Path:
        return self._data_dir / PRICES_FILE

    def fetch_product_prices(self, platform: PlatformKey, period: DateRange) -> Sequence[ProductPrice]:
        with self._lock:
            prices = [product_price_from_dict(raw) for raw in load_records(self.prices_path)]
        return [
            p
            for p in prices
            if p.platform == platform and p.valid_from <= period.end and (p.valid_to is None or p.valid_to >= period.start)
        ]

    def fetch_reservations(self, platform: PlatformKey, period: DateRange) -> Sequence[Reservation]:
        with self._lock:
            reservations = [reservation_from_dict(raw) for raw in load_records(self.reservations_path)]
        return [r for r in reservations if r.platform == platform and r.tour_date in period]

    def fetch_unsettled_before(self, platform: PlatformKey, before: date) -> Sequence[Reservation]:
        with self._lock:
            reservations = [reservation_from_dict(raw) for raw in load_records(self.reservations_path)]
        return [r for r in reservations if r.platform == platform and r.tour_date < before and r.is_matchable]

    def mark_reservation_settled(self, reservation_id: str, batch_id: str) -> bool:
        with self._lock:
            records = load_records(self.reservations_path)
            record = self._find(records, reservation_id)
            if record.get("settled"):
                return False
            record["settled"] = True
            record["settled_batch"] = batch_id
            save_records(records, self.reservations_path)
            return True

    def release_reservation(self, reservation_id: str, batch_id: str) -> None:
        with self._lock:
            records = load_records(self.reservations_path)
            record = self._find(records, reservation_id)
            if record.get("settled_batch") != batch_id:
                return
            record["settled"] = False
            record.pop("settled_batch", None)
            save_records(records, self.reservations_path)
        logger.info("Released reservation %s from batch %s", reservation_id, batch_id)

    def persist_confirmed_batch(self, batch: SettlementBatch) -> None:
        location = self._archive.save_batch(batch)
        logger.info("Archived batch %s to %s", batch.batch_id, location)

    def is_batch_confirmed(self, batch_id: str) -> bool:
        return self._archive.contains(batch_id)

    @staticmethod
    def _find(records: list[dict[str, Any]], reservation_id: str) -> dict[str, Any]:
        for record in records:
            if str(record.get("id")) == reservation_id:
                return record
        raise KeyError(f"Unknown reservation {reservation_id}")

"""In-process reference data and settlement ledger."""
from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import date
from typing import Iterable, Sequence

from settlement_recon.domain.models import DateRange, PlatformKey, ProductPrice, Reservation
from settlement_recon.domain.results import SettlementBatch

logger = logging.getLogger(__name__)


class InMemorySettlementStore:
    """Reference repository and ledger backed by dictionaries.

    Every read and every settled-flag flip happens under one lock, so reads
    are consistent snapshots and the flip is a true compare-and-set.
    """

    def __init__(
        self,
        reservations: Iterable[Reservation] = (),
        prices: Iterable[ProductPrice] = (),
    ) -> None:
        self._lock = threading.Lock()
        self._reservations: dict[str, Reservation] = {r.id: r for r in reservations}
        self._prices: list[ProductPrice] = list(prices)
        self._settled_by: dict[str, str] = {}
        self._batches: dict[str, SettlementBatch] = {}

    def fetch_product_prices(self, platform: PlatformKey, period: DateRange) -> Sequence[ProductPrice]:
        with self._lock:
            return [
                p
                for p in self._prices
                if p.platform == platform
                and p.valid_from <= period.end
                and (p.valid_to is None or p.valid_to >= period.start)
            ]

    def fetch_reservations(self, platform: PlatformKey, period: DateRange) -> Sequence[Reservation]:
        with self._lock:
            return [r for r in self._reservations.values() if r.platform == platform and r.tour_date in period]

    def fetch_unsettled_before(self, platform: PlatformKey, before: date) -> Sequence[Reservation]:
        with self._lock:
            return [
                r
                for r in self._reservations.values()
                if r.platform == platform and r.tour_date < before and r.is_matchable
            ]

    def get_reservation(self, reservation_id: str) -> Reservation:
        with self._lock:
            return self._reservations[reservation_id]

    def mark_reservation_settled(self, reservation_id: str, batch_id: str) -> bool:
        with self._lock:
            current = self._reservations.get(reservation_id)
            if current is None:
                raise KeyError(f"Unknown reservation {reservation_id}")
            if current.settled:
                return False
            self._reservations[reservation_id] = replace(current, settled=True)
            self._settled_by[reservation_id] = batch_id
            return True

    def release_reservation(self, reservation_id: str, batch_id: str) -> None:
        with self._lock:
            if self._settled_by.get(reservation_id) != batch_id:
                return
            del self._settled_by[reservation_id]
            self._reservations[reservation_id] = replace(self._reservations[reservation_id], settled=False)
        logger.info("Released reservation %s from batch %s", reservation_id, batch_id)

    def persist_confirmed_batch(self, batch: SettlementBatch) -> None:
        with self._lock:
            if batch.batch_id in self._batches:
                raise ValueError(f"Batch {batch.batch_id} is already persisted")
            self._batches[batch.batch_id] = batch

    def is_batch_confirmed(self, batch_id: str) -> bool:
        with self._lock:
            return batch_id in self._batches

    def settled_by(self, reservation_id: str) -> str | None:
        with self._lock:
            return self._settled_by.get(reservation_id)
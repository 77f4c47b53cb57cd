"""Repository interfaces anchoring the domain layer."""
from __future__ import annotations

from datetime import date
from typing import Protocol, Sequence

from .models import DateRange, PlatformKey, ProductPrice, Reservation
from .results import SettlementBatch


class ReferenceDataRepository(Protocol):
    """Read-consistent snapshots of prices and reservations."""

    def fetch_product_prices(self, platform: PlatformKey, period: DateRange) -> Sequence[ProductPrice]:
        ...

    def fetch_reservations(self, platform: PlatformKey, period: DateRange) -> Sequence[Reservation]:
        ...

    def fetch_unsettled_before(self, platform: PlatformKey, before: date) -> Sequence[Reservation]:
        """Open reservations dated before ``before`` that no batch has settled yet."""
        ...


class SettlementLedger(Protocol):
    """Write side used when a batch is confirmed."""

    def mark_reservation_settled(self, reservation_id: str, batch_id: str) -> bool:
        """Flip the settled flag if it is still clear; False if another batch got there first."""
        ...

    def release_reservation(self, reservation_id: str, batch_id: str) -> None:
        """Undo a flip made by ``batch_id``; no-op for flips made by anyone else."""
        ...

    def persist_confirmed_batch(self, batch: SettlementBatch) -> None:
        ...

    def is_batch_confirmed(self, batch_id: str) -> bool:
        ...

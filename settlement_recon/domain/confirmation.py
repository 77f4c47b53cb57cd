"""Confirmation of settlement batches.

A batch moves from draft to confirmed exactly once. Confirming flips the
settled flag of every reservation the batch claims through a per-reservation
compare-and-set on the ledger; if any flip loses, or the batch record cannot
be persisted, every flip made so far is released and the batch stays draft.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Sequence

from .errors import AmbiguousMatchBlock, BatchAlreadyConfirmedError, ConcurrentSettlementConflict
from .repositories import SettlementLedger
from .results import BatchStatus, MatchResult, MatchTag, SettlementBatch

logger = logging.getLogger(__name__)


def blocking_results(batch: SettlementBatch) -> list[MatchResult]:
    """Rows that must be resolved by hand before the batch can be confirmed."""
    return batch.results_with(MatchTag.AMBIGUOUS)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConfirmationCoordinator:
    def __init__(self, ledger: SettlementLedger, clock: Callable[[], datetime] | None = None) -> None:
        self._ledger = ledger
        self._clock = clock or _utcnow
        self._lock = threading.Lock()

    def confirm(self, batch: SettlementBatch) -> SettlementBatch:
        with self._lock:
            if batch.is_confirmed or self._ledger.is_batch_confirmed(batch.batch_id):
                raise BatchAlreadyConfirmedError(batch.batch_id)

            blocking = blocking_results(batch)
            if blocking:
                raise AmbiguousMatchBlock(batch.batch_id, blocking)

            reservation_ids = batch.claimed_reservation_ids()
            if len(set(reservation_ids)) != len(reservation_ids):
                raise ValueError(f"Batch {batch.batch_id} claims a reservation more than once")

            flipped = self._settle_all(batch.batch_id, reservation_ids)

            confirmed_at = self._clock()
            confirmed = replace(batch, status=BatchStatus.CONFIRMED, confirmed_at=confirmed_at)
            try:
                self._ledger.persist_confirmed_batch(confirmed)
            except Exception:
                logger.warning("Persisting batch %s failed; releasing %d reservations", batch.batch_id, len(flipped))
                self._release(batch.batch_id, flipped)
                raise

            batch.status = BatchStatus.CONFIRMED
            batch.confirmed_at = confirmed_at
            logger.info("Confirmed batch %s settling %d reservations", batch.batch_id, len(flipped))
            return batch

    def _settle_all(self, batch_id: str, reservation_ids: Sequence[str]) -> list[str]:
        flipped: list[str] = []
        lost: list[str] = []
        try:
            for reservation_id in reservation_ids:
                if self._ledger.mark_reservation_settled(reservation_id, batch_id):
                    flipped.append(reservation_id)
                else:
                    lost.append(reservation_id)
        except Exception:
            self._release(batch_id, flipped)
            raise
        if lost:
            logger.warning("Batch %s lost %d reservation(s) to another settlement", batch_id, len(lost))
            self._release(batch_id, flipped)
            raise ConcurrentSettlementConflict(batch_id, lost)
        return flipped

    def _release(self, batch_id: str, reservation_ids: Sequence[str]) -> None:
        for reservation_id in reversed(reservation_ids):
            self._ledger.release_reservation(reservation_id, batch_id)

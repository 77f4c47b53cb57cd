from datetime import date, datetime, timezone

import pytest

from settlement_recon.domain.confirmation import ConfirmationCoordinator, blocking_results
from settlement_recon.domain.errors import (
    AmbiguousMatchBlock,
    BatchAlreadyConfirmedError,
    ConcurrentSettlementConflict,
)
from settlement_recon.domain.models import DateRange, PlatformKey, Reservation, SettlementRow
from settlement_recon.domain.results import BatchStatus, MatchResult, MatchTag, SettlementBatch
from settlement_recon.infrastructure.storage.memory_store import InMemorySettlementStore

A = PlatformKey.ZOOM_ZOOM
DAY = date(2026, 2, 10)
NOW = datetime(2026, 2, 20, 9, 0, tzinfo=timezone.utc)


def make_reservation(rid: str) -> Reservation:
    return Reservation(id=rid, platform=A, tour_date=DAY, customer_name="guest", units=1)


def make_row(line: int) -> SettlementRow:
    return SettlementRow(A, None, DAY, "guest", 1, 10000, line)


def make_batch(*results: MatchResult, batch_id: str = "b1") -> SettlementBatch:
    return SettlementBatch(
        batch_id=batch_id,
        platform=A,
        period=DateRange(DAY, DAY),
        results=results,
        created_at=NOW,
    )


def matched(rid: str, line: int) -> MatchResult:
    return MatchResult(MatchTag.MATCHED, make_row(line), (make_reservation(rid),), 10000, 0)


@pytest.fixture
def store() -> InMemorySettlementStore:
    return InMemorySettlementStore([make_reservation("r1"), make_reservation("r2"), make_reservation("r3")])


def test_confirm_settles_reservations_and_stamps_batch(store: InMemorySettlementStore):
    batch = make_batch(
        matched("r1", 2),
        MatchResult(MatchTag.PRICE_MISMATCH, make_row(3), (make_reservation("r2"),), 9000, 1000),
        MatchResult(MatchTag.UNMATCHED, make_row(4)),
    )

    confirmed = ConfirmationCoordinator(store, clock=lambda: NOW).confirm(batch)

    assert confirmed is batch
    assert batch.status is BatchStatus.CONFIRMED
    assert batch.confirmed_at == NOW
    assert store.get_reservation("r1").settled
    assert store.get_reservation("r2").settled
    assert not store.get_reservation("r3").settled
    assert store.is_batch_confirmed("b1")


def test_second_confirmation_is_rejected_without_mutation(store: InMemorySettlementStore):
    coordinator = ConfirmationCoordinator(store, clock=lambda: NOW)
    batch = make_batch(matched("r1", 2))
    coordinator.confirm(batch)

    with pytest.raises(BatchAlreadyConfirmedError):
        coordinator.confirm(batch)

    assert batch.confirmed_at == NOW
    assert store.settled_by("r1") == "b1"


def test_rebuilt_batch_with_same_id_is_rejected(store: InMemorySettlementStore):
    coordinator = ConfirmationCoordinator(store)
    coordinator.confirm(make_batch(matched("r1", 2)))

    with pytest.raises(BatchAlreadyConfirmedError):
        coordinator.confirm(make_batch(matched("r2", 2)))

    assert not store.get_reservation("r2").settled


def test_ambiguous_rows_block_confirmation(store: InMemorySettlementStore):
    ambiguous = MatchResult(MatchTag.AMBIGUOUS, make_row(3), (make_reservation("r2"), make_reservation("r3")))
    batch = make_batch(matched("r1", 2), ambiguous)

    assert blocking_results(batch) == [ambiguous]
    with pytest.raises(AmbiguousMatchBlock) as excinfo:
        ConfirmationCoordinator(store).confirm(batch)

    assert excinfo.value.results == (ambiguous,)
    assert batch.status is BatchStatus.DRAFT
    assert not store.get_reservation("r1").settled


def test_conflict_rolls_back_every_flip(store: InMemorySettlementStore):
    store.mark_reservation_settled("r2", "other-batch")
    batch = make_batch(matched("r1", 2), matched("r2", 3), matched("r3", 4))

    with pytest.raises(ConcurrentSettlementConflict) as excinfo:
        ConfirmationCoordinator(store).confirm(batch)

    assert excinfo.value.reservation_ids == ("r2",)
    assert batch.status is BatchStatus.DRAFT
    assert batch.confirmed_at is None
    assert not store.get_reservation("r1").settled
    assert not store.get_reservation("r3").settled
    assert store.settled_by("r2") == "other-batch"
    assert not store.is_batch_confirmed("b1")


def test_persist_failure_rolls_back(store: InMemorySettlementStore, monkeypatch: pytest.MonkeyPatch):
    def fail(batch):
        raise OSError("disk full")

    monkeypatch.setattr(store, "persist_confirmed_batch", fail)
    batch = make_batch(matched("r1", 2))

    with pytest.raises(OSError):
        ConfirmationCoordinator(store).confirm(batch)

    assert batch.status is BatchStatus.DRAFT
    assert not store.get_reservation("r1").settled


def test_two_batches_cannot_claim_the_same_reservation(store: InMemorySettlementStore):
    coordinator = ConfirmationCoordinator(store)
    coordinator.confirm(make_batch(matched("r1", 2), batch_id="first"))

    with pytest.raises(ConcurrentSettlementConflict):
        coordinator.confirm(make_batch(matched("r1", 2), matched("r2", 3), batch_id="second"))

    assert store.settled_by("r1") == "first"
    assert not store.get_reservation("r2").settled

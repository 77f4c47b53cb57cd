"""Exception hierarchy for the settlement engine."""
from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from .results import MatchResult


class SettlementError(Exception):
    """Base class for every error raised by the settlement engine."""


class RowParseError(SettlementError, ValueError):
    """A single export row could not be parsed; recovered per row."""


class UnsupportedFormatError(SettlementError):
    """The uploaded file does not look like the declared platform's export."""

    def __init__(self, message: str, headers: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.headers = tuple(headers)


class ReferenceFetchError(SettlementError):
    """Prices or reservations could not be fetched for a batch."""

    def __init__(self, message: str, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable


class BatchAlreadyConfirmedError(SettlementError):
    def __init__(self, batch_id: str) -> None:
        super().__init__(f"Batch {batch_id} is already confirmed")
        self.batch_id = batch_id


class AmbiguousMatchBlock(SettlementError):
    """Confirmation refused because some rows still have several candidates."""

    def __init__(self, batch_id: str, results: Sequence["MatchResult"]) -> None:
        lines = ", ".join(str(result.row.line_number) for result in results)
        super().__init__(f"Batch {batch_id} has {len(results)} ambiguous row(s): lines {lines}")
        self.batch_id = batch_id
        self.results = tuple(results)


class ConcurrentSettlementConflict(SettlementError):
    """A reservation was settled elsewhere after the batch was matched."""

    def __init__(self, batch_id: str, reservation_ids: Sequence[str]) -> None:
        super().__init__(
            f"Batch {batch_id} must be re-matched; already settled: {', '.join(reservation_ids)}"
        )
        self.batch_id = batch_id
        self.reservation_ids = tuple(reservation_ids)

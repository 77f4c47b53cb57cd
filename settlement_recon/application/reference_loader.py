"""Concurrent loading of the reference data a batch is matched against."""
from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Sequence

from settlement_recon.domain.errors import ReferenceFetchError
from settlement_recon.domain.models import DateRange, PlatformKey, PriceTable, Reservation
from settlement_recon.domain.repositories import ReferenceDataRepository

logger = logging.getLogger(__name__)

# Bad reference records will not fix themselves on retry.
_DATA_ERRORS = (ValueError, KeyError, TypeError)


@dataclass(frozen=True)
class ReferenceSnapshot:
    platform: PlatformKey
    window: DateRange
    prices: PriceTable
    reservations: Sequence[Reservation]
    carry_over: Sequence[Reservation] = ()


class ReferenceDataLoader:
    """Fetches prices, the padded reservation window and older unsettled
    reservations side by side.

    Every fetch must succeed within ``timeout`` seconds; otherwise the whole
    load fails with :class:`ReferenceFetchError` and nothing is returned. The
    fetches run on a pool owned by each load, and a failed load abandons its
    worker threads instead of waiting for them.
    """

    def __init__(self, repository: ReferenceDataRepository, padding_days: int = 1, timeout: float = 10.0) -> None:
        self._repository = repository
        self._padding_days = padding_days
        self._timeout = timeout

    async def load(self, platform: PlatformKey, period: DateRange) -> ReferenceSnapshot:
        window = period.padded(self._padding_days)
        executor = ThreadPoolExecutor(max_workers=3, thread_name_prefix="reference-fetch")
        try:
            prices, reservations, carry_over = await asyncio.gather(
                self._fetch(executor, "product prices", self._repository.fetch_product_prices, platform, period),
                self._fetch(executor, "reservations", self._repository.fetch_reservations, platform, window),
                self._fetch(
                    executor, "unsettled past reservations", self._repository.fetch_unsettled_before, platform, period.start
                ),
            )
        except ReferenceFetchError:
            logger.warning("Reference data for %s %s..%s unavailable", platform.value, period.start, period.end)
            raise
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        logger.info(
            "Loaded %d prices, %d reservations and %d carry-over for %s window %s..%s",
            len(prices),
            len(reservations),
            len(carry_over),
            platform.value,
            window.start,
            window.end,
        )
        return ReferenceSnapshot(
            platform=platform,
            window=window,
            prices=PriceTable(prices),
            reservations=tuple(reservations),
            carry_over=tuple(carry_over),
        )

    def load_sync(self, platform: PlatformKey, period: DateRange) -> ReferenceSnapshot:
        return asyncio.run(self.load(platform, period))

    async def _fetch(self, executor: ThreadPoolExecutor, label, fetch, *args) -> list:
        loop = asyncio.get_running_loop()
        try:
            result = await asyncio.wait_for(loop.run_in_executor(executor, fetch, *args), timeout=self._timeout)
        except asyncio.TimeoutError:
            raise ReferenceFetchError(f"Timed out after {self._timeout}s fetching {label}") from None
        except _DATA_ERRORS as exc:
            raise ReferenceFetchError(f"Malformed {label}: {exc}", retryable=False) from exc
        except Exception as exc:
            raise ReferenceFetchError(f"Fetching {label} failed: {exc}") from exc
        return list(result)

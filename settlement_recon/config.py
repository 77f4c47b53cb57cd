"""Central configuration for the settlement reconciliation package."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from settlement_recon.domain.matching import MatchPolicy

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR / "data"
ARCHIVE_DIR = DATA_DIR / "confirmed"

# Exports occasionally shift tour dates by a day; reservations are fetched this far around the period.
WINDOW_PADDING_DAYS = 1


@dataclass(slots=True, frozen=True)
class Settings:
    currency: str
    currency_exponent: int
    window_padding_days: int
    fetch_timeout_seconds: float
    data_dir: Path
    archive_dir: Path
    match_policy: MatchPolicy = field(default_factory=MatchPolicy)

    @property
    def price_tolerance(self) -> int:
        return self.match_policy.price_tolerance


SETTINGS = Settings(
    currency="KRW",
    currency_exponent=0,
    window_padding_days=WINDOW_PADDING_DAYS,
    fetch_timeout_seconds=10.0,
    data_dir=DATA_DIR,
    archive_dir=ARCHIVE_DIR,
    match_policy=MatchPolicy(price_tolerance=0, date_tolerance_days=WINDOW_PADDING_DAYS),
)

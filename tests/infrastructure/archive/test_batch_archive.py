import json
from datetime import date, datetime, timezone
from pathlib import Path

import pytest

from settlement_recon.domain.models import DateRange, PlatformKey, Reservation, SettlementRow
from settlement_recon.domain.results import BatchStatus, MatchResult, MatchTag, SettlementBatch
from settlement_recon.infrastructure.archive.file_repository import FileSystemBatchArchive

DAY = date(2026, 2, 10)


@pytest.fixture
def archive(tmp_path: Path) -> FileSystemBatchArchive:
    return FileSystemBatchArchive(tmp_path / "confirmed")


def make_batch(batch_id: str = "waug-20260210-20260210-abc") -> SettlementBatch:
    row = SettlementRow(PlatformKey.WAUG, "W-1", DAY, "Jane Doe", 1, 20000, 2, "ACT-9")
    reservation = Reservation("r1", PlatformKey.WAUG, DAY, "jane doe", 1)
    return SettlementBatch(
        batch_id=batch_id,
        platform=PlatformKey.WAUG,
        period=DateRange(DAY, DAY),
        results=(MatchResult(MatchTag.MATCHED, row, (reservation,), 20000, 0),),
        created_at=datetime(2026, 2, 20, tzinfo=timezone.utc),
        status=BatchStatus.CONFIRMED,
        confirmed_at=datetime(2026, 2, 21, tzinfo=timezone.utc),
        file_hash="abc",
    )


def test_archive_writes_batch_and_manifest(archive: FileSystemBatchArchive, tmp_path: Path) -> None:
    location = archive.save_batch(make_batch())

    run_dir = tmp_path / "confirmed" / "waug-20260210-20260210-abc"
    assert location == run_dir

    manifest = json.loads((run_dir / "manifest.json").read_text())
    assert manifest["file_hash"] == "abc"
    assert manifest["results"] == 1
    assert sorted(p.name for p in run_dir.iterdir()) == ["batch.json", "manifest.json"]

    stored = json.loads((run_dir / "batch.json").read_text())
    assert stored["status"] == "confirmed"
    assert stored["confirmed_at"] == "2026-02-21T00:00:00+00:00"
    assert stored["results"][0]["tag"] == "matched"
    assert stored["results"][0]["candidates"] == ["r1"]
    assert stored["results"][0]["row"]["tour_date"] == "2026-02-10"
    assert archive.contains("waug-20260210-20260210-abc")


def test_archive_refuses_to_overwrite(archive: FileSystemBatchArchive) -> None:
    archive.save_batch(make_batch())

    with pytest.raises(FileExistsError):
        archive.save_batch(make_batch())


def test_archive_sanitizes_batch_id(archive: FileSystemBatchArchive, tmp_path: Path) -> None:
    location = archive.save_batch(make_batch(batch_id=" ../weird id/ "))

    assert location == tmp_path / "confirmed" / "weirdid"

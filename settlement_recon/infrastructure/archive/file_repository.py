"""Filesystem archive of confirmed settlement batches."""
from __future__ import annotations

import json
import re
from pathlib import Path

from settlement_recon.domain.results import SettlementBatch
from settlement_recon.infrastructure.storage.serialization import batch_to_dict


def _normalize_batch_id(batch_id: str) -> str:
    sanitized = re.sub(r"[^0-9A-Za-z_-]+", "", batch_id.strip())
    return sanitized or "batch"


class FileSystemBatchArchive:
    """Writes ``<root>/<batch_id>/batch.json`` plus a manifest for each confirmed batch."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    def batch_dir(self, batch_id: str) -> Path:
        return self._root / _normalize_batch_id(batch_id)

    def contains(self, batch_id: str) -> bool:
        return (self.batch_dir(batch_id) / "batch.json").is_file()

    def save_batch(self, batch: SettlementBatch) -> Path:
        run_dir = self.batch_dir(batch.batch_id)
        if (run_dir / "batch.json").exists():
            raise FileExistsError(f"Batch {batch.batch_id} is already archived at {run_dir}")
        run_dir.mkdir(parents=True, exist_ok=True)

        # batch.json goes last: its presence marks the batch as archived
        manifest = {
            "batch_id": batch.batch_id,
            "platform": batch.platform.value,
            "file_hash": batch.file_hash,
            "results": len(batch.results),
            "unclaimed": len(batch.unclaimed),
            "carry_over": len(batch.carry_over),
        }
        (run_dir / "manifest.json").write_text(json.dumps(manifest, indent=2), encoding="utf-8")
        (run_dir / "batch.json").write_text(
            json.dumps(batch_to_dict(batch), ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        return run_dir

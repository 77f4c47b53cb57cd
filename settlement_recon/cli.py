"""Command-line entrypoint for settlement reconciliation."""
from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from datetime import date
from pathlib import Path

from settlement_recon.application.dto import ReconciliationRequest
from settlement_recon.application.use_cases import (
    ConfirmSettlementUseCase,
    ReconcileSettlementUseCase,
    SettlementContext,
)
from settlement_recon.config import SETTINGS
from settlement_recon.domain.errors import (
    AmbiguousMatchBlock,
    BatchAlreadyConfirmedError,
    ConcurrentSettlementConflict,
    ReferenceFetchError,
    UnsupportedFormatError,
)
from settlement_recon.domain.models import DateRange, PlatformKey
from settlement_recon.infrastructure.storage.json_store import JsonFileStore
from settlement_recon.presentation.report import render_csv, results_to_rows


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile a platform settlement export against reservations")
    parser.add_argument("platform", choices=[key.value for key in PlatformKey], help="Platform the export came from")
    parser.add_argument("export", type=Path, help="Path to the platform's settlement export")
    parser.add_argument("--data-dir", type=Path, default=SETTINGS.data_dir, help="Directory holding reservations.json")
    parser.add_argument("--start", type=str, help="Period start (YYYY-MM-DD)")
    parser.add_argument("--end", type=str, help="Period end (YYYY-MM-DD)")
    parser.add_argument("--tolerance", type=int, help="Allowed price delta in minor units")
    parser.add_argument("--csv", type=Path, help="Write match results to this CSV file")
    parser.add_argument("--confirm", action="store_true", help="Confirm the batch after matching")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def _period(args: argparse.Namespace) -> DateRange | None:
    if not args.start and not args.end:
        return None
    start = date.fromisoformat(args.start or args.end)
    end = date.fromisoformat(args.end or args.start)
    return DateRange(start, end)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = SETTINGS
    if args.tolerance is not None:
        settings = replace(settings, match_policy=replace(settings.match_policy, price_tolerance=args.tolerance))

    store = JsonFileStore(args.data_dir)
    context = SettlementContext(reference_repository=store, ledger=store, settings=settings)
    request = ReconciliationRequest(platform=PlatformKey(args.platform), source=args.export, period=_period(args))

    try:
        response = ReconcileSettlementUseCase(context).execute(request)
    except (UnsupportedFormatError, ReferenceFetchError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    parse_result = response.parse_result
    batch = response.batch
    total = response.summary.total

    print("Settlement Summary")
    print("==================")
    print(f"Batch: {batch.batch_id}")
    print(f"Period: {batch.period.start} ~ {batch.period.end}")
    print(f"Parsed rows: {len(parse_result.rows)} (rejected {len(parse_result.errors)}, cancelled {len(parse_result.cancelled)})")
    print(f"Matched: {total.matched}")
    print(f"Price mismatch: {total.price_mismatch}")
    print(f"Ambiguous: {total.ambiguous}")
    print(f"Unmatched: {total.unmatched}")
    print(f"Partial refunds: {total.partial_refunds}")
    print(f"Reported: {total.reported_total} {settings.currency}")
    print(f"Expected: {total.expected_total} {settings.currency}")
    print(f"Net discrepancy: {total.net_discrepancy:+d} {settings.currency}")
    print(f"Unclaimed reservations: {len(batch.unclaimed)}")
    print(f"Unsettled from earlier periods: {len(batch.carry_over)}")

    for error in parse_result.errors:
        print(f"- line {error.line_number}: {error.reason}")

    if args.csv:
        args.csv.write_bytes(render_csv(results_to_rows(batch.results)))

    if not args.confirm:
        return 0

    try:
        ConfirmSettlementUseCase(context).execute(batch)
    except (AmbiguousMatchBlock, BatchAlreadyConfirmedError, ConcurrentSettlementConflict) as exc:
        print(f"Not confirmed: {exc}", file=sys.stderr)
        return 1
    print(f"\nConfirmed at {batch.confirmed_at.isoformat()}")
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

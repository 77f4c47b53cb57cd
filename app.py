"""Streamlit front-end for the settlement reconciliation pipeline."""
from __future__ import annotations

from pathlib import Path

import pandas as pd
import streamlit as st

from settlement_recon import (
    ConfirmSettlementUseCase,
    ReconcileSettlementUseCase,
    SettlementContext,
    parse_settlement_file,
)
from settlement_recon.application.dto import ReconciliationResponse
from settlement_recon.config import SETTINGS
from settlement_recon.domain.confirmation import blocking_results
from settlement_recon.domain.errors import (
    AmbiguousMatchBlock,
    BatchAlreadyConfirmedError,
    ConcurrentSettlementConflict,
    ReferenceFetchError,
    UnsupportedFormatError,
)
from settlement_recon.domain.models import PLATFORMS, PlatformKey
from settlement_recon.infrastructure.storage.json_store import JsonFileStore
from settlement_recon.presentation.report import (
    errors_to_rows,
    render_csv,
    render_html,
    results_to_rows,
    row_to_display,
    summary_to_rows,
)


st.set_page_config(page_title="Settlement Reconciliation", layout="wide")
st.title("Settlement Reconciliation")


def build_context(data_dir: str) -> SettlementContext:
    store = JsonFileStore(Path(data_dir))
    return SettlementContext(reference_repository=store, ledger=store, settings=SETTINGS)


def reservations_frame(reservations) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {"id": r.id, "tour_date": r.tour_date.isoformat(), "name": r.customer_name, "units": r.units}
            for r in reservations
        ]
    )


if "view" not in st.session_state:
    st.session_state["view"] = "upload"
if "response" not in st.session_state:
    st.session_state["response"] = None


if st.session_state["view"] == "upload":
    col1, col2 = st.columns(2)
    with col1:
        platform = st.selectbox(
            "Platform",
            options=list(PlatformKey),
            format_func=lambda key: PLATFORMS[key].label,
        )
    with col2:
        data_dir = st.text_input("Reservation data directory", value=str(SETTINGS.data_dir))
    export_file = st.file_uploader("Upload settlement export", type=["xlsx", "xls", "csv"])

    run_btn = st.button("Run Reconciliation", disabled=export_file is None)
    if run_btn and export_file is not None:
        context = build_context(data_dir)
        try:
            parse_result = parse_settlement_file(platform, export_file.read())
            with st.spinner("Matching..."):
                response = ReconcileSettlementUseCase(context).reconcile(parse_result)
        except UnsupportedFormatError as exc:
            st.error(f"{exc}. Check the selected platform and file.")
        except ReferenceFetchError as exc:
            st.error(f"{exc}. Please retry.")
        except ValueError as exc:
            st.error(str(exc))
        else:
            st.session_state["response"] = response
            st.session_state["data_dir"] = data_dir
            st.session_state["view"] = "results"
            st.rerun()
else:
    back_clicked = st.button("← Back", key="back_to_upload")
    if back_clicked:
        st.session_state["view"] = "upload"
        st.session_state["response"] = None
        st.rerun()

    response: ReconciliationResponse | None = st.session_state.get("response")
    if not response:
        st.info("No results available. Upload an export and run reconciliation first.")
    else:
        batch = response.batch
        total = response.summary.total

        st.subheader(f"Batch {batch.batch_id} ({batch.status.value})")
        cols = st.columns(5)
        cols[0].metric("Matched", total.matched)
        cols[1].metric("Price mismatch", total.price_mismatch)
        cols[2].metric("Ambiguous", total.ambiguous)
        cols[3].metric("Unmatched", total.unmatched)
        cols[4].metric("Net discrepancy", f"{total.net_discrepancy:+,d} {SETTINGS.currency}")

        tabs = st.tabs(
            ["Results", "Summary", "Parse errors", "Cancelled", "Unclaimed reservations", "Earlier unsettled"]
        )
        with tabs[0]:
            result_rows = results_to_rows(batch.results)
            st.dataframe(pd.DataFrame(result_rows))
            st.download_button(
                "Download results CSV",
                data=render_csv(result_rows),
                file_name=f"{batch.batch_id}.csv",
                mime="text/csv",
            )
        with tabs[1]:
            st.dataframe(pd.DataFrame(summary_to_rows(response.summary)))
            st.download_button(
                "Download summary HTML",
                data=render_html(response.summary).encode("utf-8"),
                file_name=f"{batch.batch_id}_summary.html",
                mime="text/html",
            )
        with tabs[2]:
            st.dataframe(pd.DataFrame(errors_to_rows(response.parse_result.errors)))
        with tabs[3]:
            st.dataframe(pd.DataFrame([row_to_display(row) for row in response.parse_result.cancelled]))
        with tabs[4]:
            st.dataframe(reservations_frame(batch.unclaimed))
        with tabs[5]:
            st.dataframe(reservations_frame(batch.carry_over))

        blocking = blocking_results(batch)
        if blocking:
            st.warning(f"{len(blocking)} ambiguous row(s) must be resolved before confirming.")
        confirm_btn = st.button("Confirm settlement", disabled=batch.is_confirmed or bool(blocking))
        if confirm_btn:
            context = build_context(st.session_state.get("data_dir", str(SETTINGS.data_dir)))
            try:
                ConfirmSettlementUseCase(context).execute(batch)
            except ConcurrentSettlementConflict as exc:
                st.error(f"{exc}. Run the reconciliation again.")
            except (AmbiguousMatchBlock, BatchAlreadyConfirmedError) as exc:
                st.error(str(exc))
            else:
                st.success(f"Confirmed at {batch.confirmed_at:%Y-%m-%d %H:%M:%S} UTC")

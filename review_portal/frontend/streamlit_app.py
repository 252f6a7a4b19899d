"""
Streamlit portal: upload a client workbook, generate the month-end review, read it section by section.
"""

import json
import sys
from datetime import date
from pathlib import Path
from typing import Any, List

import pandas as pd
import streamlit as st

# Ensure project-root imports work when Streamlit executes from review_portal/frontend.
PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from review_portal.agents.coordinator_agent import CoordinatorAgent
from review_portal.backend.sheet_extractor import WorkbookValidationError, preview_extraction, validate_workbook
from review_portal.config import CONFIG, SECTION_PRESETS, LLMBackend, ReportConfig
from review_portal.core.llm_interface import llm
from review_portal.core.state import STATUS_COMPLETE, STATUS_FAILED, STORE, ReportRecord
from review_portal.frontend.section_renderer import (
    NO_REPORT_CONTENT,
    REPORT_CSS,
    render_report_html,
    render_section_html,
)

BACKEND_OPTIONS = [backend.value for backend in LLMBackend]

st.set_page_config(
    page_title="Month-End Review Portal",
    page_icon="📊",
    layout="wide",
    initial_sidebar_state="expanded",
)


def _inject_styles() -> None:
    st.markdown(f"<style>{REPORT_CSS}</style>", unsafe_allow_html=True)


def _init_state() -> None:
    defaults = {
        "selected_report_id": "",
        "selected_section_index": 0,
        "last_run": {},
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value


def _report_label(record: ReportRecord) -> str:
    marker = {"complete": "✓", "failed": "✗"}.get(record.status, "…")
    return f"{marker} {record.company_name} · {record.period_label}"


def _select_report(report_id: str) -> None:
    st.session_state.selected_report_id = report_id
    st.session_state.selected_section_index = 0


def _render_upload_panel() -> None:
    st.markdown("### New Review")
    with st.form("upload_form", clear_on_submit=False):
        company_name = st.text_input("Company name")
        company_id = st.text_input("Company ID", help="Defaults to the company name")
        period_end = st.date_input("Period end", value=date.today())
        preset = st.selectbox("Report preset", list(SECTION_PRESETS.keys()), index=list(SECTION_PRESETS.keys()).index(CONFIG.report.preset))
        uploaded_file = st.file_uploader("Client workbook", type=CONFIG.extraction.supported_formats)
        with st.expander("Generation settings"):
            backend = st.selectbox("Backend", BACKEND_OPTIONS, index=BACKEND_OPTIONS.index(CONFIG.llm.backend.value))
            model_name = st.text_input("Model", value=CONFIG.llm.model_name)
            api_key = st.text_input("API key", type="password")
        submitted = st.form_submit_button("Generate review", type="primary")

    if not submitted:
        return
    if not company_name or uploaded_file is None:
        st.warning("Company name and workbook are required.")
        return

    workbook_bytes = uploaded_file.getvalue()
    validation = validate_workbook(workbook_bytes)
    if not validation.get("valid"):
        st.error(validation.get("error", "Invalid workbook"))
        return

    llm_settings = {"backend": backend, "model_name": model_name}
    if api_key:
        llm_settings["api_key"] = api_key

    with st.spinner("Extracting sheets and generating the review. This can take a few minutes..."):
        result = CoordinatorAgent().execute(
            {
                "company_id": company_id or company_name,
                "company_name": company_name,
                "period_end": period_end,
                "workbook_bytes": workbook_bytes,
                "source_file_name": uploaded_file.name,
                "report_config": ReportConfig.from_preset(preset),
                "llm_settings": llm_settings,
            }
        )

    st.session_state.last_run = {"success": result.success, "data": result.data, "error": result.error}
    if result.data.get("report_id"):
        _select_report(result.data["report_id"])
    if result.success:
        st.success(f"Review generated with {result.data.get('sections_generated', 0)} sections.")
    else:
        st.error(result.error or "Report generation failed")


def _render_preview_panel() -> None:
    st.markdown("### Workbook Preview")
    uploaded_file = st.file_uploader("Check which tabs would be extracted", type=CONFIG.extraction.supported_formats, key="preview_upload")
    if uploaded_file is None:
        return
    try:
        preview = preview_extraction(uploaded_file.getvalue())
    except WorkbookValidationError as e:
        st.error(str(e))
        return

    rows = [{"sheet": name, "status": "found"} for name in preview["found_sheets"]]
    rows += [{"sheet": name, "status": "missing"} for name in preview["missing_sheets"]]
    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)
    st.caption(f"{len(preview['all_sheets'])} tabs in workbook")


def _render_backend_status() -> None:
    st.sidebar.markdown("### Generation Backend")
    st.sidebar.caption(f"{llm.backend.value} · {llm.model_name}")
    if st.sidebar.button("Check connection", use_container_width=True):
        with st.spinner("Contacting backend..."):
            healthy = llm.health_check()
        if healthy:
            st.sidebar.success("Backend reachable")
        else:
            st.sidebar.error(llm.last_error or "Backend unreachable")


def _render_report_list() -> None:
    records = STORE.list_reports()
    st.sidebar.markdown("### Reports")
    if not records:
        st.sidebar.info("No reports yet.")
        return
    for record in records:
        if st.sidebar.button(_report_label(record), key=f"report_{record.id}", use_container_width=True):
            _select_report(record.id)


def _render_section_nav(record: ReportRecord) -> int:
    labels: List[str] = [section.numbered_name for section in record.sections]
    index = min(int(st.session_state.get("selected_section_index", 0)), len(labels) - 1)
    picked = st.radio("Sections", labels, index=index, key=f"nav_{record.id}")
    st.session_state.selected_section_index = labels.index(picked)
    return st.session_state.selected_section_index


def _render_report(record: Any) -> None:
    st.markdown(f"## {record.company_name} · Month-End Financial Review")
    st.caption(f"{record.period_label} · status: {record.status} · {'published' if record.published else 'unpublished'}")

    if record.status == STATUS_FAILED:
        st.error(f"Report generation failed: {record.error_message}")
        return
    if record.status != STATUS_COMPLETE:
        st.info("Report is still processing.")
        return
    if not record.sections:
        st.info(NO_REPORT_CONTENT)
        return

    STORE.log_access(user_id="portal", report_id=record.id)
    nav_column, body_column = st.columns([1, 3])
    with nav_column:
        index = _render_section_nav(record)
        st.download_button(
            "Download HTML",
            data=render_report_html(record),
            file_name=f"{record.company_id}_{record.period_end.isoformat()}_review.html",
            mime="text/html",
            use_container_width=True,
        )
        toggle_label = "Unpublish" if record.published else "Publish"
        if st.button(toggle_label, use_container_width=True):
            STORE.publish_report(record.id, not record.published)
            st.rerun()
    with body_column:
        st.markdown(render_section_html(record.sections[index]), unsafe_allow_html=True)


_inject_styles()
_init_state()
_render_backend_status()
_render_report_list()

st.title("Month-End Review Portal")
generate_tab, preview_tab, run_tab = st.tabs(["Generate", "Preview Workbook", "Last Run"])

with generate_tab:
    _render_upload_panel()
    selected = STORE.get_report(st.session_state.selected_report_id) if st.session_state.selected_report_id else None
    if selected:
        st.divider()
        _render_report(selected)

with preview_tab:
    _render_preview_panel()

with run_tab:
    last_run = st.session_state.get("last_run", {})
    if last_run:
        st.code(json.dumps(last_run, indent=2, default=str), language="json")
        last_record = STORE.get_report(last_run.get("data", {}).get("report_id", ""))
        if last_record:
            st.markdown("### Stored Report")
            st.code(json.dumps(last_record.to_dict(), indent=2, default=str), language="json")
    else:
        st.info("Generate a review to see pipeline details.")

st.caption("Month-End Review Portal | Core-sheet extraction + sectioned review")

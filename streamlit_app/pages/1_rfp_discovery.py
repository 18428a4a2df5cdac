"""
RFP Discovery Page

Trigger a scan of the monitored sources, review what was found and
promote opportunities into the pipeline.
"""

import sys
from pathlib import Path

import streamlit as st

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from components import api_client
from services.formatters import format_currency as currency
from components.job_status import display_job_status

st.set_page_config(page_title="RFP Discovery", page_icon="🔎", layout="wide")

STATUSES = ["all", "new", "reviewing", "pursuing", "passed"]


def scan_panel():
    col1, col2 = st.columns([3, 1])
    with col1:
        st.markdown("Scans every active source and scores new listings against your monitoring rule.")
    with col2:
        if st.button("🚀 Scan now", type="primary", use_container_width=True):
            data, error = api_client.post("/rfp-discovery/scan")
            if error:
                st.error(error)
            else:
                st.session_state["scan_job_id"] = data["job_id"]

    job_id = st.session_state.get("scan_job_id")
    if job_id:
        status = display_job_status(f"/rfp-discovery/jobs/{job_id}")
        if status and status.get("status") in ("completed", "failed"):
            st.session_state.pop("scan_job_id", None)


def discovered_list(status: str):
    rfps, error = api_client.get("/rfp-discovery/discovered", params={"status": status})
    if error:
        st.error(error)
        return
    if not rfps:
        st.info("Nothing discovered yet. Add sources and run a scan.")
        return

    for rfp in rfps:
        score = rfp.get("relevance_score")
        header = f"{rfp['title']} · {score if score is not None else '?'} / 100"
        with st.expander(header):
            col1, col2, col3 = st.columns(3)
            col1.markdown(f"**Agency:** {rfp.get('issuing_agency') or '-'}")
            col2.markdown(f"**Due:** {(rfp.get('due_date') or '-')[:10]}")
            col3.markdown(f"**Est. value:** {currency(rfp.get('estimated_value'))}")
            if rfp.get("relevance_reason"):
                st.caption(rfp["relevance_reason"])
            if rfp.get("service_tags"):
                st.markdown(" ".join(f"`{tag}`" for tag in rfp["service_tags"]))
            if rfp.get("original_url"):
                st.markdown(f"[Open listing]({rfp['original_url']})")

            if rfp.get("rfp_id"):
                st.success("In pipeline")
            elif st.button("➡️ Promote to pipeline", key=f"promote-{rfp['id']}"):
                _, error = api_client.post(f"/rfp-discovery/discovered/{rfp['id']}/promote")
                if error:
                    st.error(error)
                else:
                    st.rerun()


def main():
    st.title("🔎 RFP Discovery")
    if not api_client.require_login():
        st.info("Sign in from the sidebar.")
        return

    scan_panel()
    st.markdown("---")
    status = st.selectbox("Status", STATUSES, index=1)
    discovered_list(status)


main()

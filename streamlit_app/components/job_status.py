"""
Job Status Component - Background job progress display

Polls a job status endpoint until the job finishes.
"""

import json
import time
from typing import Optional

import streamlit as st

from components import api_client

STATUS_ICONS = {
    "queued": "⏳",
    "running": "🔄",
    "completed": "✅",
    "failed": "❌"
}


def display_job_status(status_path: str, auto_refresh: bool = True) -> Optional[dict]:
    """
    Display a job's status with its current step.

    Args:
        status_path: API path of the job, e.g. /rfp-discovery/jobs/<id>
        auto_refresh: Whether to rerun the page while the job is active

    Returns:
        Latest status dict if available
    """
    status, error = api_client.get(status_path)
    if error:
        st.info(f"No job status available: {error}")
        return None

    current_status = status.get("status", "unknown")
    icon = STATUS_ICONS.get(current_status, "❓")
    st.markdown(f"#### {icon} {(status.get('kind') or 'Job').replace('_', ' ').title()}: {current_status.title()}")

    if status.get("step"):
        st.caption(status["step"])
    if current_status == "failed":
        st.error(f"**Error:** {status.get('error') or 'Unknown error'}")
    if current_status == "completed" and status.get("result"):
        st.json(json.loads(status["result"]))

    if auto_refresh and current_status in ("queued", "running"):
        time.sleep(2)
        st.rerun()

    return status

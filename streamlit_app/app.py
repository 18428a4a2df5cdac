"""
Ordino - Streamlit Operator Console

Home page: API health and the company dashboard.
"""

import sys
from pathlib import Path

import streamlit as st

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from components import api_client
from services.formatters import format_currency as currency


def main():
    """Main application entry point."""
    st.set_page_config(
        page_title="Ordino",
        page_icon="🏗️",
        layout="wide",
        initial_sidebar_state="expanded"
    )

    with st.sidebar:
        st.markdown("### 🏗️ Ordino")
        if api_client.health():
            st.success("✅ API Connected")
        else:
            st.error("❌ API Offline")
        st.info("""
        **Pages:**
        - 🔎 RFP Discovery - scan sources, promote leads
        - 🧾 Invoices - send and download
        - 💼 Retainers - balances and transactions
        - 💬 Beacon - ask about your data
        """)
        st.markdown("---")

    if not api_client.require_login():
        st.title("🏗️ Ordino")
        st.markdown("Sign in from the sidebar to see your dashboard.")
        return

    st.title("🏗️ Ordino")
    summary, error = api_client.get("/dashboard")
    if error:
        st.error(error)
        return

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric("💵 Outstanding", currency(summary["outstanding_total"]))
    with col2:
        st.metric("🏦 Retainer Balances", currency(summary["retainer_balance_total"]))
    with col3:
        st.metric(
            "📝 Open Proposals",
            summary["open_proposals"],
            help=f"Worth {currency(summary['open_proposal_value'])}"
        )
    with col4:
        st.metric("🔎 New RFPs", summary["new_discovered_rfps"])

    st.markdown("---")
    st.markdown("### 🧾 Invoices by status")
    counts = {k: v for k, v in summary["invoices"].items() if k != "all"}
    st.bar_chart(counts)
    st.caption(f"{summary['invoices'].get('all', 0)} invoices · {summary['open_projects']} open projects")


if __name__ == "__main__":
    main()

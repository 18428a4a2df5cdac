"""
Retainers Page

Client retainer balances, their transaction ledger, and applying a
retainer to an open invoice.
"""

import sys
from pathlib import Path

import streamlit as st

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from components import api_client
from services.formatters import format_currency as currency

st.set_page_config(page_title="Retainers", page_icon="💼", layout="wide")

OPEN_INVOICE_STATUSES = ("draft", "ready_to_send", "needs_review", "sent", "overdue")


def transactions(retainer_id: str):
    rows, error = api_client.get(f"/retainers/{retainer_id}/transactions")
    if error:
        st.error(error)
        return
    if not rows:
        st.caption("No transactions.")
        return
    st.dataframe(
        [
            {
                "date": (row.get("created_at") or "")[:10],
                "type": row["type"],
                "amount": currency(row["amount"]),
                "balance after": currency(row["balance_after"]),
                "description": row.get("description") or "",
            }
            for row in rows
        ],
        use_container_width=True,
        hide_index=True
    )


def apply_form(retainer: dict):
    invoices, error = api_client.get("/invoices", params={"client_id": retainer["client_id"]})
    if error:
        st.error(error)
        return
    open_invoices = [i for i in invoices if i["status"] in OPEN_INVOICE_STATUSES and float(i["total_due"]) > 0]
    if not open_invoices:
        st.caption("No open invoices for this client.")
        return

    with st.form(f"apply-{retainer['id']}"):
        invoice = st.selectbox(
            "Invoice",
            open_invoices,
            format_func=lambda i: f"{i['invoice_number']} · {currency(i['total_due'])} due"
        )
        amount = st.number_input(
            "Amount",
            min_value=0.01,
            max_value=float(retainer["current_balance"]),
            value=min(float(retainer["current_balance"]), float(invoice["total_due"])),
            step=50.0
        )
        if st.form_submit_button("Apply retainer"):
            _, error = api_client.post(
                f"/retainers/{retainer['id']}/apply",
                json={"invoice_id": invoice["id"], "amount": str(round(amount, 2))}
            )
            if error:
                st.error(error)
            else:
                st.success("Retainer applied")
                st.rerun()


def main():
    st.title("💼 Retainers")
    if not api_client.require_login():
        st.info("Sign in from the sidebar.")
        return

    retainers, error = api_client.get("/retainers")
    if error:
        st.error(error)
        return
    if not retainers:
        st.info("No retainers yet.")
        return

    for retainer in retainers:
        header = (
            f"{retainer.get('client_name') or retainer['client_id']} · {retainer['status']} · "
            f"{currency(retainer['current_balance'])} of {currency(retainer['original_amount'])}"
        )
        with st.expander(header):
            transactions(retainer["id"])
            if retainer["status"] == "active" and float(retainer["current_balance"]) > 0:
                st.markdown("#### Apply to an invoice")
                apply_form(retainer)


main()

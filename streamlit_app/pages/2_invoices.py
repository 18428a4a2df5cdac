"""
Invoices Page

List invoices by status, send them and download the PDF.
"""

import sys
from pathlib import Path

import streamlit as st

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from components import api_client
from services.formatters import format_currency as currency

st.set_page_config(page_title="Invoices", page_icon="🧾", layout="wide")

SENDABLE = ("draft", "ready_to_send", "needs_review", "sent", "overdue")


def send_form(invoice: dict):
    with st.form(f"send-{invoice['id']}"):
        email_to = st.text_input("Email to (leave blank to mark sent without emailing)")
        subject = st.text_input("Subject", value=f"Invoice {invoice['invoice_number']}")
        body = st.text_area("Message", value="Please find the attached invoice.")
        if st.form_submit_button("📤 Send"):
            payload = {"email_to": email_to or None, "subject": subject, "html_body": f"<p>{body}</p>"}
            _, error = api_client.post(f"/invoices/{invoice['id']}/send", json=payload)
            if error:
                st.error(error)
            else:
                st.success("Invoice sent")
                st.rerun()


def invoice_row(invoice: dict):
    header = (
        f"{invoice['invoice_number']} · {invoice['status'].replace('_', ' ')} · "
        f"{currency(invoice['total_due'])}"
    )
    with st.expander(header):
        col1, col2, col3 = st.columns(3)
        col1.markdown(f"**Subtotal:** {currency(invoice.get('subtotal'))}")
        col2.markdown(f"**Retainer applied:** {currency(invoice.get('retainer_applied'))}")
        col3.markdown(f"**Due:** {invoice.get('due_date') or '-'}")

        if invoice["status"] in SENDABLE:
            send_form(invoice)

        pdf_key = f"pdf-{invoice['id']}"
        if st.button("📄 Prepare PDF", key=f"prep-{invoice['id']}"):
            content, error = api_client.get(f"/invoices/{invoice['id']}/pdf")
            if error:
                st.error(error)
            else:
                st.session_state[pdf_key] = content
        if st.session_state.get(pdf_key):
            st.download_button(
                "⬇️ Download PDF",
                data=st.session_state[pdf_key],
                file_name=f"{invoice['invoice_number']}.pdf",
                mime="application/pdf",
                key=f"dl-{invoice['id']}"
            )


def main():
    st.title("🧾 Invoices")
    if not api_client.require_login():
        st.info("Sign in from the sidebar.")
        return

    counts, error = api_client.get("/invoices/counts")
    if error:
        st.error(error)
        return

    statuses = [s for s in counts if s != "all"]
    labels = ["all"] + statuses
    status = st.radio(
        "Status",
        labels,
        horizontal=True,
        format_func=lambda s: f"{s.replace('_', ' ')} ({counts.get(s, 0)})"
    )

    invoices, error = api_client.get("/invoices", params={"status": status})
    if error:
        st.error(error)
        return
    if not invoices:
        st.info("No invoices.")
    for invoice in invoices:
        invoice_row(invoice)


main()

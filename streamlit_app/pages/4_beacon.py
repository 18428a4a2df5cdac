"""
Beacon Page - Chat with the company's data
"""

import sys
from pathlib import Path

import streamlit as st

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from components import api_client

st.set_page_config(page_title="Beacon", page_icon="💬", layout="wide")


def load_history():
    if "beacon_messages" in st.session_state:
        return
    rows, error = api_client.get("/assistant/history", params={"limit": 20})
    st.session_state["beacon_messages"] = [] if error else [
        {"role": row["role"], "content": row["content"]} for row in rows
    ]


def main():
    st.title("💬 Beacon")
    if not api_client.require_login():
        st.info("Sign in from the sidebar.")
        return

    load_history()
    messages = st.session_state["beacon_messages"]
    for message in messages:
        with st.chat_message(message["role"]):
            st.markdown(message["content"])

    question = st.chat_input("Ask about projects, invoices, proposals...")
    if not question:
        return

    with st.chat_message("user"):
        st.markdown(question)
    with st.chat_message("assistant"):
        with st.spinner("Thinking..."):
            data, error = api_client.post(
                "/assistant/ask",
                json={"question": question, "history": messages[-10:]},
                timeout=120
            )
        if error:
            st.error(error)
            return
        st.markdown(data["answer"])
        if data.get("context_summary"):
            st.caption(" · ".join(data["context_summary"]))

    messages.append({"role": "user", "content": question})
    messages.append({"role": "assistant", "content": data["answer"]})


main()

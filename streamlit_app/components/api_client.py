"""
API Client - Thin httpx wrapper for the console pages.

The bearer token lives in st.session_state after login.
"""

import os
from typing import Any, Optional, Tuple

import httpx
import streamlit as st

API_BASE = os.getenv("ORDINO_API_URL", "http://localhost:8000")
API_V1 = f"{API_BASE}/api/v1"


def _headers() -> dict:
    token = st.session_state.get("access_token")
    return {"Authorization": f"Bearer {token}"} if token else {}


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("message") or response.text
    return str(body)


def request(method: str, path: str, timeout: float = 30, **kwargs) -> Tuple[Optional[Any], Optional[str]]:
    """
    Call the v1 API.

    Returns:
        (data, None) on success, (None, error message) otherwise
    """
    try:
        response = httpx.request(method, f"{API_V1}{path}", headers=_headers(), timeout=timeout, **kwargs)
    except httpx.HTTPError as e:
        return None, str(e)

    if response.status_code == 401:
        st.session_state.pop("access_token", None)
    if response.status_code >= 400:
        return None, _error_text(response)
    if response.headers.get("content-type", "").startswith("application/json"):
        return response.json(), None
    return response.content, None


def get(path: str, **kwargs):
    return request("GET", path, **kwargs)


def post(path: str, **kwargs):
    return request("POST", path, **kwargs)


def patch(path: str, **kwargs):
    return request("PATCH", path, **kwargs)


def health() -> bool:
    try:
        return httpx.get(f"{API_BASE}/health", timeout=2).status_code == 200
    except httpx.HTTPError:
        return False


def login(email: str, password: str) -> Optional[str]:
    """Store a token in session state; returns an error message on failure."""
    data, error = post("/auth/login", data={"username": email, "password": password})
    if error:
        return error
    st.session_state["access_token"] = data["access_token"]
    st.session_state["refresh_token"] = data.get("refresh_token")
    return None


def require_login() -> bool:
    """Sidebar login form. Returns True once a token is available."""
    with st.sidebar:
        if st.session_state.get("access_token"):
            if st.button("Sign out", use_container_width=True):
                st.session_state.pop("access_token", None)
                st.rerun()
            return True

        st.markdown("### 🔐 Sign in")
        with st.form("login"):
            email = st.text_input("Email")
            password = st.text_input("Password", type="password")
            submitted = st.form_submit_button("Sign in", use_container_width=True)
        if submitted:
            error = login(email, password)
            if error:
                st.error(error)
            else:
                st.rerun()
    return False

"""
Gmail Service

Sends mail from the user's connected Gmail account and logs each send, and
pulls the mailbox into the emails table so Beacon can see inbound mail.
"""

import base64
import logging
import re
import uuid
from datetime import datetime, timezone
from email import encoders
from email.mime.application import MIMEApplication
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import parseaddr, parsedate_to_datetime
from html import unescape
from typing import Optional, List, Dict, Any

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Email, Invoice
from services.errors import InvalidOperation, UpstreamError
from services.google import get_access_token, get_connection, upstream_error

logger = logging.getLogger("ordino.services.gmail")

SEND_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages/send"


def html_to_text(html: str) -> str:
    """Plain-text fallback for an HTML body."""
    text = re.sub(r"<br\s*/?>", "\n", html, flags=re.IGNORECASE)
    text = re.sub(r"</p\s*>", "\n\n", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", "", text)
    text = unescape(text)
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def build_mime_message(
    to: str,
    subject: str,
    html_body: str,
    from_address: Optional[str] = None,
    cc: Optional[str] = None,
    bcc: Optional[str] = None,
    reply_to_message_id: Optional[str] = None,
    attachments: Optional[List[Dict[str, Any]]] = None
):
    """
    Build an RFC 2822 message.

    Attachments are dicts with filename, content (bytes) and mime_type.
    Without attachments the message is multipart/alternative.
    """
    alternative = MIMEMultipart("alternative")
    alternative.attach(MIMEText(html_to_text(html_body), "plain", "utf-8"))
    alternative.attach(MIMEText(html_body, "html", "utf-8"))

    if attachments:
        message = MIMEMultipart("mixed")
        message.attach(alternative)
        for attachment in attachments:
            maintype, _, subtype = (attachment.get("mime_type") or "application/octet-stream").partition("/")
            if maintype == "application" or not subtype:
                part = MIMEApplication(attachment["content"], _subtype=subtype or "octet-stream")
            else:
                part = MIMEBase(maintype, subtype)
                part.set_payload(attachment["content"])
                encoders.encode_base64(part)
            part.add_header("Content-Disposition", "attachment", filename=attachment["filename"])
            message.attach(part)
    else:
        message = alternative

    message["To"] = to
    message["Subject"] = subject
    if from_address:
        message["From"] = from_address
    if cc:
        message["Cc"] = cc
    if bcc:
        message["Bcc"] = bcc
    if reply_to_message_id:
        message["In-Reply-To"] = reply_to_message_id
        message["References"] = reply_to_message_id
    return message


def encode_message(message) -> str:
    """base64url without padding, as the Gmail API expects."""
    return base64.urlsafe_b64encode(message.as_bytes()).decode("ascii").rstrip("=")


async def send_email(
    db: AsyncSession,
    company_id: uuid.UUID,
    user_id: uuid.UUID,
    to: str,
    subject: str,
    html_body: str,
    cc: Optional[str] = None,
    bcc: Optional[str] = None,
    reply_to_message_id: Optional[str] = None,
    thread_id: Optional[str] = None,
    attachments: Optional[List[Dict[str, Any]]] = None,
    invoice_id: Optional[uuid.UUID] = None
) -> Dict[str, Any]:
    """
    Send an email through Gmail.

    Returns:
        Dict with message_id and thread_id

    Raises:
        InvalidOperation: If to, subject or html_body is missing
        UpstreamError: If Gmail rejects the message
    """
    if not (to and subject and html_body):
        raise InvalidOperation("to, subject, and html_body are required")

    token = await get_access_token(db, user_id)
    connection = await get_connection(db, user_id)

    message = build_mime_message(
        to, subject, html_body,
        from_address=connection.email if connection else None,
        cc=cc, bcc=bcc,
        reply_to_message_id=reply_to_message_id,
        attachments=attachments
    )
    payload: Dict[str, Any] = {"raw": encode_message(message)}
    if thread_id:
        payload["threadId"] = thread_id

    try:
        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.post(
                SEND_URL,
                headers={"Authorization": f"Bearer {token}"},
                json=payload
            )
    except httpx.HTTPError as e:
        raise UpstreamError(f"Gmail send failed: {e}") from e
    if response.status_code != 200:
        raise upstream_error("Gmail", response)

    sent = response.json()
    db.add(Email(
        company_id=company_id,
        user_id=user_id,
        gmail_message_id=sent.get("id"),
        thread_id=sent.get("threadId"),
        direction="outbound",
        subject=subject,
        from_address=connection.email if connection else None,
        to_address=to,
        snippet=html_to_text(html_body)[:200],
        invoice_id=invoice_id
    ))
    if invoice_id:
        invoice = await db.get(Invoice, invoice_id)
        if invoice is not None and invoice.company_id == company_id:
            invoice.gmail_message_id = sent.get("id")
    await db.commit()

    logger.info(f"Sent email {sent.get('id')} to {to}")
    return {"message_id": sent.get("id"), "thread_id": sent.get("threadId")}


# ============================================================================
# Inbox sync
# ============================================================================

MESSAGES_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages"
SYNC_BATCH = 50


def header(headers: List[Dict[str, str]], name: str) -> str:
    name = name.lower()
    for item in headers or []:
        if (item.get("name") or "").lower() == name:
            return item.get("value") or ""
    return ""


def decode_body(data: Optional[str]) -> str:
    """Gmail body data is base64url, usually without padding."""
    if not data:
        return ""
    raw = base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))
    return raw.decode("utf-8", errors="replace")


def message_parts(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Walk a message payload for its text and html bodies and attachment names."""
    parts = {"body_text": "", "body_html": "", "attachments": []}

    def walk(part):
        if not part:
            return
        if part.get("filename"):
            parts["attachments"].append(part["filename"])
            return
        data = (part.get("body") or {}).get("data")
        if part.get("mimeType") == "text/plain" and data:
            parts["body_text"] = decode_body(data)
        elif part.get("mimeType") == "text/html" and data:
            parts["body_html"] = decode_body(data)
        for child in part.get("parts") or []:
            walk(child)

    walk(payload)
    return parts


def message_time(headers: List[Dict[str, str]], internal_date: Optional[str]) -> datetime:
    """The Date header, else Gmail's internalDate (epoch ms), else now."""
    value = header(headers, "Date")
    if value:
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            parsed = None
        if parsed is not None:
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    if internal_date and str(internal_date).isdigit():
        return datetime.fromtimestamp(int(internal_date) / 1000, tz=timezone.utc)
    return datetime.now(timezone.utc)


def email_from_gmail(company_id: uuid.UUID, user_id: uuid.UUID, message: Dict[str, Any]) -> Optional[Email]:
    """An Email row for a full-format Gmail message, or None when it has no payload."""
    payload = message.get("payload")
    if not payload:
        return None

    headers = payload.get("headers") or []
    from_name, from_address = parseaddr(header(headers, "From"))
    to_addresses = [a.strip() for a in header(headers, "To").split(",") if a.strip()]
    parts = message_parts(payload)
    labels = message.get("labelIds") or []

    return Email(
        company_id=company_id,
        user_id=user_id,
        gmail_message_id=message["id"],
        thread_id=message.get("threadId"),
        direction="outbound" if "SENT" in labels else "inbound",
        subject=header(headers, "Subject") or "(no subject)",
        from_name=from_name or None,
        from_address=from_address or None,
        to_address=", ".join(to_addresses),
        snippet=unescape(message.get("snippet") or ""),
        body_text=parts["body_text"] or html_to_text(parts["body_html"]),
        labels=labels,
        is_read="UNREAD" not in labels,
        has_attachments=bool(parts["attachments"]),
        received_at=message_time(headers, message.get("internalDate"))
    )


async def _gmail_get(client: httpx.AsyncClient, token: str, url: str, **params) -> Dict[str, Any]:
    try:
        response = await client.get(url, headers={"Authorization": f"Bearer {token}"}, params=params)
    except httpx.HTTPError as e:
        raise UpstreamError(f"Gmail request failed: {e}") from e
    if response.status_code != 200:
        raise upstream_error("Gmail", response)
    return response.json()


async def sync_inbox(
    db: AsyncSession,
    company_id: uuid.UUID,
    user_id: uuid.UUID,
    max_results: int = SYNC_BATCH
) -> Dict[str, int]:
    """
    Pull the newest messages from the user's mailbox.

    Messages already stored for the company are skipped, so running the
    sync again only fetches what arrived since.

    Returns:
        Dict with synced (new rows) and total_checked
    """
    token = await get_access_token(db, user_id)
    connection = await get_connection(db, user_id)

    synced = 0
    async with httpx.AsyncClient(timeout=30.0) as client:
        listing = await _gmail_get(client, token, MESSAGES_URL, maxResults=max_results)
        ids = [m["id"] for m in listing.get("messages") or [] if m.get("id")]

        known = set()
        if ids:
            result = await db.execute(
                select(Email.gmail_message_id).where(
                    Email.company_id == company_id,
                    Email.gmail_message_id.in_(ids)
                )
            )
            known = set(result.scalars().all())

        for message_id in ids:
            if message_id in known:
                continue
            message = await _gmail_get(client, token, f"{MESSAGES_URL}/{message_id}", format="full")
            email = email_from_gmail(company_id, user_id, message)
            if email is None:
                logger.warning(f"Gmail message {message_id} has no payload, skipped")
                continue
            db.add(email)
            synced += 1

    if connection is not None:
        connection.last_sync_at = datetime.now(timezone.utc)
    await db.commit()

    logger.info(f"Synced {synced} new of {len(ids)} Gmail messages for user {user_id}")
    return {"synced": synced, "total_checked": len(ids)}


async def list_emails(
    db: AsyncSession,
    company_id: uuid.UUID,
    user_id: uuid.UUID,
    direction: Optional[str] = None,
    limit: int = 50
) -> List[Email]:
    query = (
        select(Email)
        .where(Email.company_id == company_id, Email.user_id == user_id)
        .order_by(Email.received_at.desc())
        .limit(limit)
    )
    if direction:
        query = query.where(Email.direction == direction)
    result = await db.execute(query)
    return list(result.scalars().all())

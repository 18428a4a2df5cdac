"""
Client Service

Clients and their contacts. A client has at most one primary contact.
"""

import uuid
from typing import Optional, List, Dict, Any

from sqlalchemy import select, update, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from database.models import Client, ClientContact
from services.errors import RecordNotFound
from services.formatters import format_phone_number, format_tax_id

CLIENT_FIELDS = ("name", "client_type", "email", "phone", "address", "tax_id", "notes")
CONTACT_FIELDS = ("name", "title", "email", "phone", "mobile", "is_primary")


def _clean(data: Dict[str, Any]) -> Dict[str, Any]:
    """Normalise phone numbers and tax IDs before they are stored."""
    cleaned = dict(data)
    for key in ("phone", "mobile"):
        if cleaned.get(key):
            cleaned[key] = format_phone_number(cleaned[key])
    if cleaned.get("tax_id"):
        cleaned["tax_id"] = format_tax_id(cleaned["tax_id"])
    return cleaned


async def list_clients(
    db: AsyncSession,
    company_id: uuid.UUID,
    search: Optional[str] = None
) -> List[Client]:
    query = select(Client).where(Client.company_id == company_id).order_by(Client.name)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(or_(Client.name.ilike(pattern), Client.email.ilike(pattern)))

    result = await db.execute(query)
    return list(result.scalars().all())


async def get_client(
    db: AsyncSession,
    company_id: uuid.UUID,
    client_id: uuid.UUID
) -> Client:
    result = await db.execute(
        select(Client)
        .options(selectinload(Client.contacts))
        .where(Client.id == client_id, Client.company_id == company_id)
    )
    client = result.scalar_one_or_none()
    if client is None:
        raise RecordNotFound("Client not found")
    return client


async def create_client(
    db: AsyncSession,
    company_id: uuid.UUID,
    data: Dict[str, Any]
) -> Client:
    data = _clean(data)
    client = Client(
        id=uuid.uuid4(),
        company_id=company_id,
        **{k: data.get(k) for k in CLIENT_FIELDS}
    )
    db.add(client)
    await db.commit()
    return await get_client(db, company_id, client.id)


async def update_client(
    db: AsyncSession,
    company_id: uuid.UUID,
    client_id: uuid.UUID,
    data: Dict[str, Any]
) -> Client:
    client = await get_client(db, company_id, client_id)
    for key, value in _clean(data).items():
        if key in CLIENT_FIELDS:
            setattr(client, key, value)
    await db.commit()
    return client


async def delete_client(db: AsyncSession, company_id: uuid.UUID, client_id: uuid.UUID) -> None:
    client = await get_client(db, company_id, client_id)
    await db.delete(client)
    await db.commit()


# ============================================================================
# Contacts
# ============================================================================

async def _clear_primary(
    db: AsyncSession,
    client_id: uuid.UUID,
    keep_id: Optional[uuid.UUID] = None
) -> None:
    stmt = (
        update(ClientContact)
        .where(ClientContact.client_id == client_id, ClientContact.is_primary.is_(True))
        .values(is_primary=False)
    )
    if keep_id:
        stmt = stmt.where(ClientContact.id != keep_id)
    await db.execute(stmt)


async def _get_contact(
    db: AsyncSession,
    company_id: uuid.UUID,
    contact_id: uuid.UUID
) -> ClientContact:
    result = await db.execute(
        select(ClientContact).where(
            ClientContact.id == contact_id,
            ClientContact.company_id == company_id
        )
    )
    contact = result.scalar_one_or_none()
    if contact is None:
        raise RecordNotFound("Contact not found")
    return contact


async def add_contact(
    db: AsyncSession,
    company_id: uuid.UUID,
    client_id: uuid.UUID,
    data: Dict[str, Any]
) -> ClientContact:
    await get_client(db, company_id, client_id)
    data = _clean(data)

    contact_id = uuid.uuid4()
    if data.get("is_primary"):
        await _clear_primary(db, client_id)

    contact = ClientContact(
        id=contact_id,
        company_id=company_id,
        client_id=client_id,
        **{k: data.get(k) for k in CONTACT_FIELDS if k != "is_primary"},
        is_primary=bool(data.get("is_primary"))
    )
    db.add(contact)
    await db.commit()
    return contact


async def update_contact(
    db: AsyncSession,
    company_id: uuid.UUID,
    contact_id: uuid.UUID,
    data: Dict[str, Any]
) -> ClientContact:
    contact = await _get_contact(db, company_id, contact_id)
    if data.get("is_primary"):
        await _clear_primary(db, contact.client_id, keep_id=contact.id)

    for key, value in _clean(data).items():
        if key in CONTACT_FIELDS:
            setattr(contact, key, value)
    await db.commit()
    return contact


async def delete_contact(db: AsyncSession, company_id: uuid.UUID, contact_id: uuid.UUID) -> None:
    contact = await _get_contact(db, company_id, contact_id)
    await db.delete(contact)
    await db.commit()

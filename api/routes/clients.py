"""
Clients Router (v1)

Clients and their contacts.
"""

import uuid
from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from database.models import Company
from api.auth.dependencies import get_current_company
from api.routes.common import ORMModel, Message, changes
from services import clients as client_service


router = APIRouter(prefix="/clients", tags=["Clients"])


class ClientCreate(BaseModel):
    name: str = Field(min_length=1)
    client_type: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    tax_id: Optional[str] = None
    notes: Optional[str] = None


class ClientUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    client_type: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    tax_id: Optional[str] = None
    notes: Optional[str] = None


class ContactCreate(BaseModel):
    name: str = Field(min_length=1)
    title: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    mobile: Optional[str] = None
    is_primary: bool = False


class ContactUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    title: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    mobile: Optional[str] = None
    is_primary: Optional[bool] = None


class ContactResponse(ORMModel):
    id: uuid.UUID
    client_id: uuid.UUID
    name: str
    title: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    mobile: Optional[str] = None
    is_primary: bool = False


class ClientResponse(ORMModel):
    id: uuid.UUID
    name: str
    client_type: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    tax_id: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ClientDetail(ClientResponse):
    contacts: List[ContactResponse] = []


@router.get("", response_model=List[ClientResponse])
async def list_clients(
    search: Optional[str] = None,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    """List clients, optionally filtered by name or email."""
    return await client_service.list_clients(db, current_company.id, search)


@router.post("", response_model=ClientResponse, status_code=201)
async def create_client(
    data: ClientCreate,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await client_service.create_client(db, current_company.id, data.model_dump())


@router.get("/{client_id}", response_model=ClientDetail)
async def get_client(
    client_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await client_service.get_client(db, current_company.id, client_id)


@router.patch("/{client_id}", response_model=ClientResponse)
async def update_client(
    client_id: uuid.UUID,
    data: ClientUpdate,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await client_service.update_client(db, current_company.id, client_id, changes(data))


@router.delete("/{client_id}", response_model=Message)
async def delete_client(
    client_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    await client_service.delete_client(db, current_company.id, client_id)
    return Message(message="Client deleted")


@router.post("/{client_id}/contacts", response_model=ContactResponse, status_code=201)
async def add_contact(
    client_id: uuid.UUID,
    data: ContactCreate,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    """Add a contact. A new primary contact replaces the previous one."""
    return await client_service.add_contact(db, current_company.id, client_id, data.model_dump())


@router.patch("/contacts/{contact_id}", response_model=ContactResponse)
async def update_contact(
    contact_id: uuid.UUID,
    data: ContactUpdate,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await client_service.update_contact(db, current_company.id, contact_id, changes(data))


@router.delete("/contacts/{contact_id}", response_model=Message)
async def delete_contact(
    contact_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    await client_service.delete_contact(db, current_company.id, contact_id)
    return Message(message="Contact deleted")

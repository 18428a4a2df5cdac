"""
Companies Router (v1)

The active company's profile and its members.
"""

import uuid
from typing import Optional, List, Literal

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from database.models import Company, CompanyMember, User
from api.auth.dependencies import get_current_active_user, get_current_company, require_roles
from api.middleware.error_handler import ConflictError
from api.routes.common import ORMModel, Message, changes


router = APIRouter(prefix="/companies", tags=["Companies"])

Role = Literal["admin", "manager", "pm", "accounting", "member"]
admin_only = Depends(require_roles(["admin"]))


class CompanyResponse(ORMModel):
    id: uuid.UUID
    name: str
    slug: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    settings: dict = {}


class CompanyUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    settings: Optional[dict] = None


class MemberResponse(BaseModel):
    id: str
    user_id: str
    email: str
    full_name: Optional[str]
    role: str
    is_active: bool


class AddMemberRequest(BaseModel):
    email: EmailStr
    role: Role = "member"


class UpdateMemberRequest(BaseModel):
    role: Optional[Role] = None
    is_active: Optional[bool] = None


def _member_response(member: CompanyMember, user: User) -> MemberResponse:
    return MemberResponse(
        id=str(member.id),
        user_id=str(user.id),
        email=user.email,
        full_name=user.full_name,
        role=member.role,
        is_active=member.is_active
    )


async def _member_with_user(db: AsyncSession, company_id: uuid.UUID, user_id: uuid.UUID):
    result = await db.execute(
        select(CompanyMember, User)
        .join(User, User.id == CompanyMember.user_id)
        .where(CompanyMember.company_id == company_id, CompanyMember.user_id == user_id)
    )
    row = result.one_or_none()
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")
    return row


@router.get("/current", response_model=CompanyResponse)
async def get_company(current_company: Company = Depends(get_current_company)):
    return current_company


@router.patch("/current", response_model=CompanyResponse, dependencies=[admin_only])
async def update_company(
    data: CompanyUpdate,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    for key, value in changes(data).items():
        setattr(current_company, key, value)
    await db.commit()
    return current_company


# ============================================================================
# Member Management
# ============================================================================

@router.get("/current/members", response_model=List[MemberResponse])
async def list_members(
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    result = await db.execute(
        select(CompanyMember, User)
        .join(User, User.id == CompanyMember.user_id)
        .where(CompanyMember.company_id == current_company.id)
        .order_by(User.full_name)
    )
    return [_member_response(member, user) for member, user in result.all()]


@router.post("/current/members", response_model=MemberResponse, status_code=201, dependencies=[admin_only])
async def add_member(
    data: AddMemberRequest,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    """Add an existing user to the company."""
    result = await db.execute(select(User).where(User.email == data.email.lower()))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found. They must register first."
        )

    existing = await db.execute(
        select(CompanyMember).where(
            CompanyMember.company_id == current_company.id,
            CompanyMember.user_id == user.id
        )
    )
    if existing.scalar_one_or_none():
        raise ConflictError("User is already a member")

    member = CompanyMember(company_id=current_company.id, user_id=user.id, role=data.role)
    db.add(member)
    await db.commit()
    return _member_response(member, user)


@router.patch("/current/members/{user_id}", response_model=MemberResponse, dependencies=[admin_only])
async def update_member(
    user_id: uuid.UUID,
    data: UpdateMemberRequest,
    current_company: Company = Depends(get_current_company),
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    member, user = await _member_with_user(db, current_company.id, user_id)
    updates = changes(data)
    demoting_self = user.id == current_user.id and (
        updates.get("role", "admin") != "admin" or updates.get("is_active") is False
    )
    if demoting_self:
        await _ensure_other_admin(db, current_company.id, user.id)

    for key, value in updates.items():
        setattr(member, key, value)
    await db.commit()
    return _member_response(member, user)


@router.delete("/current/members/{user_id}", response_model=Message, dependencies=[admin_only])
async def remove_member(
    user_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    member, user = await _member_with_user(db, current_company.id, user_id)
    if member.role == "admin":
        await _ensure_other_admin(db, current_company.id, user.id)
    await db.delete(member)
    await db.commit()
    return Message(message="Member removed")


async def _ensure_other_admin(db: AsyncSession, company_id: uuid.UUID, user_id: uuid.UUID) -> None:
    """A company always keeps at least one active admin."""
    others = await db.scalar(
        select(func.count(CompanyMember.id)).where(
            CompanyMember.company_id == company_id,
            CompanyMember.role == "admin",
            CompanyMember.is_active.is_(True),
            CompanyMember.user_id != user_id
        )
    )
    if not others:
        raise ConflictError("Cannot remove the only admin. Promote another member first.")

"""
Authentication Router

Registration, login, token refresh and company switching.
"""

import re
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from database.models import Company, CompanyMember, User
from api.auth.jwt import issue_tokens, verify_token, TokenError
from api.auth.password import hash_password, verify_password
from api.auth.dependencies import get_current_active_user
from api.middleware.error_handler import ConflictError
from api.middleware.rate_limit import limiter, LIMIT_AUTH


router = APIRouter(prefix="/auth", tags=["Authentication"])


# ============================================================================
# Request/Response Models
# ============================================================================

class UserRegister(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    full_name: Optional[str] = None
    company_name: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class TokenRefresh(BaseModel):
    refresh_token: str


class SwitchCompany(BaseModel):
    company_id: uuid.UUID


class UserResponse(BaseModel):
    id: str
    email: str
    full_name: Optional[str]
    is_active: bool
    companies: list[dict]


def company_slug(name: str, user_id: uuid.UUID) -> str:
    """URL-safe slug, suffixed with the owner's id to stay unique."""
    base = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")[:50] or "company"
    return f"{base}-{str(user_id)[:8]}"


# ============================================================================
# Auth Endpoints
# ============================================================================

@router.post("/register", response_model=TokenResponse)
@limiter.limit(LIMIT_AUTH)
async def register(
    request: Request,
    data: UserRegister,
    db: AsyncSession = Depends(get_db)
):
    """Create a user, their company and an admin membership."""
    email = data.email.lower()
    existing = await db.execute(select(User).where(User.email == email))
    if existing.scalar_one_or_none():
        raise ConflictError("Email already registered")

    user = User(
        id=uuid.uuid4(),
        email=email,
        password_hash=hash_password(data.password),
        full_name=data.full_name
    )
    db.add(user)

    name = data.company_name or f"{data.full_name or email.split('@')[0]}'s Company"
    company = Company(id=uuid.uuid4(), name=name, slug=company_slug(name, user.id), email=email)
    db.add(company)
    await db.flush()

    db.add(CompanyMember(company_id=company.id, user_id=user.id, role="admin"))
    await db.commit()

    return TokenResponse(**issue_tokens(user.id, company.id))


@router.post("/login", response_model=TokenResponse)
@limiter.limit(LIMIT_AUTH)
async def login(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db)
):
    """Login with email and password (OAuth2 password form)."""
    result = await db.execute(select(User).where(User.email == form_data.username.lower()))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(form_data.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is inactive")

    result = await db.execute(
        select(CompanyMember.company_id)
        .where(CompanyMember.user_id == user.id, CompanyMember.is_active.is_(True))
        .order_by(CompanyMember.created_at.asc())
        .limit(1)
    )
    return TokenResponse(**issue_tokens(user.id, result.scalar_one_or_none()))


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    data: TokenRefresh,
    db: AsyncSession = Depends(get_db)
):
    try:
        payload = verify_token(data.refresh_token, "refresh")
    except TokenError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))

    user = await db.get(User, uuid.UUID(payload["sub"]))
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User no longer valid")

    company_id = payload.get("company_id")
    return TokenResponse(**issue_tokens(user.id, uuid.UUID(company_id) if company_id else None))


@router.get("/me", response_model=UserResponse)
async def get_me(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    """Current user and the companies they belong to."""
    result = await db.execute(
        select(Company, CompanyMember.role)
        .join(CompanyMember, CompanyMember.company_id == Company.id)
        .where(CompanyMember.user_id == current_user.id, CompanyMember.is_active.is_(True))
    )
    companies = [
        {"id": str(company.id), "name": company.name, "slug": company.slug, "role": role}
        for company, role in result.all()
    ]
    return UserResponse(
        id=str(current_user.id),
        email=current_user.email,
        full_name=current_user.full_name,
        is_active=current_user.is_active,
        companies=companies
    )


@router.post("/switch-company", response_model=TokenResponse)
async def switch_company(
    data: SwitchCompany,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    """New tokens scoped to another company the user belongs to."""
    result = await db.execute(
        select(CompanyMember).where(
            CompanyMember.user_id == current_user.id,
            CompanyMember.company_id == data.company_id,
            CompanyMember.is_active.is_(True)
        )
    )
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a member of this company")

    return TokenResponse(**issue_tokens(current_user.id, data.company_id))

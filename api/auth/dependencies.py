"""
Authentication Dependencies

FastAPI dependencies resolving the current user, their active company and
their role in it.
"""

import uuid
from typing import Optional, List, Callable

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from database.models import Company, CompanyMember, User
from api.auth.jwt import verify_token, TokenError


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


def _token_payload(token: Optional[str]) -> dict:
    if token is None:
        return {}
    try:
        return verify_token(token, "access")
    except TokenError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))


async def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> Optional[User]:
    """
    Get the current authenticated user from the JWT token.

    Returns None if no token was provided. Raises 401 for a bad token.
    """
    payload = _token_payload(token)
    if not payload:
        return None

    user_id = payload.get("sub")
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")

    user = await db.get(User, uuid.UUID(user_id))
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    # Rate limiting keys on this
    request.state.user_id = str(user.id)
    return user


async def get_current_active_user(
    current_user: Optional[User] = Depends(get_current_user)
) -> User:
    """The current user, requiring authentication and an active account."""
    if current_user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    if not current_user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive")
    return current_user


async def get_current_membership(
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
) -> CompanyMember:
    """
    The user's membership in the active company.

    Uses company_id from the token when present, otherwise the user's first
    active membership.
    """
    company_id = _token_payload(token).get("company_id")

    query = select(CompanyMember).where(
        CompanyMember.user_id == current_user.id,
        CompanyMember.is_active.is_(True)
    )
    if company_id:
        query = query.where(CompanyMember.company_id == uuid.UUID(company_id))
    else:
        query = query.order_by(CompanyMember.created_at.asc()).limit(1)

    result = await db.execute(query)
    member = result.scalar_one_or_none()
    if member is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not a member of this company" if company_id else "User has no company"
        )
    return member


async def get_current_company(
    member: CompanyMember = Depends(get_current_membership),
    db: AsyncSession = Depends(get_db)
) -> Company:
    company = await db.get(Company, member.company_id)
    if company is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Company not found")
    return company


def require_roles(allowed_roles: List[str]) -> Callable:
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/{id}/refund", dependencies=[Depends(require_roles(["admin", "accounting"]))])
    """
    async def role_checker(
        current_user: User = Depends(get_current_active_user),
        member: CompanyMember = Depends(get_current_membership)
    ):
        if current_user.is_superuser:
            return True
        if member.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires one of these roles: {', '.join(allowed_roles)}"
            )
        return True

    return role_checker

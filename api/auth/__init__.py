"""
Authentication Package

Users sign in once and act inside one company at a time: tokens carry
the user id and the active company id, and every company-scoped route
resolves the caller's membership (and so their role) from them.
"""

from api.auth.jwt import TokenError, issue_tokens, verify_token, create_state_token
from api.auth.password import hash_password, verify_password
from api.auth.dependencies import (
    get_current_user,
    get_current_active_user,
    get_current_membership,
    get_current_company,
    require_roles,
)

__all__ = [
    "TokenError",
    "issue_tokens",
    "verify_token",
    "create_state_token",
    "hash_password",
    "verify_password",
    "get_current_user",
    "get_current_active_user",
    "get_current_membership",
    "get_current_company",
    "require_roles",
]

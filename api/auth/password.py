"""
Password Hashing

bcrypt hashing through passlib.
"""

from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Check a password against its stored hash. Malformed hashes never match."""
    try:
        return pwd_context.verify(plain_password, password_hash)
    except ValueError:
        return False

import hashlib
import secrets
from functools import lru_cache

from passlib.context import CryptContext

password_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def get_hashed_password(password: str) -> str:
    return password_context.hash(password)


def verify_password(password: str, hashed_pass: str) -> bool:
    return password_context.verify(password, hashed_pass)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@lru_cache
def dummy_password_hash() -> str:
    # Compared against when no account matches so both login failures cost the same
    return get_hashed_password(secrets.token_hex(16))


def generate_phone_code() -> str:
    return str(secrets.randbelow(900000) + 100000)


def generate_unusable_password_hash() -> str:
    """Hash of a random secret nobody knows; social-only accounts get this."""
    return get_hashed_password(secrets.token_hex(16))

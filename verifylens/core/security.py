"""
API key generation and hashing
"""
from passlib.context import CryptContext
import secrets

from verifylens.core.config import settings


api_key_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.API_KEY_BCRYPT_ROUNDS,
)


def generate_api_key() -> str:
    """
    Generate a new API key: fixed prefix followed by 256 bits of hex entropy

    Returns:
        Plain text API key
    """
    return f"{settings.API_KEY_PREFIX}{secrets.token_hex(32)}"


def hash_api_key(api_key: str) -> str:
    """
    Hash an API key with bcrypt

    Args:
        api_key: Plain text API key

    Returns:
        bcrypt hash
    """
    return api_key_context.hash(api_key)


def verify_api_key(api_key: str, api_key_hash: str) -> bool:
    """
    Check a plain text API key against a stored hash (constant time)

    Args:
        api_key: Plain text API key
        api_key_hash: Stored bcrypt hash

    Returns:
        True if the key matches
    """
    if not api_key_hash:
        return False
    try:
        return api_key_context.verify(api_key, api_key_hash)
    except ValueError:
        # Malformed hash in storage
        return False


def api_key_lookup_prefix(api_key: str) -> str:
    """Short plaintext prefix used to narrow candidate credentials"""
    return api_key[:settings.API_KEY_LOOKUP_LENGTH]


def has_valid_key_format(api_key: str) -> bool:
    """Check the key carries the required prefix"""
    return bool(api_key) and api_key.startswith(settings.API_KEY_PREFIX)


def mask_api_key(api_key: str) -> str:
    """Mask an API key for display (first 8 chars + stars)"""
    if len(api_key) <= 8:
        return api_key
    return api_key[:8] + "*" * max(12, len(api_key) - 8)

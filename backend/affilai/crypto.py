"""
Credential secrets at rest. api_key/api_secret go through Fernet keyed by
ENCRYPTION_KEY; ids (Associate tag, creator id, shop id) stay in the clear
because they end up in public tracking URLs anyway.
"""

import logging
from typing import Optional
from cryptography.fernet import Fernet, InvalidToken
from affilai.config import get_settings

logger = logging.getLogger(__name__)

SECRET_FIELDS = ("api_key", "api_secret")

_cipher: Optional[Fernet] = None
_plaintext_warned = False


def _credential_cipher() -> Optional[Fernet]:
    global _cipher, _plaintext_warned
    if _cipher is not None:
        return _cipher

    settings = get_settings()
    if not settings.encryption_key:
        if settings.is_production:
            raise RuntimeError("ENCRYPTION_KEY must be set in production.")
        if not _plaintext_warned:
            logger.warning("ENCRYPTION_KEY not set; affiliate API secrets are stored in plaintext.")
            _plaintext_warned = True
        return None

    try:
        _cipher = Fernet(settings.encryption_key.encode())
    except (ValueError, TypeError) as exc:
        raise RuntimeError(f"Invalid ENCRYPTION_KEY: {exc}") from exc
    return _cipher


def reset_cipher():
    """Drop the cached cipher; the next call re-reads ENCRYPTION_KEY."""
    global _cipher, _plaintext_warned
    _cipher = None
    _plaintext_warned = False


def encrypt_value(plaintext: Optional[str]) -> Optional[str]:
    if not plaintext:
        return plaintext
    cipher = _credential_cipher()
    if cipher is None:
        return plaintext
    return cipher.encrypt(plaintext.encode()).decode()


def decrypt_value(ciphertext: Optional[str]) -> Optional[str]:
    if not ciphertext:
        return ciphertext
    cipher = _credential_cipher()
    if cipher is None:
        return ciphertext
    try:
        return cipher.decrypt(ciphertext.encode()).decode()
    except InvalidToken:
        # Saved before ENCRYPTION_KEY was set
        logger.warning("Credential secret is not a Fernet token; using it as stored.")
        return ciphertext


def encrypt_secrets(fields: dict) -> dict:
    """Copy of a credential payload with its non-empty secret fields encrypted."""
    return {
        key: encrypt_value(value) if key in SECRET_FIELDS and value else value
        for key, value in fields.items()
    }


def mask_secret(value: Optional[str], visible: int = 4) -> Optional[str]:
    """'sk-abcdef1234' -> '*********1234'. Only the tail ever leaves the API."""
    if not value:
        return None
    plain = decrypt_value(value)
    if len(plain) <= visible:
        return "*" * len(plain)
    return "*" * (len(plain) - visible) + plain[-visible:]

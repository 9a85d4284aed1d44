"""
Symmetric encryption for provider secrets at rest, using Fernet.

The Fernet key is derived from ENCRYPTION_SECRET, so rotating that setting
makes previously stored secrets unreadable.
"""

import base64
import hashlib

from cryptography.fernet import Fernet


def _derive_key(secret: str) -> bytes:
    """Derive a Fernet-compatible key from an arbitrary secret string."""
    digest = hashlib.sha256(secret.encode()).digest()
    return base64.urlsafe_b64encode(digest)


def encrypt_secret(plaintext: str, secret: str) -> str:
    return Fernet(_derive_key(secret)).encrypt(plaintext.encode()).decode()


def decrypt_secret(token: str, secret: str) -> str:
    """Raises cryptography.fernet.InvalidToken if the secret does not match."""
    return Fernet(_derive_key(secret)).decrypt(token.encode()).decode()


def mask_secret(plaintext: str, visible: int = 4) -> str:
    """Safe preview for listings, e.g. '...abcd'."""
    if len(plaintext) <= visible:
        return "..." + "*" * len(plaintext)
    return f"...{plaintext[-visible:]}"

"""
Auth — API Key Validation

Keys come from COMPLIANCEBOT_API_KEYS (comma-separated). Only SHA-256
hashes are compared; plaintext keys are never logged.

When no keys are configured, auth is disabled (dev mode).
"""

from __future__ import annotations

import hashlib
import os
import secrets
from typing import Optional

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader

API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)
API_KEYS_ENV = "COMPLIANCEBOT_API_KEYS"


def _hash_key(api_key: str) -> str:
    return hashlib.sha256(api_key.encode()).hexdigest()


def _valid_key_hashes() -> set[str]:
    raw = os.getenv(API_KEYS_ENV, "")
    return {_hash_key(k.strip()) for k in raw.split(",") if k.strip()}


def auth_enabled() -> bool:
    return bool(_valid_key_hashes())


def _verify_key(api_key: str) -> bool:
    """Verify an API key against the configured hashes."""
    if not api_key:
        return False
    return _hash_key(api_key) in _valid_key_hashes()


async def require_api_key(
    api_key: Optional[str] = Security(API_KEY_HEADER),
) -> Optional[str]:
    """
    FastAPI dependency: validates the X-API-Key header.

    Returns a short key hash for audit logging, or None in dev mode.
    """
    if not auth_enabled():
        return None

    if not api_key:
        raise HTTPException(
            status_code=401,
            detail="Missing API key. Include X-API-Key header.",
        )

    if not _verify_key(api_key):
        raise HTTPException(status_code=403, detail="Invalid API key.")

    return _hash_key(api_key)[:12]


def generate_api_key() -> str:
    """Generate a new API key. Utility for key provisioning."""
    return f"cb_{secrets.token_urlsafe(32)}"

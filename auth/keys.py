"""
auth/keys.py -- Signing key material, loaded once per process.

Key files are read at startup (api/main.py lifespan calls get_key_material())
and cached for the life of the process. Request handlers never touch the
filesystem: a missing or unreadable key is a startup failure, not a 500 on
the first login.

Two signing namespaces:
  session -- RS256 key pair (JWT_PRIVATE_KEY_PATH / JWT_PUBLIC_KEY_PATH).
  action  -- HS256 over ACTION_TOKEN_SECRET, or RS256 over a second key pair
             (ACTION_PRIVATE_KEY_PATH / ACTION_PUBLIC_KEY_PATH).

generate_rsa_key_pair() backs `python main.py keygen` and the test fixtures.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from auth.errors import KeyMaterialError
from core.config import Settings, get_settings

logger = logging.getLogger("sessiongate.auth")

SESSION_ALGORITHM = "RS256"


@dataclass(frozen=True)
class KeyMaterial:
    session_private_key: str = field(repr=False)
    session_public_key: str
    action_signing_key: str = field(repr=False)
    action_verify_key: str = field(repr=False)
    action_algorithm: str = "HS256"


def _read_key(path: str, label: str) -> str:
    key_path = Path(path).expanduser()
    try:
        pem = key_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise KeyMaterialError(detail=f"{label} key not readable at {key_path}: {exc.strerror}") from exc
    if "-----BEGIN" not in pem:
        raise KeyMaterialError(detail=f"{label} key at {key_path} is not PEM encoded")
    return pem


def load_key_material(settings: Settings) -> KeyMaterial:
    """Read every configured key file and return an immutable KeyMaterial."""
    session_private = _read_key(settings.jwt_private_key_path, "Session private")
    session_public = _read_key(settings.jwt_public_key_path, "Session public")

    if settings.action_token_algorithm == "RS256":
        action_signing = _read_key(settings.action_private_key_path, "Action private")
        action_verify = _read_key(settings.action_public_key_path, "Action public")
    else:
        action_signing = action_verify = settings.action_token_secret

    logger.info("Key material loaded (action tokens: %s)", settings.action_token_algorithm)
    return KeyMaterial(
        session_private_key=session_private,
        session_public_key=session_public,
        action_signing_key=action_signing,
        action_verify_key=action_verify,
        action_algorithm=settings.action_token_algorithm,
    )


@lru_cache
def get_key_material() -> KeyMaterial:
    """Process-wide KeyMaterial singleton. Call cache_clear() in tests to reload."""
    return load_key_material(get_settings())


def generate_rsa_key_pair(key_size: int = 2048) -> tuple[str, str]:
    """Return a fresh (private_pem, public_pem) RSA key pair as strings."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return private_pem.decode("utf-8"), public_pem.decode("utf-8")

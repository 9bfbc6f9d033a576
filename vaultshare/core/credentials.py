"""
Credential primitives: password hashing, random salts/tokens/ids, one-way token hashing.

Session and device tokens are never persisted in recoverable form; callers store
``hash_token(token)`` and hand the plaintext back exactly once.
"""

import secrets
import uuid

from cryptography.hazmat.primitives import constant_time, hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

PBKDF2_ITERATIONS = 100_000
PASSWORD_HASH_BYTES = 32
SALT_BYTES = 16
TOKEN_BYTES = 32


def hash_password(password: str, salt: str) -> str:
    """Derive a hex PBKDF2-HMAC-SHA256 hash; deterministic for a given password and salt."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=PASSWORD_HASH_BYTES,
        salt=salt.encode('utf-8'),
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(password.encode('utf-8')).hex()


def verify_password(password: str, salt: str, stored_hash: str) -> bool:
    computed = hash_password(password, salt)
    return constant_time.bytes_eq(computed.encode('ascii'), stored_hash.encode('ascii'))


def generate_salt() -> str:
    return secrets.token_hex(SALT_BYTES)


def generate_token(length: int = TOKEN_BYTES) -> str:
    """Cryptographically random hex string of ``length`` bytes."""
    return secrets.token_hex(length)


def generate_id() -> str:
    return str(uuid.uuid4())


def hash_token(token: str) -> str:
    """One-way SHA-256 digest of a bearer token, hex encoded."""
    digest = hashes.Hash(hashes.SHA256())
    digest.update(token.encode('utf-8'))
    return digest.finalize().hex()


def generate_device_token() -> tuple[str, str]:
    """Return ``(token, token_hash)`` for a freshly minted device token."""
    token = generate_token()
    return token, hash_token(token)

"""
Password hashing and random tokens.

New hashes are always bcrypt. Werkzeug (pbkdf2/scrypt) hashes from imported
accounts still verify; ``needs_rehash`` tells the login flow to upgrade them.
"""

import secrets

import bcrypt
from werkzeug.security import check_password_hash

BCRYPT_ROUNDS = 12
BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")

# bcrypt only looks at the first 72 bytes; newer releases raise instead of truncating
_BCRYPT_MAX_BYTES = 72


def _secret(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain_password: str) -> str:
    return bcrypt.hashpw(_secret(plain_password), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("ascii")


def verify_password(plain_password: str, password_hash: str) -> bool:
    if not password_hash or plain_password is None:
        return False
    if password_hash.startswith(BCRYPT_PREFIXES):
        try:
            return bcrypt.checkpw(_secret(plain_password), password_hash.encode("ascii"))
        except ValueError:
            # corrupt stored hash
            return False
    return check_password_hash(password_hash, plain_password)


def needs_rehash(password_hash: str) -> bool:
    """True for legacy (non-bcrypt) hashes that should be replaced on next login."""
    return bool(password_hash) and not password_hash.startswith(BCRYPT_PREFIXES)


def generate_reset_token() -> str:
    """Single-use password reset token: 32 random bytes, hex encoded."""
    return secrets.token_hex(32)

"""Security helpers."""

import hashlib
import secrets
from secrets import token_urlsafe

from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError

password_hasher = PasswordHasher()

CODE_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def generate_plaintext_token(prefix: str) -> str:
    """Generate a bearer token for API access.

    Parameters
    ----------
    prefix : str
        Human-readable token prefix.

    Returns
    -------
    str
        New opaque token.
    """
    return f"{prefix}_{token_urlsafe(24)}"


def generate_authorization_code(length: int = 8) -> str:
    """Generate a random checkout authorization code.

    Parameters
    ----------
    length : int, default=8
        Number of characters.

    Returns
    -------
    str
        Upper-case alphanumeric code drawn from a CSPRNG.
    """
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def lookup_hash(token: str) -> str:
    """Compute a fast, non-secret hash for DB lookup.

    Parameters
    ----------
    token : str
        Raw token.

    Returns
    -------
    str
        Hex-encoded SHA-256 digest.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def hash_token(token: str) -> str:
    """Hash a token for storage.

    Parameters
    ----------
    token : str
        Raw token.

    Returns
    -------
    str
        Argon2 token hash.
    """
    return password_hasher.hash(token)


def verify_token(token: str, token_hash: str) -> bool:
    """Verify a token against its hash.

    Parameters
    ----------
    token : str
        Raw token.
    token_hash : str
        Stored token hash.

    Returns
    -------
    bool
        Whether the token matches.
    """
    try:
        return password_hasher.verify(token_hash, token)
    except VerifyMismatchError:
        return False

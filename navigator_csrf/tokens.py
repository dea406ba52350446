"""
CSRF Token helpers — generation, masking and constant-time comparison.

The real secret is 32 random bytes kept in the sealed cookie. Pages and
headers only ever carry a *masked* copy:

    base64( otp[32B] || (otp XOR secret)[32B] )

where ``otp`` is fresh for every render, so the transmitted value changes on
each response while still unmasking to the same secret.

Security Note:
    Never log secrets or masked values.
"""
import hmac
import base64
import secrets
import binascii
from typing import Optional

TOKEN_LENGTH = 32  # 256-bit secret


def generate_random_bytes(n: int) -> bytes:
    """Return ``n`` cryptographically secure random bytes.

    Raises:
        ValueError: If ``n`` is not a positive integer.
    """
    if n <= 0:
        raise ValueError(f"Random byte count must be positive, got {n}")
    return secrets.token_bytes(n)


def generate_token() -> bytes:
    """Generate a new 32-byte CSRF secret."""
    return generate_random_bytes(TOKEN_LENGTH)


def xor_token(a: bytes, b: bytes) -> bytes:
    """XOR two byte strings, truncating to the shorter one."""
    return bytes(x ^ y for x, y in zip(a, b))


def mask_token(secret: bytes) -> str:
    """Mask the real secret with a one-time pad.

    Args:
        secret: The 32-byte secret recovered from the store.

    Returns:
        Standard base64 string of ``otp || otp XOR secret``.
    """
    otp = generate_random_bytes(TOKEN_LENGTH)
    return base64.b64encode(otp + xor_token(otp, secret)).decode("ascii")


def unmask_token(issued: bytes) -> Optional[bytes]:
    """Recover the secret from a decoded masked token.

    Returns:
        The 32-byte secret, or ``None`` if ``issued`` is not 64 bytes long.
    """
    if len(issued) != TOKEN_LENGTH * 2:
        return None
    otp = issued[:TOKEN_LENGTH]
    masked = issued[TOKEN_LENGTH:]
    return xor_token(otp, masked)


def decode_submitted(value: Optional[str]) -> Optional[bytes]:
    """Base64-decode a masked token submitted by the client.

    Returns ``None`` for empty or malformed input.
    """
    if not value:
        return None
    try:
        return base64.b64decode(value.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError, ValueError):
        return None


def compare_tokens(a: Optional[bytes], b: Optional[bytes]) -> bool:
    """Timing-safe comparison of two tokens.

    Missing or empty tokens never match. A length mismatch returns ``False``
    before any per-byte work; ``hmac.compare_digest`` does not leak the
    position of the first differing byte.
    """
    if not a or not b:
        return False
    if len(a) != len(b):
        return False
    return hmac.compare_digest(a, b)

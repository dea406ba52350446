import pytest

from navigator_csrf.codec import SecureCookieCodec
from navigator_csrf.conf import CSRFConfig
from navigator_csrf.store import CookieStore, SameSiteMode

HASH_KEY = b"h" * 32


@pytest.fixture
def codec():
    """Signing-only codec with a fixed key."""
    return SecureCookieCodec(HASH_KEY)


@pytest.fixture
def store(codec):
    """CookieStore configured like a typical production deployment."""
    return CookieStore(
        codec,
        "csrf_token",
        max_age=3600,
        secure=True,
        http_only=True,
        same_site=SameSiteMode.LAX,
    )


@pytest.fixture
def secret():
    """32-byte secret, all zero bits except the first byte."""
    return b"\x01" + b"\x00" * 31


@pytest.fixture
def config():
    return CSRFConfig(auth_key=HASH_KEY, secure=False, cookie_name="csrf_token")

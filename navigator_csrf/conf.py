"""
CSRF Configuration — Key loading and validated cookie settings.

Reads settings from environment variables:
    CSRF_AUTH_KEY = <base64-encoded 32-byte key>   (required)
    CSRF_BLOCK_KEY = <base64-encoded 16/24/32-byte key>
    CSRF_COOKIE_NAME, CSRF_MAX_AGE, CSRF_SECURE, CSRF_HTTP_ONLY,
    CSRF_PATH, CSRF_DOMAIN, CSRF_SAME_SITE, CSRF_TRUSTED_ORIGINS

Security Note:
    Never log key material.
"""
import os
import base64
import binascii
import secrets
import logging
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from .codec import CIPHERS, SecureCookieCodec
from .store import CookieStore, SameSiteMode

logger = logging.getLogger("navigator.csrf")

AUTH_KEY_LENGTH = 32
BLOCK_KEY_LENGTHS = (16, 24, 32)

_TRUE_VALUES = ("1", "true", "yes", "on")


def _decode_key(name: str, value: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as err:
        raise ValueError(f"{name} is not valid base64") from err


def load_auth_key(env_var: str = "CSRF_AUTH_KEY") -> bytes:
    """Load the signing key from the environment.

    Raises:
        RuntimeError: If the variable is not set.
        ValueError: If it does not decode to exactly 32 bytes.
    """
    raw = os.environ.get(env_var)
    if not raw:
        raise RuntimeError(
            f"{env_var} environment variable is not set. "
            f"Set {env_var}=<base64-encoded-32-byte-key>"
        )
    key = _decode_key(env_var, raw)
    if len(key) != AUTH_KEY_LENGTH:
        raise ValueError(
            f"{env_var} must decode to exactly {AUTH_KEY_LENGTH} bytes, "
            f"got {len(key)}"
        )
    return key


def generate_auth_key() -> str:
    """Generate a random 32-byte key and return it as base64.

    This is a utility for operators to generate new keys.
    """
    return base64.b64encode(secrets.token_bytes(AUTH_KEY_LENGTH)).decode("ascii")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


class CSRFConfig(BaseModel):
    """Validated CSRF protection settings."""

    auth_key: bytes
    block_key: Optional[bytes] = None
    cookie_name: str = Field(default="_navigator_csrf")
    max_age: int = Field(default=3600 * 12)
    secure: bool = True
    http_only: bool = True
    path: str = "/"
    domain: str = ""
    same_site: SameSiteMode = SameSiteMode.LAX
    header_name: str = "X-CSRF-Token"
    field_name: str = "csrf_token"
    trusted_origins: list[str] = Field(default_factory=list)
    cipher_backend: str = Field(default="aesgcm")

    @field_validator("auth_key")
    @classmethod
    def validate_auth_key(cls, v: bytes) -> bytes:
        """Signing key must be exactly 32 bytes."""
        if len(v) != AUTH_KEY_LENGTH:
            raise ValueError(
                f"auth_key must be {AUTH_KEY_LENGTH} bytes, got {len(v)}"
            )
        return v

    @field_validator("block_key")
    @classmethod
    def validate_block_key(cls, v: Optional[bytes]) -> Optional[bytes]:
        """Encryption key, when given, must be 16, 24 or 32 bytes."""
        if v is not None and len(v) not in BLOCK_KEY_LENGTHS:
            raise ValueError(
                f"block_key must be 16, 24 or 32 bytes, got {len(v)}"
            )
        return v

    @field_validator("cookie_name")
    @classmethod
    def validate_cookie_name(cls, v: str) -> str:
        if not v or any(c in v for c in ' ;,="\t\r\n'):
            raise ValueError(f"Invalid cookie name: {v!r}")
        return v

    @field_validator("same_site", mode="before")
    @classmethod
    def parse_same_site(cls, v: Any) -> Any:
        """Accept SameSite names case-insensitively (``lax``, ``Strict``...)."""
        if isinstance(v, str) and not isinstance(v, SameSiteMode):
            lookup = {m.value.lower(): m for m in SameSiteMode}
            lookup["default"] = SameSiteMode.DEFAULT
            try:
                return lookup[v.strip().lower()]
            except KeyError:
                raise ValueError(f"Unsupported SameSite mode: {v}") from None
        return v

    @field_validator("cipher_backend")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        """Validate cipher backend is supported."""
        if v not in CIPHERS:
            raise ValueError(f"Unsupported cipher backend: {v}")
        return v

    def build_codec(self) -> SecureCookieCodec:
        """Codec whose own expiry follows the cookie lifetime."""
        return SecureCookieCodec(
            self.auth_key,
            self.block_key,
            max_age=max(self.max_age, 0),
            cipher_backend=self.cipher_backend,
        )

    def build_store(self) -> CookieStore:
        """Create the CookieStore described by this configuration."""
        store = CookieStore(
            self.build_codec(),
            self.cookie_name,
            max_age=self.max_age,
            secure=self.secure,
            http_only=self.http_only,
            path=self.path,
            domain=self.domain,
            same_site=self.same_site,
        )
        logger.debug("CSRF store configured: %r", store)
        return store

    @classmethod
    def from_env(cls) -> "CSRFConfig":
        """Create CSRFConfig by loading values from environment.

        Returns:
            Populated CSRFConfig instance.
        """
        auth_key = load_auth_key()
        block_key = None
        if raw := os.environ.get("CSRF_BLOCK_KEY"):
            block_key = _decode_key("CSRF_BLOCK_KEY", raw)
        origins = os.environ.get("CSRF_TRUSTED_ORIGINS", "")
        return cls(
            auth_key=auth_key,
            block_key=block_key,
            cookie_name=os.environ.get("CSRF_COOKIE_NAME", "_navigator_csrf"),
            max_age=int(os.environ.get("CSRF_MAX_AGE", 3600 * 12)),
            secure=_env_bool("CSRF_SECURE", True),
            http_only=_env_bool("CSRF_HTTP_ONLY", True),
            path=os.environ.get("CSRF_PATH", "/"),
            domain=os.environ.get("CSRF_DOMAIN", ""),
            same_site=os.environ.get("CSRF_SAME_SITE", "Lax"),
            trusted_origins=[o.strip() for o in origins.split(",") if o.strip()],
            cipher_backend=os.environ.get("CSRF_CIPHER_BACKEND", "aesgcm"),
        )

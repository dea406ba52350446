"""Navigator CSRF — Cross-site request forgery protection for aiohttp.

Security Note (Threat Model):
    The real secret travels only inside an HMAC-signed (optionally
    encrypted) cookie; pages carry a per-render masked copy. Anyone holding
    the signing key can forge tokens, so the key must stay server-side.
"""
from .version import __version__
from .exceptions import (
    CSRFError,
    TokenNotFound,
    InvalidToken,
    EncodingError,
    DecodeError,
)
from .codec import TokenCodec, SecureCookieCodec, MultiCodec, codecs_from_pairs
from .store import TokenStore, CookieStore, SameSiteMode
from .tokens import (
    TOKEN_LENGTH,
    generate_token,
    mask_token,
    unmask_token,
    compare_tokens,
)
from .conf import CSRFConfig, load_auth_key, generate_auth_key
from .middleware import csrf_middleware, exempt, get_token, setup

__all__ = [
    "__version__",
    "CSRFError",
    "TokenNotFound",
    "InvalidToken",
    "EncodingError",
    "DecodeError",
    "TokenCodec",
    "SecureCookieCodec",
    "MultiCodec",
    "codecs_from_pairs",
    "TokenStore",
    "CookieStore",
    "SameSiteMode",
    "TOKEN_LENGTH",
    "generate_token",
    "mask_token",
    "unmask_token",
    "compare_tokens",
    "CSRFConfig",
    "load_auth_key",
    "generate_auth_key",
    "csrf_middleware",
    "exempt",
    "get_token",
    "setup",
]

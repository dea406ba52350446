"""
CSRF Exceptions.

``TokenNotFound`` and ``InvalidToken`` are recoverable: the caller mints a
fresh secret for both. ``EncodingError`` means the codec could not seal a
value (usually a missing or bad key) and must reach the caller.

Security Note:
    Messages never carry key material, token bytes or mismatch positions.
"""


class CSRFError(Exception):
    """Base class for all CSRF errors."""


class TokenNotFound(CSRFError):
    """No CSRF cookie was sent with the request."""


class InvalidToken(CSRFError):
    """A CSRF cookie was sent but failed integrity or format checks."""


class EncodingError(CSRFError):
    """Sealing a token failed (misconfiguration, not a client problem)."""


class DecodeError(CSRFError):
    """Raised by a codec when a sealed value cannot be verified or decoded."""

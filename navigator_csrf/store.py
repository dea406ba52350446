"""
CSRF Token Store — where the real secret lives between requests.

``TokenStore`` is the capability every backend provides:
- ``get(request)`` — recover the 32-byte secret sent by the client
- ``save(token, response)`` — (re-)issue the cookie carrying the secret

``CookieStore`` keeps the secret entirely client-side inside a signed
cookie. A server-side backend would implement the same two methods and put
only a random lookup key in the cookie.

Security Note:
    Stores never keep per-request data on the instance and never log the
    secret or the sealed cookie value.
"""
import logging
from abc import ABC, abstractmethod
from enum import Enum
from email.utils import format_datetime
from datetime import datetime, timedelta, timezone

from aiohttp import web

from .codec import TokenCodec
from .exceptions import (
    DecodeError,
    EncodingError,
    InvalidToken,
    TokenNotFound,
)
from .tokens import TOKEN_LENGTH

logger = logging.getLogger("navigator.csrf")


class SameSiteMode(str, Enum):
    """SameSite cookie attribute. ``DEFAULT`` omits the attribute."""

    DEFAULT = ""
    LAX = "Lax"
    STRICT = "Strict"
    NONE = "None"


class TokenStore(ABC):
    """Persistence for the real CSRF secret."""

    @abstractmethod
    def get(self, request: web.Request) -> bytes:
        """Return the real CSRF secret for this request.

        Raises:
            TokenNotFound: If the request carries no token.
            InvalidToken: If the stored token fails verification.
        """

    @abstractmethod
    def save(self, token: bytes, response: web.StreamResponse) -> None:
        """Persist ``token`` and attach its cookie to ``response``.

        Raises:
            EncodingError: If the token cannot be sealed.
        """


class CookieStore(TokenStore):
    """Signed cookie store for CSRF secrets.

    Args:
        codec: Authenticated encoder used to seal the cookie value.
        name: Cookie name; also binds the sealed value.
        max_age: Cookie lifetime in seconds; ``<= 0`` makes it a session cookie.
        secure: Mark the cookie as HTTPS-only.
        http_only: Hide the cookie from client-side scripts.
        path: Cookie path.
        domain: Cookie domain; empty for host-only cookies.
        same_site: SameSite policy.
    """

    def __init__(
        self,
        codec: TokenCodec,
        name: str = "_navigator_csrf",
        *,
        max_age: int = 3600 * 12,
        secure: bool = True,
        http_only: bool = True,
        path: str = "/",
        domain: str = "",
        same_site: SameSiteMode = SameSiteMode.LAX,
    ):
        if not name:
            raise ValueError("Cookie name cannot be empty")
        self._codec = codec
        self._name = name
        self._max_age = max_age
        self._secure = secure
        self._http_only = http_only
        self._path = path
        self._domain = domain
        self._same_site = SameSiteMode(same_site)

    @property
    def name(self) -> str:
        return self._name

    @property
    def max_age(self) -> int:
        return self._max_age

    def __repr__(self) -> str:
        return (
            f"<CookieStore name={self._name!r} max_age={self._max_age} "
            f"secure={self._secure} same_site={self._same_site.name}>"
        )

    def get(self, request: web.Request) -> bytes:
        value = request.cookies.get(self._name)
        if not value:
            raise TokenNotFound(f"Cookie {self._name} not found")
        try:
            token = self._codec.decode(self._name, value)
        except DecodeError as err:
            logger.debug("CSRF cookie %s rejected: %s", self._name, err)
            raise InvalidToken("CSRF token is not valid") from None
        if not isinstance(token, (bytes, bytearray)) or len(token) != TOKEN_LENGTH:
            logger.debug("CSRF cookie %s rejected: unexpected payload", self._name)
            raise InvalidToken("CSRF token is not valid")
        return bytes(token)

    def save(self, token: bytes, response: web.StreamResponse) -> None:
        try:
            encoded = self._codec.encode(self._name, token)
        except EncodingError:
            logger.error("Unable to seal CSRF cookie %s", self._name)
            raise
        args = {
            "path": self._path,
            "domain": self._domain or None,
            "secure": self._secure,
            "httponly": self._http_only,
            "samesite": self._same_site.value or None,
        }
        # expiry is relative to issuance, so it is computed on every call
        if self._max_age > 0:
            expires = datetime.now(timezone.utc) + timedelta(seconds=self._max_age)
            args["max_age"] = self._max_age
            args["expires"] = format_datetime(expires, usegmt=True)
        response.set_cookie(self._name, encoded, **args)

"""
CSRF Middleware for aiohttp.

On every request:
1. recover the real secret from the store (or mint one when the cookie is
   missing or invalid),
2. expose a freshly masked copy as ``request["csrf_token"]``,
3. validate unsafe requests against the secret,
4. re-issue the cookie on the outgoing response, including the
   ``web.HTTPException`` responses (redirects and the like) raised by
   handlers.

A handler that prepares a ``StreamResponse`` itself has already sent its
headers, so no cookie can be added to it; the middleware logs a warning
and the response leaves without a CSRF cookie. Streaming handlers must
not be the only place a client obtains its token.

Trusted origins are bare hosts and are only honored over HTTPS.
"""
import inspect
import logging
from typing import Awaitable, Callable, Optional
from urllib.parse import urlsplit

from aiohttp import hdrs, web

from .conf import CSRFConfig
from .exceptions import InvalidToken, TokenNotFound
from .store import TokenStore
from .tokens import (
    compare_tokens,
    decode_submitted,
    generate_token,
    mask_token,
    unmask_token,
)

logger = logging.getLogger("navigator.csrf")

CSRF_TOKEN_KEY = "csrf_token"
CSRF_FIELD_KEY = "csrf_field_name"
CSRF_REASON_KEY = "csrf_failure_reason"

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "TRACE"})
FORM_CONTENT_TYPES = frozenset({
    "application/x-www-form-urlencoded",
    "multipart/form-data",
})

# failure reasons, kept server-side only
REASON_NO_REFERER = "referer not supplied"
REASON_BAD_ORIGIN = "origin invalid"
REASON_NO_TOKEN = "CSRF token not found in request"
REASON_BAD_TOKEN = "CSRF token invalid"

ErrorHandler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def exempt(handler):
    """Mark a request handler as exempt from CSRF validation.

    Bound methods are marked on their underlying function, so every
    instance of the view shares the exemption.
    """
    target = handler.__func__ if inspect.ismethod(handler) else handler
    target.__csrf_exempt__ = True
    return handler


def get_token(request: web.Request) -> str:
    """Return the masked token for this request (empty if not protected)."""
    return request.get(CSRF_TOKEN_KEY, "")


def failure_reason(request: web.Request) -> Optional[str]:
    """Return why CSRF validation failed for this request, if it did."""
    return request.get(CSRF_REASON_KEY)


async def forbidden(request: web.Request) -> web.StreamResponse:
    """Default error handler: a generic 403."""
    return web.Response(status=403, text="Forbidden - CSRF token invalid")


def _check_origin(request: web.Request, trusted_origins: list[str]) -> Optional[str]:
    source = request.headers.get(hdrs.ORIGIN)
    if not source or source == "null":
        source = request.headers.get(hdrs.REFERER)
        if not source:
            return REASON_NO_REFERER
    parts = urlsplit(source)
    if parts.netloc == request.host and parts.scheme == request.scheme:
        return None
    if parts.scheme == "https" and parts.netloc in trusted_origins:
        return None
    return REASON_BAD_ORIGIN


async def _submitted_token(request: web.Request, config: CSRFConfig) -> Optional[str]:
    value = request.headers.get(config.header_name)
    if value:
        return value
    if request.content_type in FORM_CONTENT_TYPES:
        form = await request.post()
        field = form.get(config.field_name)
        if isinstance(field, str):
            return field
    return None


async def _check_request(
    request: web.Request, secret: bytes, config: CSRFConfig
) -> Optional[str]:
    if request.scheme == "https":
        reason = _check_origin(request, config.trusted_origins)
        if reason:
            return reason
    submitted = await _submitted_token(request, config)
    if not submitted:
        return REASON_NO_TOKEN
    issued = decode_submitted(submitted)
    candidate = unmask_token(issued) if issued else None
    if not compare_tokens(candidate, secret):
        return REASON_BAD_TOKEN
    return None


def _is_exempt(request: web.Request) -> bool:
    handler = getattr(request.match_info, "handler", None)
    return bool(getattr(handler, "__csrf_exempt__", False))


def csrf_middleware(
    config: CSRFConfig,
    store: Optional[TokenStore] = None,
    error_handler: Optional[ErrorHandler] = None,
):
    """Build an aiohttp middleware enforcing CSRF protection.

    Args:
        config: CSRF settings.
        store: Token store; defaults to the CookieStore built from ``config``.
        error_handler: Coroutine producing the response for rejected
            requests; defaults to a plain 403.

    Returns:
        A new-style aiohttp middleware.

    ``EncodingError`` raised while saving the cookie propagates out of the
    middleware so a misconfigured key never yields unprotected responses.
    """
    store = store or config.build_store()
    on_failure = error_handler or forbidden

    @web.middleware
    async def middleware(request: web.Request, handler) -> web.StreamResponse:
        try:
            secret = store.get(request)
        except (TokenNotFound, InvalidToken) as err:
            logger.debug(
                "Issuing new CSRF token for %s (%s)", request.path, type(err).__name__,
            )
            secret = generate_token()

        request[CSRF_TOKEN_KEY] = mask_token(secret)
        request[CSRF_FIELD_KEY] = config.field_name

        if request.method not in SAFE_METHODS and not _is_exempt(request):
            reason = await _check_request(request, secret, config)
            if reason:
                request[CSRF_REASON_KEY] = reason
                logger.warning(
                    "CSRF validation failed for %s %s: %s",
                    request.method, request.path, reason,
                )
                response = await on_failure(request)
                store.save(secret, response)
                return response

        try:
            response = await handler(request)
        except web.HTTPException as exc:
            store.save(secret, exc)
            raise
        if response.prepared:
            logger.warning(
                "Response for %s already prepared, CSRF cookie not set", request.path,
            )
            return response
        store.save(secret, response)
        return response

    return middleware


def setup(app: web.Application, config: CSRFConfig, **kwargs) -> None:
    """Install CSRF protection on ``app``."""
    app.middlewares.append(csrf_middleware(config, **kwargs))

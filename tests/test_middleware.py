"""
Tests for the aiohttp CSRF middleware.

Tests cover:
- Cookie issuance on safe requests
- Validation of unsafe requests via header and form field
- Rejection of missing, foreign and forged tokens
- Exempt handlers (functions and bound methods) and custom error handlers
- Cookies on raised HTTP exceptions and on streamed responses
- Origin checks for HTTPS requests
- Encoding failures surfacing as server errors
"""
import logging

import pytest
from aiohttp import web
from aiohttp.test_utils import make_mocked_request

from navigator_csrf.codec import SecureCookieCodec
from navigator_csrf.middleware import (
    REASON_BAD_ORIGIN,
    REASON_BAD_TOKEN,
    REASON_NO_REFERER,
    REASON_NO_TOKEN,
    _check_origin,
    csrf_middleware,
    exempt,
    failure_reason,
    get_token,
    setup,
)
from navigator_csrf.store import CookieStore
from navigator_csrf.tokens import generate_token, mask_token


async def form_page(request):
    return web.Response(text=get_token(request))


async def submit(request):
    return web.Response(text="ok")


@exempt
async def webhook(request):
    return web.Response(text="hook")


async def redirect(request):
    get_token(request)
    raise web.HTTPFound("/form")


async def submit_and_redirect(request):
    raise web.HTTPSeeOther("/form")


async def stream(request):
    response = web.StreamResponse()
    await response.prepare(request)
    await response.write(b"chunk")
    return response


class Hooks:
    """Class-based view whose handlers are bound methods."""

    async def receive(self, request):
        return web.Response(text="received")


def _make_app(config, **kwargs):
    app = web.Application()
    setup(app, config, **kwargs)
    app.router.add_get("/form", form_page)
    app.router.add_post("/submit", submit)
    app.router.add_post("/webhook", webhook)
    app.router.add_get("/redirect", redirect)
    app.router.add_post("/submit-redirect", submit_and_redirect)
    app.router.add_get("/stream", stream)
    app.router.add_post("/hooks", exempt(Hooks().receive))
    return app


@pytest.fixture
async def client(aiohttp_client, config):
    return await aiohttp_client(_make_app(config))


class TestSafeMethods:

    async def test_get_issues_cookie(self, client):
        resp = await client.get("/form")
        assert resp.status == 200
        assert "csrf_token" in resp.cookies
        assert await resp.text()

    async def test_masked_token_changes_per_render(self, client):
        first = await (await client.get("/form")).text()
        second = await (await client.get("/form")).text()
        assert first != second

    async def test_cookie_reused_across_requests(self, client, config):
        await client.get("/form")
        cookie = client.session.cookie_jar.filter_cookies(client.make_url("/"))
        first = config.build_store().get(
            make_mocked_request(
                "GET", "/", headers={"Cookie": f"csrf_token={cookie['csrf_token'].value}"}
            )
        )
        await client.get("/form")
        cookie = client.session.cookie_jar.filter_cookies(client.make_url("/"))
        second = config.build_store().get(
            make_mocked_request(
                "GET", "/", headers={"Cookie": f"csrf_token={cookie['csrf_token'].value}"}
            )
        )
        assert first == second


class TestUnsafeMethods:

    async def test_missing_token_rejected(self, client):
        await client.get("/form")
        resp = await client.post("/submit")
        assert resp.status == 403
        assert "csrf_token" in resp.cookies

    async def test_header_token_accepted(self, client):
        token = await (await client.get("/form")).text()
        resp = await client.post("/submit", headers={"X-CSRF-Token": token})
        assert resp.status == 200
        assert await resp.text() == "ok"

    async def test_form_token_accepted(self, client):
        token = await (await client.get("/form")).text()
        resp = await client.post("/submit", data={"csrf_token": token})
        assert resp.status == 200

    async def test_foreign_token_rejected(self, client):
        await client.get("/form")
        forged = mask_token(generate_token())
        resp = await client.post("/submit", headers={"X-CSRF-Token": forged})
        assert resp.status == 403

    async def test_malformed_token_rejected(self, client):
        await client.get("/form")
        resp = await client.post("/submit", headers={"X-CSRF-Token": "$$$"})
        assert resp.status == 403

    async def test_token_without_cookie_rejected(self, client):
        token = await (await client.get("/form")).text()
        client.session.cookie_jar.clear()
        resp = await client.post("/submit", headers={"X-CSRF-Token": token})
        assert resp.status == 403

    async def test_exempt_handler(self, client):
        resp = await client.post("/webhook")
        assert resp.status == 200
        assert await resp.text() == "hook"

    async def test_response_body_is_generic(self, client):
        resp = await client.post("/submit")
        assert await resp.text() == "Forbidden - CSRF token invalid"

    async def test_exempt_bound_method(self, client):
        resp = await client.post("/hooks")
        assert resp.status == 200
        assert await resp.text() == "received"

    def test_exempt_marks_bound_method(self):
        hooks = Hooks()
        assert exempt(hooks.receive) == hooks.receive
        assert getattr(hooks.receive, "__csrf_exempt__", False) is True


class TestHandlerResponses:
    """Cookies on responses the handler raises or streams itself."""

    async def test_raised_redirect_carries_cookie(self, client):
        resp = await client.get("/redirect", allow_redirects=False)
        assert resp.status == 302
        assert "csrf_token" in resp.cookies

    async def test_minted_secret_survives_redirect(self, client, config):
        resp = await client.get("/redirect", allow_redirects=False)
        value = resp.cookies["csrf_token"].value
        secret = config.build_store().get(
            make_mocked_request("GET", "/", headers={"Cookie": f"csrf_token={value}"})
        )
        post = await client.post(
            "/submit", headers={"X-CSRF-Token": mask_token(secret)}
        )
        assert post.status == 200

    async def test_post_redirect_get_reissues_cookie(self, client):
        token = await (await client.get("/form")).text()
        resp = await client.post(
            "/submit-redirect",
            headers={"X-CSRF-Token": token},
            allow_redirects=False,
        )
        assert resp.status == 303
        assert "csrf_token" in resp.cookies

    async def test_prepared_response_logs_warning(self, client, caplog):
        with caplog.at_level(logging.WARNING, logger="navigator.csrf"):
            resp = await client.get("/stream")
            assert await resp.read() == b"chunk"
        assert resp.status == 200
        assert "csrf_token" not in resp.cookies
        assert any(
            "CSRF cookie not set" in record.getMessage() for record in caplog.records
        )


class TestErrorHandling:

    async def test_custom_error_handler(self, aiohttp_client, config):
        async def handler(request):
            return web.Response(status=419, text=failure_reason(request))

        client = await aiohttp_client(_make_app(config, error_handler=handler))
        resp = await client.post("/submit")
        assert resp.status == 419
        assert await resp.text() == REASON_NO_TOKEN

    async def test_bad_token_reason(self, aiohttp_client, config):
        async def handler(request):
            return web.Response(status=403, text=failure_reason(request))

        client = await aiohttp_client(_make_app(config, error_handler=handler))
        await client.get("/form")
        resp = await client.post(
            "/submit", headers={"X-CSRF-Token": mask_token(generate_token())}
        )
        assert await resp.text() == REASON_BAD_TOKEN

    async def test_encoding_error_is_not_swallowed(self, aiohttp_client, config):
        store = CookieStore(SecureCookieCodec(None), "csrf_token")
        client = await aiohttp_client(_make_app(config, store=store))
        resp = await client.get("/form")
        assert resp.status == 500
        assert "csrf_token" not in resp.cookies


def _https_request(headers):
    base = {"Host": "example.com"}
    base.update(headers)
    return make_mocked_request("POST", "/submit", headers=base).clone(scheme="https")


class TestOriginCheck:

    def test_same_origin(self):
        request = _https_request({"Origin": "https://example.com"})
        assert _check_origin(request, []) is None

    def test_referer_fallback(self):
        request = _https_request({"Referer": "https://example.com/form"})
        assert _check_origin(request, []) is None

    def test_missing_origin_and_referer(self):
        assert _check_origin(_https_request({}), []) == REASON_NO_REFERER

    def test_cross_origin(self):
        request = _https_request({"Origin": "https://evil.example.net"})
        assert _check_origin(request, []) == REASON_BAD_ORIGIN

    def test_scheme_downgrade(self):
        request = _https_request({"Origin": "http://example.com"})
        assert _check_origin(request, []) == REASON_BAD_ORIGIN

    def test_trusted_origin(self):
        request = _https_request({"Origin": "https://partner.example.org"})
        assert _check_origin(request, ["partner.example.org"]) is None

    def test_trusted_origin_over_http(self):
        request = _https_request({"Origin": "http://partner.example.org"})
        assert _check_origin(request, ["partner.example.org"]) == REASON_BAD_ORIGIN

    async def test_https_cross_origin_rejected_before_token(self, config, secret):
        store = config.build_store()
        seed = web.Response()
        store.save(secret, seed)
        value = seed.cookies["csrf_token"].value
        request = _https_request({
            "Origin": "https://evil.example.net",
            "Cookie": f"csrf_token={value}",
            "X-CSRF-Token": mask_token(secret),
        })
        middleware = csrf_middleware(config, store=store)
        resp = await middleware(request, submit)
        assert resp.status == 403
        assert failure_reason(request) == REASON_BAD_ORIGIN

    async def test_https_same_origin_accepted(self, config, secret):
        store = config.build_store()
        seed = web.Response()
        store.save(secret, seed)
        value = seed.cookies["csrf_token"].value
        request = _https_request({
            "Origin": "https://example.com",
            "Cookie": f"csrf_token={value}",
            "X-CSRF-Token": mask_token(secret),
        })
        middleware = csrf_middleware(config, store=store)
        resp = await middleware(request, submit)
        assert resp.status == 200
        assert "csrf_token" in resp.cookies

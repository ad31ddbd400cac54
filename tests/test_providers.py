# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_auth

"""
Tests for the httpx-backed provider adapters and the callable factories.
"""

import json
from collections.abc import Callable
from datetime import timedelta
from typing import Any
from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from coreason_auth.exceptions import RefreshRejectedError, UpstreamProviderError
from coreason_auth.models import ProviderMethod, ProviderUser, utcnow
from coreason_auth.providers import (
    BrexApiKeyProvider,
    GenericOAuth2AuthenticationProvider,
    GitHubAuthenticationProvider,
    GitHubAuthorizationProvider,
    GoogleAuthenticationProvider,
    GoogleAuthorizationProvider,
    ResendMagicLinkProvider,
    VercelApiKeyProvider,
    create_api_key_provider,
    create_magic_link_provider,
)

REDIRECT_URI = "https://app.example.com/auth/authentication/google"


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def form_of(request: httpx.Request) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


class Recorder:
    """MockTransport handler serving canned JSON per path and recording requests."""

    def __init__(self, routes: dict[str, tuple[int, Any]]) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.routes[request.url.path]
        return httpx.Response(status, json=body)


# Generic OAuth2 / Google


@pytest.mark.asyncio
async def test_google_authentication_url() -> None:
    provider = GoogleAuthenticationProvider("cid", "secret")
    url = await provider.get_authentication_url(REDIRECT_URI, "state-1")

    parts = urlsplit(url)
    query = parse_qs(parts.query)
    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == "https://accounts.google.com/o/oauth2/v2/auth"
    assert query["client_id"] == ["cid"]
    assert query["redirect_uri"] == [REDIRECT_URI]
    assert query["state"] == ["state-1"]
    assert query["response_type"] == ["code"]
    assert query["access_type"] == ["offline"]
    assert "https://www.googleapis.com/auth/userinfo.email" in query["scope"][0]
    assert provider.method is ProviderMethod.OAUTH2


@pytest.mark.asyncio
async def test_google_authorization_url_forces_consent() -> None:
    provider = GoogleAuthorizationProvider("cid", "secret", ["https://www.googleapis.com/auth/drive.readonly"])
    query = parse_qs(urlsplit(await provider.get_authorization_url(REDIRECT_URI, "s")).query)
    assert query["prompt"] == ["consent"]
    assert query["scope"] == ["https://www.googleapis.com/auth/drive.readonly"]


@pytest.mark.asyncio
async def test_get_token_success() -> None:
    recorder = Recorder({"/token": (200, {"access_token": "at1", "refresh_token": "rt1", "expires_in": 3600})})
    async with mock_client(recorder) as client:
        provider = GoogleAuthenticationProvider("cid", "secret", client=client)
        tokens = await provider.get_token("abc123", REDIRECT_URI)

    assert tokens.access_token.get_secret_value() == "at1"
    assert tokens.refresh_token.get_secret_value() == "rt1"
    assert abs(tokens.expires_at - (utcnow() + timedelta(seconds=3600))) < timedelta(seconds=30)
    form = form_of(recorder.requests[0])
    assert form == {
        "grant_type": "authorization_code",
        "code": "abc123",
        "redirect_uri": REDIRECT_URI,
        "client_id": "cid",
        "client_secret": "secret",
    }


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "body"),
    [
        (400, {"error": "invalid_grant"}),
        (200, {"error": "bad_verification_code"}),
        (200, {"token_type": "bearer"}),
    ],
)
async def test_get_token_failures(status: int, body: dict[str, Any]) -> None:
    async with mock_client(Recorder({"/token": (status, body)})) as client:
        provider = GoogleAuthenticationProvider("cid", "secret", client=client)
        with pytest.raises(UpstreamProviderError):
            await provider.get_token("code", REDIRECT_URI)


@pytest.mark.asyncio
async def test_refresh_token_without_rotation() -> None:
    recorder = Recorder({"/token": (200, {"access_token": "at2", "expires_in": 60})})
    async with mock_client(recorder) as client:
        provider = GoogleAuthorizationProvider("cid", "secret", [], client=client)
        refreshed = await provider.refresh_token("rt1")

    assert refreshed.access_token.get_secret_value() == "at2"
    assert refreshed.refresh_token is None
    assert form_of(recorder.requests[0])["grant_type"] == "refresh_token"
    assert form_of(recorder.requests[0])["refresh_token"] == "rt1"


@pytest.mark.asyncio
async def test_refresh_token_rejected() -> None:
    async with mock_client(Recorder({"/token": (400, {"error": "invalid_grant"})})) as client:
        provider = GoogleAuthenticationProvider("cid", "secret", client=client)
        with pytest.raises(RefreshRejectedError) as excinfo:
            await provider.refresh_token("rt1")
    assert excinfo.value.status_code == 400
    assert excinfo.value.provider == "google"


@pytest.mark.asyncio
async def test_refresh_without_refresh_token_makes_no_request() -> None:
    recorder = Recorder({})
    async with mock_client(recorder) as client:
        provider = GoogleAuthenticationProvider("cid", "secret", client=client)
        with pytest.raises(RefreshRejectedError):
            await provider.refresh_token("")
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_google_get_user() -> None:
    recorder = Recorder({"/oauth2/v1/userinfo": (200, {"id": "1234", "email": "a@example.com"})})
    async with mock_client(recorder) as client:
        provider = GoogleAuthenticationProvider("cid", "secret", client=client)
        user = await provider.get_user("at1")

    assert user == ProviderUser(account_id="1234", email="a@example.com")
    assert recorder.requests[0].headers["Authorization"] == "Bearer at1"


@pytest.mark.asyncio
async def test_authentication_provider_requires_email() -> None:
    async with mock_client(Recorder({"/oauth2/v1/userinfo": (200, {"id": "1234"})})) as client:
        provider = GoogleAuthenticationProvider("cid", "secret", client=client)
        with pytest.raises(UpstreamProviderError, match="email"):
            await provider.get_user("at1")


@pytest.mark.asyncio
async def test_authorization_provider_allows_missing_email() -> None:
    async with mock_client(Recorder({"/oauth2/v1/userinfo": (200, {"sub": "abc"})})) as client:
        provider = GoogleAuthorizationProvider("cid", "secret", [], client=client)
        assert await provider.get_user("at1") == ProviderUser(account_id="abc")


@pytest.mark.asyncio
async def test_get_user_error_status() -> None:
    async with mock_client(Recorder({"/oauth2/v1/userinfo": (401, {"error": "invalid_token"})})) as client:
        provider = GoogleAuthenticationProvider("cid", "secret", client=client)
        with pytest.raises(UpstreamProviderError) as excinfo:
            await provider.get_user("expired")
    assert excinfo.value.status_code == 401


@pytest.mark.asyncio
async def test_generic_provider_endpoints() -> None:
    recorder = Recorder({"/me": (200, {"sub": "u-9", "email": "z@example.com"})})
    async with mock_client(recorder) as client:
        provider = GenericOAuth2AuthenticationProvider(
            "cid",
            "secret",
            authorize_url="https://idp.example.com/authorize",
            token_url="https://idp.example.com/token",
            userinfo_url="https://idp.example.com/me",
            scopes=["openid", "email"],
            name="idp",
            client=client,
        )
        url = await provider.get_authentication_url(REDIRECT_URI, "s")
        user = await provider.get_user("at")

    assert url.startswith("https://idp.example.com/authorize?")
    assert parse_qs(urlsplit(url).query)["scope"] == ["openid email"]
    assert user.account_id == "u-9"
    assert provider.name == "idp"


# GitHub


@pytest.mark.asyncio
async def test_github_token_without_expiry() -> None:
    recorder = Recorder({"/login/oauth/access_token": (200, {"access_token": "gho_1", "scope": "read:user"})})
    async with mock_client(recorder) as client:
        provider = GitHubAuthenticationProvider("cid", "secret", client=client)
        tokens = await provider.get_token("code", REDIRECT_URI)

    assert tokens.refresh_token.get_secret_value() == ""
    assert tokens.expires_at - utcnow() > timedelta(days=300)
    assert recorder.requests[0].headers["Accept"] == "application/json"


@pytest.mark.asyncio
async def test_github_error_in_ok_response() -> None:
    body = {"error": "bad_verification_code", "error_description": "The code passed is incorrect or expired."}
    async with mock_client(Recorder({"/login/oauth/access_token": (200, body)})) as client:
        provider = GitHubAuthorizationProvider("cid", "secret", ["repo"], client=client)
        with pytest.raises(UpstreamProviderError, match="incorrect or expired"):
            await provider.get_token("code", REDIRECT_URI)


@pytest.mark.asyncio
async def test_github_user_uses_primary_email() -> None:
    recorder = Recorder(
        {
            "/user": (200, {"id": 42, "login": "octocat", "email": "public@example.com"}),
            "/user/emails": (
                200,
                [
                    {"email": "other@example.com", "primary": False, "verified": True},
                    {"email": "primary@example.com", "primary": True, "verified": True},
                ],
            ),
        }
    )
    async with mock_client(recorder) as client:
        provider = GitHubAuthenticationProvider("cid", "secret", client=client)
        user = await provider.get_user("gho_1")

    assert user == ProviderUser(account_id="42", email="primary@example.com")
    assert [r.url.path for r in recorder.requests] == ["/user", "/user/emails"]


@pytest.mark.asyncio
async def test_github_user_without_any_email() -> None:
    recorder = Recorder({"/user": (200, {"id": 42, "email": None}), "/user/emails": (200, [])})
    async with mock_client(recorder) as client:
        authn = GitHubAuthenticationProvider("cid", "secret", client=client)
        authz = GitHubAuthorizationProvider("cid", "secret", ["repo"], client=client)
        with pytest.raises(UpstreamProviderError):
            await authn.get_user("gho_1")
        assert await authz.get_user("gho_1") == ProviderUser(account_id="42")


@pytest.mark.asyncio
async def test_github_link_without_email_scope() -> None:
    recorder = Recorder(
        {
            "/user": (200, {"id": 42, "login": "octocat", "email": "public@example.com"}),
            "/user/emails": (404, {"message": "Not Found"}),
        }
    )
    async with mock_client(recorder) as client:
        authz = GitHubAuthorizationProvider("cid", "secret", ["repo"], client=client)
        authn = GitHubAuthenticationProvider("cid", "secret", client=client)

        assert await authz.get_user("gho_1") == ProviderUser(account_id="42", email="public@example.com")
        with pytest.raises(UpstreamProviderError) as excinfo:
            await authn.get_user("gho_1")

    assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_github_refresh_without_refresh_token() -> None:
    provider = GitHubAuthorizationProvider("cid", "secret", ["repo"])
    with pytest.raises(RefreshRejectedError):
        await provider.refresh_token("")


# API-key providers


@pytest.mark.asyncio
async def test_vercel_get_user() -> None:
    recorder = Recorder({"/v2/user": (200, {"user": {"id": "vu_1", "email": "a@example.com"}})})
    async with mock_client(recorder) as client:
        provider = VercelApiKeyProvider(client=client)
        user = await provider.get_user("vk")

    assert user.account_id == "vu_1"
    assert recorder.requests[0].headers["Authorization"] == "Bearer vk"
    assert provider.api_key_url == "https://vercel.com/account/settings/tokens"
    assert provider.method is ProviderMethod.API_KEY


@pytest.mark.asyncio
async def test_vercel_malformed_response() -> None:
    async with mock_client(Recorder({"/v2/user": (200, {"id": "flat"})})) as client:
        with pytest.raises(UpstreamProviderError):
            await VercelApiKeyProvider(client=client).get_user("vk")


@pytest.mark.asyncio
async def test_brex_get_user() -> None:
    recorder = Recorder({"/v2/users/me": (200, {"id": "cuuser_1", "email": "b@example.com"})})
    async with mock_client(recorder) as client:
        provider = BrexApiKeyProvider(client=client)
        user = await provider.get_user("bk")
    assert user == ProviderUser(account_id="cuuser_1", email="b@example.com")
    assert provider.api_key_url == "https://dashboard.brex.com/settings/developer"


@pytest.mark.asyncio
async def test_brex_rejects_bad_key() -> None:
    async with mock_client(Recorder({"/v2/users/me": (401, {"message": "Unauthorized"})})) as client:
        with pytest.raises(UpstreamProviderError) as excinfo:
            await BrexApiKeyProvider(client=client).get_user("bad")
    assert excinfo.value.status_code == 401


# Magic link


@pytest.mark.asyncio
async def test_resend_send_email() -> None:
    recorder = Recorder({"/emails": (200, {"id": "email_1"})})
    async with mock_client(recorder) as client:
        provider = ResendMagicLinkProvider(
            "re_key",
            "Acme <auth@acme.dev>",
            subject="Your link",
            html=lambda url: f'<a href="{url}">Sign in</a>',
            client=client,
        )
        await provider.send_email("a@example.com", "https://app.example.com/link")

    request = recorder.requests[0]
    assert request.method == "POST"
    assert request.headers["Authorization"] == "Bearer re_key"
    assert json.loads(request.content) == {
        "from": "Acme <auth@acme.dev>",
        "to": ["a@example.com"],
        "subject": "Your link",
        "html": '<a href="https://app.example.com/link">Sign in</a>',
    }
    assert provider.method is ProviderMethod.MAGIC_LINK


@pytest.mark.asyncio
async def test_resend_failure() -> None:
    async with mock_client(Recorder({"/emails": (422, {"message": "Invalid from"})})) as client:
        provider = ResendMagicLinkProvider("re_key", "bad", client=client)
        with pytest.raises(UpstreamProviderError):
            await provider.send_email("a@example.com", "https://app.example.com/link")


# Factories and client ownership


@pytest.mark.asyncio
async def test_factories_delegate() -> None:
    send_email = AsyncMock()
    magic = create_magic_link_provider(send_email=send_email)
    await magic.send_email("a@example.com", "https://x")
    send_email.assert_awaited_once_with("a@example.com", "https://x")

    get_user = AsyncMock(return_value=ProviderUser(account_id="k-1"))
    api_key = create_api_key_provider(api_key_url="https://keys", get_user=get_user)
    assert (await api_key.get_user("key")).account_id == "k-1"
    assert api_key.api_key_url == "https://keys"
    await api_key.aclose()


@pytest.mark.asyncio
async def test_borrowed_client_is_not_closed() -> None:
    client = mock_client(Recorder({}))
    provider = BrexApiKeyProvider(client=client)
    await provider.aclose()
    assert not client.is_closed
    await client.aclose()


@pytest.mark.asyncio
async def test_owned_client_created_lazily_and_closed() -> None:
    provider = VercelApiKeyProvider()
    assert provider._client is None
    client = provider._get_client()
    assert provider._get_client() is client
    await provider.aclose()
    assert client.is_closed
    assert provider._client is None

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
Generic OAuth2 authorization-code providers over httpx.

Vendor adapters (Google, GitHub) subclass these and override only what differs.
"""

from datetime import datetime, timedelta
from typing import Any

import httpx
from authlib.common.urls import add_params_to_uri
from pydantic import SecretStr

from coreason_auth.exceptions import RefreshRejectedError, UpstreamProviderError
from coreason_auth.models import ProviderUser, RefreshedTokenSet, TokenSet, utcnow
from coreason_auth.providers.base import OAuth2AuthenticationProvider, OAuth2AuthorizationProvider
from coreason_auth.transport import create_http_client, fetch_json_response, safe_json_fetch
from coreason_auth.utils.logger import logger

DEFAULT_EXPIRES_IN = 3600


class HTTPProviderMixin:
    """
    Lazily owned httpx client shared by the HTTP-backed providers.

    A client passed to the constructor is borrowed and never closed here.
    """

    name: str = "provider"

    def _init_http(self, client: httpx.AsyncClient | None, timeout: float) -> None:
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = create_http_client(self._timeout)
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        if self._owns_client:
            self._client = None


class OAuth2HTTPMixin(HTTPProviderMixin):
    """
    Standard RFC 6749 authorization-code and refresh-token grants.

    Attributes:
        client_id (str): OAuth2 client id.
        client_secret (SecretStr): OAuth2 client secret.
        scopes (list[str]): Scopes requested on the consent screen.
        authorize_url (str): Authorization endpoint.
        token_url (str): Token endpoint.
        userinfo_url (str): Endpoint returning the user profile for a bearer token.
        authorize_params (dict[str, str]): Extra consent-screen parameters.
    """

    authorize_url: str = ""
    token_url: str = ""
    userinfo_url: str = ""

    def _init_oauth2(
        self,
        client_id: str,
        client_secret: str | SecretStr,
        scopes: list[str],
        authorize_params: dict[str, str] | None,
        client: httpx.AsyncClient | None,
        timeout: float,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret if isinstance(client_secret, SecretStr) else SecretStr(client_secret)
        self.scopes = scopes
        self.authorize_params = authorize_params or {}
        self._init_http(client, timeout)

    def _build_authorize_url(self, redirect_uri: str, state: str) -> str:
        params = [
            ("client_id", self.client_id),
            ("redirect_uri", redirect_uri),
            ("response_type", "code"),
            ("scope", " ".join(self.scopes)),
            ("state", state),
        ]
        params.extend(self.authorize_params.items())
        return str(add_params_to_uri(self.authorize_url, params))

    def _expires_at(self, data: dict[str, Any]) -> datetime:
        expires_in = data.get("expires_in") or DEFAULT_EXPIRES_IN
        try:
            seconds = int(expires_in)
        except (TypeError, ValueError) as e:
            raise UpstreamProviderError(
                f"Invalid expires_in from {self.name}: {expires_in!r}", provider=self.name
            ) from e
        return utcnow() + timedelta(seconds=seconds)

    async def _post_token_endpoint(self, form: dict[str, str]) -> tuple[int, dict[str, Any]]:
        status_code, data = await fetch_json_response(
            self._get_client(),
            self.token_url,
            "POST",
            provider=self.name,
            data={**form, "client_id": self.client_id, "client_secret": self.client_secret.get_secret_value()},
            headers={"Accept": "application/json"},
        )
        if not isinstance(data, dict):
            raise UpstreamProviderError(f"Malformed token response from {self.name}", provider=self.name)
        return status_code, data

    async def get_token(self, code: str, redirect_uri: str) -> TokenSet:
        status_code, data = await self._post_token_endpoint(
            {"grant_type": "authorization_code", "code": code, "redirect_uri": redirect_uri}
        )
        if status_code >= 400 or "error" in data or "access_token" not in data:
            logger.error(f"Token exchange failed for {self.name}: {data.get('error', status_code)}")
            raise UpstreamProviderError(
                f"Failed to get token from {self.name}: {data.get('error_description') or data.get('error')}",
                status_code=status_code,
                provider=self.name,
            )
        return TokenSet(
            access_token=SecretStr(data["access_token"]),
            refresh_token=SecretStr(data.get("refresh_token") or ""),
            expires_at=self._expires_at(data),
        )

    async def refresh_token(self, refresh_token: str) -> RefreshedTokenSet:
        if not refresh_token:
            raise RefreshRejectedError(f"No refresh token stored for {self.name}", provider=self.name)

        status_code, data = await self._post_token_endpoint(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )
        if status_code >= 400 or "error" in data or "access_token" not in data:
            logger.warning(f"Token refresh rejected by {self.name}: {data.get('error', status_code)}")
            raise RefreshRejectedError(
                f"Failed to refresh token with {self.name}: {data.get('error_description') or data.get('error')}",
                status_code=status_code,
                provider=self.name,
            )
        new_refresh = data.get("refresh_token")
        return RefreshedTokenSet(
            access_token=SecretStr(data["access_token"]),
            refresh_token=SecretStr(new_refresh) if new_refresh else None,
            expires_at=self._expires_at(data),
        )

    def _map_user(self, data: dict[str, Any]) -> ProviderUser:
        account_id = data.get("sub") or data.get("id")
        if account_id is None:
            raise UpstreamProviderError(f"User profile from {self.name} has no id", provider=self.name)
        return ProviderUser(account_id=str(account_id), email=data.get("email"))

    async def _fetch_user(self, access_token: str) -> ProviderUser:
        data = await safe_json_fetch(
            self._get_client(),
            self.userinfo_url,
            provider=self.name,
            headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
        )
        if not isinstance(data, dict):
            raise UpstreamProviderError(f"Malformed user profile from {self.name}", provider=self.name)
        return self._map_user(data)

    async def get_user(self, access_token: str) -> ProviderUser:
        return await self._fetch_user(access_token)


class GenericOAuth2AuthenticationProvider(OAuth2HTTPMixin, OAuth2AuthenticationProvider):
    """
    OAuth2 sign-in provider configured entirely by its endpoints.

    Args:
        client_id: OAuth2 client id.
        client_secret: OAuth2 client secret.
        authorize_url: Authorization endpoint.
        token_url: Token endpoint.
        userinfo_url: Userinfo endpoint; must return an ``email``.
        scopes: Requested scopes.
        authorize_params: Extra consent-screen parameters.
        name: Name used in logs and errors.
        client: Optional borrowed httpx client.
        timeout: Timeout for an internally created client.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str | SecretStr,
        *,
        authorize_url: str = "",
        token_url: str = "",
        userinfo_url: str = "",
        scopes: list[str] | None = None,
        authorize_params: dict[str, str] | None = None,
        name: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.authorize_url = authorize_url or self.authorize_url
        self.token_url = token_url or self.token_url
        self.userinfo_url = userinfo_url or self.userinfo_url
        self.name = name or self.name
        self._init_oauth2(client_id, client_secret, scopes or [], authorize_params, client, timeout)

    async def get_authentication_url(self, redirect_uri: str, state: str) -> str:
        return self._build_authorize_url(redirect_uri, state)

    async def get_user(self, access_token: str) -> ProviderUser:
        user = await super().get_user(access_token)
        if not user.email:
            raise UpstreamProviderError(f"{self.name} did not return an email address", provider=self.name)
        return user


class GenericOAuth2AuthorizationProvider(OAuth2HTTPMixin, OAuth2AuthorizationProvider):
    """OAuth2 account-linking provider configured entirely by its endpoints. Same arguments as the
    authentication variant."""

    def __init__(
        self,
        client_id: str,
        client_secret: str | SecretStr,
        *,
        authorize_url: str = "",
        token_url: str = "",
        userinfo_url: str = "",
        scopes: list[str] | None = None,
        authorize_params: dict[str, str] | None = None,
        name: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.authorize_url = authorize_url or self.authorize_url
        self.token_url = token_url or self.token_url
        self.userinfo_url = userinfo_url or self.userinfo_url
        self.name = name or self.name
        self._init_oauth2(client_id, client_secret, scopes or [], authorize_params, client, timeout)

    async def get_authorization_url(self, redirect_uri: str, state: str) -> str:
        return self._build_authorize_url(redirect_uri, state)

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
Capability contracts every identity / authorization provider satisfies.

Four variants, each tagged with a `ProviderMethod`:

* `OAuth2AuthenticationProvider` proves who the user is (email required).
* `OAuth2AuthorizationProvider` links an extra account to a known user.
* `MagicLinkProvider` delivers sign-in links by email.
* `ApiKeyProvider` verifies a user-supplied API key.

Constructors never perform I/O; only the operations do. The ``create_*`` factories wrap plain
async callables for applications that do not want to subclass.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import ClassVar

from coreason_auth.models import ProviderMethod, ProviderUser, RefreshedTokenSet, TokenSet


class Provider(ABC):
    """Common base of every provider variant."""

    method: ClassVar[ProviderMethod]

    async def aclose(self) -> None:
        """Releases network resources. Providers without any keep the default no-op."""


class _OAuth2Provider(Provider):
    method: ClassVar[ProviderMethod] = ProviderMethod.OAUTH2

    @abstractmethod
    async def get_token(self, code: str, redirect_uri: str) -> TokenSet:
        """Exchanges an authorization code for tokens."""

    @abstractmethod
    async def get_user(self, access_token: str) -> ProviderUser:
        """Fetches the provider identity behind an access token."""

    @abstractmethod
    async def refresh_token(self, refresh_token: str) -> RefreshedTokenSet:
        """
        Exchanges a refresh token for a new access token.

        Raises:
            RefreshRejectedError: If the provider refuses the refresh token.
        """


class OAuth2AuthenticationProvider(_OAuth2Provider):
    """OAuth2 provider used to sign users in. `get_user` must return an email."""

    @abstractmethod
    async def get_authentication_url(self, redirect_uri: str, state: str) -> str:
        """Builds the provider's consent URL for signing in."""


class OAuth2AuthorizationProvider(_OAuth2Provider):
    """OAuth2 provider used to link an extra account (and its scopes) to a known user."""

    @abstractmethod
    async def get_authorization_url(self, redirect_uri: str, state: str) -> str:
        """Builds the provider's consent URL for linking."""


class MagicLinkProvider(Provider):
    method: ClassVar[ProviderMethod] = ProviderMethod.MAGIC_LINK

    @abstractmethod
    async def send_email(self, email: str, url: str) -> None:
        """Delivers the sign-in `url` to `email`."""


class ApiKeyProvider(Provider):
    """
    Provider whose credential is an API key the user creates by hand.

    Attributes:
        api_key_url (str): Human-facing page where a user obtains a key.
    """

    method: ClassVar[ProviderMethod] = ProviderMethod.API_KEY
    api_key_url: str

    @abstractmethod
    async def get_user(self, api_key: str) -> ProviderUser:
        """Verifies the key and returns the provider account it belongs to."""


GetUrl = Callable[[str, str], Awaitable[str]]
GetToken = Callable[[str, str], Awaitable[TokenSet]]
GetUser = Callable[[str], Awaitable[ProviderUser]]
RefreshToken = Callable[[str], Awaitable[RefreshedTokenSet]]


class _CallableOAuth2Mixin:
    _get_token: GetToken
    _get_user: GetUser
    _refresh_token: RefreshToken

    async def get_token(self, code: str, redirect_uri: str) -> TokenSet:
        return await self._get_token(code, redirect_uri)

    async def get_user(self, access_token: str) -> ProviderUser:
        return await self._get_user(access_token)

    async def refresh_token(self, refresh_token: str) -> RefreshedTokenSet:
        return await self._refresh_token(refresh_token)


class _CallableOAuth2AuthenticationProvider(_CallableOAuth2Mixin, OAuth2AuthenticationProvider):
    def __init__(self, get_url: GetUrl, get_token: GetToken, get_user: GetUser, refresh_token: RefreshToken) -> None:
        self._get_url = get_url
        self._get_token = get_token
        self._get_user = get_user
        self._refresh_token = refresh_token

    async def get_authentication_url(self, redirect_uri: str, state: str) -> str:
        return await self._get_url(redirect_uri, state)


class _CallableOAuth2AuthorizationProvider(_CallableOAuth2Mixin, OAuth2AuthorizationProvider):
    def __init__(self, get_url: GetUrl, get_token: GetToken, get_user: GetUser, refresh_token: RefreshToken) -> None:
        self._get_url = get_url
        self._get_token = get_token
        self._get_user = get_user
        self._refresh_token = refresh_token

    async def get_authorization_url(self, redirect_uri: str, state: str) -> str:
        return await self._get_url(redirect_uri, state)


class _CallableMagicLinkProvider(MagicLinkProvider):
    def __init__(self, send_email: Callable[[str, str], Awaitable[None]]) -> None:
        self._send_email = send_email

    async def send_email(self, email: str, url: str) -> None:
        await self._send_email(email, url)


class _CallableApiKeyProvider(ApiKeyProvider):
    def __init__(self, api_key_url: str, get_user: GetUser) -> None:
        self.api_key_url = api_key_url
        self._get_user = get_user

    async def get_user(self, api_key: str) -> ProviderUser:
        return await self._get_user(api_key)


def create_oauth2_authentication_provider(
    *,
    get_authentication_url: GetUrl,
    get_token: GetToken,
    get_user: GetUser,
    refresh_token: RefreshToken,
) -> OAuth2AuthenticationProvider:
    """
    Builds an OAuth2 authentication provider from async callables.

    Args:
        get_authentication_url: ``(redirect_uri, state) -> url``.
        get_token: ``(code, redirect_uri) -> TokenSet``.
        get_user: ``(access_token) -> ProviderUser`` with an email.
        refresh_token: ``(refresh_token) -> RefreshedTokenSet``.
    """
    return _CallableOAuth2AuthenticationProvider(get_authentication_url, get_token, get_user, refresh_token)


def create_oauth2_authorization_provider(
    *,
    get_authorization_url: GetUrl,
    get_token: GetToken,
    get_user: GetUser,
    refresh_token: RefreshToken,
) -> OAuth2AuthorizationProvider:
    """Builds an OAuth2 authorization (account linking) provider from async callables."""
    return _CallableOAuth2AuthorizationProvider(get_authorization_url, get_token, get_user, refresh_token)


def create_magic_link_provider(*, send_email: Callable[[str, str], Awaitable[None]]) -> MagicLinkProvider:
    """Builds a magic-link provider from an async ``(email, url) -> None`` callable."""
    return _CallableMagicLinkProvider(send_email)


def create_api_key_provider(*, api_key_url: str, get_user: GetUser) -> ApiKeyProvider:
    """Builds an API-key provider from its key page URL and an async ``(api_key) -> ProviderUser``."""
    return _CallableApiKeyProvider(api_key_url, get_user)

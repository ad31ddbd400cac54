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
GitHub OAuth2 providers.

Classic OAuth app tokens never expire and come without a refresh token; GitHub App user tokens
expire after eight hours and do carry one. Both shapes are handled.

Scope reference: https://docs.github.com/en/apps/oauth-apps/building-oauth-apps/scopes-for-oauth-apps
"""

from datetime import datetime, timedelta
from typing import Any

import httpx
from pydantic import SecretStr

from coreason_auth.exceptions import UpstreamProviderError
from coreason_auth.models import ProviderUser, utcnow
from coreason_auth.providers.oauth2 import (
    GenericOAuth2AuthenticationProvider,
    GenericOAuth2AuthorizationProvider,
    OAuth2HTTPMixin,
)
from coreason_auth.transport import safe_json_fetch
from coreason_auth.utils.logger import logger

GITHUB_AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"
GITHUB_USER_URL = "https://api.github.com/user"
GITHUB_EMAILS_URL = "https://api.github.com/user/emails"

# Stand-in expiry for tokens GitHub never expires
NON_EXPIRING_TOKEN_LIFETIME = timedelta(days=365)


class GitHubMixin(OAuth2HTTPMixin):
    name = "github"
    authorize_url = GITHUB_AUTHORIZE_URL
    token_url = GITHUB_TOKEN_URL
    userinfo_url = GITHUB_USER_URL
    # /user/emails needs the user:email scope, which account links may not request
    emails_required = True

    def _expires_at(self, data: dict[str, Any]) -> datetime:
        if "expires_in" not in data:
            return utcnow() + NON_EXPIRING_TOKEN_LIFETIME
        return super()._expires_at(data)

    async def _fetch_user(self, access_token: str) -> ProviderUser:
        headers = {"Authorization": f"Bearer {access_token}", "Accept": "application/vnd.github+json"}
        client = self._get_client()

        data = await safe_json_fetch(client, GITHUB_USER_URL, provider=self.name, headers=headers)
        if not isinstance(data, dict) or "id" not in data:
            raise UpstreamProviderError("Malformed user profile from github", provider=self.name)

        # The profile email is only the public one; the primary address needs the emails endpoint
        try:
            emails = await safe_json_fetch(client, GITHUB_EMAILS_URL, provider=self.name, headers=headers)
        except UpstreamProviderError as e:
            if self.emails_required:
                raise
            logger.debug(f"Skipping github primary email lookup: {e}")
            emails = None
        primary = None
        if isinstance(emails, list):
            primary = next((m.get("email") for m in emails if isinstance(m, dict) and m.get("primary")), None)

        return ProviderUser(account_id=str(data["id"]), email=primary or data.get("email"))


class GitHubAuthenticationProvider(GitHubMixin, GenericOAuth2AuthenticationProvider):
    """Sign in with GitHub (``read:user`` and ``user:email``)."""

    def __init__(
        self,
        client_id: str,
        client_secret: str | SecretStr,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        super().__init__(client_id, client_secret, scopes=["read:user", "user:email"], client=client, timeout=timeout)


class GitHubAuthorizationProvider(GitHubMixin, GenericOAuth2AuthorizationProvider):
    """Link a GitHub account with extra scopes (``repo``, ``read:org``, ``workflow``, ...)."""

    emails_required = False

    def __init__(
        self,
        client_id: str,
        client_secret: str | SecretStr,
        scopes: list[str],
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        super().__init__(client_id, client_secret, scopes=scopes, client=client, timeout=timeout)

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
Google OAuth2 providers.

Scope reference: https://developers.google.com/identity/protocols/oauth2/scopes
"""

import httpx
from pydantic import SecretStr

from coreason_auth.providers.oauth2 import GenericOAuth2AuthenticationProvider, GenericOAuth2AuthorizationProvider

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v1/userinfo"

GOOGLE_SIGN_IN_SCOPES = [
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]


class GoogleAuthenticationProvider(GenericOAuth2AuthenticationProvider):
    """Sign in with Google. Requests offline access so a refresh token is issued."""

    name = "google"
    authorize_url = GOOGLE_AUTHORIZE_URL
    token_url = GOOGLE_TOKEN_URL
    userinfo_url = GOOGLE_USERINFO_URL

    def __init__(
        self,
        client_id: str,
        client_secret: str | SecretStr,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        super().__init__(
            client_id,
            client_secret,
            scopes=list(GOOGLE_SIGN_IN_SCOPES),
            authorize_params={"access_type": "offline", "prompt": "select_account"},
            client=client,
            timeout=timeout,
        )


class GoogleAuthorizationProvider(GenericOAuth2AuthorizationProvider):
    """
    Link a Google account with extra scopes (Gmail, Drive, Calendar, ...).

    ``prompt=consent`` forces Google to re-issue a refresh token on every link.
    """

    name = "google"
    authorize_url = GOOGLE_AUTHORIZE_URL
    token_url = GOOGLE_TOKEN_URL
    userinfo_url = GOOGLE_USERINFO_URL

    def __init__(
        self,
        client_id: str,
        client_secret: str | SecretStr,
        scopes: list[str],
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        super().__init__(
            client_id,
            client_secret,
            scopes=scopes,
            authorize_params={"access_type": "offline", "prompt": "consent"},
            client=client,
            timeout=timeout,
        )

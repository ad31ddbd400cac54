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
Stub providers and record builders shared by the tests.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any
from unittest.mock import AsyncMock

from pydantic import SecretStr

from coreason_auth.models import OAuth2Account, ProviderUser, RefreshedTokenSet, TokenSet, utcnow
from coreason_auth.providers import create_oauth2_authentication_provider, create_oauth2_authorization_provider

AUTH_URL = "https://app.example.com"


@dataclass
class StubOAuth2:
    """An OAuth2 provider whose operations are AsyncMocks."""

    name: str
    get_url: AsyncMock = field(default_factory=AsyncMock)
    get_token: AsyncMock = field(default_factory=AsyncMock)
    get_user: AsyncMock = field(default_factory=AsyncMock)
    refresh_token: AsyncMock = field(default_factory=AsyncMock)
    provider: Any = None

    def returns(
        self, account_id: str, email: str | None, access_token: str = "at1", refresh_token: str = "rt1"
    ) -> None:
        self.get_url.side_effect = lambda redirect_uri, state: f"https://{self.name}.test/consent?state={state}"
        self.get_token.return_value = TokenSet(
            access_token=SecretStr(access_token),
            refresh_token=SecretStr(refresh_token),
            expires_at=utcnow() + timedelta(seconds=3600),
        )
        self.get_user.return_value = ProviderUser(account_id=account_id, email=email)
        self.refresh_token.return_value = RefreshedTokenSet(
            access_token=SecretStr("at2"), expires_at=utcnow() + timedelta(seconds=3600)
        )


def make_authentication_stub(name: str, account_id: str = "g-1", email: str | None = "a@example.com") -> StubOAuth2:
    stub = StubOAuth2(name)
    stub.returns(account_id, email)
    stub.provider = create_oauth2_authentication_provider(
        get_authentication_url=stub.get_url,
        get_token=stub.get_token,
        get_user=stub.get_user,
        refresh_token=stub.refresh_token,
    )
    return stub


def make_authorization_stub(name: str, account_id: str = "gh-1") -> StubOAuth2:
    stub = StubOAuth2(name)
    stub.returns(account_id, None)
    stub.provider = create_oauth2_authorization_provider(
        get_authorization_url=stub.get_url,
        get_token=stub.get_token,
        get_user=stub.get_user,
        refresh_token=stub.refresh_token,
    )
    return stub


def make_account(
    user_id: str = "user-1",
    provider: str = "google",
    account_id: str = "g-1",
    expires_in: timedelta = timedelta(hours=1),
    refresh_token: str = "rt1",
) -> OAuth2Account:
    return OAuth2Account(
        user_id=user_id,
        provider=provider,
        account_id=account_id,
        access_token=SecretStr("at1"),
        refresh_token=SecretStr(refresh_token),
        expires_at=utcnow() + expires_in,
    )

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
Data models for the coreason-auth package.

All records are frozen: the core never mutates a record in place, it asks the database
provider for an updated copy. Credential material is held in ``SecretStr`` so it is
redacted from ``repr`` and logs.
"""

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, SecretStr


def utcnow() -> datetime:
    """Current instant as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


class ProviderMethod(StrEnum):
    OAUTH2 = "oauth2"
    MAGIC_LINK = "magiclink"
    API_KEY = "apikey"


class FlowMethod(StrEnum):
    """First path segment of a provider callback: ``/auth/{method}/{provider}``."""

    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"


class AccountKind(StrEnum):
    OAUTH2_AUTHENTICATION = "oauth2_authentication"
    OAUTH2_AUTHORIZATION = "oauth2_authorization"
    API_KEY = "api_key"


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class User(_Record):
    """Identity anchor. Email is the natural lookup key for OAuth2-authenticated identities."""

    id: str
    email: str


class Session(_Record):
    """
    Time-bounded proof of identity held by a client.

    Attributes:
        key (str): Opaque bearer value, stored in the session cookie.
        user_id (str): Owning user.
        expires_at (datetime): Absolute expiry instant.
    """

    key: str = Field(..., repr=False)
    user_id: str
    expires_at: AwareDatetime

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at <= (now or utcnow())


class AccountKey(_Record):
    """Composite identity of a linked account."""

    user_id: str
    provider: str
    account_id: str


class OAuth2Account(_Record):
    """
    A user's binding to an OAuth2 provider identity, with its token material.

    Used for both the authentication and the authorization account kinds.
    """

    user_id: str
    provider: str
    account_id: str
    access_token: SecretStr
    refresh_token: SecretStr
    expires_at: AwareDatetime

    @property
    def key(self) -> AccountKey:
        return AccountKey(user_id=self.user_id, provider=self.provider, account_id=self.account_id)

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at <= (now or utcnow())


class ApiKeyAccount(_Record):
    """A user's binding to an API-key provider identity."""

    user_id: str
    provider: str
    account_id: str
    api_key: SecretStr

    @property
    def key(self) -> AccountKey:
        return AccountKey(user_id=self.user_id, provider=self.provider, account_id=self.account_id)


class LinkedAccountSummary(_Record):
    """Credential-free projection of a linked account."""

    provider: str
    account_id: str


class _PendingRequest(_Record):
    token: str = Field(..., repr=False)
    expires_at: AwareDatetime

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at <= (now or utcnow())


class OAuth2AuthenticationRequest(_PendingRequest):
    """Pending sign-in; `token` doubles as the OAuth2 `state`."""

    callback_url: str


class OAuth2AuthorizationRequest(_PendingRequest):
    """Pending account link for an already known user."""

    user_id: str
    callback_url: str


class MagicLinkRequest(_PendingRequest):
    """Pending magic-link sign-in for an email address."""

    email: str


class SessionWithAccounts(_Record):
    """A session together with every account linked to its user, as returned by storage."""

    session: Session
    oauth2_authentication_accounts: list[OAuth2Account] = Field(default_factory=list)
    oauth2_authorization_accounts: list[OAuth2Account] = Field(default_factory=list)
    api_key_accounts: list[ApiKeyAccount] = Field(default_factory=list)


class ResolvedSession(_Record):
    """
    A live session as handed to application code.

    Linked accounts are projected to provider/account id only; credentials are never re-exposed.
    """

    key: str = Field(..., repr=False)
    user_id: str
    expires_at: AwareDatetime
    oauth2_authentication_accounts: list[LinkedAccountSummary] = Field(default_factory=list)
    oauth2_authorization_accounts: list[LinkedAccountSummary] = Field(default_factory=list)
    api_key_accounts: list[LinkedAccountSummary] = Field(default_factory=list)


class TokenSet(BaseModel):
    """
    Tokens returned by an authorization-code exchange.

    Attributes:
        access_token (str): The access token.
        refresh_token (str): The refresh token; empty for providers that never issue one.
        expires_at (datetime): When the access token expires.
    """

    model_config = ConfigDict(frozen=True)

    access_token: SecretStr
    refresh_token: SecretStr = SecretStr("")
    expires_at: AwareDatetime


class RefreshedTokenSet(BaseModel):
    """Tokens returned by a refresh. Providers are not required to rotate the refresh token."""

    model_config = ConfigDict(frozen=True)

    access_token: SecretStr
    refresh_token: SecretStr | None = None
    expires_at: AwareDatetime


class ProviderUser(BaseModel):
    """The provider-side identity behind a token or API key."""

    model_config = ConfigDict(frozen=True)

    account_id: str
    email: str | None = None

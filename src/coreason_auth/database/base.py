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
Persistence contract consumed by the orchestrator.

The core owns no storage; every record lives behind a `DatabaseProvider`. Lookups of requests
and accounts raise a `RecordNotFoundError` subclass when nothing matches, and creates raise
`DuplicateRecordError` when the insert produced no row. `get_user` and `get_session` return
`None` instead, since absence is an expected outcome there.
"""

from datetime import datetime
from typing import Protocol, runtime_checkable

from pydantic import SecretStr

from coreason_auth.models import (
    ApiKeyAccount,
    MagicLinkRequest,
    OAuth2Account,
    OAuth2AuthenticationRequest,
    OAuth2AuthorizationRequest,
    Session,
    SessionWithAccounts,
    User,
)


@runtime_checkable
class DatabaseProvider(Protocol):
    # Pending requests
    async def create_oauth2_authentication_request(
        self, *, token: str, callback_url: str, expires_at: datetime
    ) -> OAuth2AuthenticationRequest: ...

    async def get_oauth2_authentication_request(self, token: str) -> OAuth2AuthenticationRequest: ...

    async def delete_oauth2_authentication_request(self, token: str) -> None: ...

    async def create_oauth2_authorization_request(
        self, *, token: str, user_id: str, callback_url: str, expires_at: datetime
    ) -> OAuth2AuthorizationRequest: ...

    async def get_oauth2_authorization_request(self, token: str) -> OAuth2AuthorizationRequest: ...

    async def delete_oauth2_authorization_request(self, token: str) -> None: ...

    async def create_magic_link_request(self, *, token: str, email: str, expires_at: datetime) -> MagicLinkRequest: ...

    async def get_magic_link_request(self, token: str) -> MagicLinkRequest: ...

    async def delete_magic_link_request(self, token: str) -> None: ...

    # Users and sessions
    async def get_user(self, email: str) -> User | None: ...

    async def create_user(self, email: str) -> User: ...

    async def create_session(self, user_id: str, expires_at: datetime) -> Session:
        """Creates a session; the storage layer generates its opaque key."""
        ...

    async def get_session(self, key: str) -> SessionWithAccounts | None:
        """Returns the session with every account linked to its user, expired or not."""
        ...

    async def delete_session(self, key: str) -> None: ...

    # OAuth2 authentication accounts
    async def get_oauth2_authentication_account(
        self, user_id: str, provider: str, account_id: str
    ) -> OAuth2Account: ...

    async def create_oauth2_authentication_account(self, account: OAuth2Account) -> OAuth2Account: ...

    async def update_oauth2_authentication_account(
        self,
        user_id: str,
        provider: str,
        account_id: str,
        *,
        access_token: SecretStr,
        refresh_token: SecretStr,
        expires_at: datetime,
    ) -> OAuth2Account: ...

    async def delete_oauth2_authentication_account(self, user_id: str, provider: str, account_id: str) -> None: ...

    # OAuth2 authorization accounts
    async def get_oauth2_authorization_account(self, user_id: str, provider: str, account_id: str) -> OAuth2Account: ...

    async def create_oauth2_authorization_account(self, account: OAuth2Account) -> OAuth2Account: ...

    async def update_oauth2_authorization_account(
        self,
        user_id: str,
        provider: str,
        account_id: str,
        *,
        access_token: SecretStr,
        refresh_token: SecretStr,
        expires_at: datetime,
    ) -> OAuth2Account: ...

    async def delete_oauth2_authorization_account(self, user_id: str, provider: str, account_id: str) -> None: ...

    # API-key accounts
    async def create_api_key_account(self, account: ApiKeyAccount) -> ApiKeyAccount: ...

    async def delete_api_key_account(self, user_id: str, provider: str, account_id: str) -> None: ...

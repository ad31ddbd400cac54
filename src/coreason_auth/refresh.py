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
Refresh-then-revoke for OAuth2 linked accounts.

A refresh either persists the new token material or, when the provider refuses, deletes the
account before the original error is re-raised. Refreshes of the same account are single-flight
within the process.
"""

from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from datetime import datetime

import anyio
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import SecretStr

from coreason_auth.database.base import DatabaseProvider
from coreason_auth.exceptions import AccountNotFoundError, ProviderNotConfiguredError, UnsupportedFlowError
from coreason_auth.models import AccountKind, OAuth2Account
from coreason_auth.providers.base import OAuth2AuthenticationProvider, OAuth2AuthorizationProvider
from coreason_auth.utils.logger import anonymize, logger

tracer = trace.get_tracer(__name__)

LockKey = tuple[AccountKind, str, str, str]


class TokenRefresher:
    """
    Refreshes stored OAuth2 tokens for both OAuth2 account kinds.

    Args:
        database: The persistence backend.
        authentication_providers: OAuth2 sign-in providers by key.
        authorization_providers: OAuth2 account-linking providers by key.
        pii_salt: Salt used to anonymize user ids in logs and spans.
    """

    def __init__(
        self,
        database: DatabaseProvider,
        authentication_providers: Mapping[str, OAuth2AuthenticationProvider],
        authorization_providers: Mapping[str, OAuth2AuthorizationProvider],
        pii_salt: SecretStr,
    ) -> None:
        self.database = database
        self.authentication_providers = authentication_providers
        self.authorization_providers = authorization_providers
        self.pii_salt = pii_salt
        self._locks: dict[LockKey, anyio.Lock] = {}
        self._lock_users: dict[LockKey, int] = {}

    @asynccontextmanager
    async def _account_lock(self, key: LockKey) -> AsyncIterator[None]:
        if key not in self._locks:
            self._locks[key] = anyio.Lock()
            self._lock_users[key] = 0
        self._lock_users[key] += 1
        try:
            async with self._locks[key]:
                yield
        finally:
            self._lock_users[key] -= 1
            if self._lock_users[key] == 0:
                del self._locks[key]
                del self._lock_users[key]

    def _get_provider(
        self, kind: AccountKind, provider: str
    ) -> OAuth2AuthenticationProvider | OAuth2AuthorizationProvider:
        providers: Mapping[str, OAuth2AuthenticationProvider] | Mapping[str, OAuth2AuthorizationProvider]
        match kind:
            case AccountKind.OAUTH2_AUTHENTICATION:
                providers = self.authentication_providers
            case AccountKind.OAUTH2_AUTHORIZATION:
                providers = self.authorization_providers
            case _:
                raise UnsupportedFlowError(f"Accounts of kind {kind} hold no refreshable token")
        if provider not in providers:
            raise ProviderNotConfiguredError(f"No {kind} provider registered as '{provider}'")
        return providers[provider]

    async def _get_account(self, kind: AccountKind, user_id: str, provider: str, account_id: str) -> OAuth2Account:
        match kind:
            case AccountKind.OAUTH2_AUTHENTICATION:
                return await self.database.get_oauth2_authentication_account(user_id, provider, account_id)
            case AccountKind.OAUTH2_AUTHORIZATION:
                return await self.database.get_oauth2_authorization_account(user_id, provider, account_id)
            case _:
                raise UnsupportedFlowError(f"Accounts of kind {kind} hold no refreshable token")

    async def _update_account(
        self,
        account: OAuth2Account,
        kind: AccountKind,
        access_token: SecretStr,
        refresh_token: SecretStr,
        expires_at: datetime,
    ) -> OAuth2Account:
        if kind is AccountKind.OAUTH2_AUTHENTICATION:
            update = self.database.update_oauth2_authentication_account
        else:
            update = self.database.update_oauth2_authorization_account
        return await update(
            account.user_id,
            account.provider,
            account.account_id,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
        )

    async def _delete_account(self, kind: AccountKind, user_id: str, provider: str, account_id: str) -> None:
        match kind:
            case AccountKind.OAUTH2_AUTHENTICATION:
                await self.database.delete_oauth2_authentication_account(user_id, provider, account_id)
            case AccountKind.OAUTH2_AUTHORIZATION:
                await self.database.delete_oauth2_authorization_account(user_id, provider, account_id)
            case _:
                raise UnsupportedFlowError(f"Accounts of kind {kind} are not managed by the refresher")

    async def delete_account(self, kind: AccountKind, provider: str, account_id: str, user_id: str) -> None:
        """
        Deletes a linked OAuth2 account, waiting for any in-flight refresh of it to finish first.

        Raises:
            AccountNotFoundError: If no such account exists.
        """
        async with self._account_lock((kind, user_id, provider, account_id)):
            await self._delete_account(kind, user_id, provider, account_id)

    async def refresh_account_token(
        self,
        kind: AccountKind,
        provider: str,
        account_id: str,
        user_id: str,
        *,
        only_if_expired: bool = False,
    ) -> OAuth2Account:
        """
        Refreshes the tokens of one linked OAuth2 account.

        Args:
            kind: Which OAuth2 account kind to refresh.
            provider: Provider key the account is linked through.
            account_id: The provider-side account id.
            user_id: Owning user.
            only_if_expired: Skip the provider call when the stored token is still valid once the
                account lock is held (another caller refreshed it first).

        Returns:
            OAuth2Account: The account as stored after the refresh.

        Raises:
            AccountNotFoundError: If no such account exists.
            ProviderNotConfiguredError: If `provider` is not registered for `kind`.
            Exception: Whatever the provider's refresh raised; the account is deleted first.
        """
        with tracer.start_as_current_span("refresh_account_token") as span:
            span.set_attribute("auth.provider", provider)
            span.set_attribute("auth.account_kind", str(kind))
            span.set_attribute("enduser.id", anonymize(user_id, self.pii_salt))

            async with self._account_lock((kind, user_id, provider, account_id)):
                account = await self._get_account(kind, user_id, provider, account_id)
                if only_if_expired and not account.is_expired():
                    span.set_attribute("auth.refresh_skipped", True)
                    return account

                oauth2_provider = self._get_provider(kind, provider)
                try:
                    refreshed = await oauth2_provider.refresh_token(account.refresh_token.get_secret_value())
                except Exception as e:
                    logger.warning(f"Refresh failed for {kind} account on '{provider}', revoking link: {e}")
                    span.record_exception(e)
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    try:
                        await self._delete_account(kind, user_id, provider, account_id)
                    except AccountNotFoundError:
                        logger.debug(f"{kind} account on '{provider}' was already removed")
                    raise

                updated = await self._update_account(
                    account,
                    kind,
                    access_token=refreshed.access_token,
                    refresh_token=refreshed.refresh_token or account.refresh_token,
                    expires_at=refreshed.expires_at,
                )
                logger.debug(f"Refreshed {kind} token on '{provider}', valid until {updated.expires_at.isoformat()}")
                span.set_status(Status(StatusCode.OK))
                return updated

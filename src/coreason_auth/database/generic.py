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
A `DatabaseProvider` written once over a minimal entity-store capability.

Backends implement only `EntityStore` (insert, get, update, delete and find, each parameterised
by `EntityKind`); primary keys, uniqueness and the record shapes are handled here.
"""

import uuid
from collections.abc import Mapping
from datetime import datetime
from enum import StrEnum
from typing import Any, Protocol, TypeVar, runtime_checkable

from authlib.common.security import generate_token
from pydantic import BaseModel, SecretStr

from coreason_auth.exceptions import (
    AccountNotFoundError,
    DuplicateRecordError,
    RecordNotFoundError,
    RequestNotFoundError,
)
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

SESSION_KEY_LENGTH = 48

Key = tuple[str, ...]
Row = dict[str, Any]
ModelT = TypeVar("ModelT", bound=BaseModel)


class EntityKind(StrEnum):
    USER = "user"
    SESSION = "session"
    OAUTH2_AUTHENTICATION_REQUEST = "oauth2_authentication_request"
    OAUTH2_AUTHORIZATION_REQUEST = "oauth2_authorization_request"
    MAGIC_LINK_REQUEST = "magic_link_request"
    OAUTH2_AUTHENTICATION_ACCOUNT = "oauth2_authentication_account"
    OAUTH2_AUTHORIZATION_ACCOUNT = "oauth2_authorization_account"
    API_KEY_ACCOUNT = "api_key_account"


# Fields forming the primary key of each kind, in key-tuple order
PRIMARY_KEYS: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.USER: ("id",),
    EntityKind.SESSION: ("key",),
    EntityKind.OAUTH2_AUTHENTICATION_REQUEST: ("token",),
    EntityKind.OAUTH2_AUTHORIZATION_REQUEST: ("token",),
    EntityKind.MAGIC_LINK_REQUEST: ("token",),
    EntityKind.OAUTH2_AUTHENTICATION_ACCOUNT: ("user_id", "provider", "account_id"),
    EntityKind.OAUTH2_AUTHORIZATION_ACCOUNT: ("user_id", "provider", "account_id"),
    EntityKind.API_KEY_ACCOUNT: ("user_id", "provider", "account_id"),
}

UNIQUE_FIELDS: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.USER: ("email",),
}


@runtime_checkable
class EntityStore(Protocol):
    """
    Storage capability a backend must provide.

    Rows are plain dicts. Implementations return copies so callers can never mutate stored state.
    """

    async def insert(self, kind: EntityKind, key: Key, row: Row, unique: tuple[str, ...] = ()) -> bool:
        """Inserts `row`; returns False (and stores nothing) if `key` or any `unique` field collides."""
        ...

    async def get(self, kind: EntityKind, key: Key) -> Row | None: ...

    async def update(self, kind: EntityKind, key: Key, changes: Mapping[str, Any]) -> Row | None:
        """Applies `changes` and returns the updated row, or None if `key` does not exist."""
        ...

    async def delete(self, kind: EntityKind, key: Key) -> bool: ...

    async def find(self, kind: EntityKind, **filters: Any) -> list[Row]:
        """Returns every row whose fields equal all of `filters`."""
        ...


def key_of(kind: EntityKind, row: Mapping[str, Any]) -> Key:
    return tuple(str(row[field]) for field in PRIMARY_KEYS[kind])


class GenericDatabaseProvider:
    """
    Implements the full `DatabaseProvider` contract on top of any `EntityStore`.

    Args:
        store: The backend capability.
    """

    def __init__(self, store: EntityStore) -> None:
        self.store = store

    async def _insert(self, kind: EntityKind, model: ModelT) -> ModelT:
        row = model.model_dump()
        if not await self.store.insert(kind, key_of(kind, row), row, UNIQUE_FIELDS.get(kind, ())):
            raise DuplicateRecordError(f"A {kind} with the same key already exists")
        return model

    async def _get(
        self, kind: EntityKind, key: Key, model: type[ModelT], error: type[RecordNotFoundError]
    ) -> ModelT:
        row = await self.store.get(kind, key)
        if row is None:
            raise error(f"No {kind} found")
        return model.model_validate(row)

    async def _delete(self, kind: EntityKind, key: Key, error: type[RecordNotFoundError]) -> None:
        if not await self.store.delete(kind, key):
            raise error(f"No {kind} found")

    # Pending requests

    async def create_oauth2_authentication_request(
        self, *, token: str, callback_url: str, expires_at: datetime
    ) -> OAuth2AuthenticationRequest:
        request = OAuth2AuthenticationRequest(token=token, callback_url=callback_url, expires_at=expires_at)
        return await self._insert(EntityKind.OAUTH2_AUTHENTICATION_REQUEST, request)

    async def get_oauth2_authentication_request(self, token: str) -> OAuth2AuthenticationRequest:
        return await self._get(
            EntityKind.OAUTH2_AUTHENTICATION_REQUEST, (token,), OAuth2AuthenticationRequest, RequestNotFoundError
        )

    async def delete_oauth2_authentication_request(self, token: str) -> None:
        await self._delete(EntityKind.OAUTH2_AUTHENTICATION_REQUEST, (token,), RequestNotFoundError)

    async def create_oauth2_authorization_request(
        self, *, token: str, user_id: str, callback_url: str, expires_at: datetime
    ) -> OAuth2AuthorizationRequest:
        request = OAuth2AuthorizationRequest(
            token=token, user_id=user_id, callback_url=callback_url, expires_at=expires_at
        )
        return await self._insert(EntityKind.OAUTH2_AUTHORIZATION_REQUEST, request)

    async def get_oauth2_authorization_request(self, token: str) -> OAuth2AuthorizationRequest:
        return await self._get(
            EntityKind.OAUTH2_AUTHORIZATION_REQUEST, (token,), OAuth2AuthorizationRequest, RequestNotFoundError
        )

    async def delete_oauth2_authorization_request(self, token: str) -> None:
        await self._delete(EntityKind.OAUTH2_AUTHORIZATION_REQUEST, (token,), RequestNotFoundError)

    async def create_magic_link_request(self, *, token: str, email: str, expires_at: datetime) -> MagicLinkRequest:
        request = MagicLinkRequest(token=token, email=email, expires_at=expires_at)
        return await self._insert(EntityKind.MAGIC_LINK_REQUEST, request)

    async def get_magic_link_request(self, token: str) -> MagicLinkRequest:
        return await self._get(EntityKind.MAGIC_LINK_REQUEST, (token,), MagicLinkRequest, RequestNotFoundError)

    async def delete_magic_link_request(self, token: str) -> None:
        await self._delete(EntityKind.MAGIC_LINK_REQUEST, (token,), RequestNotFoundError)

    # Users and sessions

    async def get_user(self, email: str) -> User | None:
        rows = await self.store.find(EntityKind.USER, email=email)
        return User.model_validate(rows[0]) if rows else None

    async def create_user(self, email: str) -> User:
        return await self._insert(EntityKind.USER, User(id=str(uuid.uuid4()), email=email))

    async def create_session(self, user_id: str, expires_at: datetime) -> Session:
        session = Session(key=generate_token(SESSION_KEY_LENGTH), user_id=user_id, expires_at=expires_at)
        return await self._insert(EntityKind.SESSION, session)

    async def get_session(self, key: str) -> SessionWithAccounts | None:
        row = await self.store.get(EntityKind.SESSION, (key,))
        if row is None:
            return None
        session = Session.model_validate(row)
        user_id = session.user_id
        return SessionWithAccounts(
            session=session,
            oauth2_authentication_accounts=[
                OAuth2Account.model_validate(r)
                for r in await self.store.find(EntityKind.OAUTH2_AUTHENTICATION_ACCOUNT, user_id=user_id)
            ],
            oauth2_authorization_accounts=[
                OAuth2Account.model_validate(r)
                for r in await self.store.find(EntityKind.OAUTH2_AUTHORIZATION_ACCOUNT, user_id=user_id)
            ],
            api_key_accounts=[
                ApiKeyAccount.model_validate(r)
                for r in await self.store.find(EntityKind.API_KEY_ACCOUNT, user_id=user_id)
            ],
        )

    async def delete_session(self, key: str) -> None:
        await self.store.delete(EntityKind.SESSION, (key,))

    # Linked accounts

    async def _update_oauth2_account(
        self,
        kind: EntityKind,
        key: Key,
        access_token: SecretStr,
        refresh_token: SecretStr,
        expires_at: datetime,
    ) -> OAuth2Account:
        row = await self.store.update(
            kind, key, {"access_token": access_token, "refresh_token": refresh_token, "expires_at": expires_at}
        )
        if row is None:
            raise AccountNotFoundError(f"No {kind} found")
        return OAuth2Account.model_validate(row)

    async def get_oauth2_authentication_account(self, user_id: str, provider: str, account_id: str) -> OAuth2Account:
        return await self._get(
            EntityKind.OAUTH2_AUTHENTICATION_ACCOUNT,
            (user_id, provider, account_id),
            OAuth2Account,
            AccountNotFoundError,
        )

    async def create_oauth2_authentication_account(self, account: OAuth2Account) -> OAuth2Account:
        return await self._insert(EntityKind.OAUTH2_AUTHENTICATION_ACCOUNT, account)

    async def update_oauth2_authentication_account(
        self,
        user_id: str,
        provider: str,
        account_id: str,
        *,
        access_token: SecretStr,
        refresh_token: SecretStr,
        expires_at: datetime,
    ) -> OAuth2Account:
        return await self._update_oauth2_account(
            EntityKind.OAUTH2_AUTHENTICATION_ACCOUNT,
            (user_id, provider, account_id),
            access_token,
            refresh_token,
            expires_at,
        )

    async def delete_oauth2_authentication_account(self, user_id: str, provider: str, account_id: str) -> None:
        await self._delete(
            EntityKind.OAUTH2_AUTHENTICATION_ACCOUNT, (user_id, provider, account_id), AccountNotFoundError
        )

    async def get_oauth2_authorization_account(self, user_id: str, provider: str, account_id: str) -> OAuth2Account:
        return await self._get(
            EntityKind.OAUTH2_AUTHORIZATION_ACCOUNT,
            (user_id, provider, account_id),
            OAuth2Account,
            AccountNotFoundError,
        )

    async def create_oauth2_authorization_account(self, account: OAuth2Account) -> OAuth2Account:
        return await self._insert(EntityKind.OAUTH2_AUTHORIZATION_ACCOUNT, account)

    async def update_oauth2_authorization_account(
        self,
        user_id: str,
        provider: str,
        account_id: str,
        *,
        access_token: SecretStr,
        refresh_token: SecretStr,
        expires_at: datetime,
    ) -> OAuth2Account:
        return await self._update_oauth2_account(
            EntityKind.OAUTH2_AUTHORIZATION_ACCOUNT,
            (user_id, provider, account_id),
            access_token,
            refresh_token,
            expires_at,
        )

    async def delete_oauth2_authorization_account(self, user_id: str, provider: str, account_id: str) -> None:
        await self._delete(
            EntityKind.OAUTH2_AUTHORIZATION_ACCOUNT, (user_id, provider, account_id), AccountNotFoundError
        )

    async def create_api_key_account(self, account: ApiKeyAccount) -> ApiKeyAccount:
        return await self._insert(EntityKind.API_KEY_ACCOUNT, account)

    async def delete_api_key_account(self, user_id: str, provider: str, account_id: str) -> None:
        await self._delete(EntityKind.API_KEY_ACCOUNT, (user_id, provider, account_id), AccountNotFoundError)

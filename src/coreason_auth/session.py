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
Session resolution: validate a session key, lazily refresh stale linked tokens, project the result.
"""

from collections.abc import Sequence

import anyio
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from coreason_auth.database.base import DatabaseProvider
from coreason_auth.models import AccountKind, ApiKeyAccount, LinkedAccountSummary, OAuth2Account, ResolvedSession
from coreason_auth.refresh import TokenRefresher
from coreason_auth.utils.logger import logger

tracer = trace.get_tracer(__name__)


def _summaries(accounts: Sequence[OAuth2Account | ApiKeyAccount]) -> list[LinkedAccountSummary]:
    return [LinkedAccountSummary(provider=a.provider, account_id=a.account_id) for a in accounts]


class SessionResolver:
    def __init__(self, database: DatabaseProvider, refresher: TokenRefresher) -> None:
        self.database = database
        self.refresher = refresher

    async def _refresh_stale_accounts(self, stale: list[tuple[AccountKind, OAuth2Account]]) -> None:
        """Refreshes every stale account concurrently and re-raises the first failure once all are done."""
        errors: list[Exception] = []

        async def _refresh(kind: AccountKind, account: OAuth2Account) -> None:
            try:
                await self.refresher.refresh_account_token(
                    kind, account.provider, account.account_id, account.user_id, only_if_expired=True
                )
            except Exception as e:
                errors.append(e)

        async with anyio.create_task_group() as tg:
            for kind, account in stale:
                tg.start_soon(_refresh, kind, account)

        if errors:
            if len(errors) > 1:
                logger.warning(f"{len(errors)} linked accounts failed to refresh; raising the first")
            raise errors[0]

    async def resolve_session(self, key: str | None) -> tuple[ResolvedSession | None, bool]:
        """
        Resolves a session key into a live session.

        Args:
            key: The session key held by the client, if any.

        Returns:
            tuple[ResolvedSession | None, bool]: The session (None when absent or expired) and
            whether the caller must clear the client-held credential.

        Raises:
            Exception: The first error raised while refreshing an expired linked account.
        """
        with tracer.start_as_current_span("resolve_session") as span:
            if not key:
                return None, False

            record = await self.database.get_session(key)
            if record is None:
                span.set_attribute("auth.session_found", False)
                return None, False

            session = record.session
            if session.is_expired():
                logger.info("Session expired; instructing client to clear its credential")
                span.set_attribute("auth.session_expired", True)
                return None, True

            stale = [(AccountKind.OAUTH2_AUTHENTICATION, a) for a in record.oauth2_authentication_accounts]
            stale += [(AccountKind.OAUTH2_AUTHORIZATION, a) for a in record.oauth2_authorization_accounts]
            stale = [(kind, a) for kind, a in stale if a.is_expired()]
            if stale:
                span.set_attribute("auth.stale_accounts", len(stale))
                try:
                    await self._refresh_stale_accounts(stale)
                except Exception as e:
                    span.record_exception(e)
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    raise

            return (
                ResolvedSession(
                    key=session.key,
                    user_id=session.user_id,
                    expires_at=session.expires_at,
                    oauth2_authentication_accounts=_summaries(record.oauth2_authentication_accounts),
                    oauth2_authorization_accounts=_summaries(record.oauth2_authorization_accounts),
                    api_key_accounts=_summaries(record.api_key_accounts),
                ),
                False,
            )

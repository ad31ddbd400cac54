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
AuthManager: the flow orchestrator tying providers, storage and sessions together.
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from authlib.common.security import generate_token
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import SecretStr

from coreason_auth.config import CoreasonAuthConfig
from coreason_auth.database.base import DatabaseProvider
from coreason_auth.exceptions import (
    AccountNotFoundError,
    CoreasonAuthError,
    DuplicateRecordError,
    MissingParameterError,
    ProviderNotConfiguredError,
    RequestExpiredError,
    UnsupportedFlowError,
    UpstreamProviderError,
)
from coreason_auth.models import (
    AccountKind,
    ApiKeyAccount,
    FlowMethod,
    MagicLinkRequest,
    OAuth2Account,
    OAuth2AuthenticationRequest,
    OAuth2AuthorizationRequest,
    ResolvedSession,
    User,
    utcnow,
)
from coreason_auth.providers.base import (
    ApiKeyProvider,
    MagicLinkProvider,
    OAuth2AuthenticationProvider,
    OAuth2AuthorizationProvider,
    Provider,
)
from coreason_auth.refresh import TokenRefresher
from coreason_auth.responses import AuthResponse, session_cookie, with_query_params
from coreason_auth.session import SessionResolver
from coreason_auth.utils.logger import anonymize, logger

tracer = trace.get_tracer(__name__)

STATE_TOKEN_LENGTH = 48

AuthenticationProvider = OAuth2AuthenticationProvider | MagicLinkProvider
AuthorizationProvider = OAuth2AuthorizationProvider | ApiKeyProvider

# Client-facing body for unsupported flows; the detail names providers and stays in the logs
UNSUPPORTED_FLOW_BODY = "Unsupported authentication flow"


class AuthManager:
    """
    Orchestrates sign-in, account linking, magic links, API keys and sessions.

    Handles provider resources via async context manager: leaving the context closes the
    HTTP clients the providers own.

    Args:
        config: The auth configuration.
        database: The persistence backend.
        authentication_providers: Providers that can sign a user in (OAuth2 or magic link), by key.
        authorization_providers: Providers that can be linked to a known user (OAuth2 or API key), by key.
    """

    def __init__(
        self,
        config: CoreasonAuthConfig,
        database: DatabaseProvider,
        authentication_providers: Mapping[str, AuthenticationProvider] | None = None,
        authorization_providers: Mapping[str, AuthorizationProvider] | None = None,
    ) -> None:
        self.config = config
        self.database = database
        self.authentication_providers = dict(authentication_providers or {})
        self.authorization_providers = dict(authorization_providers or {})

        self.refresher = TokenRefresher(
            database,
            {k: p for k, p in self.authentication_providers.items() if isinstance(p, OAuth2AuthenticationProvider)},
            {k: p for k, p in self.authorization_providers.items() if isinstance(p, OAuth2AuthorizationProvider)},
            pii_salt=config.pii_salt,
        )
        self.session_resolver = SessionResolver(database, self.refresher)

    async def __aenter__(self) -> "AuthManager":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        providers: list[Provider] = [*self.authentication_providers.values(), *self.authorization_providers.values()]
        seen: set[int] = set()
        for provider in providers:
            if id(provider) not in seen:
                seen.add(id(provider))
                await provider.aclose()

    # Helpers

    def _anon(self, value: str) -> str:
        return anonymize(value, self.config.pii_salt)

    def _get_authentication_provider(self, provider: str) -> AuthenticationProvider:
        if provider not in self.authentication_providers:
            raise ProviderNotConfiguredError(f"Authentication provider '{provider}' is not configured")
        return self.authentication_providers[provider]

    def _get_authorization_provider(self, provider: str) -> AuthorizationProvider:
        if provider not in self.authorization_providers:
            raise ProviderNotConfiguredError(f"Authorization provider '{provider}' is not configured")
        return self.authorization_providers[provider]

    def _redirect_uri(self, method: FlowMethod, provider: str) -> str:
        return f"{self.config.auth_url}/auth/{method}/{provider}"

    def _request_expires_at(self) -> datetime:
        return utcnow() + self.config.request_ttl

    async def _start_session(self, user: User, location: str) -> AuthResponse:
        session = await self.database.create_session(user.id, utcnow() + self.config.session_ttl)
        cookie = session_cookie(
            self.config.session_cookie_name, session.key, session.expires_at, secure=self.config.secure_cookies
        )
        return AuthResponse.redirect(location, set_cookie=cookie)

    async def _get_or_create_user(self, email: str) -> tuple[User, bool]:
        user = await self.database.get_user(email)
        if user is not None:
            return user, False
        try:
            user = await self.database.create_user(email)
        except DuplicateRecordError:
            # Lost a race with a concurrent first sign-in for the same email
            user = await self.database.get_user(email)
            if user is None:
                raise
            return user, False
        logger.info(f"Created user {self._anon(user.id)} for {self._anon(email)}")
        return user, True

    @staticmethod
    def _ensure_pending(
        request: OAuth2AuthenticationRequest | OAuth2AuthorizationRequest | MagicLinkRequest,
    ) -> None:
        if request.is_expired():
            raise RequestExpiredError(f"Pending request expired at {request.expires_at.isoformat()}")

    # Initiate

    async def sign_in(self, provider: str, callback_url: str) -> AuthResponse:
        """
        Starts an OAuth2 sign-in.

        Args:
            provider: Key of a registered OAuth2 authentication provider.
            callback_url: Where to send the user once signed in.

        Returns:
            AuthResponse: A redirect to the provider's consent screen.

        Raises:
            ProviderNotConfiguredError: If `provider` is not registered.
            UnsupportedFlowError: If `provider` is a magic-link provider.
        """
        with tracer.start_as_current_span("sign_in") as span:
            span.set_attribute("auth.provider", provider)
            match self._get_authentication_provider(provider):
                case OAuth2AuthenticationProvider() as oauth2_provider:
                    state = generate_token(STATE_TOKEN_LENGTH)
                    await self.database.create_oauth2_authentication_request(
                        token=state, callback_url=callback_url, expires_at=self._request_expires_at()
                    )
                    url = await oauth2_provider.get_authentication_url(
                        self._redirect_uri(FlowMethod.AUTHENTICATION, provider), state
                    )
                    return AuthResponse.redirect(url)
                case MagicLinkProvider():
                    raise UnsupportedFlowError(f"'{provider}' is a magic-link provider; use send_magic_link")
                case _:
                    raise UnsupportedFlowError(f"'{provider}' cannot start an OAuth2 sign-in")

    async def connect_authorization_account(self, provider: str, callback_url: str, user_id: str) -> AuthResponse:
        """
        Starts linking an OAuth2 account to a signed-in user.

        Raises:
            ProviderNotConfiguredError: If `provider` is not registered.
            UnsupportedFlowError: If `provider` is an API-key provider.
        """
        with tracer.start_as_current_span("connect_authorization_account") as span:
            span.set_attribute("auth.provider", provider)
            span.set_attribute("enduser.id", self._anon(user_id))
            match self._get_authorization_provider(provider):
                case OAuth2AuthorizationProvider() as oauth2_provider:
                    state = generate_token(STATE_TOKEN_LENGTH)
                    await self.database.create_oauth2_authorization_request(
                        token=state, user_id=user_id, callback_url=callback_url, expires_at=self._request_expires_at()
                    )
                    url = await oauth2_provider.get_authorization_url(
                        self._redirect_uri(FlowMethod.AUTHORIZATION, provider), state
                    )
                    return AuthResponse.redirect(url)
                case ApiKeyProvider():
                    raise UnsupportedFlowError(f"'{provider}' is an API-key provider; use save_api_key_account")
                case _:
                    raise UnsupportedFlowError(f"'{provider}' cannot start an OAuth2 account link")

    async def send_magic_link(self, provider: str, email: str) -> None:
        """
        Emails a single-use sign-in link.

        Raises:
            ProviderNotConfiguredError: If `provider` is not registered.
            UnsupportedFlowError: If `provider` is not a magic-link provider.
        """
        with tracer.start_as_current_span("send_magic_link") as span:
            span.set_attribute("auth.provider", provider)
            match self._get_authentication_provider(provider):
                case MagicLinkProvider() as magic_link_provider:
                    token = generate_token(STATE_TOKEN_LENGTH)
                    await self.database.create_magic_link_request(
                        token=token, email=email, expires_at=self._request_expires_at()
                    )
                    url = with_query_params(
                        f"{self.config.auth_url}/auth/authentication/magiclink/{provider}", token=token
                    )
                    await magic_link_provider.send_email(email, url)
                    logger.info(f"Magic link sent to {self._anon(email)} via '{provider}'")
                case OAuth2AuthenticationProvider():
                    raise UnsupportedFlowError(f"'{provider}' is an OAuth2 provider; use sign_in")
                case _:
                    raise UnsupportedFlowError(f"'{provider}' cannot send magic links")

    async def sign_out(self, redirect_to: str | None = None, session_key: str | None = None) -> AuthResponse:
        """
        Signs the client out by deleting its session cookie.

        The session record is deleted too when `revoke_session_on_sign_out` is enabled and the
        key is passed; otherwise it stays in storage until it expires.
        """
        with tracer.start_as_current_span("sign_out") as span:
            revoke = bool(self.config.revoke_session_on_sign_out and session_key)
            span.set_attribute("auth.session_revoked", revoke)
            if self.config.revoke_session_on_sign_out and session_key:
                await self.database.delete_session(session_key)
            return AuthResponse.redirect(
                redirect_to or self.config.sign_out_redirect, delete_cookie=self.config.session_cookie_name
            )

    # Complete

    async def complete_callback(
        self, method: FlowMethod | str, provider: str, code: str | None, state: str | None
    ) -> AuthResponse:
        """
        Completes an OAuth2 flow from the provider callback.

        The pending request is validated and consumed before the code exchange, so an unknown,
        replayed or expired `state` never reaches the provider.

        Args:
            method: `authentication` or `authorization`, from the callback path.
            provider: Provider key, from the callback path.
            code: The authorization code.
            state: The state token issued when the flow started.

        Returns:
            AuthResponse: A redirect to the request's callback URL (with a session cookie for sign-in).

        Raises:
            MissingParameterError: If `code` or `state` is missing.
            ProviderNotConfiguredError: If `provider` is not registered for `method`.
            UnsupportedFlowError: If the method or provider kind cannot complete through a callback.
            RequestNotFoundError: If no pending request matches `state`.
            RequestExpiredError: If the pending request has expired.
            UpstreamProviderError: If the provider fails.
            DuplicateRecordError: If the account is already linked.
        """
        if not code or not state:
            raise MissingParameterError("Missing code or state parameter")
        try:
            flow = FlowMethod(method)
        except ValueError as e:
            raise UnsupportedFlowError(f"Unknown callback method '{method}'") from e

        with tracer.start_as_current_span("complete_callback") as span:
            span.set_attribute("auth.provider", provider)
            span.set_attribute("auth.method", str(flow))
            try:
                match flow:
                    case FlowMethod.AUTHENTICATION:
                        match self._get_authentication_provider(provider):
                            case OAuth2AuthenticationProvider() as authn_provider:
                                response = await self._complete_authentication(provider, authn_provider, code, state)
                            case MagicLinkProvider():
                                raise UnsupportedFlowError("Magic link not yet supported")
                            case _:
                                raise UnsupportedFlowError(f"'{provider}' cannot complete a sign-in callback")
                    case FlowMethod.AUTHORIZATION:
                        match self._get_authorization_provider(provider):
                            case OAuth2AuthorizationProvider() as authz_provider:
                                response = await self._complete_authorization(provider, authz_provider, code, state)
                            case ApiKeyProvider():
                                raise UnsupportedFlowError(f"'{provider}' is an API-key provider")
                            case _:
                                raise UnsupportedFlowError(f"'{provider}' cannot complete a link callback")
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise
            span.set_status(Status(StatusCode.OK))
            return response

    async def _complete_authentication(
        self, provider: str, oauth2_provider: OAuth2AuthenticationProvider, code: str, state: str
    ) -> AuthResponse:
        request = await self.database.get_oauth2_authentication_request(state)
        await self.database.delete_oauth2_authentication_request(state)
        self._ensure_pending(request)

        tokens = await oauth2_provider.get_token(code, self._redirect_uri(FlowMethod.AUTHENTICATION, provider))
        provider_user = await oauth2_provider.get_user(tokens.access_token.get_secret_value())
        if not provider_user.email:
            raise UpstreamProviderError(f"'{provider}' returned no email address", provider=provider)

        user, created = await self._get_or_create_user(provider_user.email)
        account = OAuth2Account(
            user_id=user.id,
            provider=provider,
            account_id=provider_user.account_id,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=tokens.expires_at,
        )
        if created:
            await self.database.create_oauth2_authentication_account(account)
        elif self.config.link_returning_users:
            await self._upsert_authentication_account(account)

        logger.info(f"User {self._anon(user.id)} signed in with '{provider}'")
        return await self._start_session(user, request.callback_url)

    async def _upsert_authentication_account(self, account: OAuth2Account) -> None:
        try:
            await self.database.update_oauth2_authentication_account(
                account.user_id,
                account.provider,
                account.account_id,
                access_token=account.access_token,
                refresh_token=account.refresh_token,
                expires_at=account.expires_at,
            )
        except AccountNotFoundError:
            await self.database.create_oauth2_authentication_account(account)
            logger.info(f"Linked '{account.provider}' to returning user {self._anon(account.user_id)}")

    async def _complete_authorization(
        self, provider: str, oauth2_provider: OAuth2AuthorizationProvider, code: str, state: str
    ) -> AuthResponse:
        request = await self.database.get_oauth2_authorization_request(state)
        await self.database.delete_oauth2_authorization_request(state)
        self._ensure_pending(request)

        tokens = await oauth2_provider.get_token(code, self._redirect_uri(FlowMethod.AUTHORIZATION, provider))
        provider_user = await oauth2_provider.get_user(tokens.access_token.get_secret_value())
        await self.database.create_oauth2_authorization_account(
            OAuth2Account(
                user_id=request.user_id,
                provider=provider,
                account_id=provider_user.account_id,
                access_token=tokens.access_token,
                refresh_token=tokens.refresh_token,
                expires_at=tokens.expires_at,
            )
        )
        logger.info(f"Linked '{provider}' account to user {self._anon(request.user_id)}")
        return AuthResponse.redirect(request.callback_url)

    async def redeem_magic_link(self, provider: str, token: str | None) -> AuthResponse:
        """
        Completes a magic-link sign-in.

        Returns:
            AuthResponse: A redirect to `magic_link_redirect` carrying the new session cookie.

        Raises:
            MissingParameterError: If `token` is missing.
            ProviderNotConfiguredError: If `provider` is not registered.
            UnsupportedFlowError: If `provider` is not a magic-link provider.
            RequestNotFoundError: If the link was never issued or was already used.
            RequestExpiredError: If the link has expired.
        """
        if not token:
            raise MissingParameterError("Missing token parameter")
        with tracer.start_as_current_span("redeem_magic_link") as span:
            span.set_attribute("auth.provider", provider)
            if not isinstance(self._get_authentication_provider(provider), MagicLinkProvider):
                raise UnsupportedFlowError(f"'{provider}' is not a magic-link provider")

            request = await self.database.get_magic_link_request(token)
            await self.database.delete_magic_link_request(token)
            self._ensure_pending(request)

            user, _ = await self._get_or_create_user(request.email)
            logger.info(f"User {self._anon(user.id)} signed in with magic link via '{provider}'")
            return await self._start_session(user, self.config.magic_link_redirect)

    def _to_response(self, exc: Exception) -> AuthResponse:
        if isinstance(exc, MissingParameterError):
            logger.warning(f"Rejected auth callback: {exc}")
            return AuthResponse.client_error(str(exc))
        if isinstance(exc, UnsupportedFlowError):
            logger.warning(f"Rejected auth callback: {exc}")
            return AuthResponse.client_error(UNSUPPORTED_FLOW_BODY)
        if isinstance(exc, CoreasonAuthError):
            logger.warning(f"Auth callback failed ({exc.category}): {exc}")
            category = exc.category
        else:
            logger.exception(f"Unexpected error in auth callback: {exc}")
            category = CoreasonAuthError.category
        return AuthResponse.redirect(with_query_params(self.config.error_redirect, error=category))

    async def handle_callback(self, method: str, provider: str, query: Mapping[str, str]) -> AuthResponse:
        """
        Boundary form of `complete_callback`: never raises, failures become responses.

        Missing parameters and unsupported flows become a 400; every other failure redirects to
        `error_redirect` with a coarse `?error=<category>`.
        """
        try:
            return await self.complete_callback(method, provider, query.get("code"), query.get("state"))
        except Exception as e:
            return self._to_response(e)

    async def handle_magic_link(self, provider: str, query: Mapping[str, str]) -> AuthResponse:
        """Boundary form of `redeem_magic_link`, with the same failure mapping as `handle_callback`."""
        try:
            return await self.redeem_magic_link(provider, query.get("token"))
        except Exception as e:
            return self._to_response(e)

    # Linked accounts

    async def save_api_key_account(self, provider: str, user_id: str, api_key: str) -> ApiKeyAccount:
        """
        Verifies an API key with its provider and links it to `user_id`.

        Raises:
            ProviderNotConfiguredError: If `provider` is not registered.
            UnsupportedFlowError: If `provider` is not an API-key provider.
            UpstreamProviderError: If the provider rejects the key.
            DuplicateRecordError: If that provider account is already linked.
        """
        with tracer.start_as_current_span("save_api_key_account") as span:
            span.set_attribute("auth.provider", provider)
            span.set_attribute("enduser.id", self._anon(user_id))
            match self._get_authorization_provider(provider):
                case ApiKeyProvider() as api_key_provider:
                    provider_user = await api_key_provider.get_user(api_key)
                case OAuth2AuthorizationProvider():
                    raise UnsupportedFlowError(f"'{provider}' is an OAuth2 provider; use connect_authorization_account")
                case _:
                    raise UnsupportedFlowError(f"'{provider}' cannot verify API keys")
            account = await self.database.create_api_key_account(
                ApiKeyAccount(
                    user_id=user_id,
                    provider=provider,
                    account_id=provider_user.account_id,
                    api_key=SecretStr(api_key),
                )
            )
            logger.info(f"Saved '{provider}' API key for user {self._anon(user_id)}")
            return account

    async def disconnect_oauth2_authorization_account(self, provider: str, account_id: str, user_id: str) -> None:
        await self.refresher.delete_account(AccountKind.OAUTH2_AUTHORIZATION, provider, account_id, user_id)
        logger.info(f"Disconnected '{provider}' account from user {self._anon(user_id)}")

    async def disconnect_api_key_account(self, provider: str, account_id: str, user_id: str) -> None:
        await self.database.delete_api_key_account(user_id, provider, account_id)
        logger.info(f"Removed '{provider}' API key from user {self._anon(user_id)}")

    # Sessions and tokens

    async def resolve_session(self, session_key: str | None) -> tuple[ResolvedSession | None, bool]:
        """
        Resolves a session key, refreshing expired linked tokens first.

        Returns:
            tuple[ResolvedSession | None, bool]: The session, and whether the client must clear its cookie.
        """
        return await self.session_resolver.resolve_session(session_key)

    async def get_session(self, cookie_value: str | None) -> tuple[ResolvedSession | None, str | None]:
        """
        Boundary form of `resolve_session`.

        Returns:
            tuple[ResolvedSession | None, str | None]: The session, and the name of a cookie to
            delete when the client's session has expired.
        """
        session, clear = await self.resolve_session(cookie_value)
        return session, self.config.session_cookie_name if clear else None

    async def refresh_oauth2_authentication_token(self, provider: str, account_id: str, user_id: str) -> OAuth2Account:
        return await self.refresher.refresh_account_token(
            AccountKind.OAUTH2_AUTHENTICATION, provider, account_id, user_id
        )

    async def refresh_oauth2_authorization_token(self, provider: str, account_id: str, user_id: str) -> OAuth2Account:
        return await self.refresher.refresh_account_token(
            AccountKind.OAUTH2_AUTHORIZATION, provider, account_id, user_id
        )

    def get_auth_constants(self) -> dict[str, str]:
        """Key-page URLs of every API-key provider, as `{"VERCEL_API_KEY_CONFIG_URL": url}`."""
        return {
            f"{key.upper()}_API_KEY_CONFIG_URL": provider.api_key_url
            for key, provider in self.authorization_providers.items()
            if isinstance(provider, ApiKeyProvider)
        }

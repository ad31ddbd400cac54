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
Configuration for the coreason-auth package.
"""

from datetime import timedelta
from urllib.parse import urlparse

from pydantic import Field, SecretStr, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CoreasonAuthConfig(BaseSettings):
    """
    Configuration settings for coreason-auth.

    Attributes:
        auth_url (str): Public base URL of the application; provider redirect URIs are built from it
            (e.g. ``{auth_url}/auth/authentication/google``).
        request_ttl_seconds (int): Lifetime of pending sign-in / link / magic-link requests.
        session_ttl_seconds (int): Lifetime of issued sessions.
        session_cookie_name (str): Name of the HTTP-only session cookie.
        secure_cookies (bool): Whether the session cookie is flagged ``Secure``.
        sign_out_redirect (str): Default location after sign-out.
        magic_link_redirect (str): Location after a redeemed magic link.
        error_redirect (str): Location callback failures are redirected to (with ``?error=<category>``).
        http_timeout (float): Timeout in seconds for provider HTTP calls.
        pii_salt (SecretStr): Salt for anonymizing emails and user ids in logs/traces.
        link_returning_users (bool): Link a new OAuth2 provider account to an existing user on sign-in.
        revoke_session_on_sign_out (bool): Delete the session record on sign-out, not only the cookie.
        unsafe_local_dev (bool): Allow a plain ``http://`` auth_url.
    """

    model_config = SettingsConfigDict(
        env_prefix="COREASON_AUTH_",
        case_sensitive=False,
    )

    unsafe_local_dev: bool = False
    auth_url: str
    request_ttl_seconds: int = Field(default=60 * 60 * 24, gt=0)
    session_ttl_seconds: int = Field(default=60 * 60 * 24 * 30, gt=0)
    session_cookie_name: str = "session"
    secure_cookies: bool = True
    sign_out_redirect: str = "/"
    magic_link_redirect: str = "/"
    error_redirect: str = "/"
    http_timeout: float = Field(default=10.0, gt=0)
    pii_salt: SecretStr = SecretStr("coreason-unsafe-default-salt")
    link_returning_users: bool = False
    revoke_session_on_sign_out: bool = False

    @field_validator("auth_url", mode="after")
    @classmethod
    def validate_auth_url(cls, v: str, info: ValidationInfo) -> str:
        """
        Normalizes the auth URL and enforces HTTPS unless strictly opted out for local dev.

        Args:
            v: The configured auth URL.
            info: Validation context (used to read `unsafe_local_dev`).

        Returns:
            The auth URL without a trailing slash.

        Raises:
            ValueError: If the URL is not absolute or uses plain HTTP outside local dev.
        """
        v = v.strip().rstrip("/")
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"auth_url must be an absolute http(s) URL, got '{v}'")
        if parsed.scheme == "http" and not info.data.get("unsafe_local_dev", False):
            raise ValueError("HTTPS is required for production. Set 'unsafe_local_dev=True' only for local testing.")
        return v

    @property
    def request_ttl(self) -> timedelta:
        return timedelta(seconds=self.request_ttl_seconds)

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(seconds=self.session_ttl_seconds)

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
Custom exceptions for the coreason-auth package.

Every exception carries a coarse ``category`` that is safe to expose to end users
(e.g. as an ``?error=`` query parameter). The message itself may contain internal
detail and is only meant for server-side logs.
"""


class CoreasonAuthError(Exception):
    """Base exception for all coreason-auth errors."""

    category: str = "AuthFailed"


class ProviderNotConfiguredError(CoreasonAuthError):
    """Raised when a provider key is not present in the registered provider map."""

    category = "InvalidProvider"


class MissingParameterError(CoreasonAuthError):
    """Raised when a callback is invoked without the required `code` or `state`."""

    category = "MissingParameter"


class UnsupportedFlowError(CoreasonAuthError):
    """Raised when a callback targets a method/provider combination that cannot complete there."""

    category = "UnsupportedFlow"


class RecordNotFoundError(CoreasonAuthError):
    """Raised by a database provider when a requested record does not exist."""

    category = "NotFound"


class RequestNotFoundError(RecordNotFoundError):
    """Raised when a pending request (state / magic-link token) does not exist."""

    category = "RequestNotFound"


class AccountNotFoundError(RecordNotFoundError):
    """Raised when a linked account does not exist."""

    category = "AccountNotFound"


class SessionNotFoundError(RecordNotFoundError):
    """Raised when a session does not exist."""

    category = "SessionNotFound"


class RequestExpiredError(CoreasonAuthError):
    """Raised when a pending request is past its expiry at completion time."""

    category = "RequestExpired"


class DuplicateRecordError(CoreasonAuthError):
    """Raised by a database provider when an insert violates a uniqueness constraint."""

    category = "AccountExists"


class UpstreamProviderError(CoreasonAuthError):
    """
    Raised when an identity provider's HTTP surface fails (non-2xx, malformed payload).

    Attributes:
        status_code (int | None): HTTP status of the failing response, if any.
        provider (str | None): Name of the provider that failed, if known.
    """

    category = "AuthFailed"

    def __init__(self, message: str, *, status_code: int | None = None, provider: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.provider = provider


class RefreshRejectedError(UpstreamProviderError):
    """Raised when a provider refuses to refresh a token (e.g. revoked grant)."""

    category = "RefreshRejected"


class OversizedResponseError(UpstreamProviderError):
    """Raised when an HTTP response is too large."""


class SecurityError(UpstreamProviderError):
    """Raised when an outbound request targets a blocked address."""

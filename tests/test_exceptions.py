# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_auth

import pytest

from coreason_auth.exceptions import (
    AccountNotFoundError,
    CoreasonAuthError,
    DuplicateRecordError,
    MissingParameterError,
    OversizedResponseError,
    ProviderNotConfiguredError,
    RecordNotFoundError,
    RefreshRejectedError,
    RequestExpiredError,
    RequestNotFoundError,
    SecurityError,
    SessionNotFoundError,
    UnsupportedFlowError,
    UpstreamProviderError,
)


def test_exception_hierarchy() -> None:
    """Test that all custom exceptions inherit from CoreasonAuthError."""
    for exc in (ProviderNotConfiguredError, MissingParameterError, UnsupportedFlowError, RequestExpiredError):
        assert issubclass(exc, CoreasonAuthError)
    for exc in (RequestNotFoundError, AccountNotFoundError, SessionNotFoundError):
        assert issubclass(exc, RecordNotFoundError)
    for exc in (RefreshRejectedError, OversizedResponseError, SecurityError):
        assert issubclass(exc, UpstreamProviderError)


@pytest.mark.parametrize(
    ("exc", "category"),
    [
        (CoreasonAuthError, "AuthFailed"),
        (ProviderNotConfiguredError, "InvalidProvider"),
        (MissingParameterError, "MissingParameter"),
        (RequestNotFoundError, "RequestNotFound"),
        (RequestExpiredError, "RequestExpired"),
        (AccountNotFoundError, "AccountNotFound"),
        (DuplicateRecordError, "AccountExists"),
        (RefreshRejectedError, "RefreshRejected"),
        (UpstreamProviderError, "AuthFailed"),
        (SecurityError, "AuthFailed"),
    ],
)
def test_categories(exc: type[CoreasonAuthError], category: str) -> None:
    assert exc.category == category


def test_upstream_error_attributes() -> None:
    err = RefreshRejectedError("invalid_grant", status_code=400, provider="google")
    assert str(err) == "invalid_grant"
    assert err.status_code == 400
    assert err.provider == "google"
    assert UpstreamProviderError("x").status_code is None

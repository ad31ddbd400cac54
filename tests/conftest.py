# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_auth

import socket
from collections.abc import AsyncGenerator, Generator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from pydantic import SecretStr
from stubs import AUTH_URL, StubOAuth2, make_authentication_stub, make_authorization_stub

from coreason_auth.config import CoreasonAuthConfig
from coreason_auth.database import MemoryDatabaseProvider
from coreason_auth.manager import AuthManager
from coreason_auth.models import ProviderUser
from coreason_auth.providers import create_api_key_provider, create_magic_link_provider


@pytest.fixture(autouse=True)
def mock_dns_resolution() -> Generator[MagicMock, None, None]:
    """
    Globally patches socket.getaddrinfo to return a safe public IP by default, so provider
    clients built on SafeHTTPTransport never hit real DNS.

    Tests that exercise the SSRF checks patch socket.getaddrinfo again.
    """
    safe_response = [(socket.AF_INET, socket.SOCK_STREAM, 6, "", ("8.8.8.8", 443))]

    with patch("socket.getaddrinfo", return_value=safe_response) as mock:
        yield mock


@pytest.fixture
def config() -> CoreasonAuthConfig:
    return CoreasonAuthConfig(auth_url=AUTH_URL, pii_salt=SecretStr("test-salt"))


@pytest.fixture
def database() -> MemoryDatabaseProvider:
    return MemoryDatabaseProvider()


@pytest.fixture
def google() -> StubOAuth2:
    return make_authentication_stub("google")


@pytest.fixture
def github() -> StubOAuth2:
    return make_authorization_stub("github")


@pytest.fixture
def send_email() -> AsyncMock:
    return AsyncMock(return_value=None)


@pytest.fixture
def vercel_get_user() -> AsyncMock:
    return AsyncMock(return_value=ProviderUser(account_id="v-1"))


@pytest_asyncio.fixture
async def manager(
    config: CoreasonAuthConfig,
    database: MemoryDatabaseProvider,
    google: StubOAuth2,
    github: StubOAuth2,
    send_email: AsyncMock,
    vercel_get_user: AsyncMock,
) -> AsyncGenerator[AuthManager, None]:
    async with AuthManager(
        config,
        database,
        authentication_providers={
            "google": google.provider,
            "email": create_magic_link_provider(send_email=send_email),
        },
        authorization_providers={
            "github": github.provider,
            "vercel": create_api_key_provider(
                api_key_url="https://vercel.com/account/settings/tokens", get_user=vercel_get_user
            ),
        },
    ) as mgr:
        yield mgr

# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_auth

from coreason_auth.providers.base import (
    ApiKeyProvider,
    MagicLinkProvider,
    OAuth2AuthenticationProvider,
    OAuth2AuthorizationProvider,
    Provider,
    create_api_key_provider,
    create_magic_link_provider,
    create_oauth2_authentication_provider,
    create_oauth2_authorization_provider,
)
from coreason_auth.providers.brex import BrexApiKeyProvider
from coreason_auth.providers.github import GitHubAuthenticationProvider, GitHubAuthorizationProvider
from coreason_auth.providers.google import GoogleAuthenticationProvider, GoogleAuthorizationProvider
from coreason_auth.providers.oauth2 import GenericOAuth2AuthenticationProvider, GenericOAuth2AuthorizationProvider
from coreason_auth.providers.resend import ResendMagicLinkProvider
from coreason_auth.providers.vercel import VercelApiKeyProvider

__all__ = [
    "ApiKeyProvider",
    "BrexApiKeyProvider",
    "GenericOAuth2AuthenticationProvider",
    "GenericOAuth2AuthorizationProvider",
    "GitHubAuthenticationProvider",
    "GitHubAuthorizationProvider",
    "GoogleAuthenticationProvider",
    "GoogleAuthorizationProvider",
    "MagicLinkProvider",
    "OAuth2AuthenticationProvider",
    "OAuth2AuthorizationProvider",
    "Provider",
    "ResendMagicLinkProvider",
    "VercelApiKeyProvider",
    "create_api_key_provider",
    "create_magic_link_provider",
    "create_oauth2_authentication_provider",
    "create_oauth2_authorization_provider",
]

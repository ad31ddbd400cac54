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
Vercel API-key provider. Users paste a personal access token created in their account settings.
"""

from typing import Any

import httpx

from coreason_auth.exceptions import UpstreamProviderError
from coreason_auth.models import ProviderUser
from coreason_auth.providers.base import ApiKeyProvider
from coreason_auth.providers.oauth2 import HTTPProviderMixin
from coreason_auth.transport import safe_json_fetch

VERCEL_API_KEY_URL = "https://vercel.com/account/settings/tokens"
VERCEL_USER_URL = "https://api.vercel.com/v2/user"


class VercelApiKeyProvider(HTTPProviderMixin, ApiKeyProvider):
    name = "vercel"
    api_key_url = VERCEL_API_KEY_URL

    def __init__(self, *, client: httpx.AsyncClient | None = None, timeout: float = 10.0) -> None:
        self._init_http(client, timeout)

    async def get_user(self, api_key: str) -> ProviderUser:
        data: Any = await safe_json_fetch(
            self._get_client(),
            VERCEL_USER_URL,
            provider=self.name,
            headers={"Authorization": f"Bearer {api_key}", "Accept": "*/*"},
        )
        try:
            account_id = data["user"]["id"]
        except (KeyError, TypeError) as e:
            raise UpstreamProviderError("Malformed user response from vercel", provider=self.name) from e
        return ProviderUser(account_id=str(account_id), email=data["user"].get("email"))

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
Brex API-key provider. Users create a user token on the developer settings page.
"""

import httpx

from coreason_auth.exceptions import UpstreamProviderError
from coreason_auth.models import ProviderUser
from coreason_auth.providers.base import ApiKeyProvider
from coreason_auth.providers.oauth2 import HTTPProviderMixin
from coreason_auth.transport import safe_json_fetch

BREX_API_KEY_URL = "https://dashboard.brex.com/settings/developer"
BREX_USER_URL = "https://platform.brexapis.com/v2/users/me"


class BrexApiKeyProvider(HTTPProviderMixin, ApiKeyProvider):
    name = "brex"
    api_key_url = BREX_API_KEY_URL

    def __init__(self, *, client: httpx.AsyncClient | None = None, timeout: float = 10.0) -> None:
        self._init_http(client, timeout)

    async def get_user(self, api_key: str) -> ProviderUser:
        data = await safe_json_fetch(
            self._get_client(),
            BREX_USER_URL,
            provider=self.name,
            headers={"Authorization": f"Bearer {api_key}"},
        )
        if not isinstance(data, dict) or "id" not in data:
            raise UpstreamProviderError("Malformed user response from brex", provider=self.name)
        return ProviderUser(account_id=str(data["id"]), email=data.get("email"))

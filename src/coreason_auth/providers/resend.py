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
Magic-link delivery through the Resend email API.

API reference: https://resend.com/docs/api-reference/emails/send-email
"""

from collections.abc import Callable

import httpx
from pydantic import SecretStr

from coreason_auth.providers.base import MagicLinkProvider
from coreason_auth.providers.oauth2 import HTTPProviderMixin
from coreason_auth.transport import safe_json_fetch
from coreason_auth.utils.logger import logger

RESEND_EMAILS_URL = "https://api.resend.com/emails"


def default_magic_link_html(url: str) -> str:
    return f'<p>Click <a href="{url}">here</a> to sign in. The link can only be used once.</p>'


class ResendMagicLinkProvider(HTTPProviderMixin, MagicLinkProvider):
    """
    Sends sign-in links with Resend.

    Args:
        api_key: Resend API key.
        from_email: Sender, e.g. "Acme <auth@acme.dev>".
        subject: Email subject line.
        html: Renders the email body from the magic-link URL.
        client: Optional borrowed httpx client.
        timeout: Timeout for an internally created client.
    """

    name = "resend"

    def __init__(
        self,
        api_key: str | SecretStr,
        from_email: str,
        subject: str = "Sign in",
        html: Callable[[str], str] = default_magic_link_html,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.api_key = api_key if isinstance(api_key, SecretStr) else SecretStr(api_key)
        self.from_email = from_email
        self.subject = subject
        self.html = html
        self._init_http(client, timeout)

    async def send_email(self, email: str, url: str) -> None:
        data = await safe_json_fetch(
            self._get_client(),
            RESEND_EMAILS_URL,
            "POST",
            provider=self.name,
            headers={"Authorization": f"Bearer {self.api_key.get_secret_value()}"},
            json={"from": self.from_email, "to": [email], "subject": self.subject, "html": self.html(url)},
        )
        logger.debug(f"Magic link email queued by resend: {data.get('id') if isinstance(data, dict) else None}")

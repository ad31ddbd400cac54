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
Framework-neutral HTTP instructions produced by the orchestrator.

The web framework binding applies these to its own response object; the core never
touches cookies or redirects directly.
"""

from datetime import datetime
from typing import Literal
from urllib.parse import urlencode, urlsplit, urlunsplit

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field


class CookieInstruction(BaseModel):
    """
    A cookie the caller must set on the outgoing response.

    Attributes:
        name (str): Cookie name.
        value (str): Cookie value (the session key).
        expires (datetime): Absolute expiry, mirrored from the session.
        http_only (bool): Always true for session credentials.
        secure (bool): Whether to set the ``Secure`` flag.
        same_site (str): SameSite policy. ``lax`` keeps the cookie on provider redirects back to us.
        path (str): Cookie path.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    value: str = Field(..., repr=False)
    expires: AwareDatetime
    http_only: bool = True
    secure: bool = True
    same_site: Literal["lax", "strict", "none"] = "lax"
    path: str = "/"


class AuthResponse(BaseModel):
    """
    What the caller must send back to the user agent.

    Attributes:
        status_code (int): 302 for redirects, 4xx for client errors.
        location (str | None): Redirect target.
        body (str | None): Plain-text body for non-redirect responses.
        set_cookie (CookieInstruction | None): Cookie to set.
        delete_cookie (str | None): Name of a cookie to delete.
    """

    model_config = ConfigDict(frozen=True)

    status_code: int = 302
    location: str | None = None
    body: str | None = None
    set_cookie: CookieInstruction | None = None
    delete_cookie: str | None = None

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status_code < 400 and self.location is not None

    @classmethod
    def redirect(
        cls,
        location: str,
        set_cookie: CookieInstruction | None = None,
        delete_cookie: str | None = None,
    ) -> "AuthResponse":
        return cls(status_code=302, location=location, set_cookie=set_cookie, delete_cookie=delete_cookie)

    @classmethod
    def client_error(cls, body: str, status_code: int = 400) -> "AuthResponse":
        return cls(status_code=status_code, body=body)


def with_query_params(url: str, **params: str) -> str:
    """
    Appends query parameters to a URL, preserving any existing query string.

    Args:
        url: An absolute or relative URL.
        **params: Parameters to append.

    Returns:
        str: The URL with the parameters appended.
    """
    scheme, netloc, path, query, fragment = urlsplit(url)
    extra = urlencode(params)
    query = f"{query}&{extra}" if query else extra
    return urlunsplit((scheme, netloc, path, query, fragment))


def session_cookie(name: str, key: str, expires: datetime, secure: bool = True) -> CookieInstruction:
    return CookieInstruction(name=name, value=key, expires=expires, secure=secure)

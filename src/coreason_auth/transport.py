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
Outbound HTTP helpers for provider calls: an SSRF-safe transport and a size-bounded JSON fetch.
"""

import ipaddress
import json
import socket
from typing import Any

import anyio
import httpx
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from coreason_auth.exceptions import OversizedResponseError, SecurityError, UpstreamProviderError
from coreason_auth.utils.logger import logger

MAX_RESPONSE_BYTES = 1_000_000


class SafeHTTPTransport(httpx.AsyncHTTPTransport):
    """
    An HTTP transport that pins DNS resolution to a validated public address.

    The hostname is resolved once, every candidate IP is checked against blocked ranges
    (private, loopback, link-local, reserved, multicast), and the request is sent to the first
    safe IP while keeping the original Host header and SNI for TLS verification.
    """

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        hostname = request.url.host

        try:
            ip_obj = ipaddress.ip_address(hostname)
        except ValueError:
            ip_obj = None

        if ip_obj is not None:
            self._validate_ip(ip_obj, hostname)
            return await super().handle_async_request(request)

        try:
            addr_infos = await anyio.to_thread.run_sync(socket.getaddrinfo, hostname, None, 0, socket.SOCK_STREAM)
        except socket.gaierror as e:
            logger.error(f"DNS resolution failed for {hostname}: {e}")
            raise SecurityError(f"DNS resolution failed for {hostname}") from e

        target_ip: str | None = None
        for _, _, _, _, sockaddr in addr_infos:
            try:
                self._validate_ip(ipaddress.ip_address(sockaddr[0]), hostname)
            except (SecurityError, ValueError):
                continue
            target_ip = str(sockaddr[0])
            break

        if not target_ip:
            logger.error(f"Security violation: No valid public IP found for {hostname}")
            raise SecurityError(f"Security violation: No valid public IP found for {hostname}")

        request.extensions["sni_hostname"] = hostname
        if "Host" not in request.headers:
            request.headers["Host"] = request.url.netloc.decode("ascii")
        request.url = request.url.copy_with(host=target_ip)

        logger.debug(f"DNS Pinned: {hostname} -> {target_ip}")
        return await super().handle_async_request(request)

    def _validate_ip(self, ip_obj: ipaddress.IPv4Address | ipaddress.IPv6Address, hostname: str) -> None:
        if (
            ip_obj.is_private
            or ip_obj.is_loopback
            or ip_obj.is_link_local
            or ip_obj.is_reserved
            or ip_obj.is_multicast
        ):
            logger.warning(f"Security violation: Blocked access to {hostname} ({ip_obj})")
            raise SecurityError(f"Access to {hostname} ({ip_obj}) is blocked")


def create_http_client(timeout: float = 10.0) -> httpx.AsyncClient:
    """
    Builds the default provider HTTP client: SSRF-safe transport plus OpenTelemetry instrumentation.

    Args:
        timeout: Timeout in seconds applied to every request.

    Returns:
        httpx.AsyncClient: A client the caller owns and must close.
    """
    client = httpx.AsyncClient(transport=SafeHTTPTransport(), timeout=timeout)
    HTTPXClientInstrumentor().instrument_client(client)
    return client


async def fetch_json_response(
    client: httpx.AsyncClient,
    url: str,
    method: str = "GET",
    *,
    provider: str | None = None,
    **kwargs: Any,
) -> tuple[int, Any]:
    """
    Performs a request and decodes a JSON body whatever the status, refusing bodies larger than 1 MB.

    OAuth2 endpoints report failures as JSON (``{"error": "invalid_grant"}``), sometimes with a 200
    status, so callers that need the error payload use this instead of `safe_json_fetch`.

    Args:
        client: The HTTP client.
        url: Target URL.
        method: HTTP method.
        provider: Provider name, attached to raised errors.
        **kwargs: Forwarded to ``client.stream`` (headers, data, json, params).

    Returns:
        tuple[int, Any]: The HTTP status code and the decoded JSON document.

    Raises:
        OversizedResponseError: If the body exceeds the size limit.
        UpstreamProviderError: On transport failure or undecodable body.
    """
    try:
        async with client.stream(method, url, **kwargs) as response:
            content_length = response.headers.get("Content-Length")
            if content_length and content_length.isdigit() and int(content_length) > MAX_RESPONSE_BYTES:
                raise OversizedResponseError(f"Response from {url} too large", provider=provider)

            content = bytearray()
            async for chunk in response.aiter_bytes():
                content.extend(chunk)
                if len(content) > MAX_RESPONSE_BYTES:
                    raise OversizedResponseError(f"Response from {url} too large", provider=provider)
            status_code = response.status_code
    except httpx.HTTPError as e:
        raise UpstreamProviderError(f"{method} {url} failed: {e}", provider=provider) from e

    try:
        return status_code, json.loads(content)
    except json.JSONDecodeError as e:
        raise UpstreamProviderError(
            f"Invalid JSON from {url} (status {status_code}): {e}", status_code=status_code, provider=provider
        ) from e


async def safe_json_fetch(
    client: httpx.AsyncClient,
    url: str,
    method: str = "GET",
    *,
    provider: str | None = None,
    **kwargs: Any,
) -> Any:
    """
    Performs a request and decodes its JSON body, failing on any 4xx/5xx status.

    Raises:
        OversizedResponseError: If the body exceeds the size limit.
        UpstreamProviderError: On transport failure, error status, or undecodable body.
    """
    try:
        status_code, data = await fetch_json_response(client, url, method, provider=provider, **kwargs)
    except UpstreamProviderError as e:
        if e.status_code is None or e.status_code < 400:
            raise
        # An error status with a non-JSON body is still an error status
        status_code, data = e.status_code, None

    if status_code >= 400:
        raise UpstreamProviderError(
            f"{method} {url} failed with status {status_code}", status_code=status_code, provider=provider
        )
    return data

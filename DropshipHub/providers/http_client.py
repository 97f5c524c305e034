"""
Unified HTTP Client for Dropshipping Providers

Provides consistent HTTP operations across all provider implementations:
- Session management with automatic cleanup
- Bounded per-request timeout
- Defensive null safety for JSON responses
- Translation of HTTP outcomes into the DropshipHub error taxonomy

Retrying is not done here; every adapter call is wrapped by the resilience layer
(see resilience.py) so that retry budgets are applied once per operation.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Dict, Any, Optional, Union, List

import aiohttp

from DropshipHub.exceptions import (
    ProviderError,
    ProviderAuthenticationError,
    ProviderConnectionError,
    ProviderNotFoundError,
    ProviderRateLimitError,
)

logger = logging.getLogger(__name__)


@dataclass
class HTTPResponse:
    """Standardized HTTP response wrapper"""
    status: int
    data: Dict[str, Any]
    headers: Dict[str, str]
    url: str
    duration_ms: int

    @property
    def success(self) -> bool:
        return 200 <= self.status < 300


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Retry-After is either delta-seconds or an HTTP-date."""
    if value is None or str(value).strip() == "":
        return None
    value = str(value).strip()
    try:
        return max(float(value), 0.0)
    except ValueError:
        pass
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring unparseable Retry-After header: {value!r}")
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    return max((retry_at - datetime.now(timezone.utc)).total_seconds(), 0.0)


def extract_error_message(data: Dict[str, Any], default: str) -> str:
    """Providers nest error text differently: {"error": {"message"}}, {"error": "..."}, {"message"}, {"result"}."""
    error = data.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        return error
    for key in ("message", "result"):
        if isinstance(data.get(key), str) and data[key]:
            return data[key]
    return default


def raise_for_response(provider_name: str, status: int, headers: Dict[str, str], data: Dict[str, Any], url: str):
    """
    Raise the typed error matching a non-2xx response.

    401/403 -> unauthorized, 404 -> not found, 408 and 5xx -> transient,
    429 -> rate limited (with Retry-After), any other 4xx -> permanent.
    """
    if 200 <= status < 300:
        return

    message = extract_error_message(data, f"HTTP {status}")

    if status in (401, 403):
        raise ProviderAuthenticationError(
            f"{provider_name} rejected credentials: {message}", provider_name=provider_name, remote_status=status
        )
    if status == 404:
        raise ProviderNotFoundError(
            f"{provider_name} resource not found: {message}", provider_name=provider_name, remote_status=status
        )
    if status == 429:
        lowered = {key.lower(): value for key, value in headers.items()}
        raise ProviderRateLimitError(
            f"Rate limit exceeded for {provider_name}",
            provider_name=provider_name,
            retry_after=parse_retry_after(lowered.get("retry-after")),
            remote_status=status,
        )
    if status == 408 or status >= 500:
        raise ProviderConnectionError(
            f"{provider_name} temporarily unavailable (HTTP {status}): {message}",
            provider_name=provider_name,
            remote_status=status,
            endpoint=url,
        )
    raise ProviderError(
        f"{provider_name} request failed (HTTP {status}): {message}",
        provider_name=provider_name,
        remote_status=status,
        details={"response": data},
    )


class ProviderHTTPClient:
    """
    HTTP client shared by provider adapters.

    Features:
    - Automatic session management
    - Defensive null safety for JSON responses
    - Timeouts and network failures surfaced as transient errors
    - Request/response logging
    """

    def __init__(
        self,
        provider_name: str,
        base_url: str,
        default_timeout: float = 30,
        default_headers: Optional[Dict[str, str]] = None,
        connection_limit: int = 10,
    ):
        self.provider_name = provider_name
        self.base_url = base_url.rstrip("/")
        self.default_timeout = default_timeout
        self.default_headers = default_headers or {}
        self.connection_limit = connection_limit

        self._session: Optional[aiohttp.ClientSession] = None

        logger.info(f"Initialized HTTP client for provider: {provider_name}")

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session with proper configuration"""
        if not self._session or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.default_timeout, sock_connect=10)
            connector = aiohttp.TCPConnector(limit=self.connection_limit, enable_cleanup_closed=True)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                connector=connector,
                headers=self.default_headers,
            )
        return self._session

    def _safe_json_parse(self, response_text: str) -> Dict[str, Any]:
        """
        Safely parse JSON response with defensive null handling.

        Lists are wrapped as {"items": [...]}, primitives as {"value": ...}.
        """
        try:
            if not response_text:
                return {}

            parsed = json.loads(response_text)

            if parsed is None:
                return {}
            if isinstance(parsed, dict):
                return parsed
            elif isinstance(parsed, list):
                return {"items": parsed}
            else:
                return {"value": parsed}

        except (json.JSONDecodeError, TypeError, ValueError) as e:
            logger.warning(f"Failed to parse JSON response for {self.provider_name}: {e}")
            return {}

    def _build_url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def request(self, method: str, path: str, **kwargs) -> HTTPResponse:
        """Make one HTTP request; raise a typed error for anything but 2xx"""
        url = self._build_url(path)
        start_time = time.time()

        try:
            session = await self._get_session()
            async with session.request(method, url, **kwargs) as response:
                response_text = await response.text()
                duration_ms = int((time.time() - start_time) * 1000)
                data = self._safe_json_parse(response_text)
                headers = dict(response.headers)
                status = response.status
        except asyncio.TimeoutError as e:
            raise ProviderConnectionError(
                f"{self.provider_name} request timed out after {self.default_timeout}s",
                provider_name=self.provider_name,
                endpoint=url,
            ) from e
        except aiohttp.ClientError as e:
            raise ProviderConnectionError(
                f"{self.provider_name} connection failed: {e}",
                provider_name=self.provider_name,
                endpoint=url,
            ) from e

        logger.debug(f"{self.provider_name} {method} {url} -> {status} ({duration_ms}ms)")
        raise_for_response(self.provider_name, status, headers, data, url)

        return HTTPResponse(status=status, data=data, headers=headers, url=url, duration_ms=duration_ms)

    # ========== Public API Methods ==========

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> HTTPResponse:
        return await self.request("GET", path, params=params, **kwargs)

    async def post(
        self,
        path: str,
        json_data: Optional[Union[Dict[str, Any], List[Any]]] = None,
        params: Optional[Dict[str, Any]] = None,
        **kwargs
    ) -> HTTPResponse:
        return await self.request("POST", path, json=json_data, params=params, **kwargs)

    async def put(self, path: str, json_data: Optional[Dict[str, Any]] = None, **kwargs) -> HTTPResponse:
        return await self.request("PUT", path, json=json_data, **kwargs)

    async def delete(self, path: str, **kwargs) -> HTTPResponse:
        return await self.request("DELETE", path, **kwargs)

    # ========== Cleanup ==========

    async def close(self):
        """Close HTTP session and cleanup resources"""
        if self._session and not self._session.closed:
            await self._session.close()
            logger.info(f"Closed HTTP session for provider: {self.provider_name}")
        self._session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

"""
Signed HTTP client for the OVHcloud API.

The browser only needs four generic calls (get/post/put/delete by path)
returning decoded JSON. Every exchange, successful or not, is appended to the
DebugLogger so the debug view can show it.

Error Handling:
  - Non-2xx responses -> CloudAPIError(status, message, request_id)
  - Connection errors / timeouts -> CloudAPIError(status=None)
"""

import asyncio
import hashlib
import json
import logging
import time
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

import aiohttp

from .debug_log import DebugLogEntry, DebugLogger

logger = logging.getLogger(__name__)

ENDPOINTS = {
    "ovh-eu": "https://eu.api.ovh.com",
    "ovh-ca": "https://ca.api.ovh.com",
    "ovh-us": "https://api.us.ovhcloud.com",
}

REQUEST_ID_HEADER = "X-Ovh-QueryId"


class CloudAPIError(Exception):
    def __init__(self, message: str, status: Optional[int] = None, request_id: str = ""):
        super().__init__(message)
        self.message = message
        self.status = status
        self.request_id = request_id

    def __str__(self) -> str:
        if self.status is None:
            return self.message
        return f"{self.message} (HTTP {self.status})"


def resolve_base_url(endpoint: str) -> str:
    if endpoint.startswith(("http://", "https://")):
        return endpoint.rstrip("/")
    try:
        return ENDPOINTS[endpoint]
    except KeyError:
        raise ValueError(f"Unknown API endpoint: {endpoint}") from None


def build_url(base_url: str, path: str) -> str:
    if not path.startswith("/"):
        path = "/" + path
    if path.startswith(("/v1/", "/v2/")):
        return base_url + path
    return base_url + "/1.0" + path


def sign_request(secret: str, consumer_key: str, method: str, url: str, body: str, timestamp: int) -> str:
    payload = "+".join([secret, consumer_key, method.upper(), url, body, str(timestamp)])
    return "$1$" + hashlib.sha1(payload.encode("utf-8")).hexdigest()


class CloudClient:
    """Async API client; one aiohttp session per client."""

    def __init__(
        self,
        endpoint: str = "ovh-eu",
        application_key: str = "",
        application_secret: str = "",
        consumer_key: str = "",
        timeout: float = 30,
        debug_logger: Optional[DebugLogger] = None,
    ):
        self.base_url = resolve_base_url(endpoint)
        self.application_key = application_key
        self.application_secret = application_secret
        self.consumer_key = consumer_key
        self.timeout = timeout
        self.debug_logger = debug_logger
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _headers(self, method: str, url: str, body: str) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.application_key:
            headers["X-Ovh-Application"] = self.application_key
        if self.consumer_key:
            timestamp = int(time.time())
            headers["X-Ovh-Consumer"] = self.consumer_key
            headers["X-Ovh-Timestamp"] = str(timestamp)
            headers["X-Ovh-Signature"] = sign_request(
                self.application_secret, self.consumer_key, method, url, body, timestamp
            )
        return headers

    def _record(self, method: str, url: str, started: float, status: Optional[int],
                request_id: str, error: str) -> None:
        duration = time.monotonic() - started
        parts = urlsplit(url)
        bare_url = f"{parts.scheme}://{parts.netloc}{parts.path}"
        logger.debug(f"{method} {url} -> {status if status is not None else 'ERR'} ({duration * 1000:.0f}ms)")
        if self.debug_logger is not None:
            self.debug_logger.add_entry(DebugLogEntry(
                method=method,
                url=bare_url,
                query_string=parts.query,
                status_code=status,
                request_id=request_id,
                duration=duration,
                error=error,
            ))

    async def request(self, method: str, path: str, body: Any = None) -> Any:
        url = build_url(self.base_url, path)
        payload = "" if body is None else json.dumps(body)
        headers = self._headers(method, url, payload)
        session = await self._get_session()
        started = time.monotonic()
        try:
            async with session.request(method, url, data=payload or None, headers=headers) as response:
                text = await response.text()
                request_id = response.headers.get(REQUEST_ID_HEADER, "")
                status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            message = str(e) or e.__class__.__name__
            self._record(method, url, started, None, "", message)
            raise CloudAPIError(f"{method} {path} failed: {message}") from e

        data = None
        if text:
            try:
                data = json.loads(text)
            except ValueError:
                data = text

        if status >= 400:
            message = data.get("message") if isinstance(data, dict) else None
            message = message or (text if isinstance(data, str) and data else f"{method} {path} failed")
            self._record(method, url, started, status, request_id, message)
            raise CloudAPIError(message, status=status, request_id=request_id)

        self._record(method, url, started, status, request_id, "")
        return data

    async def get(self, path: str) -> Any:
        return await self.request("GET", path)

    async def post(self, path: str, body: Any = None) -> Any:
        return await self.request("POST", path, body)

    async def put(self, path: str, body: Any = None) -> Any:
        return await self.request("PUT", path, body)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)

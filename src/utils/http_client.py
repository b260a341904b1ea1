"""
Resilient HTTP access to the CRM backend.

Wraps httpx with the retry policy the CRM relies on:
- transport failures (connection errors, timeouts) are retried with
  exponential backoff
- a 401 triggers one session refresh per remaining retry, without backoff growth
- 5xx responses are classified and raised immediately, never retried
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional

import httpx

from utils.error_handling import (
    AppError,
    AuthError,
    ErrorKind,
    InternalServerError,
    NetworkError,
    RequestTimeoutError,
)
from utils.logging_config import get_logger
from utils.settings import Settings

logger = get_logger(__name__)

DEFAULT_RETRIES = 3
DEFAULT_BACKOFF_MS = 1000
DEFAULT_TIMEOUT_SECONDS = 30.0
JSON_CONTENT_TYPE = "application/json"


def error_message(response: httpx.Response) -> str:
    """Best-effort message from an error body ({"message"} or {"error"})."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = body.get("message") or body.get("error")
        if message:
            return str(message)
    return f"Server error ({response.status_code})"


def parse_json(response: httpx.Response) -> Any:
    """
    Decode a response body, classifying failures.

    401 -> AuthError, any other non-2xx -> InternalServerError, a body that is
    not JSON -> AppError(kind=frontend-render).
    """
    if response.status_code == 401:
        raise AuthError("Session expired")
    if not response.is_success:
        raise InternalServerError(error_message(response), status=response.status_code)
    try:
        return response.json()
    except ValueError as exc:
        raise AppError(
            "Response body is not valid JSON",
            status_code=502,
            kind=ErrorKind.FRONTEND_RENDER,
            details={"status": response.status_code},
        ) from exc


class ResilientClient:
    """Synchronous CRM client with retry, backoff and token refresh."""

    def __init__(
        self,
        base_url: str = "",
        session: Any = None,
        retries: int = DEFAULT_RETRIES,
        backoff_ms: int = DEFAULT_BACKOFF_MS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session = session
        self.retries = retries
        self.backoff_ms = backoff_ms
        self._sleep = sleep
        self._client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    @classmethod
    def from_settings(
        cls, settings: Settings, session: Any = None, **kwargs: Any
    ) -> "ResilientClient":
        options: Dict[str, Any] = dict(
            base_url=settings.api_base_url,
            session=session,
            retries=settings.request_retries,
            backoff_ms=settings.request_backoff_ms,
            timeout=float(settings.request_timeout_seconds),
        )
        options.update(kwargs)
        return cls(**options)

    def request(
        self,
        url: str,
        method: str = "GET",
        *,
        json_body: Any = None,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        retries: Optional[int] = None,
        backoff_ms: Optional[int] = None,
    ) -> httpx.Response:
        """Send a request, retrying per the client policy."""
        remaining = self.retries if retries is None else retries
        backoff = self.backoff_ms if backoff_ms is None else backoff_ms
        has_body = json_body is not None or content is not None

        while True:
            try:
                response = self._client.request(
                    method,
                    url,
                    json=json_body,
                    content=content,
                    headers=self._headers(headers, has_body),
                    params=params,
                )
            except (httpx.TimeoutException, httpx.NetworkError) as exc:
                if remaining > 0:
                    logger.warning(
                        "Request failed, retrying",
                        extra={
                            "url": url,
                            "method": method,
                            "backoff_ms": backoff,
                            "retries_left": remaining,
                            "error": str(exc),
                        },
                    )
                    self._sleep(backoff / 1000.0)
                    backoff *= 2
                    remaining -= 1
                    continue
                if isinstance(exc, httpx.TimeoutException):
                    raise RequestTimeoutError(details={"url": url}) from exc
                raise NetworkError(details={"url": url}) from exc
            except httpx.TransportError as exc:
                # Malformed URL or protocol misuse; a retry cannot succeed
                raise NetworkError(details={"url": url, "error": str(exc)}) from exc

            if response.status_code == 401:
                if remaining > 0 and self._refresh_session():
                    logger.info("Session refreshed, retrying", extra={"url": url})
                    remaining -= 1
                    continue
                raise AuthError("Session expired", details={"url": url})

            if response.status_code >= 500:
                message = error_message(response)
                logger.error(
                    "Backend error",
                    extra={"url": url, "method": method, "status": response.status_code},
                )
                raise InternalServerError(message, status=response.status_code, details={"url": url})

            return response

    def request_json(self, url: str, method: str = "GET", **kwargs: Any) -> Any:
        """request() followed by parse_json()."""
        return parse_json(self.request(url, method, **kwargs))

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ResilientClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _headers(self, headers: Optional[Dict[str, str]], has_body: bool) -> Dict[str, str]:
        merged = dict(headers or {})
        if has_body and not any(key.lower() == "content-type" for key in merged):
            merged["Content-Type"] = JSON_CONTENT_TYPE

        token = self.session.access_token() if self.session is not None else None
        if token:
            merged["Authorization"] = f"Bearer {token}"
        else:
            logger.warning("No session token available for request")
        return merged

    def _refresh_session(self) -> bool:
        if self.session is None:
            return False
        return bool(self.session.refresh())

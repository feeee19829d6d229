"""
HTTPX client with a fixed number of attempts and linear backoff.

Every non-success status code and every transport error counts as a failed
attempt. When the attempts are exhausted the last failure is raised.
"""

import time
from typing import Any, Dict, Optional

import httpx
import structlog

logger = structlog.get_logger(__name__)


class RequestFailedError(Exception):
    """Raised when every attempt of a request failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_text: Optional[str] = None,
        attempts: int = 0,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_text = response_text
        self.attempts = attempts


def calculate_backoff_delay(attempt: int, base_delay: float = 0.5) -> float:
    """
    Calculate the linear backoff delay after a failed attempt.

    Args:
        attempt: Number of the attempt that just failed (1-based)
        base_delay: Base delay in seconds

    Returns:
        Delay in seconds (base_delay * attempt)
    """
    return base_delay * max(attempt, 0)


class HTTPClient:
    """
    HTTP client with automatic retries and linear backoff.

    Features:
    - Retries on any non-2xx status and on httpx transport errors
    - Linear backoff between attempts (base * attempt number)
    - Structured logging of every failed attempt
    - Re-raises the last failure once attempts are exhausted
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.5,
        timeout: float = 30.0,
        **client_kwargs
    ):
        """
        Initialize HTTP client.

        Args:
            max_attempts: Total number of attempts per request
            base_delay: Base delay for linear backoff (seconds)
            timeout: Request timeout in seconds
            **client_kwargs: Additional arguments for httpx.Client
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.max_attempts = max_attempts
        self.base_delay = base_delay

        client_kwargs.setdefault("timeout", timeout)
        self._client = httpx.Client(**client_kwargs)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._client.close()

    def close(self):
        """Close the underlying HTTP client."""
        self._client.close()

    def _make_request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Make HTTP request with retry logic."""
        last_error: Optional[RequestFailedError] = None

        for attempt in range(1, self.max_attempts + 1):
            logger.debug(
                "Making HTTP request",
                method=method,
                url=_redact(url),
                attempt=attempt,
                max_attempts=self.max_attempts,
            )

            try:
                response = self._client.request(method, url, **kwargs)
            except httpx.HTTPError as exc:
                last_error = RequestFailedError(
                    f"{type(exc).__name__}: {exc}",
                    attempts=attempt,
                )
                last_error.__cause__ = exc
                logger.warning(
                    "HTTP request raised",
                    method=method,
                    url=_redact(url),
                    attempt=attempt,
                    exception=str(exc),
                )
            else:
                if response.is_success:
                    return response

                last_error = RequestFailedError(
                    f"HTTP {response.status_code} {response.reason_phrase}",
                    status_code=response.status_code,
                    response_text=response.text[:500],
                    attempts=attempt,
                )
                logger.warning(
                    "HTTP request failed",
                    method=method,
                    url=_redact(url),
                    attempt=attempt,
                    status_code=response.status_code,
                )

            if attempt < self.max_attempts:
                time.sleep(calculate_backoff_delay(attempt, self.base_delay))

        logger.error(
            "Max attempts exceeded",
            method=method,
            url=_redact(url),
            max_attempts=self.max_attempts,
            error=str(last_error),
        )
        raise last_error

    def get_json(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Make GET request and return the decoded JSON body.

        Raises:
            RequestFailedError: When every attempt failed
            ValueError: When the response is not valid JSON
        """
        response = self._make_request("GET", url, headers=headers, params=params)

        try:
            return response.json()
        except ValueError as exc:
            logger.error(
                "Failed to parse JSON response",
                url=_redact(url),
                status_code=response.status_code,
                response_text=response.text[:500]
            )
            raise ValueError(f"Invalid JSON response: {exc}") from exc

    def get_text(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> str:
        """Make GET request and return the response body as text."""
        return self._make_request("GET", url, headers=headers, params=params).text

    def get(self, url: str, **kwargs) -> httpx.Response:
        """Make GET request."""
        return self._make_request("GET", url, **kwargs)


def _redact(url: str) -> str:
    """Strip query parameters (API keys travel there) from logged URLs."""
    return url.split("?", 1)[0]

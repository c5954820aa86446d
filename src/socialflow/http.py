"""
HTTP Client - Timeout-bounded HTTP requests for collaborators and platforms.

Every outbound call carries an explicit timeout so a stalled remote
cannot starve a worker. Transport failures are raised as typed errors
that the publisher classifies as transient or permanent.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Union

import requests
from requests.exceptions import ConnectionError as RequestsConnectionError
from requests.exceptions import RequestException, Timeout


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


class HttpTimeoutError(TimeoutError):
    """Raised when an HTTP request times out."""

    def __init__(self, message: str, timeout: float, url: str):
        self.timeout = timeout
        self.url = url
        super().__init__(message)


class HttpNetworkError(ConnectionError):
    """Raised when the remote host cannot be reached."""

    def __init__(self, message: str, url: str):
        self.url = url
        super().__init__(message)


class HttpApiError(Exception):
    """Error response from an HTTP endpoint."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        url: Optional[str] = None,
        method: Optional[str] = None,
        retry_after: Optional[float] = None,
    ):
        self.status_code = status_code
        self.response_body = response_body
        self.url = url
        self.method = method
        self.retry_after = retry_after
        super().__init__(message)


class HttpResponse:
    """
    Wrapper for HTTP response with convenient accessors.
    """

    def __init__(self, response: requests.Response):
        self._response = response

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self._response.headers)

    @property
    def text(self) -> str:
        return self._response.text

    @property
    def content(self) -> bytes:
        return self._response.content

    def json(self) -> Any:
        """Parse response as JSON."""
        return self._response.json()

    @property
    def ok(self) -> bool:
        """True if status code is 2xx."""
        return self._response.ok

    def raise_for_status(self) -> None:
        """Raise HttpApiError if status code indicates error."""
        if self.ok:
            return
        retry_after = None
        raw_retry = self.headers.get("Retry-After")
        if raw_retry:
            try:
                retry_after = float(raw_retry)
            except ValueError:
                retry_after = None
        raise HttpApiError(
            message=f"HTTP {self.status_code}: {self._response.reason}",
            status_code=self.status_code,
            response_body=self.text[:1000] if self.text else None,
            url=str(self._response.url),
            method=self._response.request.method if self._response.request else None,
            retry_after=retry_after,
        )


class HttpClient:
    """
    HTTP client with timeout enforcement and bearer credentials.

    Usage:
        client = HttpClient(base_url="https://api.linkedin.com", bearer_token=handle)
        response = client.post("/v2/ugcPosts", json=body)
        response.raise_for_status()
    """

    def __init__(
        self,
        base_url: str = "",
        default_headers: Optional[Dict[str, str]] = None,
        timeout: float = DEFAULT_TIMEOUT,
        bearer_token: Optional[str] = None,
    ):
        """
        Initialize HTTP client.

        Args:
            base_url: Base URL for all requests
            default_headers: Headers to include in all requests
            timeout: Default timeout in seconds
            bearer_token: Bearer token for Authorization header
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers: Dict[str, str] = dict(default_headers or {})

        if bearer_token:
            self.headers["Authorization"] = f"Bearer {bearer_token}"

    def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
        data: Optional[Union[Dict[str, Any], str, bytes]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        """
        Make HTTP request with timeout enforcement.

        Raises:
            HttpTimeoutError: If request times out
            HttpNetworkError: If the host cannot be reached
            HttpApiError: For any other transport failure
        """
        url = f"{self.base_url}{endpoint}" if self.base_url else endpoint
        request_headers = {**self.headers, **(headers or {})}
        request_timeout = timeout or self.timeout

        try:
            response = requests.request(
                method=method,
                url=url,
                params=params,
                json=json,
                data=data,
                headers=request_headers,
                timeout=request_timeout,
            )
            return HttpResponse(response)

        except Timeout as e:
            raise HttpTimeoutError(
                message=f"Request timed out after {request_timeout}s",
                timeout=request_timeout,
                url=url,
            ) from e

        except RequestsConnectionError as e:
            raise HttpNetworkError(message=f"Connection failed: {e}", url=url) from e

        except RequestException as e:
            raise HttpApiError(
                message=f"Request failed: {e}",
                url=url,
                method=method,
            ) from e

    def get(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> HttpResponse:
        """Make GET request."""
        return self.request("GET", endpoint, params=params, **kwargs)

    def post(
        self,
        endpoint: str,
        json: Optional[Any] = None,
        data: Optional[Union[Dict[str, Any], str, bytes]] = None,
        **kwargs: Any,
    ) -> HttpResponse:
        """Make POST request."""
        return self.request("POST", endpoint, json=json, data=data, **kwargs)

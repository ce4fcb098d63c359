"""
KashFlow REST client.

KashflowClient.get() never raises for HTTP or network failures. It returns an
ApiResult that either carries the decoded JSON body or an ErrorKind telling the
caller whether the failure was transient (retries exhausted) or permanent.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx

from kashflow.auth import AuthenticationError, SessionTokenProvider
from kashflow.backoff import calculate_delay, parse_retry_after
from shared.log import create_logger
from validation.errors import ErrorKind, classify_exception, classify_http_error

log_trace, log_debug, _, log_warn, log_error = create_logger("Client")


@dataclass
class ApiResult:
    """Outcome of one logical GET (after retries)."""
    data: Any = None
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None
    status_code: Optional[int] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error_kind is None


class KashflowClient:
    """
    Thin GET client for the KashFlow v2 API.

    Args:
        base_url: API root
        auth: SessionTokenProvider supplying KfToken values
        timeout: Request timeout in seconds
        max_retries: Retries after the first attempt for transient failures
        http: Optional httpx.Client (tests inject one bound to respx)
        sleep: Sleep function, replaced in tests
    """

    def __init__(
        self,
        base_url: str,
        auth: SessionTokenProvider,
        timeout: float = 30.0,
        max_retries: int = 5,
        http: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = base_url.rstrip('/')
        self.auth = auth
        self.max_retries = max_retries
        self._http = http or httpx.Client(timeout=timeout)
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings) -> 'KashflowClient':
        """Build a client and its token provider from SyncSettings."""
        auth = SessionTokenProvider(
            base_url=settings.kashflow_base_url,
            username=settings.kashflow_username,
            password=settings.kashflow_password,
            memorable_word=settings.kashflow_memorable_word,
            timeout=settings.kashflow_timeout,
        )
        return cls(
            base_url=settings.kashflow_base_url,
            auth=auth,
            timeout=settings.kashflow_timeout,
            max_retries=settings.kashflow_max_retries,
        )

    def get(self, path: str, params: Optional[dict] = None) -> ApiResult:
        """
        GET a resource, retrying transient failures.

        Args:
            path: Resource path relative to the API root (e.g. "/invoices")
            params: Query parameters

        Returns:
            ApiResult with data on success, or error_kind/error on failure
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        attempt = 0
        while True:
            attempt += 1
            kind, message, status, wait = self._attempt(url, params)
            if kind is None:
                return ApiResult(data=message, status_code=status, attempts=attempt)

            retries_used = attempt - 1
            if kind == ErrorKind.FATAL or retries_used >= self.max_retries:
                if kind == ErrorKind.RETRIABLE:
                    log_error(
                        f"Giving up on {path} after {attempt} attempts: {message}",
                        status=status, attempt=attempt,
                    )
                else:
                    log_error(f"Non-retriable error for {path}: {message}", status=status)
                return ApiResult(
                    error_kind=kind, error=message, status_code=status, attempts=attempt,
                )

            if wait is None:
                wait = calculate_delay(retries_used)
            log_warn(
                f"Transient error for {path}, retrying in {wait:.1f}s: {message}",
                status=status, attempt=attempt,
            )
            self._sleep(wait)

    def _attempt(self, url: str, params: Optional[dict]):
        """
        Perform a single request.

        Returns:
            (None, data, status, None) on success, otherwise
            (ErrorKind, message, status, wait_override)
        """
        try:
            token = self.auth.get_token()
        except AuthenticationError as e:
            return ErrorKind.FATAL, f"authentication failed: {e}", None, None
        except httpx.HTTPStatusError as e:
            return (
                classify_exception(e),
                f"authentication failed: HTTP {e.response.status_code}",
                e.response.status_code,
                None,
            )
        except httpx.HTTPError as e:
            return classify_exception(e), f"authentication failed: {type(e).__name__}: {e}", None, None

        try:
            resp = self._http.get(
                url,
                params=params,
                headers={'Authorization': f'KfToken {token}'},
            )
        except httpx.HTTPError as e:
            return classify_exception(e), f"{type(e).__name__}: {e}", None, None

        status = resp.status_code
        if status == 401:
            self.auth.invalidate()
        if resp.is_error:
            wait = None
            if status == 429:
                wait = parse_retry_after(resp.headers.get('retry-after'))
            return classify_http_error(status), f"HTTP {status}", status, wait

        try:
            data = resp.json()
        except ValueError as e:
            return classify_exception(e), f"invalid JSON body: {e}", status, None

        log_trace(f"GET {url} -> {status}")
        return None, data, status, None

    def close(self) -> None:
        self._http.close()
        self.auth.close()

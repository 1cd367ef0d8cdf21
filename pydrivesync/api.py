"""HTTP implementation of the RemoteStore interface.

Speaks the JSON file API of Drive-like backends: entries live under
``/files``, listing takes a ``q`` filter expression and pages with
``pageToken``/``nextPageToken``.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Any

import httpx

from .config import config
from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    InvalidResponseError,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    RemoteError,
)
from .models import Entry, ListQuery, ListResult
from .store import RemoteStore
from .utils import DEFAULT_PAGE_SIZE, FOLDER_MIME_TYPE

logger = logging.getLogger(__name__)

ENTRY_FIELDS = "id,name,mimeType,size,modifiedTime,md5Checksum,parents"


def _quote(value: str) -> str:
    """Quote a string literal for a listing filter expression."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def build_query(folder_id: str | None, query: ListQuery | None = None) -> str:
    """Build the ``q`` filter expression for a listing request.

    Examples:
        >>> build_query("abc", ListQuery(names=("a.txt",)))
        "'abc' in parents and trashed = false and (name = 'a.txt')"
    """
    query = query or ListQuery()
    clauses = [f"{_quote(folder_id or 'root')} in parents"]
    if not query.include_trashed:
        clauses.append("trashed = false")
    if query.kind == "folder":
        clauses.append(f"mimeType = {_quote(FOLDER_MIME_TYPE)}")
    elif query.kind == "file":
        clauses.append(f"mimeType != {_quote(FOLDER_MIME_TYPE)}")
    if query.names is not None:
        names = " or ".join(f"name = {_quote(name)}" for name in query.names)
        clauses.append(f"({names})")
    return " and ".join(clauses)


class HttpRemoteStore(RemoteStore):
    """RemoteStore backed by a JSON/HTTP file API."""

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
        page_size: int = DEFAULT_PAGE_SIZE,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the HTTP store.

        Args:
            api_key: Optional API key (uses config if not provided)
            api_url: Optional API URL (uses config if not provided)
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (default: 30.0)
            page_size: Entries requested per listing page
            transport: Optional httpx transport (used by tests)
        """
        self.api_key = api_key or config.api_key
        self.api_url = (api_url or config.api_url).rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.page_size = page_size
        self._transport = transport

        if not self.api_key:
            raise ConfigurationError(
                "API key not configured. "
                "Please set DRIVESYNC_API_KEY environment variable."
            )

        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def __enter__(self) -> HttpRemoteStore:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Exponential backoff with +/- 25% jitter."""
        base_delay = self.retry_delay * (2**attempt)
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    def _handle_http_error(
        self, e: httpx.HTTPStatusError, attempt: int
    ) -> tuple[RemoteError, bool]:
        """Map an HTTP error to a RemoteError.

        Returns:
            Tuple of (exception to raise, should_retry)
        """
        status_code = e.response.status_code

        if status_code == 401:
            return AuthenticationError("Invalid API key or unauthorized access"), False
        if status_code == 403:
            error = PermissionDeniedError("Access forbidden - check your permissions")
            return error, False
        if status_code == 404:
            return NotFoundError("Resource not found"), False
        if status_code == 429:
            error: RemoteError = RateLimitError(
                "Rate limit exceeded - please try again later"
            )
            return error, attempt < self.max_retries

        error_msg = f"API request failed with status {status_code}"
        try:
            if e.response.content:
                error_data = e.response.json()
                if isinstance(error_data, dict):
                    msg = error_data.get("error") or error_data.get("message")
                    if isinstance(msg, dict):
                        msg = msg.get("message")
                    if msg:
                        error_msg = f"{error_msg}: {msg}"
        except ValueError:
            # Body is not JSON, keep the status-based message
            pass

        error = RemoteError(error_msg)
        return error, 500 <= status_code < 600 and attempt < self.max_retries

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Make an API request with retry logic.

        Args:
            method: HTTP method
            endpoint: API endpoint path
            **kwargs: Additional arguments passed to httpx

        Returns:
            Response JSON data ({} for empty bodies)

        Raises:
            RemoteError: If the request fails after all retries
        """
        url = f"{self.api_url}/{endpoint.lstrip('/')}"
        client = self._get_client()
        last_exception: RemoteError | None = None

        for attempt in range(self.max_retries + 1):
            try:
                response = client.request(method, url, **kwargs)
                response.raise_for_status()

                if not response.content:
                    return {}

                content_type = response.headers.get("Content-Type", "")
                if "application/json" not in content_type:
                    if "text/html" in content_type:
                        raise AuthenticationError(
                            "Invalid API key - server returned HTML instead of JSON"
                        )
                    raise InvalidResponseError(
                        f"Unexpected response type: {content_type}"
                    )

                try:
                    return response.json()
                except ValueError as e:
                    raise InvalidResponseError(
                        "Invalid JSON response from server"
                    ) from e

            except httpx.HTTPStatusError as e:
                error, should_retry = self._handle_http_error(e, attempt)
                last_exception = error
                if not should_retry:
                    raise error from e

                retry_after = e.response.headers.get("Retry-After")
                rate_limited = isinstance(error, RateLimitError)
                if rate_limited and retry_after and retry_after.isdigit():
                    delay = float(retry_after)
                else:
                    delay = self._calculate_retry_delay(attempt)
                logger.debug(
                    f"{method} {endpoint} failed ({error}), retrying in {delay:.1f}s"
                )
                time.sleep(delay)
            except httpx.RequestError as e:
                error = NetworkError(f"Network error: {e}")
                last_exception = error
                if attempt >= self.max_retries:
                    raise error from e
                delay = self._calculate_retry_delay(attempt)
                logger.debug(
                    f"{method} {endpoint} network error, retrying in {delay:.1f}s"
                )
                time.sleep(delay)

        if last_exception:
            raise last_exception
        raise RemoteError("Request failed after all retry attempts")

    # =========================
    # RemoteStore operations
    # =========================

    def list_children(
        self,
        folder_id: str | None,
        page_token: str | None = None,
        query: ListQuery | None = None,
    ) -> ListResult:
        params: dict[str, Any] = {
            "q": build_query(folder_id, query),
            "fields": f"nextPageToken,files({ENTRY_FIELDS})",
            "pageSize": self.page_size,
            "supportsAllDrives": "true",
            "includeItemsFromAllDrives": "true",
        }
        if page_token:
            params["pageToken"] = page_token

        data = self._request("GET", "/files", params=params)
        if not isinstance(data, dict):
            raise InvalidResponseError("Listing response is not an object")
        return ListResult.from_api_response(data)

    def get_entry(self, entry_id: str) -> Entry:
        data = self._request(
            "GET",
            f"/files/{entry_id}",
            params={"fields": ENTRY_FIELDS, "supportsAllDrives": "true"},
        )
        return Entry.from_dict(data)

    def create_folder(self, name: str, parent_id: str | None) -> Entry:
        body: dict[str, Any] = {"name": name, "mimeType": FOLDER_MIME_TYPE}
        if parent_id is not None:
            body["parents"] = [parent_id]
        data = self._request(
            "POST",
            "/files",
            params={"fields": ENTRY_FIELDS, "supportsAllDrives": "true"},
            json=body,
        )
        return Entry.from_dict(data)

    def copy_entry(
        self, source_id: str, new_name: str, dest_parent_id: str | None
    ) -> Entry:
        body: dict[str, Any] = {"name": new_name}
        if dest_parent_id is not None:
            body["parents"] = [dest_parent_id]
        data = self._request(
            "POST",
            f"/files/{source_id}/copy",
            params={"fields": ENTRY_FIELDS, "supportsAllDrives": "true"},
            json=body,
        )
        return Entry.from_dict(data)

    def delete_entry(self, entry_id: str) -> None:
        self._request(
            "DELETE", f"/files/{entry_id}", params={"supportsAllDrives": "true"}
        )

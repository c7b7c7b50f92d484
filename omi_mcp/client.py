"""
Omi.me REST API client for the Omi MCP integration.

This module owns the authenticated HTTP session, tracks the rate-limit state
reported by the Omi.me API, normalizes list responses and maps HTTP failures
into a small set of domain exceptions.
"""

import time
import logging
from dataclasses import dataclass
from typing import Dict, Any, Optional, Mapping

import requests

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.omi.me/v1"

ACTION_ITEM_STATUSES = ('pending', 'completed', 'cancelled')
MESSAGE_ROLES = ('user', 'assistant', 'system')
SORT_ORDERS = ('asc', 'desc')

class OmiAPIError(Exception):
    """Base exception for errors returned by the Omi.me API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

class UnauthorizedError(OmiAPIError):
    """The API token was rejected (HTTP 401)."""

    def __init__(self):
        super().__init__("Unauthorized: Invalid API token", 401)

class ForbiddenError(OmiAPIError):
    """The API token lacks permission for the operation (HTTP 403)."""

    def __init__(self):
        super().__init__("Forbidden: Insufficient permissions", 403)

class RateLimitedError(OmiAPIError):
    """The server rejected the request because of rate limiting (HTTP 429)."""

    def __init__(self, retry_after: int):
        super().__init__(f"Rate limited. Retry after {retry_after} seconds", 429)
        self.retry_after = retry_after

class ServerError(OmiAPIError):
    """The server failed to process the request (HTTP 500)."""

    def __init__(self):
        super().__init__("Internal server error", 500)

class UnknownAPIError(OmiAPIError):
    """Any other unsuccessful HTTP status."""

    def __init__(self, status_code: int):
        super().__init__(f"API error: {status_code}", status_code)

@dataclass(frozen=True)
class RateLimitStatus:
    """Snapshot of the rate-limit state last reported by the server."""
    remaining: int
    reset_at: int

    def to_dict(self) -> Dict[str, int]:
        return {'remaining': self.remaining, 'reset_at': self.reset_at}

def parse_int_header(value: Optional[str]) -> Optional[int]:
    """
    Parse a header value as a base-10 integer.

    Args:
        value: Raw header value, possibly None.

    Returns:
        The parsed integer, or None when the value is missing or not a number.
    """
    if value is None:
        return None
    try:
        return int(str(value).strip(), 10)
    except ValueError:
        return None

def normalize_list_payload(payload: Any) -> Dict[str, Any]:
    """
    Normalize a list response into a ``{"data": [...], "total": n}`` pair.

    The API returns either a bare JSON array or an object wrapping the array
    under ``data``. The API does not report a separate total, so ``total`` is
    always the length of the normalized list.
    """
    if isinstance(payload, list):
        data = payload
    elif isinstance(payload, dict):
        data = payload.get('data') or []
    else:
        data = []
    return {'data': data, 'total': len(data)}

def compact_params(params: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Drop keys whose value is None."""
    if not params:
        return {}
    return {key: value for key, value in params.items() if value is not None}

class OmiClient:
    """
    Client for the Omi.me REST API.

    One instance is shared by the whole process. Rate-limit state is advisory:
    it is updated from response headers and exposed through
    get_rate_limit_status(), but requests are never delayed locally. The
    server remains the enforcement authority.
    """

    REQUEST_TIMEOUT = 30  # seconds
    DEFAULT_RATE_LIMIT_REMAINING = 100
    DEFAULT_RATE_LIMIT_RESET = 0
    DEFAULT_RETRY_AFTER = 60

    def __init__(self,
                 api_token: str,
                 api_url: Optional[str] = None,
                 rate_limit_requests: Optional[int] = None,
                 rate_limit_window: Optional[int] = None):
        """
        Initialize the client.

        Args:
            api_token: Omi.me API token sent as a bearer token.
            api_url: Base URL override (default: production endpoint).
            rate_limit_requests: Advisory request budget, informational only.
            rate_limit_window: Advisory budget window in seconds, informational only.
        """
        if not api_token:
            raise ValueError("An Omi.me API token is required")

        self.api_url = (api_url or DEFAULT_API_URL).rstrip('/')
        self.rate_limit_requests = rate_limit_requests
        self.rate_limit_window = rate_limit_window

        self.session = requests.Session()
        self.session.headers.update({
            'Authorization': f"Bearer {api_token}",
            'Content-Type': 'application/json',
        })

        self._rate_limit = RateLimitStatus(
            remaining=self.DEFAULT_RATE_LIMIT_REMAINING,
            reset_at=self.DEFAULT_RATE_LIMIT_RESET,
        )

        if rate_limit_requests or rate_limit_window:
            logger.debug(f"Advisory rate limit configured: {rate_limit_requests} requests "
                         f"per {rate_limit_window}s (server headers take precedence)")
        logger.info(f"Omi.me client initialized for {self.api_url}")

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()

    def get_rate_limit_status(self) -> RateLimitStatus:
        """Return the current rate-limit state without performing any I/O."""
        return self._rate_limit

    # Request pipeline

    def _check_rate_limit(self) -> None:
        """Log how long to wait when the known budget is exhausted."""
        status = self._rate_limit
        now = time.time()
        if status.remaining <= 0 and status.reset_at > now:
            wait_time = status.reset_at - now
            logger.warning(f"Rate limit reached. Waiting {wait_time:.0f}s before retry is advised.")

    def _record_rate_limit(self, headers: Mapping[str, str]) -> None:
        """Replace rate-limit state from a successful response."""
        remaining = parse_int_header(headers.get('x-ratelimit-remaining'))
        reset_at = parse_int_header(headers.get('x-ratelimit-reset'))
        self._rate_limit = RateLimitStatus(
            remaining=self.DEFAULT_RATE_LIMIT_REMAINING if remaining is None else remaining,
            reset_at=self.DEFAULT_RATE_LIMIT_RESET if reset_at is None else reset_at,
        )

    def _record_error_rate_limit(self, headers: Mapping[str, str]) -> None:
        """Update rate-limit state from an error response, field by field."""
        current = self._rate_limit
        remaining = parse_int_header(headers.get('x-ratelimit-remaining'))
        reset_at = parse_int_header(headers.get('x-ratelimit-reset'))
        self._rate_limit = RateLimitStatus(
            remaining=current.remaining if remaining is None else remaining,
            reset_at=current.reset_at if reset_at is None else reset_at,
        )

    def _raise_for_error(self, error: requests.HTTPError) -> None:
        """
        Map an HTTP error to an OmiAPIError.

        Raises:
            OmiAPIError: Always, when the error carries a response.
            requests.HTTPError: Unchanged, when it carries no response.
        """
        response = error.response
        if response is None:
            raise error

        headers = response.headers
        self._record_error_rate_limit(headers)

        status = response.status_code
        if status == 401:
            raise UnauthorizedError() from error
        if status == 403:
            raise ForbiddenError() from error
        if status == 429:
            retry_after = parse_int_header(headers.get('retry-after'))
            if retry_after is None:
                retry_after = self.DEFAULT_RETRY_AFTER
            logger.warning(f"Rate limited. Retry after {retry_after}s")
            raise RateLimitedError(retry_after) from error
        if status == 500:
            raise ServerError() from error
        raise UnknownAPIError(status) from error

    def _request(self,
                 method: str,
                 path: str,
                 params: Optional[Mapping[str, Any]] = None,
                 json_body: Optional[Dict[str, Any]] = None) -> requests.Response:
        """
        Perform one API call and update rate-limit state.

        Connection failures and timeouts raised by requests propagate as-is.
        """
        self._check_rate_limit()

        url = f"{self.api_url}{path}"
        logger.debug(f"{method} {url} params={params} body={json_body}")
        response = self.session.request(
            method,
            url,
            params=compact_params(params) or None,
            json=json_body,
            timeout=self.REQUEST_TIMEOUT,
        )

        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            logger.debug(f"{method} {url} failed with status {response.status_code}")
            self._raise_for_error(e)

        self._record_rate_limit(response.headers)
        return response

    def _decode(self, response: requests.Response) -> Any:
        """Parsed JSON body, or None when a successful reply carries no body."""
        if not response.content:
            return None
        return response.json()

    def _list(self, path: str, params: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        response = self._request('GET', path, params=params)
        return normalize_list_payload(self._decode(response))

    def _get(self, path: str) -> Optional[Dict[str, Any]]:
        return self._decode(self._request('GET', path))

    def _post(self, path: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._decode(self._request('POST', path, json_body=data))

    def _patch(self, path: str, data: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        # Merge-patch: omitted fields are never sent.
        return self._decode(self._request('PATCH', path, json_body=compact_params(data)))

    def _delete(self, path: str) -> None:
        self._request('DELETE', path)

    # Memories

    def get_memories(self, params: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        return self._list('/user/memories', params)

    def get_memory(self, memory_id: str) -> Dict[str, Any]:
        return self._get(f"/user/memories/{memory_id}")

    def create_memory(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._post('/user/memories', data)

    def update_memory(self, memory_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        return self._patch(f"/user/memories/{memory_id}", data)

    def delete_memory(self, memory_id: str) -> None:
        self._delete(f"/user/memories/{memory_id}")

    # Action items

    def get_action_items(self, params: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        return self._list('/user/action-items', params)

    def get_action_item(self, item_id: str) -> Dict[str, Any]:
        return self._get(f"/user/action-items/{item_id}")

    def create_action_item(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._post('/user/action-items', data)

    def update_action_item(self, item_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        return self._patch(f"/user/action-items/{item_id}", data)

    def delete_action_item(self, item_id: str) -> None:
        self._delete(f"/user/action-items/{item_id}")

    # Conversations

    def get_conversations(self, params: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        return self._list('/user/conversations', params)

    def get_conversation(self, conversation_id: str) -> Dict[str, Any]:
        return self._get(f"/user/conversations/{conversation_id}")

    def create_conversation(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._post('/user/conversations', data)

    def update_conversation(self, conversation_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        return self._patch(f"/user/conversations/{conversation_id}", data)

    def delete_conversation(self, conversation_id: str) -> None:
        self._delete(f"/user/conversations/{conversation_id}")

    # Messages

    def create_message(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._post('/messages', data)

def create_client(omi_config: Dict[str, Any]) -> OmiClient:
    """
    Create an OmiClient from the ``omi`` configuration section.

    Args:
        omi_config: Dictionary with api_token and optional api_url,
            rate_limit_requests and rate_limit_window.

    Returns:
        Configured OmiClient instance.
    """
    return OmiClient(
        api_token=omi_config.get('api_token'),
        api_url=omi_config.get('api_url'),
        rate_limit_requests=omi_config.get('rate_limit_requests'),
        rate_limit_window=omi_config.get('rate_limit_window'),
    )

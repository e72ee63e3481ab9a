"""HTTP client for the posts API with status guarding and request/response tracking."""
import logging
from typing import Any, Dict, List, Optional, Union
import httpx

from config.settings import API_BASE_URL, REQUEST_TIMEOUT, PROTECTED_OWNER
from src.client.models import AuthResponse, Credentials, Post

logger = logging.getLogger(__name__)

ALLOWED_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH"]

Payload = Union[Dict[str, Any], Post, None]


class ApiStatusError(Exception):
    """Raised when the API answers 4xx/5xx to a call that does not tolerate it."""

    def __init__(self, method: str, url: str, response: httpx.Response):
        self.method = method
        self.url = url
        self.response = response
        body = response.text
        if len(body) > 200:
            body = body[:197] + "..."
        super().__init__(f"{method} {url} returned {response.status_code}: {body}")

    @property
    def status_code(self) -> int:
        return self.response.status_code


def bearer(token: str) -> Dict[str, str]:
    """Authorization header for a bearer token."""
    return {"Authorization": f"Bearer {token}"}


def response_body(response: httpx.Response) -> Any:
    """Parsed JSON body, falling back to raw text."""
    try:
        return response.json()
    except ValueError:
        return response.text


class PostsApiClient:
    """Client for the posts collection and the /register endpoint.

    Every call raises ApiStatusError on a 4xx/5xx answer unless it is made
    with fail_on_status=False. The last request and response are kept so a
    failed check can be reported with the exchange that caused it.
    """

    def __init__(
        self,
        base_url: str = API_BASE_URL,
        timeout: float = REQUEST_TIMEOUT,
        protected_owner: str = PROTECTED_OWNER,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url
        self.protected_owner = protected_owner
        self._client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)
        self._last_request: Optional[Dict[str, Any]] = None
        self._last_response: Optional[httpx.Response] = None
        self.history: List[Dict[str, Any]] = []

    def __enter__(self) -> "PostsApiClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def request(
        self,
        method: str,
        path: str,
        *,
        json: Payload = None,
        params: Any = None,
        headers: Optional[Dict[str, str]] = None,
        fail_on_status: bool = True,
    ) -> httpx.Response:
        """Send a request relative to the base URL and track it."""
        method = method.upper()
        if method not in ALLOWED_METHODS:
            raise ValueError(f"Invalid HTTP method: {method}. Allowed: {ALLOWED_METHODS}")

        if isinstance(json, Post):
            json = json.payload()

        self._last_request = {
            "method": method,
            "url": str(self._client.build_request(method, path, params=params).url),
            "payload": json,
        }
        # Cleared first so a transport error is not reported with a stale response
        self._last_response = None

        response = self._client.request(method, path, json=json, params=params, headers=headers)
        self._last_response = response
        self.history.append({"request": self._last_request, "status_code": response.status_code})
        logger.debug(f"{method} {response.url} -> {response.status_code}")

        if fail_on_status and response.is_error:
            logger.warning(f"Unexpected status {response.status_code} for {method} {response.url}")
            raise ApiStatusError(method, str(response.url), response)
        return response

    # Registration

    def register(self, credentials: Credentials) -> AuthResponse:
        """Register a user and return the issued access token."""
        response = self.request("POST", "/register", json=credentials.model_dump())
        return AuthResponse.model_validate(response.json())

    # Posts collection

    def list_posts(
        self,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        ids: Optional[List[int]] = None,
        fail_on_status: bool = True,
    ) -> httpx.Response:
        """GET /posts, optionally paginated (_page/_limit) or filtered by repeated id."""
        params: List[tuple] = []
        if page is not None:
            params.append(("_page", page))
        if limit is not None:
            params.append(("_limit", limit))
        for post_id in ids or []:
            params.append(("id", post_id))
        return self.request("GET", "/posts", params=params or None, fail_on_status=fail_on_status)

    def get_post(self, post_id: Any, fail_on_status: bool = True) -> httpx.Response:
        return self.request("GET", f"/posts/{post_id}", fail_on_status=fail_on_status)

    def create_post(
        self,
        post: Payload = None,
        token: Optional[str] = None,
        protected: bool = False,
        fail_on_status: bool = True,
    ) -> httpx.Response:
        """POST a post to /posts, or to the guarded /<owner>/posts when protected."""
        path = f"/{self.protected_owner}/posts" if protected else "/posts"
        headers = bearer(token) if token else None
        return self.request("POST", path, json=post, headers=headers, fail_on_status=fail_on_status)

    def update_post(
        self,
        post_id: Any,
        post: Payload,
        token: Optional[str] = None,
        fail_on_status: bool = True,
    ) -> httpx.Response:
        headers = bearer(token) if token else None
        return self.request(
            "PUT", f"/posts/{post_id}", json=post, headers=headers, fail_on_status=fail_on_status
        )

    def delete_post(
        self,
        post_id: Any,
        token: Optional[str] = None,
        fail_on_status: bool = True,
    ) -> httpx.Response:
        headers = bearer(token) if token else None
        return self.request(
            "DELETE", f"/posts/{post_id}", headers=headers, fail_on_status=fail_on_status
        )

    # Tracking

    def get_last_request(self) -> Optional[Dict[str, Any]]:
        """Get last request details."""
        return self._last_request

    def get_last_response(self) -> Optional[httpx.Response]:
        """Get last response."""
        return self._last_response

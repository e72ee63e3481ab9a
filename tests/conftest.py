"""Pytest configuration: API fixtures, the in-process fake API, and failure capture."""
import json
import re
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional
import pytest
import httpx

from config import settings
from src.analyzer.failure_parser import build_failure_context, write_failure_report
from src.client.api_client import ApiStatusError, PostsApiClient
from src.client.credentials import obtain_access_token

pytest_plugins = ["pytester"]

FAKE_BASE_URL = "http://posts.test"


class FakePostsApi:
    """In-memory json-server-auth lookalike served through httpx.MockTransport.

    Seeds 100 posts, issues tokens from /register and guards writes to
    /<protected_owner>/posts behind a bearer token.
    """

    def __init__(self, protected_owner: str = "664", seed: int = 100):
        self.protected_owner = protected_owner
        self.posts: List[Dict[str, Any]] = [
            {"userId": (i - 1) // 10 + 1, "id": i, "title": f"post {i}", "body": f"body of post {i}"}
            for i in range(1, seed + 1)
        ]
        self.users: List[Dict[str, Any]] = []
        self.tokens: set = set()
        self.requests: List[httpx.Request] = []
        self.transport = httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.rstrip("/")
        method = request.method

        if path == "/register" and method == "POST":
            return self._register(request)

        match = re.fullmatch(r"(?:/(?P<owner>[^/]+))?/posts(?:/(?P<post_id>[^/]+))?", path)
        if not match:
            return httpx.Response(404, json={})

        owner = match.group("owner")
        post_id = match.group("post_id")
        if owner is not None:
            if owner != self.protected_owner:
                return httpx.Response(404, json={})
            if method != "GET" and not self._authorized(request):
                return httpx.Response(401, text="Missing authorization header")

        if post_id is None:
            if method == "GET":
                return httpx.Response(200, json=self._query(request.url.params))
            if method == "POST":
                return httpx.Response(201, json=self._create(self._body(request)))
            return httpx.Response(404, json={})

        post = self._find(post_id)
        if post is None:
            return httpx.Response(404, json={})
        if method == "GET":
            return httpx.Response(200, json=post)
        if method in ("PUT", "PATCH"):
            changes = self._body(request)
            if method == "PUT":
                post.clear()
                post["id"] = int(post_id)
            changes.pop("id", None)
            post.update(changes)
            return httpx.Response(200, json=post)
        if method == "DELETE":
            self.posts.remove(post)
            return httpx.Response(200, json={})
        return httpx.Response(404, json={})

    def _register(self, request: httpx.Request) -> httpx.Response:
        body = self._body(request)
        email = body.get("email")
        password = body.get("password")
        if not email or not password:
            return httpx.Response(400, text="Email and password are required")
        if "@" not in email:
            return httpx.Response(400, text="Email format is invalid")
        if len(password) < 4:
            return httpx.Response(400, text="Password is too short")
        if any(user["email"] == email for user in self.users):
            return httpx.Response(400, text="Email already exists")
        user = {"email": email, "id": len(self.users) + 1}
        self.users.append(user)
        token = f"eyJ.{uuid.uuid4().hex}.sig"
        self.tokens.add(token)
        return httpx.Response(201, json={"accessToken": token, "user": user})

    def _authorized(self, request: httpx.Request) -> bool:
        header = request.headers.get("Authorization", "")
        scheme, _, token = header.partition(" ")
        return scheme == "Bearer" and token in self.tokens

    def _query(self, params: httpx.QueryParams) -> List[Dict[str, Any]]:
        results = self.posts
        ids = params.get_list("id")
        if ids:
            results = [post for post in results if str(post["id"]) in ids]
        if "_page" in params or "_limit" in params:
            limit = int(params.get("_limit", 10))
            page = int(params.get("_page", 1))
            start = (page - 1) * limit
            results = results[start:start + limit]
        return results

    def _create(self, body: Dict[str, Any]) -> Dict[str, Any]:
        body.pop("id", None)
        post = {**body, "id": max((post["id"] for post in self.posts), default=0) + 1}
        self.posts.append(post)
        return post

    def _find(self, post_id: str) -> Optional[Dict[str, Any]]:
        for post in self.posts:
            if str(post["id"]) == post_id:
                return post
        return None

    @staticmethod
    def _body(request: httpx.Request) -> Dict[str, Any]:
        if not request.content:
            return {}
        return json.loads(request.content)


def pytest_addoption(parser):
    parser.addoption(
        "--fake",
        action="store_true",
        default=False,
        help="Run API checks against the in-process fake API instead of POSTS_API_BASE_URL",
    )


def _fake(config) -> bool:
    return config.getoption("--fake") or settings.FAKE_API


@pytest.fixture(scope="session")
def fake_api():
    """Session-wide fake API shared by the checks and the registration step."""
    return FakePostsApi(protected_owner=settings.PROTECTED_OWNER)


@pytest.fixture(scope="session")
def client_factory(request):
    """Build clients bound to the live API, or to the fake API with --fake."""
    if _fake(request.config):
        fake_api = request.getfixturevalue("fake_api")

        def factory() -> PostsApiClient:
            return PostsApiClient(base_url=FAKE_BASE_URL, transport=fake_api.transport)
    else:
        def factory() -> PostsApiClient:
            return PostsApiClient(base_url=settings.API_BASE_URL)
    return factory


@pytest.fixture(scope="session")
def access_token(client_factory):
    """Register a generated user once per run and share its token."""
    with client_factory() as client:
        return obtain_access_token(client)


@pytest.fixture
def api(client_factory):
    """Posts API client for a single check."""
    client = client_factory()
    yield client
    client.close()


def _last_exchange(item, exc_value):
    """Request and response that led to a failure, if any were made."""
    client = getattr(item, "funcargs", {}).get("api")
    if isinstance(client, PostsApiClient) and client.get_last_request() is not None:
        return client.get_last_request(), client.get_last_response()
    # Setup errors (e.g. a rejected registration) carry their own response
    if isinstance(exc_value, ApiStatusError):
        request = exc_value.response.request
        payload = json.loads(request.content) if request.content else None
        return {"method": exc_value.method, "url": exc_value.url, "payload": payload}, exc_value.response
    return None, None


@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_makereport(item, call):
    """Write a failure report for every check that failed or errored in setup."""
    outcome = yield
    report = outcome.get_result()

    if report.when not in ("setup", "call") or not report.failed or not call.excinfo:
        return

    exc_info = call.excinfo
    last_request, last_response = _last_exchange(item, exc_info.value)

    failure_context = build_failure_context(
        test_file=str(item.path),
        test_name=item.name,
        exc_info=(exc_info.type, exc_info.value, exc_info.tb),
        last_request=last_request,
        last_response=last_response,
    )
    output_file = write_failure_report(failure_context, Path(settings.FAILURES_DIR), item.nodeid)
    print(f"\n[FAILURE CAPTURED] {item.name} -> {output_file}")

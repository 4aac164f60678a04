"""Shared fixtures: a fake SailPoint tenant served through httpx.MockTransport."""
import json
from typing import Any, Callable, Dict, List, Tuple, Union

import httpx
import pytest

from client import SailPointClient, SailPointConfig, TokenProvider, set_client

BASE_URL = "https://acme.api.identitynow.com"

Route = Union[Tuple[int, Any], Callable[[httpx.Request], httpx.Response]]


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeTenant:
    """
    Routes requests by (method, path). A route is either (status, json_body)
    or a callable taking the request. Unrouted paths answer 404.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Route] = {}
        self.requests: List[httpx.Request] = []
        self.token_requests = 0
        self.token_response: Route = None

    def add(self, method: str, path: str, route: Route):
        self.routes[(method, path)] = route

    def api_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path != "/oauth/token"]

    def last_json(self) -> Any:
        return json.loads(self.api_requests()[-1].content)

    def _respond(self, route: Route, request: httpx.Request) -> httpx.Response:
        if callable(route):
            return route(request)
        status, body = route
        return httpx.Response(status, json=body)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/oauth/token":
            self.token_requests += 1
            if self.token_response is not None:
                return self._respond(self.token_response, request)
            return httpx.Response(200, json={"access_token": f"token-{self.token_requests}", "expires_in": 3600})

        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"detail": f"no route for {request.method} {request.url.path}"})
        return self._respond(route, request)


@pytest.fixture
def config():
    return SailPointConfig(
        base_url=BASE_URL,
        client_id="client-id-1234",
        client_secret="client-secret-5678",
        max_retries=2,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tenant():
    return FakeTenant()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def sailpoint(config, tenant, clock, sleeps):
    """A SailPointClient wired to the fake tenant and installed as the process client."""

    async def fake_sleep(seconds: float):
        sleeps.append(seconds)

    transport = httpx.MockTransport(tenant)
    provider = TokenProvider(config, transport=transport, clock=clock)
    client = SailPointClient(config, token_provider=provider, transport=transport, sleep=fake_sleep)
    set_client(client)
    yield client
    set_client(None)

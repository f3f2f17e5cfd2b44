"""Shared fixtures for portal tests."""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from compass_portal.core.auth import Session
from compass_portal.core.config import Settings
from compass_portal.core.context import PortalContext
from compass_portal.main import create_app
from compass_portal.ui.popup import PopupRegistry

API_BASE = "https://compass.test/api"

ACME_ID = "c0ffee00-0000-4000-8000-000000000001"
PROD_ID = "e0e0e0e0-0000-4000-8000-000000000002"


class FakeBackend:
    """Canned responses keyed by method and path; records every request."""

    def __init__(self):
        self.routes = {}
        self.calls: list[httpx.Request] = []

    def add(self, method, path, body=None, status=200, headers=None, content=None):
        self.routes[(method.upper(), "/api" + path)] = (status, body, headers, content)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": f"No route for {request.method} {request.url.path}"})
        status, body, headers, content = route
        if callable(body):
            body = body(request)
            if isinstance(body, httpx.Response):
                return body
        if content is not None:
            return httpx.Response(status, content=content, headers=headers)
        if body is None:
            return httpx.Response(status, headers=headers)
        return httpx.Response(status, json=body, headers=headers)

    def requests(self, method, path):
        return [r for r in self.calls if r.method == method and r.url.path == "/api" + path]

    def bodies(self, method, path):
        return [json.loads(r.content) for r in self.requests(method, path)]


@pytest.fixture
def settings(tmp_path):
    """Fast-polling settings isolated from the environment and home directory."""
    return Settings(
        _env_file=None,
        environment="development",
        api_base_url=API_BASE + "/",
        token=None,
        token_file=tmp_path / "token",
        download_dir=tmp_path / "downloads",
        oauth_poll_interval_seconds=0.01,
        oauth_reload_delay_seconds=0.01,
        oauth_progress_poll_interval_seconds=0.01,
        assessment_poll_interval_seconds=0.01,
    )


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def ctx(settings, backend):
    """Portal context whose API calls are served by ``backend``."""
    return PortalContext.create(
        settings,
        Session.from_token("test-token"),
        transport=httpx.MockTransport(backend.handler),
    )


@pytest.fixture
def acme():
    return {
        "ClientId": ACME_ID,
        "Name": "Acme Corp",
        "Status": "Active",
        "EnvironmentCount": 1,
    }


@pytest.fixture
def prod_environment():
    """Active environment with OAuth already attached, in PascalCase."""
    return {
        "AzureEnvironmentId": PROD_ID,
        "ClientId": ACME_ID,
        "Name": "Prod",
        "TenantId": "11111111-2222-3333-4444-555555555555",
        "SubscriptionIds": ["sub-1", "sub-2"],
        "IsActive": True,
        "HasOAuthCredentials": True,
    }


@pytest.fixture
def registry():
    return PopupRegistry()


@pytest.fixture
def client(registry, settings):
    """Test client for the OAuth landing app."""
    app = create_app(registry, settings)
    with TestClient(app) as test_client:
        yield test_client

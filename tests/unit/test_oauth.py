"""Tests for the OAuth delegation flow and browser popups."""

import asyncio

import pytest

from compass_portal.core.errors import FORBIDDEN_MESSAGE
from compass_portal.schemas.client import Client
from compass_portal.ui.environments import ManageEnvironmentsModal
from compass_portal.ui.oauth import OAuthButton, OAuthDelegationFlow, OAuthStage, is_valid_authorization_url
from compass_portal.ui.popup import BrowserPopupLauncher, PopupRegistry, state_from_url
from tests.conftest import ACME_ID, PROD_ID

AUTH_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/authorize?client_id=x&state=abc123"


class FakePopup:
    def __init__(self):
        self.closed = False


class FakeLauncher:
    def __init__(self, popup=None):
        self.popup = popup
        self.opened = []

    def open(self, url, width, height):
        self.opened.append((url, width, height))
        return self.popup


class Reloads:
    def __init__(self):
        self.count = 0

    async def __call__(self):
        self.count += 1


def make_flow(ctx, launcher):
    reloads = Reloads()
    flow = OAuthDelegationFlow(ctx.services.oauth, ctx.settings, launcher, on_reload=reloads)
    return flow, reloads


async def wait_for_progress_request(backend):
    for _ in range(200):
        if backend.requests("GET", "/AzureEnvironment/oauth/progress/p-1"):
            return
        await asyncio.sleep(0.01)
    raise AssertionError("provisioning progress was never requested")


class TestAuthorizationUrl:
    @pytest.mark.parametrize("url,valid", [
        (AUTH_URL, True),
        ("http://localhost:5000/authorize", True),
        ("", False),
        (None, False),
        ("javascript:alert(1)", False),
        ("/relative/path", False),
    ])
    def test_url_validation(self, url, valid):
        assert is_valid_authorization_url(url) is valid


class TestOAuthDelegationFlow:
    """Tests for initiate, popup, polling and reload."""

    @pytest.mark.asyncio
    async def test_popup_blocked_starts_no_polling(self, ctx, backend):
        backend.add("POST", "/AzureEnvironment/oauth/initiate", {"authorizationUrl": AUTH_URL})
        launcher = FakeLauncher(popup=None)
        flow, reloads = make_flow(ctx, launcher)

        poller = await flow.start(ACME_ID, "Acme Corp")

        assert poller is None
        assert flow.poller is None
        assert flow.stage == OAuthStage.FAILED
        assert flow.error == "Popup was blocked. Please allow popups for this site and try again."
        assert len(launcher.opened) == 1
        assert reloads.count == 0

    @pytest.mark.asyncio
    async def test_reload_after_popup_closes(self, ctx, backend):
        backend.add("POST", "/AzureEnvironment/oauth/initiate", {"AuthorizationUrl": AUTH_URL, "State": "abc123"})
        popup = FakePopup()
        launcher = FakeLauncher(popup)
        flow, reloads = make_flow(ctx, launcher)

        poller = await flow.start(ACME_ID, "Acme Corp")
        assert flow.stage == OAuthStage.AWAITING_AUTHORIZATION
        assert launcher.opened == [(AUTH_URL, 600, 700)]
        body = backend.bodies("POST", "/AzureEnvironment/oauth/initiate")[0]
        assert body["clientId"] == ACME_ID
        assert body["clientName"] == "Acme Corp"

        popup.closed = True
        await poller.wait()

        assert reloads.count == 1
        assert flow.stage == OAuthStage.FINISHED

    @pytest.mark.asyncio
    async def test_cancel_before_close_skips_reload(self, ctx, backend):
        backend.add("POST", "/AzureEnvironment/oauth/initiate", {"authorizationUrl": AUTH_URL})
        popup = FakePopup()
        flow, reloads = make_flow(ctx, FakeLauncher(popup))

        poller = await flow.start(ACME_ID, "Acme Corp")
        await flow.cancel()
        popup.closed = True

        assert not poller.running
        assert flow.poller is None
        assert reloads.count == 0

    @pytest.mark.asyncio
    async def test_waits_for_secret_store_provisioning(self, ctx, backend):
        backend.add("POST", "/AzureEnvironment/oauth/initiate", {
            "requiresKeyVaultCreation": True,
            "progressId": "p-1",
        })
        states = iter([
            {"status": "Creating", "progressPercentage": 40},
            {"status": "Completed", "progressPercentage": 100, "authorizationUrl": AUTH_URL},
        ])
        backend.add("GET", "/AzureEnvironment/oauth/progress/p-1", lambda request: next(states))
        launcher = FakeLauncher(FakePopup())
        flow, _ = make_flow(ctx, launcher)

        poller = await flow.start(ACME_ID, "Acme Corp")

        assert poller is not None
        assert launcher.opened[0][0] == AUTH_URL
        assert len(backend.requests("GET", "/AzureEnvironment/oauth/progress/p-1")) == 2
        await flow.cancel()

    @pytest.mark.asyncio
    async def test_provisioning_failure(self, ctx, backend):
        backend.add("POST", "/AzureEnvironment/oauth/initiate", {
            "requiresKeyVaultCreation": True,
            "progressId": "p-1",
        })
        backend.add("GET", "/AzureEnvironment/oauth/progress/p-1", {"status": "Failed", "message": "Vault quota exceeded"})
        launcher = FakeLauncher(FakePopup())
        flow, _ = make_flow(ctx, launcher)

        assert await flow.start(ACME_ID, "Acme Corp") is None
        assert flow.error == "Vault quota exceeded"
        assert launcher.opened == []

    @pytest.mark.asyncio
    async def test_cancel_during_provisioning_opens_no_popup(self, ctx, backend):
        backend.add("POST", "/AzureEnvironment/oauth/initiate", {
            "requiresKeyVaultCreation": True,
            "progressId": "p-1",
        })
        backend.add("GET", "/AzureEnvironment/oauth/progress/p-1", {
            "status": "Creating", "progressPercentage": 40, "authorizationUrl": AUTH_URL,
        })
        launcher = FakeLauncher(FakePopup())
        flow, reloads = make_flow(ctx, launcher)

        setup = asyncio.create_task(flow.start(ACME_ID, "Acme Corp"))
        await wait_for_progress_request(backend)
        assert flow.stage == OAuthStage.PROVISIONING

        await flow.cancel()

        assert await setup is None
        assert launcher.opened == []
        assert flow.poller is None
        assert flow.provisioner is None
        assert flow.error == ""
        assert flow.stage == OAuthStage.IDLE
        assert reloads.count == 0

    @pytest.mark.asyncio
    async def test_closing_modal_abandons_provisioning(self, ctx, backend, acme):
        backend.add("POST", "/AzureEnvironment/oauth/initiate", {
            "requiresKeyVaultCreation": True,
            "progressId": "p-1",
        })
        backend.add("GET", "/AzureEnvironment/oauth/progress/p-1", {"status": "Creating", "progressPercentage": 10})
        launcher = FakeLauncher(FakePopup())
        modal = ManageEnvironmentsModal(ctx, Client.model_validate(acme), launcher, confirm=lambda message: True)

        setup = asyncio.create_task(modal.setup_oauth())
        await wait_for_progress_request(backend)
        await modal.close()
        requests_at_close = len(backend.requests("GET", "/AzureEnvironment/oauth/progress/p-1"))
        await asyncio.sleep(ctx.settings.oauth_progress_poll_interval_seconds * 5)

        assert await setup is False
        assert launcher.opened == []
        assert modal.oauth.poller is None
        assert len(backend.requests("GET", "/AzureEnvironment/oauth/progress/p-1")) == requests_at_close

    @pytest.mark.asyncio
    async def test_invalid_url_never_opens_popup(self, ctx, backend):
        backend.add("POST", "/AzureEnvironment/oauth/initiate", {"authorizationUrl": "not a url"})
        launcher = FakeLauncher(FakePopup())
        flow, _ = make_flow(ctx, launcher)

        assert await flow.start(ACME_ID, "Acme Corp") is None
        assert flow.error == "Invalid authorization URL received from server"
        assert launcher.opened == []

    @pytest.mark.asyncio
    async def test_initiate_forbidden(self, ctx, backend):
        backend.add("POST", "/AzureEnvironment/oauth/initiate", {"message": "no"}, status=403)
        flow, _ = make_flow(ctx, FakeLauncher(FakePopup()))

        assert await flow.start(ACME_ID, "Acme Corp") is None
        assert flow.error == FORBIDDEN_MESSAGE

    @pytest.mark.asyncio
    async def test_revoke(self, ctx, backend):
        backend.add("DELETE", f"/AzureEnvironment/{PROD_ID}/oauth", status=204)
        flow, reloads = make_flow(ctx, FakeLauncher())

        assert not await flow.revoke(PROD_ID, confirm=lambda message: False)
        assert backend.calls == []

        assert await flow.revoke(PROD_ID, confirm=lambda message: True)
        assert len(backend.requests("DELETE", f"/AzureEnvironment/{PROD_ID}/oauth")) == 1
        assert reloads.count == 1


class TestOAuthButton:
    @pytest.mark.asyncio
    async def test_click_reports_error(self, ctx, backend):
        backend.add("POST", "/AzureEnvironment/oauth/initiate", {"authorizationUrl": AUTH_URL})
        flow, _ = make_flow(ctx, FakeLauncher(None))
        errors = []
        button = OAuthButton(flow, ACME_ID, "Acme Corp", on_error=errors.append)

        assert button.label == "Connect with OAuth"
        assert await button.click() is None
        assert errors == [flow.error]


class TestBrowserPopups:
    """Tests for browser-backed popup handles."""

    def test_state_from_url(self):
        assert state_from_url(AUTH_URL) == "abc123"
        assert state_from_url("https://example.com/") is None

    def test_refused_open_is_blocked(self):
        launcher = BrowserPopupLauncher(PopupRegistry(), opener=lambda url: False)
        assert launcher.open(AUTH_URL, 600, 700) is None

    def test_registry_closes_by_state(self):
        registry = PopupRegistry()
        launcher = BrowserPopupLauncher(registry, opener=lambda url: True)
        popup = launcher.open(AUTH_URL, 600, 700)

        assert not popup.closed
        assert registry.pending == [popup]
        assert registry.close("abc123")
        assert popup.closed
        assert popup.result == "success"
        assert not registry.close("abc123")

    def test_close_all(self):
        registry = PopupRegistry()
        launcher = BrowserPopupLauncher(registry, opener=lambda url: True)
        first = launcher.open(AUTH_URL, 600, 700)
        second = launcher.open(AUTH_URL.replace("abc123", "def456"), 600, 700)

        assert registry.close_all(message="denied") == 2
        assert first.closed and second.closed
        assert second.message == "denied"

"""OAuth delegation flow.

Sequence:
1. Ask the backend for an authorization URL
2. If the backend must first provision the secret store, poll the
   progress endpoint until it hands out the URL
3. Open the URL in a fixed-size popup
4. Poll the popup's ``closed`` flag in a supervised task
5. After closure and a short delay, reload the environments

Whether credentials were attached is only ever learned from the reload.
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable
from urllib.parse import urlparse

from compass_portal.api.services.oauth_service import OAuthService
from compass_portal.core.config import Settings
from compass_portal.core.errors import (
    CompassError,
    InvalidAuthorizationUrlError,
    OAuthProvisioningError,
    PopupBlockedError,
    describe_error,
)
from compass_portal.core.polling import PollingTask
from compass_portal.schemas.oauth import OAuthInitiateResponse, OAuthProgress
from compass_portal.ui.popup import PopupHandle, PopupLauncher

logger = logging.getLogger(__name__)

INITIATE_FAILED_MESSAGE = "Failed to initiate OAuth setup"
REVOKE_FAILED_MESSAGE = "Failed to revoke OAuth credentials"
REVOKE_CONFIRMATION = (
    "Are you sure you want to revoke OAuth access for this environment? "
    "Assessments will fail until access is granted again."
)

Reload = Callable[[], Awaitable[None]]
Confirm = Callable[[str], bool]


class OAuthStage(str, Enum):
    IDLE = "idle"
    INITIATING = "initiating"
    PROVISIONING = "provisioning"
    AWAITING_AUTHORIZATION = "awaiting_authorization"
    RELOADING = "reloading"
    FINISHED = "finished"
    FAILED = "failed"


def is_valid_authorization_url(url: str | None) -> bool:
    if not url or not isinstance(url, str):
        return False
    parsed = urlparse(url.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class OAuthDelegationFlow:
    """Drives one OAuth delegation at a time for a portal dialog.

    Args:
        service: OAuth API operations
        settings: Popup size and polling intervals
        launcher: Opens the authorization popup
        on_reload: Reloads environments once the popup has closed
    """

    def __init__(
        self,
        service: OAuthService,
        settings: Settings,
        launcher: PopupLauncher,
        on_reload: Reload,
    ):
        self.service = service
        self.settings = settings
        self.launcher = launcher
        self.on_reload = on_reload
        self.stage = OAuthStage.IDLE
        self.error = ""
        self.progress: OAuthProgress | None = None
        self.popup: PopupHandle | None = None
        self.poller: PollingTask | None = None
        self.provisioner: PollingTask | None = None
        self._generation = 0

    @property
    def is_initiating(self) -> bool:
        return self.stage in (OAuthStage.INITIATING, OAuthStage.PROVISIONING)

    async def _wait_for_provisioning(self, response: OAuthInitiateResponse) -> str | None:
        self.stage = OAuthStage.PROVISIONING

        async def provisioned() -> bool:
            self.progress = await self.service.get_progress(response.progress_id)
            logger.debug(
                f"Provisioning {self.progress.status.value}: "
                f"{self.progress.progress_percentage}% {self.progress.message or ''}"
            )
            if self.progress.is_failed:
                raise OAuthProvisioningError(self.progress.message or "Secure storage setup failed")
            return self.progress.is_complete

        self.provisioner = PollingTask(
            check=provisioned,
            interval=self.settings.oauth_progress_poll_interval_seconds,
            name=f"oauth-provisioning-{response.progress_id}",
        ).start()
        try:
            await self.provisioner.wait()
        finally:
            self.provisioner = None
        return self.progress.authorization_url or response.authorization_url

    async def _reload(self) -> None:
        self.stage = OAuthStage.RELOADING
        logger.info("Authorization popup closed; reloading environments")
        await self.on_reload()
        self.stage = OAuthStage.FINISHED

    async def start(self, client_id: str, client_name: str) -> PollingTask | None:
        """Run steps 1 to 4 and return the supervised polling task.

        Returns None when the flow failed before polling began; the
        reason is in :attr:`error`. A :meth:`cancel` while the backend is
        still initiating or provisioning also returns None, with no error
        and no popup.
        """
        await self.cancel()
        generation = self._generation
        self.stage = OAuthStage.INITIATING
        self.error = ""
        self.progress = None
        self.popup = None

        try:
            response = await self.service.initiate(client_id, client_name)
            url = response.authorization_url
            if response.requires_key_vault_creation and response.progress_id and self._generation == generation:
                try:
                    url = await self._wait_for_provisioning(response)
                except asyncio.CancelledError:
                    if self._generation == generation:
                        raise
            if self._generation != generation:
                logger.info(f"OAuth setup for client {client_id} cancelled before authorization")
                return None

            if not is_valid_authorization_url(url):
                raise InvalidAuthorizationUrlError(url)

            popup = self.launcher.open(url, *self.settings.popup_size)
            if not popup:
                raise PopupBlockedError()
        except CompassError as e:
            if self._generation != generation:
                return None
            self.stage = OAuthStage.FAILED
            self.error = describe_error(e, INITIATE_FAILED_MESSAGE)
            logger.error(f"OAuth setup for client {client_id} failed: {e}")
            return None

        self.popup = popup
        self.stage = OAuthStage.AWAITING_AUTHORIZATION
        self.poller = PollingTask(
            check=lambda: popup.closed,
            interval=self.settings.oauth_poll_interval_seconds,
            on_complete=self._reload,
            delay=self.settings.oauth_reload_delay_seconds,
            name=f"oauth-popup-{client_id}",
        ).start()
        return self.poller

    async def cancel(self) -> None:
        """Abandon any setup in flight; no popup or reload happens afterwards."""
        self._generation += 1
        if self.provisioner is not None:
            await self.provisioner.cancel()
        if self.poller is not None:
            await self.poller.cancel()
            self.poller = None
        if self.stage not in (OAuthStage.FAILED, OAuthStage.FINISHED):
            self.stage = OAuthStage.IDLE

    async def revoke(self, environment_id: str, confirm: Confirm) -> bool:
        """Confirm, revoke, then reload. Nothing changes locally before the reload."""
        if not confirm(REVOKE_CONFIRMATION):
            return False
        self.error = ""
        try:
            await self.service.revoke(environment_id)
        except CompassError as e:
            self.error = describe_error(e, REVOKE_FAILED_MESSAGE)
            logger.error(f"OAuth revoke for environment {environment_id} failed: {e}")
            return False
        await self.on_reload()
        return True


class OAuthButton:
    """Standalone "Connect with OAuth" action for a single client."""

    def __init__(
        self,
        flow: OAuthDelegationFlow,
        client_id: str,
        client_name: str,
        on_success: Callable[[PollingTask], None] | None = None,
        on_error: Callable[[str], None] | None = None,
    ):
        self.flow = flow
        self.client_id = client_id
        self.client_name = client_name
        self.on_success = on_success
        self.on_error = on_error

    @property
    def is_initiating(self) -> bool:
        return self.flow.is_initiating

    @property
    def error(self) -> str:
        return self.flow.error

    @property
    def label(self) -> str:
        if self.flow.stage == OAuthStage.PROVISIONING:
            return "Setting up..."
        if self.is_initiating:
            return "Connecting..."
        return "Connect with OAuth"

    async def click(self) -> PollingTask | None:
        if self.is_initiating:
            return None
        poller = await self.flow.start(self.client_id, self.client_name)
        if poller is None:
            if self.on_error:
                self.on_error(self.flow.error)
        elif self.on_success:
            self.on_success(poller)
        return poller

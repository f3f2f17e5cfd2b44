"""Azure environment management dialog."""

import logging
from dataclasses import dataclass
from functools import partial
from typing import Callable

from compass_portal.core.context import PortalContext
from compass_portal.core.errors import CompassError, describe_error
from compass_portal.schemas.client import Client
from compass_portal.schemas.environment import (
    AzureEnvironment,
    ConnectionMethod,
    ConnectionTestResult,
    EnvironmentWrite,
)
from compass_portal.ui.forms import FormState
from compass_portal.ui.oauth import OAuthDelegationFlow
from compass_portal.ui.popup import PopupLauncher

logger = logging.getLogger(__name__)

LOAD_FAILED_MESSAGE = "Failed to load Azure environments"
SAVE_FAILED_MESSAGE = "Failed to save environment"
DELETE_FAILED_MESSAGE = "Failed to delete environment"
TEST_FAILED_MESSAGE = "Connection test failed"
DELETE_CONFIRMATION = "Are you sure you want to delete this environment? This action cannot be undone."

Confirm = Callable[[str], bool]


class EnvironmentForm(FormState):
    """Add/edit form for one environment.

    Subscription ids are an ordered list of rows; there is always at least
    one row, possibly blank.
    """

    fields = ("name", "description", "tenant_id", "service_principal_id", "service_principal_name")

    def __init__(
        self,
        environment: AzureEnvironment | None = None,
        connection_method: ConnectionMethod = ConnectionMethod.SERVICE_PRINCIPAL,
    ):
        self.environment_id = environment.id if environment else None
        self.subscription_ids: list[str] = [""]
        self.connection_method = connection_method
        super().__init__()
        if environment is not None:
            self._load(environment)

    def _load(self, environment: AzureEnvironment) -> None:
        for name in self.fields:
            value = getattr(environment, name)
            self.values[name] = value or ""
        self.subscription_ids = list(environment.subscription_ids) or [""]
        self.connection_method = environment.connection_method or ConnectionMethod.SERVICE_PRINCIPAL

    @property
    def is_edit(self) -> bool:
        return self.environment_id is not None

    def set_connection_method(self, method: ConnectionMethod) -> None:
        self.connection_method = ConnectionMethod(method)
        self.errors.pop("service_principal_id", None)

    def add_subscription(self) -> None:
        self.subscription_ids.append("")

    def remove_subscription(self, index: int) -> None:
        if len(self.subscription_ids) > 1:
            del self.subscription_ids[index]

    def set_subscription(self, index: int, value: str) -> None:
        self.subscription_ids[index] = value
        self.errors.pop("subscription_ids", None)

    @property
    def clean_subscription_ids(self) -> list[str]:
        return [sub.strip() for sub in self.subscription_ids if sub.strip()]

    def validate(self) -> dict[str, str]:
        errors = {}
        if not self.values["name"].strip():
            errors["name"] = "Environment name is required"
        if not self.values["tenant_id"].strip():
            errors["tenant_id"] = "Tenant ID is required"
        if not self.clean_subscription_ids:
            errors["subscription_ids"] = "At least one subscription ID is required"
        if (
            self.connection_method == ConnectionMethod.SERVICE_PRINCIPAL
            and not self.values["service_principal_id"].strip()
        ):
            errors["service_principal_id"] = "Service Principal ID is required"
        return errors

    def to_request(self, client_id: str | None) -> EnvironmentWrite:
        uses_service_principal = self.connection_method == ConnectionMethod.SERVICE_PRINCIPAL
        return EnvironmentWrite(
            client_id=client_id,
            name=self.values["name"].strip(),
            description=self.clean("description"),
            tenant_id=self.values["tenant_id"].strip(),
            subscription_ids=self.clean_subscription_ids,
            service_principal_id=self.clean("service_principal_id") if uses_service_principal else None,
            service_principal_name=self.clean("service_principal_name") if uses_service_principal else None,
        )


@dataclass(frozen=True)
class EnvironmentRow:
    """How one environment is presented in the list."""

    environment: AzureEnvironment
    badges: tuple[str, ...]
    actions: tuple[str, ...]
    test_result: ConnectionTestResult | None = None

    @classmethod
    def build(cls, environment: AzureEnvironment, test_result: ConnectionTestResult | None = None) -> "EnvironmentRow":
        badges = []
        if environment.has_oauth_credentials:
            badges.append("OAuth")
        if environment.service_principal_id:
            badges.append("Service Principal")

        actions = ["Test Connection", "Edit", "Delete"]
        if environment.has_oauth_credentials:
            actions.append("Revoke")
        else:
            actions.append("Setup OAuth")

        return cls(environment, tuple(badges), tuple(actions), test_result)


class ManageEnvironmentsModal:
    """List, add, edit, delete and test a client's Azure environments.

    OAuth setup and revocation are embedded; both end in a reload.
    """

    def __init__(
        self,
        ctx: PortalContext,
        client: Client,
        launcher: PopupLauncher,
        confirm: Confirm,
    ):
        self.ctx = ctx
        self.client = client
        self.confirm = confirm
        self.service = ctx.services.environments
        self.environments: list[AzureEnvironment] = []
        self.test_results: dict[str, ConnectionTestResult] = {}
        self.testing: set[str] = set()
        self.form: EnvironmentForm | None = None
        self.is_loading = False
        self.error = ""
        self.oauth = OAuthDelegationFlow(
            ctx.services.oauth,
            ctx.settings,
            launcher,
            on_reload=self.load,
        )

    @property
    def rows(self) -> list[EnvironmentRow]:
        return [EnvironmentRow.build(env, self.test_results.get(env.id)) for env in self.environments]

    def row(self, environment_id: str) -> EnvironmentRow:
        for row in self.rows:
            if row.environment.id == environment_id:
                return row
        raise KeyError(environment_id)

    async def load(self) -> None:
        self.is_loading = True
        self.error = ""
        try:
            self.environments = await self.service.list_for_client(self.client.id)
            logger.info(f"Loaded {len(self.environments)} environments for {self.client.name}")
        except CompassError as e:
            self.error = LOAD_FAILED_MESSAGE
            logger.error(f"Loading environments for {self.client.id} failed: {e}")
        finally:
            self.is_loading = False

    # =========================================================================
    # Add / edit
    # =========================================================================

    def start_add(self, method: ConnectionMethod = ConnectionMethod.SERVICE_PRINCIPAL) -> EnvironmentForm:
        self.form = EnvironmentForm(connection_method=method)
        return self.form

    def start_edit(self, environment_id: str) -> EnvironmentForm:
        self.form = EnvironmentForm(self.row(environment_id).environment)
        return self.form

    def cancel_edit(self) -> None:
        self.form = None

    async def save(self) -> bool:
        form = self.form
        if form is None or not form.is_valid():
            return False

        request = form.to_request(self.client.id)
        if form.is_edit:
            action = partial(self.service.update, form.environment_id, request)
        else:
            action = partial(self.service.create, request)

        await form.run(action, SAVE_FAILED_MESSAGE)
        if form.error:
            self.error = form.error
            return False

        self.form = None
        await self.load()
        return True

    # =========================================================================
    # Row actions
    # =========================================================================

    async def delete(self, environment_id: str) -> bool:
        if not self.confirm(DELETE_CONFIRMATION):
            return False
        self.error = ""
        try:
            await self.service.delete(environment_id)
        except CompassError as e:
            self.error = DELETE_FAILED_MESSAGE
            logger.error(f"Deleting environment {environment_id} failed: {e}")
            return False
        self.test_results.pop(environment_id, None)
        await self.load()
        return True

    async def test_connection(self, environment_id: str) -> ConnectionTestResult:
        self.testing.add(environment_id)
        try:
            result = await self.service.test_connection(environment_id)
        except CompassError as e:
            logger.warning(f"Connection test for {environment_id} failed: {e}")
            result = ConnectionTestResult(
                success=False,
                message=describe_error(e, TEST_FAILED_MESSAGE),
            )
        finally:
            self.testing.discard(environment_id)
        self.test_results[environment_id] = result
        return result

    async def setup_oauth(self) -> bool:
        poller = await self.oauth.start(self.client.id, self.client.name)
        if poller is None:
            self.error = self.oauth.error
            return False
        return True

    async def revoke_oauth(self, environment_id: str) -> bool:
        revoked = await self.oauth.revoke(environment_id, self.confirm)
        if not revoked and self.oauth.error:
            self.error = self.oauth.error
        return revoked

    async def close(self) -> None:
        """Tear down: stop popup polling and drop all local state."""
        await self.oauth.cancel()
        self.environments = []
        self.test_results = {}
        self.form = None
        self.error = ""

"""Client -> environment cascading selection."""

import logging

from compass_portal.core.context import PortalContext
from compass_portal.core.errors import CompassError, describe_error
from compass_portal.schemas.client import Client
from compass_portal.schemas.environment import AzureEnvironment

logger = logging.getLogger(__name__)

CLIENTS_FAILED_MESSAGE = "Failed to load clients"
ENVIRONMENTS_FAILED_MESSAGE = "Failed to load Azure environments"


class ClientEnvironmentSelector:
    """Picking a client reloads its active environments.

    Changing the client always clears the selected environment and the
    "use client preferences" flag. The flag can only be switched on once
    both a client and an environment are selected.
    """

    def __init__(self, ctx: PortalContext):
        self.clients_service = ctx.services.clients
        self.environments_service = ctx.services.environments
        self.clients: list[Client] = []
        self.environments: list[AzureEnvironment] = []
        self.client_id: str | None = None
        self.environment_id: str | None = None
        self.use_client_preferences = False
        self.loading_clients = False
        self.loading_environments = False
        self.error = ""

    @property
    def selected_client(self) -> Client | None:
        return next((c for c in self.clients if c.id == self.client_id), None)

    @property
    def selected_environment(self) -> AzureEnvironment | None:
        return next((e for e in self.environments if e.id == self.environment_id), None)

    @property
    def can_use_client_preferences(self) -> bool:
        return bool(self.client_id and self.environment_id)

    async def load_clients(self) -> list[Client]:
        self.loading_clients = True
        self.error = ""
        try:
            self.clients = await self.clients_service.list_clients()
        except CompassError as e:
            self.error = describe_error(e, CLIENTS_FAILED_MESSAGE)
            logger.error(f"Loading clients failed: {e}")
        finally:
            self.loading_clients = False
        return self.clients

    async def select_client(self, client_id: str | None) -> list[AzureEnvironment]:
        self.client_id = client_id or None
        self.environment_id = None
        self.use_client_preferences = False
        self.environments = []
        if not self.client_id:
            return []

        requested = self.client_id
        self.loading_environments = True
        self.error = ""
        try:
            environments = await self.environments_service.list_for_client(requested)
        except CompassError as e:
            if self.client_id == requested:
                self.error = describe_error(e, ENVIRONMENTS_FAILED_MESSAGE)
            logger.error(f"Loading environments for client {requested} failed: {e}")
            return []
        finally:
            self.loading_environments = False

        # A newer selection supersedes this response
        if self.client_id != requested:
            logger.debug(f"Discarding stale environments for client {requested}")
            return self.environments

        self.environments = environments
        return environments

    def select_environment(self, environment_id: str | None) -> None:
        if environment_id and environment_id not in {e.id for e in self.environments}:
            raise ValueError(f"Environment {environment_id} does not belong to the selected client")
        self.environment_id = environment_id or None
        if not self.environment_id:
            self.use_client_preferences = False

    def set_use_client_preferences(self, enabled: bool) -> bool:
        if enabled and not self.can_use_client_preferences:
            return False
        self.use_client_preferences = enabled
        return True

    def reset(self) -> None:
        self.environments = []
        self.client_id = None
        self.environment_id = None
        self.use_client_preferences = False
        self.error = ""

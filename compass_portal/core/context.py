"""Portal context passed explicitly to every flow."""

import logging
from dataclasses import dataclass, replace

import httpx

from compass_portal.api.services import (
    ApiClient,
    AssessmentService,
    ClientService,
    EnvironmentService,
    MfaService,
    OAuthService,
)
from compass_portal.core.auth import Session, TokenStore
from compass_portal.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Services:
    clients: ClientService
    environments: EnvironmentService
    oauth: OAuthService
    assessments: AssessmentService
    mfa: MfaService

    @classmethod
    def from_api(cls, api: ApiClient) -> "Services":
        return cls(
            clients=ClientService(api),
            environments=EnvironmentService(api),
            oauth=OAuthService(api),
            assessments=AssessmentService(api),
            mfa=MfaService(api),
        )


@dataclass(frozen=True)
class PortalContext:
    """Immutable root context: settings, session, services and selected client.

    Built once at startup and handed down; a new client selection yields
    a new context via :meth:`with_client`.
    """

    settings: Settings
    session: Session
    api: ApiClient
    services: Services
    selected_client_id: str | None = None

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        session: Session | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "PortalContext":
        settings = settings or get_settings()
        if session is None:
            session = TokenStore(settings).session()
        if not session.is_authenticated:
            logger.warning("No bearer token configured; requests will be anonymous")
        elif session.is_expired:
            logger.warning("Stored bearer token has expired")
        api = ApiClient(settings, session, transport=transport)
        return cls(settings=settings, session=session, api=api, services=Services.from_api(api))

    def with_client(self, client_id: str | None) -> "PortalContext":
        return replace(self, selected_client_id=client_id)

    async def aclose(self) -> None:
        await self.api.close()

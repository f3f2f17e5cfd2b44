"""OAuth delegation API operations."""

import logging

from compass_portal.api.services.http import ApiClient
from compass_portal.schemas.base import parse
from compass_portal.schemas.oauth import (
    OAuthInitiateRequest,
    OAuthInitiateResponse,
    OAuthProgress,
    OAuthScopeTypes,
)

logger = logging.getLogger(__name__)


class OAuthService:
    def __init__(self, api: ApiClient):
        self.api = api

    async def initiate(
        self,
        client_id: str,
        client_name: str,
        description: str | None = None,
        scope_types: OAuthScopeTypes = OAuthScopeTypes.RESOURCE_MANAGER,
    ) -> OAuthInitiateResponse:
        """Ask the backend for an authorization URL for ``client_id``."""
        request = OAuthInitiateRequest(
            client_id=client_id,
            client_name=client_name,
            description=description,
            scope_types=scope_types,
        )
        data = await self.api.post(
            "/AzureEnvironment/oauth/initiate",
            json=request.to_payload(exclude_none=True),
        )
        response = parse(OAuthInitiateResponse, data or {})
        logger.info(
            f"OAuth initiated for client {client_id} "
            f"(requires provisioning: {response.requires_key_vault_creation})"
        )
        return response

    async def get_progress(self, progress_id: str) -> OAuthProgress:
        data = await self.api.get(f"/AzureEnvironment/oauth/progress/{progress_id}")
        return parse(OAuthProgress, data or {})

    async def revoke(self, environment_id: str) -> None:
        await self.api.delete(f"/AzureEnvironment/{environment_id}/oauth")
        logger.info(f"Revoked OAuth credentials for environment {environment_id}")

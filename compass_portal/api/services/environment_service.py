"""Azure environment API operations."""

import logging

from compass_portal.api.services.http import ApiClient
from compass_portal.schemas.base import normalize, parse
from compass_portal.schemas.environment import (
    AzureEnvironment,
    ConnectionTestResult,
    EnvironmentWrite,
)

logger = logging.getLogger(__name__)


class EnvironmentService:
    """CRUD and connection tests for a client's Azure environments."""

    def __init__(self, api: ApiClient):
        self.api = api

    async def list_for_client(self, client_id: str, active_only: bool = True) -> list[AzureEnvironment]:
        data = await self.api.get(f"/AzureEnvironment/client/{client_id}")
        environments = normalize(AzureEnvironment, data or [])
        if active_only:
            environments = [env for env in environments if env.is_active]
        return environments

    async def create(self, data: EnvironmentWrite) -> AzureEnvironment | None:
        created = await self.api.post("/AzureEnvironment", json=data.to_payload())
        logger.info(f"Created environment {data.name} for client {data.client_id}")
        return parse(AzureEnvironment, created) if created else None

    async def update(self, environment_id: str, data: EnvironmentWrite) -> AzureEnvironment | None:
        updated = await self.api.put(f"/AzureEnvironment/{environment_id}", json=data.to_payload())
        logger.info(f"Updated environment {environment_id}")
        return parse(AzureEnvironment, updated) if updated else None

    async def delete(self, environment_id: str) -> None:
        await self.api.delete(f"/AzureEnvironment/{environment_id}")
        logger.info(f"Deleted environment {environment_id}")

    async def test_connection(self, environment_id: str) -> ConnectionTestResult:
        data = await self.api.post(f"/AzureEnvironment/{environment_id}/test-connection")
        if isinstance(data, bool):
            return ConnectionTestResult(success=data)
        return parse(ConnectionTestResult, data or {})

"""Client (tenant) API operations."""

import logging

from compass_portal.api.services.http import ApiClient
from compass_portal.schemas.base import normalize, parse
from compass_portal.schemas.client import Client, ClientCreate

logger = logging.getLogger(__name__)


class ClientService:
    """Create, list and read clients."""

    def __init__(self, api: ApiClient):
        self.api = api

    async def list_clients(self) -> list[Client]:
        data = await self.api.get("/Client")
        clients = normalize(Client, data or [])
        logger.debug(f"Loaded {len(clients)} clients")
        return clients

    async def get_client(self, client_id: str) -> Client:
        data = await self.api.get(f"/Client/{client_id}")
        return parse(Client, data)

    async def create_client(self, data: ClientCreate) -> Client:
        created = await self.api.post("/Client", json=data.to_payload())
        client = parse(Client, created)
        logger.info(f"Created client {client.name} ({client.id})")
        return client

    async def update_client(self, client_id: str, data: ClientCreate) -> Client | None:
        updated = await self.api.put(f"/Client/{client_id}", json=data.to_payload())
        logger.info(f"Updated client {client_id}")
        if not updated:
            return None
        return parse(Client, updated)

"""Client (tenant) schemas."""

from datetime import datetime

from pydantic import Field

from compass_portal.schemas.base import CompassModel, RequestModel


class Client(CompassModel):
    """Client as returned by the backend (summary or detail)."""

    key_aliases = {"ClientId": "id"}

    id: str
    name: str
    description: str | None = None
    industry: str | None = None
    contact_name: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    postal_code: str | None = None
    time_zone: str | None = None
    status: str | None = None
    contract_start_date: datetime | None = None
    contract_end_date: datetime | None = None
    assessment_count: int = 0
    environment_count: int = 0
    subscription_count: int = 0
    has_active_contract: bool = False
    created_date: datetime | None = None


class ClientCreate(RequestModel):
    """Create or update payload for a client."""

    name: str
    description: str | None = None
    industry: str | None = None
    contact_name: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    postal_code: str | None = None
    time_zone: str | None = None
    contract_start_date: str | None = Field(default=None, description="ISO date")
    contract_end_date: str | None = Field(default=None, description="ISO date")

    def to_payload(self, **kwargs):
        payload = super().to_payload(**kwargs)
        if not self.contact_email:
            payload.pop("contactEmail", None)
        return payload

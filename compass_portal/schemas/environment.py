"""Azure environment schemas."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import field_validator

from compass_portal.schemas.base import CompassModel, RequestModel


class ConnectionMethod(str, Enum):
    """How the backend authenticates against the customer's tenant."""

    SERVICE_PRINCIPAL = "service_principal"
    OAUTH = "oauth"


def _split_ids(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(item) for item in value]


class AzureEnvironment(CompassModel):
    key_aliases = {"AzureEnvironmentId": "id", "EnvironmentId": "id"}

    id: str
    client_id: str | None = None
    name: str
    description: str | None = None
    tenant_id: str | None = None
    subscription_ids: list[str] = []
    service_principal_id: str | None = None
    service_principal_name: str | None = None
    is_active: bool = True
    has_oauth_credentials: bool = False
    created_date: datetime | None = None
    last_access_date: datetime | None = None
    last_connection_test: bool | None = None
    last_connection_test_date: datetime | None = None
    last_connection_error: str | None = None

    @field_validator("subscription_ids", mode="before")
    @classmethod
    def parse_subscription_ids(cls, v: Any) -> list[str]:
        return _split_ids(v)

    @property
    def connection_method(self) -> ConnectionMethod | None:
        if self.has_oauth_credentials:
            return ConnectionMethod.OAUTH
        if self.service_principal_id:
            return ConnectionMethod.SERVICE_PRINCIPAL
        return None


class EnvironmentWrite(RequestModel):
    """Create/update body for an environment."""

    client_id: str | None = None
    name: str
    description: str | None = None
    tenant_id: str
    subscription_ids: list[str]
    service_principal_id: str | None = None
    service_principal_name: str | None = None


class ConnectionTestResult(CompassModel):
    success: bool = False
    message: str | None = None
    details: Any = None

"""OAuth delegation schemas."""

from datetime import datetime
from enum import Enum, IntFlag
from typing import Any

from pydantic import field_validator

from compass_portal.schemas.base import CompassModel, RequestModel, fold_key


class OAuthScopeTypes(IntFlag):
    RESOURCE_MANAGER = 1
    MICROSOFT_GRAPH = 2
    BOTH = 3


class ProvisioningStatus(str, Enum):
    """Secret store provisioning states reported by the progress endpoint."""

    CREATING = "Creating"
    COMPLETED = "Completed"
    FAILED = "Failed"

    @classmethod
    def _missing_(cls, value):
        folded = fold_key(value)
        for member in cls:
            if fold_key(member.value) == folded:
                return member
        # Intermediate states the backend may add are treated as in progress
        return cls.CREATING


class OAuthInitiateRequest(RequestModel):
    client_id: str
    client_name: str
    description: str | None = None
    scope_types: OAuthScopeTypes = OAuthScopeTypes.RESOURCE_MANAGER


class OAuthInitiateResponse(CompassModel):
    authorization_url: str | None = None
    state: str | None = None
    expires_at: datetime | None = None
    requires_key_vault_creation: bool = False
    progress_id: str | None = None
    requested_scopes: int | None = None
    requested_permissions: list[str] = []


class OAuthProgress(CompassModel):
    progress_id: str | None = None
    status: ProvisioningStatus = ProvisioningStatus.CREATING
    message: str | None = None
    progress_percentage: int = 0
    authorization_url: str | None = None
    state: str | None = None
    expires_at: datetime | None = None

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v: Any) -> ProvisioningStatus:
        return ProvisioningStatus(v) if v else ProvisioningStatus.CREATING

    @property
    def is_complete(self) -> bool:
        return self.status == ProvisioningStatus.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.status == ProvisioningStatus.FAILED

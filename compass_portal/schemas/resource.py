"""Scanned resource inventory schemas."""

import json
from typing import Any, Mapping

from pydantic import BaseModel, field_validator

from compass_portal.schemas.base import CompassModel


class Resource(CompassModel):
    key_aliases = {"Type": "resource_type"}

    id: str | None = None
    resource_id: str | None = None
    name: str = ""
    resource_type: str | None = None
    resource_type_name: str | None = None
    resource_group: str | None = None
    location: str | None = None
    subscription_id: str | None = None
    environment: str | None = None
    kind: str | None = None
    sku: str | None = None
    tags: dict[str, str] = {}
    tag_count: int = 0

    @field_validator("tags", mode="before")
    @classmethod
    def parse_tags(cls, v: Any) -> dict[str, str]:
        # Tags may arrive as a JSON-encoded string; anything but an object means no tags
        if isinstance(v, str):
            try:
                v = json.loads(v) if v.strip() else None
            except json.JSONDecodeError:
                return {}
        if not isinstance(v, Mapping):
            return {}
        return {str(key): "" if value is None else str(value) for key, value in v.items()}


class FilterOptions(CompassModel):
    """Distinct values the backend offers for each resource filter."""

    key_aliases = {"Types": "resource_types", "Groups": "resource_groups"}

    resource_types: list[str] = []
    resource_groups: list[str] = []
    locations: list[str] = []
    environments: list[str] = []


class ResourcePage(CompassModel):
    key_aliases = {"Items": "resources", "Total": "total_count", "PageSize": "limit"}

    resources: list[Resource] = []
    total_count: int = 0
    page: int = 1
    limit: int = 50
    total_pages: int = 0
    filters: FilterOptions = FilterOptions()

    @property
    def page_count(self) -> int:
        if self.total_pages:
            return self.total_pages
        if not self.limit:
            return 1
        return max(1, -(-self.total_count // self.limit))

    @property
    def has_next(self) -> bool:
        return self.page < self.page_count

    @property
    def has_previous(self) -> bool:
        return self.page > 1


class ResourceFilters(BaseModel):
    """Filter state of the resources tab, sent as query parameters."""

    search: str = ""
    resource_type: str = ""
    resource_group: str = ""
    location: str = ""
    environment: str = ""

    @property
    def is_empty(self) -> bool:
        return not any(self.model_dump().values())

    def to_params(self) -> dict[str, str]:
        params = {
            "search": self.search.strip(),
            "resourceType": self.resource_type,
            "resourceGroup": self.resource_group,
            "location": self.location,
            "environment": self.environment,
        }
        return {key: value for key, value in params.items() if value}

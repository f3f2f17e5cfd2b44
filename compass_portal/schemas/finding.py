"""Assessment finding schemas."""

from enum import Enum
from typing import Any

from pydantic import field_validator

from compass_portal.schemas.base import CompassModel


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> "Severity":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        for member in cls:
            if member.value == text:
                return member
        return cls.UNKNOWN

    @property
    def rank(self) -> int:
        """Higher is more severe."""
        return SEVERITY_RANK[self]


SEVERITY_RANK = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
    Severity.UNKNOWN: 0,
}


class Finding(CompassModel):
    key_aliases = {"FindingId": "id", "IsClientRule": "is_client_specific"}

    id: str | None = None
    assessment_id: str | None = None
    category: str | None = None
    resource_id: str | None = None
    resource_name: str | None = None
    resource_type: str | None = None
    severity: Severity = Severity.UNKNOWN
    issue: str = ""
    recommendation: str | None = None
    estimated_effort: str | None = None
    is_client_specific: bool = False

    @field_validator("severity", mode="before")
    @classmethod
    def parse_severity(cls, v: Any) -> Severity:
        return Severity.parse(v)

    @field_validator("issue", mode="before")
    @classmethod
    def default_issue(cls, v: Any) -> str:
        return v or ""

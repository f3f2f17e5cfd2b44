"""Assessment schemas and the assessment type catalog."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any

from pydantic import Field, field_validator

from compass_portal.schemas.base import CompassModel, RequestModel, fold_key


class AssessmentStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    FAILED = "Failed"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, int) and not isinstance(value, bool):
            members = list(cls)
            if 0 <= value < len(members):
                return members[value]
            return None
        folded = fold_key(value)
        for member in cls:
            if fold_key(member.value) == folded:
                return member
        return None

    @property
    def is_terminal(self) -> bool:
        return self in (AssessmentStatus.COMPLETED, AssessmentStatus.FAILED)


class AssessmentCategory(str, Enum):
    RESOURCE_GOVERNANCE = "ResourceGovernance"
    IDENTITY_ACCESS = "IdentityAccessManagement"
    BUSINESS_CONTINUITY = "BusinessContinuity"
    SECURITY_POSTURE = "SecurityPosture"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, int) and not isinstance(value, bool):
            members = list(cls)
            return members[value] if 0 <= value < len(members) else None
        folded = fold_key(value)
        for member in cls:
            if fold_key(member.value) == folded:
                return member
        return None


class AssessmentType(IntEnum):
    """Backend assessment type codes."""

    NAMING_CONVENTION = 0
    TAGGING = 1
    GOVERNANCE_FULL = 2
    ENTERPRISE_APPLICATIONS = 3
    STALE_USERS_DEVICES = 4
    RESOURCE_IAM_RBAC = 5
    CONDITIONAL_ACCESS = 6
    IDENTITY_FULL = 7
    BACKUP_COVERAGE = 8
    RECOVERY_CONFIGURATION = 9
    BUSINESS_CONTINUITY_FULL = 10
    NETWORK_SECURITY = 11
    DEFENDER_FOR_CLOUD = 12
    SECURITY_FULL = 13
    FULL = 14

    @classmethod
    def _missing_(cls, value):
        # Accept backend names ("GovernanceFull") and numeric strings ("2")
        if isinstance(value, str):
            text = value.strip()
            if text.isdigit():
                return cls._value2member_map_.get(int(text))
            folded = fold_key(text)
            for member in cls:
                if fold_key(member.name) == folded:
                    return member
        return None

    @property
    def category(self) -> AssessmentCategory:
        return TYPE_CATEGORIES[self]

    @property
    def label(self) -> str:
        return TYPE_LABELS[self]


TYPE_CATEGORIES = {
    AssessmentType.NAMING_CONVENTION: AssessmentCategory.RESOURCE_GOVERNANCE,
    AssessmentType.TAGGING: AssessmentCategory.RESOURCE_GOVERNANCE,
    AssessmentType.GOVERNANCE_FULL: AssessmentCategory.RESOURCE_GOVERNANCE,
    AssessmentType.FULL: AssessmentCategory.RESOURCE_GOVERNANCE,
    AssessmentType.ENTERPRISE_APPLICATIONS: AssessmentCategory.IDENTITY_ACCESS,
    AssessmentType.STALE_USERS_DEVICES: AssessmentCategory.IDENTITY_ACCESS,
    AssessmentType.RESOURCE_IAM_RBAC: AssessmentCategory.IDENTITY_ACCESS,
    AssessmentType.CONDITIONAL_ACCESS: AssessmentCategory.IDENTITY_ACCESS,
    AssessmentType.IDENTITY_FULL: AssessmentCategory.IDENTITY_ACCESS,
    AssessmentType.BACKUP_COVERAGE: AssessmentCategory.BUSINESS_CONTINUITY,
    AssessmentType.RECOVERY_CONFIGURATION: AssessmentCategory.BUSINESS_CONTINUITY,
    AssessmentType.BUSINESS_CONTINUITY_FULL: AssessmentCategory.BUSINESS_CONTINUITY,
    AssessmentType.NETWORK_SECURITY: AssessmentCategory.SECURITY_POSTURE,
    AssessmentType.DEFENDER_FOR_CLOUD: AssessmentCategory.SECURITY_POSTURE,
    AssessmentType.SECURITY_FULL: AssessmentCategory.SECURITY_POSTURE,
}

TYPE_LABELS = {
    AssessmentType.NAMING_CONVENTION: "Naming Convention Only",
    AssessmentType.TAGGING: "Tagging Compliance Only",
    AssessmentType.GOVERNANCE_FULL: "Governance: Full Assessment",
    AssessmentType.ENTERPRISE_APPLICATIONS: "Enterprise Applications Review",
    AssessmentType.STALE_USERS_DEVICES: "Stale Users & Devices",
    AssessmentType.RESOURCE_IAM_RBAC: "Resource IAM & RBAC",
    AssessmentType.CONDITIONAL_ACCESS: "Conditional Access Policies",
    AssessmentType.IDENTITY_FULL: "Identity: Full Assessment",
    AssessmentType.BACKUP_COVERAGE: "Backup Strategy Assessment",
    AssessmentType.RECOVERY_CONFIGURATION: "Disaster Recovery Analysis",
    AssessmentType.BUSINESS_CONTINUITY_FULL: "BCDR: Full Assessment",
    AssessmentType.NETWORK_SECURITY: "Network Security",
    AssessmentType.DEFENDER_FOR_CLOUD: "Defender for Cloud",
    AssessmentType.SECURITY_FULL: "Security: Full Assessment",
    AssessmentType.FULL: "Full Assessment",
}


# =============================================================================
# Wizard catalog
# =============================================================================


@dataclass(frozen=True)
class AssessmentTypeOption:
    """One selectable card in the creation wizard."""

    type: AssessmentType
    description: str
    estimated_minutes: tuple[int, int]
    recommended: bool = False

    @property
    def name(self) -> str:
        return self.type.label

    @property
    def estimated_time(self) -> str:
        low, high = self.estimated_minutes
        return f"{low}-{high} minutes"


@dataclass(frozen=True)
class CategoryCatalog:
    category: AssessmentCategory
    title: str
    default_name: str
    options: tuple[AssessmentTypeOption, ...]

    @property
    def recommended(self) -> AssessmentType:
        for option in self.options:
            if option.recommended:
                return option.type
        return self.options[-1].type

    def option(self, assessment_type: AssessmentType) -> AssessmentTypeOption:
        for option in self.options:
            if option.type == assessment_type:
                return option
        raise KeyError(f"{assessment_type!r} is not offered for {self.category.value}")


CATALOG = {
    AssessmentCategory.RESOURCE_GOVERNANCE: CategoryCatalog(
        category=AssessmentCategory.RESOURCE_GOVERNANCE,
        title="Resource Governance",
        default_name="Resource Governance Assessment",
        options=(
            AssessmentTypeOption(
                AssessmentType.NAMING_CONVENTION,
                "Analyze resource naming patterns and consistency",
                (2, 3),
            ),
            AssessmentTypeOption(
                AssessmentType.TAGGING,
                "Evaluate resource tagging coverage and quality",
                (2, 3),
            ),
            AssessmentTypeOption(
                AssessmentType.GOVERNANCE_FULL,
                "Complete naming and tagging analysis with recommendations",
                (3, 5),
                recommended=True,
            ),
        ),
    ),
    AssessmentCategory.IDENTITY_ACCESS: CategoryCatalog(
        category=AssessmentCategory.IDENTITY_ACCESS,
        title="Identity & Access Management",
        default_name="Identity & Access Management Assessment",
        options=(
            AssessmentTypeOption(
                AssessmentType.ENTERPRISE_APPLICATIONS,
                "Review enterprise application registrations and consents",
                (3, 5),
            ),
            AssessmentTypeOption(
                AssessmentType.STALE_USERS_DEVICES,
                "Find inactive user accounts and unmanaged devices",
                (3, 5),
            ),
            AssessmentTypeOption(
                AssessmentType.RESOURCE_IAM_RBAC,
                "Audit role assignments on subscriptions and resources",
                (4, 6),
            ),
            AssessmentTypeOption(
                AssessmentType.CONDITIONAL_ACCESS,
                "Evaluate conditional access policy coverage",
                (2, 4),
            ),
            AssessmentTypeOption(
                AssessmentType.IDENTITY_FULL,
                "Complete identity and access review with recommendations",
                (8, 12),
                recommended=True,
            ),
        ),
    ),
    AssessmentCategory.BUSINESS_CONTINUITY: CategoryCatalog(
        category=AssessmentCategory.BUSINESS_CONTINUITY,
        title="Business Continuity & Disaster Recovery",
        default_name="Business Continuity & Disaster Recovery Assessment",
        options=(
            AssessmentTypeOption(
                AssessmentType.BACKUP_COVERAGE,
                "Evaluate backup coverage and retention policies",
                (4, 6),
            ),
            AssessmentTypeOption(
                AssessmentType.RECOVERY_CONFIGURATION,
                "Analyze recovery configuration and failover readiness",
                (5, 7),
            ),
            AssessmentTypeOption(
                AssessmentType.BUSINESS_CONTINUITY_FULL,
                "Complete backup and disaster recovery analysis",
                (8, 12),
                recommended=True,
            ),
        ),
    ),
    AssessmentCategory.SECURITY_POSTURE: CategoryCatalog(
        category=AssessmentCategory.SECURITY_POSTURE,
        title="Security Posture",
        default_name="Security Posture Assessment",
        options=(
            AssessmentTypeOption(
                AssessmentType.NETWORK_SECURITY,
                "Inspect network security groups and exposed endpoints",
                (3, 5),
            ),
            AssessmentTypeOption(
                AssessmentType.DEFENDER_FOR_CLOUD,
                "Review Defender for Cloud plans and recommendations",
                (3, 5),
            ),
            AssessmentTypeOption(
                AssessmentType.SECURITY_FULL,
                "Complete security posture review with recommendations",
                (6, 10),
                recommended=True,
            ),
        ),
    ),
}


# =============================================================================
# Payloads
# =============================================================================


def _parse_type(value: Any) -> AssessmentType | None:
    if value is None or value == "":
        return None
    try:
        return AssessmentType(value)
    except ValueError:
        return None


class Assessment(CompassModel):
    """Assessment summary/status as returned by the backend."""

    key_aliases = {"AssessmentId": "id", "Type": "assessment_type", "Score": "overall_score"}

    id: str
    name: str | None = None
    environment_id: str | None = None
    environment_name: str | None = None
    status: AssessmentStatus = AssessmentStatus.PENDING
    assessment_type: AssessmentType | None = None
    category: AssessmentCategory | None = None
    overall_score: float | None = None
    progress: int = 0
    started_date: datetime | None = None
    completed_date: datetime | None = None
    client_id: str | None = None
    client_name: str | None = None
    use_client_preferences: bool = False
    total_resources_analyzed: int = 0
    issues_found: int = 0

    @field_validator("assessment_type", mode="before")
    @classmethod
    def parse_assessment_type(cls, v: Any) -> AssessmentType | None:
        return _parse_type(v)

    @property
    def resolved_category(self) -> AssessmentCategory | None:
        if self.category is not None:
            return self.category
        if self.assessment_type is not None:
            return self.assessment_type.category
        return None


class AssessmentStartRequest(RequestModel):
    environment_id: str
    name: str
    type: AssessmentType
    use_client_preferences: bool = False

    def to_payload(self, **kwargs):
        return super().to_payload(exclude_none=True, **kwargs)


class AssessmentStartResponse(CompassModel):
    key_aliases = {"AssessmentId": "id"}

    id: str
    status: str | None = None
    message: str | None = None
    environment_id: str | None = None
    environment_name: str | None = None
    client_id: str | None = None
    client_name: str | None = None
    subscription_count: int = 0
    started_at: datetime | None = None


class Recommendation(CompassModel):
    """Server-side recommendation attached to assessment results."""

    category: str | None = None
    title: str | None = None
    description: str | None = None
    priority: str | None = None
    estimated_effort: str | None = None
    affected_resources: int = 0


class AssessmentResults(CompassModel):
    key_aliases = {"AssessmentId": "id", "Type": "assessment_type"}

    id: str
    environment_id: str | None = None
    assessment_type: AssessmentType | None = None
    category: AssessmentCategory | None = None
    status: AssessmentStatus = AssessmentStatus.COMPLETED
    overall_score: float | None = None
    started_date: datetime | None = None
    completed_date: datetime | None = None
    error_message: str | None = None
    total_resources_analyzed: int = 0
    issues_found: int = 0
    recommendations: list[Recommendation] = []
    naming_results: dict[str, Any] | None = None
    tagging_results: dict[str, Any] | None = None
    detailed_metrics: dict[str, Any] = Field(default_factory=dict)

    @field_validator("assessment_type", mode="before")
    @classmethod
    def parse_assessment_type(cls, v: Any) -> AssessmentType | None:
        return _parse_type(v)

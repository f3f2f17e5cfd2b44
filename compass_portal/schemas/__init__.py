"""Pydantic schemas for backend payloads."""

from compass_portal.schemas.assessment import (
    CATALOG,
    Assessment,
    AssessmentCategory,
    AssessmentResults,
    AssessmentStartRequest,
    AssessmentStartResponse,
    AssessmentStatus,
    AssessmentType,
    AssessmentTypeOption,
    CategoryCatalog,
    Recommendation,
)
from compass_portal.schemas.base import CompassModel, RequestModel, fold_key, normalize, parse
from compass_portal.schemas.client import Client, ClientCreate
from compass_portal.schemas.environment import (
    AzureEnvironment,
    ConnectionMethod,
    ConnectionTestResult,
    EnvironmentWrite,
)
from compass_portal.schemas.finding import Finding, Severity
from compass_portal.schemas.mfa import BackupCodes, MfaSetup, MfaStatus, MfaVerifyResult
from compass_portal.schemas.oauth import (
    OAuthInitiateRequest,
    OAuthInitiateResponse,
    OAuthProgress,
    OAuthScopeTypes,
    ProvisioningStatus,
)
from compass_portal.schemas.resource import FilterOptions, Resource, ResourceFilters, ResourcePage

__all__ = [
    # Base
    "CompassModel",
    "RequestModel",
    "fold_key",
    "normalize",
    "parse",
    # Clients & environments
    "Client",
    "ClientCreate",
    "AzureEnvironment",
    "ConnectionMethod",
    "ConnectionTestResult",
    "EnvironmentWrite",
    # Assessments
    "CATALOG",
    "Assessment",
    "AssessmentCategory",
    "AssessmentResults",
    "AssessmentStartRequest",
    "AssessmentStartResponse",
    "AssessmentStatus",
    "AssessmentType",
    "AssessmentTypeOption",
    "CategoryCatalog",
    "Recommendation",
    "Finding",
    "Severity",
    "FilterOptions",
    "Resource",
    "ResourceFilters",
    "ResourcePage",
    # OAuth
    "OAuthInitiateRequest",
    "OAuthInitiateResponse",
    "OAuthProgress",
    "OAuthScopeTypes",
    "ProvisioningStatus",
    # MFA
    "BackupCodes",
    "MfaSetup",
    "MfaStatus",
    "MfaVerifyResult",
]

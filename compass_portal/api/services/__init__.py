"""Backend API services."""

from compass_portal.api.services.assessment_service import AssessmentService, ExportFormat
from compass_portal.api.services.client_service import ClientService
from compass_portal.api.services.environment_service import EnvironmentService
from compass_portal.api.services.http import ApiClient, Blob
from compass_portal.api.services.mfa_service import MfaService
from compass_portal.api.services.oauth_service import OAuthService

__all__ = [
    "ApiClient",
    "Blob",
    "AssessmentService",
    "ClientService",
    "EnvironmentService",
    "ExportFormat",
    "MfaService",
    "OAuthService",
]

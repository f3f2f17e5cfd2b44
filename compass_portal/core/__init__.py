"""Core module initialization."""

from compass_portal.core.config import Settings, get_settings
from compass_portal.core.errors import (
    ApiError,
    CompassError,
    ErrorDetail,
    InvalidAuthorizationUrlError,
    Message,
    NetworkError,
    OAuthProvisioningError,
    PopupBlockedError,
    ResponseFormatError,
    Unknown,
    ValidationErrors,
    describe_error,
    parse_error_payload,
)
from compass_portal.core.polling import PollingTask

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Errors
    "ApiError",
    "CompassError",
    "ErrorDetail",
    "InvalidAuthorizationUrlError",
    "Message",
    "NetworkError",
    "OAuthProvisioningError",
    "PopupBlockedError",
    "ResponseFormatError",
    "Unknown",
    "ValidationErrors",
    "describe_error",
    "parse_error_payload",
    # Polling
    "PollingTask",
]

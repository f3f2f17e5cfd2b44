"""Error types and error-payload decoding.

Backend error bodies come in several shapes: a bare string, an object
with ``message`` or ``error``, or an object carrying an ``errors`` map of
field name to messages. They are decoded exactly once, when the
response is received, into an :data:`ErrorDetail`. Everything above the
HTTP layer works with that tagged result and with :func:`describe_error`.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Union

logger = logging.getLogger(__name__)

NETWORK_ERROR_MESSAGE = "Network error. Please check your connection and try again."
BAD_REQUEST_MESSAGE = "Please check your input and try again."
LIMIT_REACHED_MESSAGE = (
    "Assessment limit reached. Please upgrade your subscription or contact support."
)
FORBIDDEN_MESSAGE = "You do not have permission to perform this action."
CONFLICT_MESSAGE = "A record with this name already exists."
SERVER_ERROR_MESSAGE = "Server error occurred. Please try again later."

FIXED_STATUS_MESSAGES = {
    402: LIMIT_REACHED_MESSAGE,
    403: FORBIDDEN_MESSAGE,
    409: CONFLICT_MESSAGE,
    500: SERVER_ERROR_MESSAGE,
}


# =============================================================================
# Decoded error payloads
# =============================================================================


@dataclass(frozen=True)
class ValidationErrors:
    """Field name -> messages map returned for rejected input."""

    fields: dict[str, tuple[str, ...]] = field(default_factory=dict)

    @property
    def messages(self) -> list[str]:
        return [msg for msgs in self.fields.values() for msg in msgs]

    @property
    def text(self) -> str:
        return ", ".join(self.messages)


@dataclass(frozen=True)
class Message:
    """A single human-readable error string."""

    text: str


@dataclass(frozen=True)
class Unknown:
    """A payload with no recognizable error information."""

    raw: Any = None

    @property
    def text(self) -> str:
        return ""


ErrorDetail = Union[ValidationErrors, Message, Unknown]


def _coerce_messages(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,) if value.strip() else ()
    if isinstance(value, (list, tuple)):
        return tuple(str(item) for item in value if str(item).strip())
    if value is None:
        return ()
    return (str(value),)


def parse_error_payload(payload: Any) -> ErrorDetail:
    """Decode a backend error body into a tagged result.

    Lookup order is a plain string body, then ``message``, then ``error``,
    then an ``errors`` collection. Key lookup ignores casing.

    Args:
        payload: Parsed JSON body (or raw text) of a failed response.

    Returns:
        ValidationErrors, Message or Unknown.
    """
    if isinstance(payload, str):
        text = payload.strip()
        return Message(text) if text else Unknown(payload)

    if not isinstance(payload, Mapping):
        return Unknown(payload)

    folded = {str(key).lower(): value for key, value in payload.items()}

    for key in ("message", "error"):
        value = folded.get(key)
        if isinstance(value, str) and value.strip():
            return Message(value.strip())

    errors = folded.get("errors")
    if isinstance(errors, Mapping):
        fields = {
            str(name): _coerce_messages(msgs)
            for name, msgs in errors.items()
        }
        fields = {name: msgs for name, msgs in fields.items() if msgs}
        if fields:
            return ValidationErrors(fields)
    elif isinstance(errors, (list, tuple)):
        msgs = _coerce_messages(errors)
        if msgs:
            return ValidationErrors({"": msgs})

    return Unknown(payload)


# =============================================================================
# Exceptions
# =============================================================================


class CompassError(Exception):
    """Base class for all portal errors."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ApiError(CompassError):
    """The backend answered with a non-2xx status."""

    def __init__(self, status_code: int, payload: Any = None, detail: ErrorDetail | None = None):
        self.status_code = status_code
        self.payload = payload
        self.detail = detail if detail is not None else parse_error_payload(payload)
        message = self.detail.text or f"Request failed with status code {status_code}"
        super().__init__(message)

    @property
    def server_message(self) -> str | None:
        """Text the server supplied, if any."""
        return self.detail.text or None


class NetworkError(CompassError):
    """No response was received from the backend."""


class PopupBlockedError(CompassError):
    def __init__(self, message: str = "Popup was blocked. Please allow popups for this site and try again."):
        super().__init__(message)


class InvalidAuthorizationUrlError(CompassError):
    def __init__(self, url: Any = None):
        self.url = url
        super().__init__("Invalid authorization URL received from server")


class OAuthProvisioningError(CompassError):
    """Secret store provisioning reported a failure."""


class ResponseFormatError(CompassError):
    """A successful response whose body does not fit the expected model."""

    def __init__(self, model_name: str, cause: Exception | None = None):
        self.model_name = model_name
        self.cause = cause
        super().__init__(f"Unexpected {model_name} payload from server")


# =============================================================================
# User-facing messages
# =============================================================================


def describe_error(
    error: BaseException,
    default: str,
    overrides: Mapping[int, str] | None = None,
) -> str:
    """Map an exception to one user-facing sentence.

    Args:
        error: The exception raised by a service call
        default: Message used when nothing more specific is known
        overrides: Per-status messages that replace the fixed ones

    Returns:
        Message suitable for an error banner
    """
    if isinstance(error, NetworkError):
        return NETWORK_ERROR_MESSAGE

    if isinstance(error, ApiError):
        status = error.status_code
        if overrides and status in overrides:
            return overrides[status]
        if status == 400:
            return error.detail.text or BAD_REQUEST_MESSAGE
        if status in FIXED_STATUS_MESSAGES:
            return FIXED_STATUS_MESSAGES[status]
        return error.detail.text or default

    if isinstance(error, ResponseFormatError):
        logger.warning(f"{error.message}: {error.cause}")
        return default

    if isinstance(error, CompassError) and error.message:
        return error.message

    logger.debug(f"No specific message for {type(error).__name__}: {error}")
    return default

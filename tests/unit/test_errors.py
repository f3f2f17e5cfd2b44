"""Tests for error payload parsing and user-facing messages."""

from compass_portal.core.errors import (
    BAD_REQUEST_MESSAGE,
    CONFLICT_MESSAGE,
    FORBIDDEN_MESSAGE,
    NETWORK_ERROR_MESSAGE,
    SERVER_ERROR_MESSAGE,
    ApiError,
    Message,
    NetworkError,
    PopupBlockedError,
    ResponseFormatError,
    Unknown,
    ValidationErrors,
    describe_error,
    parse_error_payload,
)


class TestParseErrorPayload:
    """Tests for decoding error bodies into a tagged result."""

    def test_message_key(self):
        assert parse_error_payload({"message": "Name taken"}) == Message("Name taken")

    def test_pascal_case_message(self):
        assert parse_error_payload({"Message": "Name taken"}) == Message("Name taken")

    def test_error_key(self):
        assert parse_error_payload({"error": "Bad tenant"}) == Message("Bad tenant")

    def test_plain_string(self):
        assert parse_error_payload("Something broke") == Message("Something broke")

    def test_validation_errors(self):
        """Test ASP.NET style field errors are flattened in order."""
        detail = parse_error_payload(
            {"title": "One or more validation errors occurred.",
             "errors": {"Name": ["Name is required"], "TenantId": ["Invalid tenant"]}}
        )
        assert isinstance(detail, ValidationErrors)
        assert detail.messages == ["Name is required", "Invalid tenant"]
        assert detail.text == "Name is required, Invalid tenant"

    def test_unknown_shape(self):
        detail = parse_error_payload({"code": 42})
        assert isinstance(detail, Unknown)
        assert detail.text == ""

    def test_empty_payload(self):
        assert isinstance(parse_error_payload(None), Unknown)


class TestDescribeError:
    """Tests for mapping exceptions to banner text."""

    def test_network_error(self):
        assert describe_error(NetworkError("boom"), "default") == NETWORK_ERROR_MESSAGE

    def test_bad_request_uses_server_text(self):
        error = ApiError(400, {"errors": {"Name": ["Name is required"]}})
        assert describe_error(error, "default") == "Name is required"

    def test_bad_request_without_text(self):
        assert describe_error(ApiError(400, None), "default") == BAD_REQUEST_MESSAGE

    def test_fixed_status_messages(self):
        """Test 403, 409 and 500 ignore whatever the server said."""
        assert describe_error(ApiError(403, {"message": "nope"}), "default") == FORBIDDEN_MESSAGE
        assert describe_error(ApiError(409, {"message": "dup"}), "default") == CONFLICT_MESSAGE
        assert describe_error(ApiError(500, {"message": "trace"}), "default") == SERVER_ERROR_MESSAGE

    def test_unexpected_payload_uses_default(self):
        assert describe_error(ResponseFormatError("ResourcePage"), "Failed to load resources") == "Failed to load resources"

    def test_overrides_win(self):
        error = ApiError(409, {"message": "dup"})
        assert describe_error(error, "default", {409: "Client exists"}) == "Client exists"

    def test_other_status_falls_back(self):
        assert describe_error(ApiError(404, None), "Not found here") == "Not found here"
        assert describe_error(ApiError(404, {"message": "Missing"}), "default") == "Missing"

    def test_portal_error_message(self):
        assert describe_error(PopupBlockedError(), "default").startswith("Popup was blocked")

    def test_foreign_exception(self):
        assert describe_error(RuntimeError("x"), "default") == "default"

    def test_api_error_message_fallback(self):
        assert ApiError(502, None).message == "Request failed with status code 502"
        assert ApiError(502, None).server_message is None

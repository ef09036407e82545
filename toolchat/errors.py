"""Error taxonomy for the chat service."""

from typing import Any


class ToolchatError(Exception):
    """Base class for all service errors."""

    error: str = "internal_error"
    status_code: int = 500

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def as_dict(self) -> dict[str, Any]:
        """Return the JSON body used for non-streaming error responses."""
        body: dict[str, Any] = {"error": self.error, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ConfigurationError(ToolchatError):
    """A required external binding (API key, store, ...) is not configured."""

    error = "configuration_error"


class UpstreamError(ToolchatError):
    """The inference provider failed."""

    error = "upstream_error"


class StoreError(ToolchatError):
    """Reading from or writing to the session store failed."""

    error = "store_error"


class ValidationError(ToolchatError):
    """The request is missing a required field or is otherwise malformed."""

    error = "validation_error"
    status_code = 400


class ToolError(ToolchatError):
    """A tool handler failed; folded back into the model context as text."""

    code = "ToolError"

    def as_result_error(self) -> str:
        return f"{self.code}: {self.message}"


class UnknownToolError(ToolError):
    code = "UnknownTool"


class InvalidArgumentsError(ToolError):
    code = "InvalidArguments"


class UnsafeInputError(ToolError):
    code = "UnsafeInput"


class UnmatchedParenthesisError(ToolError):
    code = "UnmatchedParenthesis"


class InvalidExpressionError(ToolError):
    code = "InvalidExpression"


class InvalidResultError(ToolError):
    code = "InvalidResult"


class InvalidTimezoneError(ToolError):
    code = "InvalidTimezone"


class StoreUnavailableError(ToolError):
    code = "StoreUnavailable"


class NotFoundError(ToolchatError):
    """The requested record does not exist (or has expired)."""

    error = "not_found"
    status_code = 404

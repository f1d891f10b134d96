"""
Error taxonomy for the rendering pipeline.

Every failure a conversion can end in is a RenderError subclass with a
stable ``error_kind`` discriminator and the HTTP status the gate answers
with. CloseError is only ever logged; it never becomes a request outcome.
"""

from typing import Any, Dict, Optional


class RenderError(Exception):
    """Base class for conversion failures."""

    error_kind = "RenderError"
    http_status = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for logs and diagnostics."""
        data: Dict[str, Any] = {"errorKind": self.error_kind, "message": self.message}
        if self.details:
            data["details"] = self.details
        return data


class InvalidHtmlError(RenderError):
    """Raised when the request carries no usable HTML."""

    error_kind = "ValidationError"
    http_status = 400

    def __init__(
        self,
        message: str = 'The "html" field is required and must be a non-empty string',
        received_type: str = "undefined",
        received_length: int = 0,
    ):
        self.received_type = received_type
        self.received_length = received_length
        super().__init__(
            message,
            details={"receivedType": received_type, "receivedLength": received_length},
        )


class ResolutionError(RenderError):
    """Raised when no runnable Chromium executable can be located."""

    error_kind = "ResolutionError"


class LaunchError(RenderError):
    """Raised when the browser process cannot be started."""

    error_kind = "LaunchError"


class ContentTimeoutError(RenderError):
    """Raised when the page does not settle within the content timeout."""

    error_kind = "ContentTimeoutError"

    def __init__(self, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Content did not reach network idle within {timeout_ms}ms",
            details={"timeoutMs": timeout_ms},
        )


class ContentLoadError(RenderError):
    """Raised when the engine fails while loading content (other than a timeout)."""

    error_kind = "ContentLoadError"


class ExportError(RenderError):
    """Raised when the engine cannot produce the PDF."""

    error_kind = "ExportError"


class CloseError(RenderError):
    """Browser termination failed. Logged, never surfaced."""

    error_kind = "CloseError"


class SessionStateError(RuntimeError):
    """Raised when session operations are called out of order."""

    def __init__(self, operation: str, state: str, expected: str):
        self.operation = operation
        self.state = state
        self.expected = expected
        super().__init__(
            f"Cannot {operation} a session in state '{state}' "
            f"(expected '{expected}')"
        )

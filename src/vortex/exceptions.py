"""Custom exception classes for the Vortex library."""

import httpx


class VortexError(Exception):
    """Base exception class for all Vortex errors."""

    def __init__(
        self,
        message: str,
        *,
        response: httpx.Response | None = None,
        request: httpx.Request | None = None,
    ):
        """Initializes the base exception.

        Args:
            message: The error message.
            response: Optional httpx.Response object associated with the error.
            request: Optional httpx.Request object associated with the error.
        """
        super().__init__(message)
        self.message = message
        self.response = response
        self.request = request

    def __str__(self) -> str:
        if self.response is not None:
            url_info = getattr(getattr(self.response, "_request", None), "url", "N/A")
            return (
                f"{self.message} (Status: {self.response.status_code}, URL: {url_info})"
            )
        if isinstance(self.request, httpx.Request):
            return f"{self.message} (URL: {self.request.url})"
        return self.message


class ConfigurationError(VortexError):
    """Represents invalid input handed to a client builder method."""

    def __init__(self, message: str):
        super().__init__(message, response=None)


class RequestConstructionError(VortexError):
    """Raised when the base URL and path do not form a valid request URL."""


class SerializationError(VortexError):
    """Raised when a request body or query object cannot be encoded as JSON."""


class FormEncodingError(VortexError):
    """Raised when a multipart form part cannot be written.

    Covers missing or unreadable files and open file handles that do not
    expose a name or are not opened in binary mode.
    """

    def __init__(self, message: str, *, field: str | None = None):
        """Initializes the FormEncodingError.

        Args:
            message: The error message.
            field: The form field whose part could not be written.
        """
        super().__init__(message)
        self.field = field


class TransportError(VortexError):
    """Represents a failure reported by the underlying HTTP transport."""

    def __init__(self, message: str, *, request: httpx.Request | None = None):
        super().__init__(message, request=request, response=None)


class TimeoutError(TransportError):
    """Represents a request timeout error.

    This error is raised when an HTTP request does not complete within the configured timeout.
    """


class NetworkError(TransportError):
    """Represents a network connection error (e.g., DNS resolution failure, connection refused)."""


class DecodeError(VortexError):
    """Raised when the response body cannot be decoded into the output target."""


class HookError(VortexError):
    """Raised when a post-response hook fails. The hook's exception is chained."""


class StreamError(VortexError):
    """Raised when the streaming consumer fails. The consumer's exception is chained."""


class APIError(VortexError):
    """Represents an error status (4xx/5xx) returned by the server.

    Only raised by :meth:`vortex.types.Response.raise_for_status`; dispatch
    itself hands every status back to the caller.
    """

    def __init__(self, message: str, *, status_code: int, url: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url

    def __str__(self) -> str:
        if self.url:
            return f"{self.message} (Status: {self.status_code}, URL: {self.url})"
        return f"{self.message} (Status: {self.status_code})"

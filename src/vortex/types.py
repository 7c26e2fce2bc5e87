# vortex/types.py
"""Core type definitions and data structures for vortex.

This module defines the request snapshot attached to every response, the
response record itself, and the callable shapes accepted by the client for
interceptors, hooks and streaming consumers.
"""

from collections.abc import Callable, Mapping
from enum import StrEnum
from typing import Any, Generic, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_core import from_json

from .curl import render_curl
from .exceptions import APIError


class Method(StrEnum):
    """HTTP methods the client can dispatch."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


def header_pairs(headers: httpx.Headers) -> list[tuple[str, str]]:
    """Returns the header pairs of *headers* in order, with original casing."""
    return [
        (key.decode(headers.encoding), value.decode(headers.encoding))
        for key, value in headers.raw
    ]


def _to_pairs(value: Any) -> Any:
    # Accepts httpx.Headers, {"k": "v"}, {"k": ["v1", "v2"]} or a list of pairs.
    if isinstance(value, httpx.Headers):
        return header_pairs(value)
    if isinstance(value, httpx.QueryParams):
        return value.multi_items()
    if isinstance(value, Mapping):
        pairs: list[tuple[str, str]] = []
        for key, item in value.items():
            if isinstance(item, list | tuple):
                pairs.extend((key, v) for v in item)
            else:
                pairs.append((key, item))
        return pairs
    return value


class RequestDescriptor(BaseModel):
    """Immutable snapshot of a dispatched request.

    Built once per dispatch from the client configuration and the request
    that actually reached the transport. Retained on the :class:`Response`
    for diagnostics such as :meth:`to_curl`.

    Attributes:
        method: The HTTP method.
        url: Resolved URL without its query string.
        headers: Header pairs in send order, original casing preserved.
        body: Serialized JSON or raw body. Empty for multipart requests.
        query_params: Query parameter pairs in send order.
        form_file_paths: Multipart file parts read from disk (field -> path).
        form_fields: Plain multipart fields (field -> value).
        form_files: Multipart parts read from caller-supplied file handles.
        insecure: Whether TLS certificate verification was disabled.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    method: Method
    url: str
    headers: list[tuple[str, str]] = Field(default_factory=list)
    body: bytes = b""
    query_params: list[tuple[str, str]] = Field(default_factory=list)
    form_file_paths: dict[str, str] = Field(default_factory=dict)
    form_fields: dict[str, str] = Field(default_factory=dict)
    form_files: dict[str, Any] = Field(default_factory=dict)
    insecure: bool = False

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @field_validator("headers", "query_params", mode="before")
    @classmethod
    def _pairs(cls, value: Any) -> Any:
        return _to_pairs(value)

    @property
    def is_multipart(self) -> bool:
        """True when the request carried any multipart form input."""
        return bool(self.form_file_paths or self.form_fields or self.form_files)

    @property
    def full_url(self) -> str:
        """The URL including its encoded query string, if any."""
        if not self.query_params:
            return self.url
        return f"{self.url}?{httpx.QueryParams(self.query_params)}"

    def header(self, name: str) -> str | None:
        """Returns the first value of header *name* (case-insensitive)."""
        lookup = name.lower()
        for key, value in self.headers:
            if key.lower() == lookup:
                return value
        return None

    def to_curl(self) -> str:
        """Renders the request as an equivalent ``curl`` command."""
        return render_curl(self)


OutputT = TypeVar("OutputT")


class Response(BaseModel, Generic[OutputT]):
    """Result of a dispatched request.

    Attributes:
        status_code: The HTTP status code returned by the server.
        body: The raw response body.
        output: The decoded output target, or ``None`` when no target was set.
        request: Snapshot of the request that produced this response.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    status_code: int
    body: bytes = b""
    output: OutputT | None = None
    request: RequestDescriptor | None = None

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json_data(self) -> Any:
        """Parses the raw body as JSON, independent of any output target."""
        return from_json(self.body)

    def raise_for_status(self) -> "Response[OutputT]":
        """Raises :class:`APIError` for 4xx/5xx statuses, otherwise returns self."""
        if self.ok:
            return self
        url = self.request.full_url if self.request else None
        raise APIError(
            f"API request failed with status {self.status_code}",
            status_code=self.status_code,
            url=url,
        )


Handler = Callable[[httpx.Request], Response]
"""Type alias for a request handler.

A handler takes the in-flight `httpx.Request` and produces the final
:class:`Response`. The innermost handler performs the network call; every
other handler is produced by an interceptor.
"""

Interceptor = Callable[[httpx.Request, Handler], Handler]
"""Type alias for an interceptor.

Args:
    request (httpx.Request): The request being dispatched. Interceptors may
        mutate it (headers, URL) before the network call.
    next (Handler): The handler one step closer to the network call.
Return:
    Handler: A handler wrapping ``next``. It may run logic before and after
        calling ``next``, or return a :class:`Response` without calling it.
"""

Hook = Callable[[httpx.Request, httpx.Response], None]
"""Type alias for a post-response hook.

Hooks are called after the network round trip and before the body is read
for decoding. They observe only: the status code and body returned to the
caller are captured independently of anything a hook does.

Args:
    request (httpx.Request): The request as sent.
    response (httpx.Response): The raw, not yet consumed transport response.
Return:
    None: Hooks signal failure by raising.
"""

StreamConsumer = Callable[[httpx.Response], None]
"""Type alias for a streaming consumer.

Receives the live transport response before its body is read, and may
iterate it incrementally (``response.iter_lines()``, ``iter_bytes()``).
Dispatch blocks until the consumer returns; raising aborts the dispatch.
"""

"""Vortex: a fluent HTTP/REST client built on httpx.

Requests are configured through chained builder calls on a :class:`Client`
(headers, query parameters, JSON or multipart bodies), dispatched through an
ordered interceptor chain and observed by post-response hooks. Every
:class:`Response` carries a :class:`RequestDescriptor` snapshot that can be
rendered back into an equivalent ``curl`` command for debugging.
"""

__version__ = "0.1.0"

from . import client, config, curl, exceptions, form, interceptors, log_config, types
from .client import Client
from .config import ClientSettings, get_settings
from .curl import render_curl
from .exceptions import (
    APIError,
    ConfigurationError,
    DecodeError,
    FormEncodingError,
    HookError,
    NetworkError,
    RequestConstructionError,
    SerializationError,
    StreamError,
    TimeoutError,
    TransportError,
    VortexError,
)
from .log_config import configure_logging
from .types import Hook, Interceptor, Method, RequestDescriptor, Response

__all__ = [
    "__version__",
    "client",
    "config",
    "curl",
    "exceptions",
    "form",
    "interceptors",
    "log_config",
    "types",
    "APIError",
    "Client",
    "ClientSettings",
    "ConfigurationError",
    "DecodeError",
    "FormEncodingError",
    "Hook",
    "HookError",
    "Interceptor",
    "Method",
    "NetworkError",
    "RequestConstructionError",
    "RequestDescriptor",
    "Response",
    "SerializationError",
    "StreamError",
    "TimeoutError",
    "TransportError",
    "VortexError",
    "configure_logging",
    "get_settings",
    "render_curl",
]

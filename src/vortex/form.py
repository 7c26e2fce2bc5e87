# vortex/form.py
"""Multipart form encoding.

Collects file parts (read from disk or from caller-supplied handles) and plain
fields, then lets httpx frame them into a ``multipart/form-data`` body with a
freshly generated boundary. The encoded body is fully buffered so that it can
be re-sent unchanged when a transport failure is retried.
"""

from collections.abc import Mapping
from pathlib import Path
from typing import Any, BinaryIO, NamedTuple

import httpx

from .exceptions import FormEncodingError
from .log_config import logger

# Only used to drive httpx's encoder; never sent anywhere.
_ENCODER_URL = "http://multipart.invalid/"


class MultipartBody(NamedTuple):
    """An encoded multipart body and the Content-Type that describes it."""

    content: bytes
    content_type: str


def has_form_inputs(
    file_paths: Mapping[str, str] | None,
    fields: Mapping[str, str] | None,
    files: Mapping[str, Any] | None,
) -> bool:
    """Returns True when any multipart input is configured."""
    return bool(file_paths or fields or files)


def _read_path(field: str, path: str) -> tuple[str, bytes]:
    try:
        with open(path, "rb") as fh:
            return Path(path).name, fh.read()
    except OSError as e:
        raise FormEncodingError(
            f"Could not read form file {path!r} for field {field!r}: {e}",
            field=field,
        ) from e


def _read_handle(field: str, handle: BinaryIO) -> tuple[str, bytes]:
    name = getattr(handle, "name", None)
    if not isinstance(name, str) or not name:
        raise FormEncodingError(
            f"Form file for field {field!r} has no retrievable name", field=field
        )
    try:
        start = handle.tell() if handle.seekable() else None
        content = handle.read()
        if start is not None:
            handle.seek(start)
    except (OSError, ValueError) as e:
        raise FormEncodingError(
            f"Could not read form file {name!r} for field {field!r}: {e}",
            field=field,
        ) from e
    if not isinstance(content, bytes):
        raise FormEncodingError(
            f"Form file {name!r} for field {field!r} must be opened in binary mode",
            field=field,
        )
    return Path(name).name, content


def encode_multipart(
    file_paths: Mapping[str, str] | None = None,
    fields: Mapping[str, str] | None = None,
    files: Mapping[str, BinaryIO] | None = None,
) -> MultipartBody:
    """Encode form inputs as a multipart body.

    Parts are written in a fixed order: files read from *file_paths*, then
    plain *fields*, then *files* read from open handles. Files opened here
    are closed before returning, on success and on error. Handles supplied
    by the caller are read from their current position and left open;
    seekable handles are rewound to that position so the same handle can be
    sent again.

    Args:
        file_paths: Field name to path of a file to upload.
        fields: Field name to plain string value.
        files: Field name to a binary file handle exposing ``name``.

    Returns:
        MultipartBody: The encoded body and its Content-Type header value,
            including the boundary parameter.

    Raises:
        FormEncodingError: If a file cannot be opened or read, or a handle
            is unnamed or opened in text mode.
    """
    parts: list[tuple[str, tuple[str | None, bytes | str]]] = []

    for field, path in (file_paths or {}).items():
        parts.append((field, _read_path(field, path)))

    for field, value in (fields or {}).items():
        # A None filename makes httpx write a plain form field.
        parts.append((field, (None, value)))

    for field, handle in (files or {}).items():
        parts.append((field, _read_handle(field, handle)))

    if not parts:
        raise FormEncodingError("No form inputs to encode")

    encoder = httpx.Request("POST", _ENCODER_URL, files=parts)
    content = encoder.read()
    content_type = encoder.headers["Content-Type"]
    logger.debug(
        f"Encoded multipart body with {len(parts)} part(s), {len(content)} bytes"
    )
    return MultipartBody(content=content, content_type=content_type)

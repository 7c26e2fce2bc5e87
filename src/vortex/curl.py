# vortex/curl.py
"""Reconstruction of ``curl`` commands from request snapshots.

The output is meant for logs and bug reports: paste it into a shell to replay
the request. Rendering order is fixed: ``-k``, ``-X``, URL, headers, then
either the raw body or the multipart parts.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .types import RequestDescriptor


def _header_value(name: str, value: str) -> str:
    # The boundary belongs to the original body; curl generates its own.
    if name.lower() == "content-type" and "boundary" in value:
        return value.split(";")[0]
    return value


def _file_name(handle: object) -> str | None:
    name = getattr(handle, "name", None)
    return name if isinstance(name, str) and name else None


def render_curl(request: "RequestDescriptor") -> str:
    """Render *request* as a shell ``curl`` command.

    Args:
        request: The request snapshot to render.

    Returns:
        str: The command line, or an empty string when a form file handle
            has no retrievable name.
    """
    parts = ["curl"]
    if request.insecure:
        parts.append("-k")
    parts.append(f"-X {request.method.value}")
    parts.append(f'"{request.full_url}"')

    for name, value in request.headers:
        parts.append(f'-H "{name}: {_header_value(name, value)}"')

    if request.is_multipart:
        for field, path in request.form_file_paths.items():
            parts.append(f'-F "{field}=@{path}"')
        for field, value in request.form_fields.items():
            parts.append(f'-F "{field}={value}"')
        for field, handle in request.form_files.items():
            file_name = _file_name(handle)
            if file_name is None:
                return ""
            parts.append(f'-F "{field}=@{file_name}"')
    elif request.body:
        parts.append(f"--data-raw '{request.body.decode('utf-8', errors='replace')}'")

    return " ".join(parts)

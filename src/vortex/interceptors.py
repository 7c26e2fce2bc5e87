# vortex/interceptors.py
"""Interceptor chain composition.

Interceptors wrap the innermost handler (the one that talks to the
transport). Composition is an explicit right-to-left fold over the
registration list, so the first registered interceptor ends up outermost:
it runs first on the way in and last on the way out.
"""

import time
from collections.abc import Sequence

import httpx

from .log_config import logger
from .types import Handler, Interceptor, Response


def compose(
    interceptors: Sequence[Interceptor],
    innermost: Handler,
    request: httpx.Request,
) -> Handler:
    """Build the handler chain for one dispatch.

    Args:
        interceptors: Interceptors in registration order.
        innermost: The handler that performs the network call.
        request: The request being dispatched, handed to each interceptor
            while the chain is built.

    Returns:
        Handler: The outermost handler. Calling it runs the whole chain.
    """
    handler = innermost
    for interceptor in reversed(interceptors):
        handler = interceptor(request, handler)
    return handler


def logging_interceptor(request: httpx.Request, next_handler: Handler) -> Handler:
    """Interceptor that logs each request and its outcome with timing.

    Register it first to measure the time spent in every other interceptor
    as well as the network call.
    """

    def handle(req: httpx.Request) -> Response:
        logger.info(f"--> {req.method} {req.url}")
        started = time.perf_counter()
        response = next_handler(req)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"<-- {response.status_code} {req.method} {req.url} ({elapsed_ms:.1f} ms)"
        )
        return response

    return handle

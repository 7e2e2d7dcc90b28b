import logging
import time

from fastapi import Request
from fastapi.responses import Response

logger = logging.getLogger("cardiag.http")


async def preflight_middleware(request: Request, call_next):
    # CORS middleware answers real preflights; anything else on OPTIONS is unblocked here
    if request.method == "OPTIONS":
        return Response(status_code=204)

    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000

    logger.info(
        "%s %s -> %d (%.0f ms)",
        request.method, request.url.path, response.status_code, elapsed_ms,
    )
    return response

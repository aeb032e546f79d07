"""Middleware package."""

import time

from fastapi import Request

from .formatter import ResponseFormatter
from .intent import (
    IntentAnalysisMiddleware,
    IntentAnalysisMiddlewareError,
    RequestPreprocessor,
)

__all__ = [
    "IntentAnalysisMiddleware",
    "IntentAnalysisMiddlewareError",
    "RequestPreprocessor",
    "ResponseFormatter",
    "timing_middleware",
]


async def timing_middleware(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration_ms = int((time.time() - start) * 1000)
    response.headers["X-Process-Time-ms"] = str(duration_ms)
    return response

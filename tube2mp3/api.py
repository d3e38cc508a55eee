from __future__ import annotations

from typing import Union

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from tube2mp3.container import AppContext
from tube2mp3.errors import ErrorKind
from tube2mp3.logging_utils import get_logger
from tube2mp3.models import (
    ConversionErrorResponse,
    ConversionResponse,
    CreateConversionRequest,
    HealthResponse,
    PoolStatusResponse,
)


logger = get_logger(__name__)
router = APIRouter()


RETRY_AFTER_SECONDS = 30

_STATUS_BY_ERROR: dict[ErrorKind, int] = {
    ErrorKind.INVALID_LINK: 400,
    ErrorKind.SOURCE_TOO_LONG: 422,
    ErrorKind.CAPACITY_EXCEEDED: 503,
    ErrorKind.FETCH_FAILED: 502,
    ErrorKind.TRANSCODE_FAILED: 502,
    ErrorKind.PUBLISH_FAILED: 502,
    ErrorKind.SIGN_FAILED: 502,
    ErrorKind.FRESHNESS_PROBE_FAILED: 502,
    ErrorKind.INTERNAL_IO: 500,
}


def get_context(request: Request) -> AppContext:
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(status_code=503, detail="service is not initialized")
    return context


@router.get("/", response_class=PlainTextResponse)
async def root() -> PlainTextResponse:
    """Simple root endpoint for quick sanity checks."""
    return PlainTextResponse("tube2mp3 gateway", media_type="text/plain")


@router.get("/healthz", response_model=HealthResponse)
async def healthz() -> HealthResponse:
    return HealthResponse(status="ok")


@router.get("/metrics")
async def metrics() -> PlainTextResponse:
    payload = generate_latest()
    return PlainTextResponse(payload, media_type=CONTENT_TYPE_LATEST)


@router.get("/v1/pool", response_model=PoolStatusResponse)
async def pool_status(context: AppContext = Depends(get_context)) -> PoolStatusResponse:
    pool = context.pool
    return PoolStatusResponse(
        capacity=pool.capacity,
        available=pool.available,
        in_use=pool.in_use,
    )


@router.post(
    "/v1/conversions",
    response_model=ConversionResponse,
    responses={
        400: {"model": ConversionErrorResponse},
        422: {"model": ConversionErrorResponse},
        500: {"model": ConversionErrorResponse},
        502: {"model": ConversionErrorResponse},
        503: {"model": ConversionErrorResponse},
    },
)
async def create_conversion(
    req: CreateConversionRequest,
    context: AppContext = Depends(get_context),
) -> Union[ConversionResponse, JSONResponse]:
    """Convert a YouTube link to an MP3 and return a time-limited download URL.

    A recent conversion of the same video is reused instead of downloading
    again. When every egress proxy is busy the request is rejected with 503
    and a Retry-After header rather than queued.
    """
    result = await context.pipeline.convert(req.link)

    if result.ok:
        assert result.link is not None and result.video_id is not None
        return ConversionResponse(
            status=result.status.value,  # type: ignore[arg-type]
            video_id=result.video_id,
            url=result.link.url,
            expires_at=result.link.expires_at,
            title=result.title,
            message=result.message,
            progress=result.progress,
        )

    assert result.error is not None
    body = ConversionErrorResponse(
        error=result.error.value,
        message=result.message,
        retryable=result.retryable,
        progress=result.progress,
    )
    headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if result.retryable else None
    return JSONResponse(
        status_code=_STATUS_BY_ERROR.get(result.error, 500),
        content=body.model_dump(mode="json"),
        headers=headers,
    )

"""API routes for streaming image conversion."""
import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import PlainTextResponse
from starlette.background import BackgroundTask

from converter.api.responses import UploadStreamingResponse
from converter.config import (
    COMMIT_ON_FIRST_CHUNK,
    CONVERSION_TIMEOUT_SECONDS,
    MAX_UPLOAD_SIZE_BYTES,
)
from converter.conversion.errors import ConversionError
from converter.conversion.formats import get_format_registry
from converter.conversion.params import parse_conversion_request
from converter.conversion.response import content_disposition
from converter.conversion.service import ConversionJob
from converter.conversion.upload import require_multipart

logger = logging.getLogger("converter.api")
router = APIRouter(tags=["converter"])


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/convert")
def supported_formats():
    """Output formats this server can produce."""
    return {"supported": get_format_registry().candidates()}


@router.post("/convert")
async def convert_upload(
    request: Request,
    output_format: Optional[str] = Query(None, alias="format", description="jpeg, jpg, png, webp or tiff"),
    quality: Optional[str] = Query(None, description="Encoder quality, default 80"),
    width: Optional[str] = Query(None, alias="w", description="Target width in pixels"),
    height: Optional[str] = Query(None, alias="h", description="Target height in pixels"),
):
    """Convert the single uploaded image and stream it back as an attachment."""
    boundary = require_multipart(request.headers.get("content-type"))
    conversion = parse_conversion_request(get_format_registry(), output_format, quality, width, height)

    job = ConversionJob(
        request.stream(),
        boundary,
        conversion,
        eager_commit=not COMMIT_ON_FIRST_CHUNK,
        timeout=CONVERSION_TIMEOUT_SECONDS,
        max_upload_bytes=MAX_UPLOAD_SIZE_BYTES,
    ).start()
    try:
        result = await job.outcome()
    except ConversionError as e:
        logger.info("Job %s failed: %s", job.job_id, e)
        return PlainTextResponse(
            f"Conversion failed: {e}",
            status_code=400,
            background=BackgroundTask(job.aclose),
        )
    except asyncio.CancelledError:
        job.close()
        raise

    return UploadStreamingResponse(
        result.body,
        media_type=result.content_type,
        headers={"content-disposition": content_disposition(result.filename)},
    )

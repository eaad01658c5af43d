"""FastAPI router for POST /upload and GET /images.

Constraints
-----------
- One file per upload request (multipart field ``file``), optional ``name``.
- Returns 400 ``{"error": "No file uploaded"}`` when the file part is missing.
- Returns 400 ``{"error": "..."}`` for formats outside the whitelist.
- Returns 500 ``{"error": "..."}`` when the media store fails; never retried.
- Returns 503 when no media store is configured.
"""
import logging
from typing import Optional

from fastapi import APIRouter, File, Form, UploadFile
from fastapi.responses import JSONResponse

from image_manager.errors import ImageManagerError, NoFileError

from .schemas import ErrorResponse, UploadResponse
from .service import get_image_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["images"])

LIST_FAILED_MESSAGE = "Failed to fetch images from Cloudinary"


def _unavailable() -> JSONResponse:
    logger.warning("[images] No media store configured")
    return JSONResponse(
        {"error": "Media store not configured"},
        status_code=503,
    )


@router.post(
    "/upload",
    response_model=UploadResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def upload_image(
    file: Optional[UploadFile] = File(None),
    name: Optional[str] = Form(None),
):
    """Upload one image to the media store.

    The desired ``name`` (extension included) becomes the object identifier
    once its extension is stripped; without it the original filename is used.

    Example::

        POST /upload
        file=@photo.png  name=vacation.png

        200 OK
        { "url": "https://res.cloudinary.com/demo/image/upload/v1/my-images/vacation.png" }
    """
    if file is None:
        return JSONResponse({"error": NoFileError().message}, status_code=400)

    service = get_image_service()
    if service is None:
        return _unavailable()

    try:
        content = await file.read()
        stored = await service.upload(
            content=content,
            filename=file.filename,
            desired_name=name,
            content_type=file.content_type,
        )
    except ImageManagerError as exc:
        logger.warning("[images] Upload of %s rejected: %s", file.filename, exc.message)
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)
    finally:
        await file.close()

    logger.info("[images] Uploaded %s -> %s", file.filename, stored.url)
    return UploadResponse(url=stored.url)


@router.get(
    "/images",
    response_model=list[str],
    responses={500: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def list_images():
    """List previously uploaded image URLs (up to the configured cap).

    Example::

        GET /images

        200 OK
        ["https://res.cloudinary.com/demo/image/upload/v1/my-images/vacation.png"]
    """
    service = get_image_service()
    if service is None:
        return _unavailable()

    try:
        urls = await service.list_images()
    except ImageManagerError as exc:
        logger.error("[images] Listing failed: %s", exc.message)
        return JSONResponse({"error": LIST_FAILED_MESSAGE}, status_code=500)

    logger.debug("[images] Listed %d image(s)", len(urls))
    return urls

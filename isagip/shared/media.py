import logging
from typing import Optional

import cloudinary
import cloudinary.uploader
from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from . import config
from .errors import IsagipError, ValidationError

logger = logging.getLogger("shared.media")

MAX_PHOTO_BYTES = 5 * 1024 * 1024


def _ensure_cloudinary_configured() -> None:
    """Configure Cloudinary from settings; uploads are refused when it is missing"""
    if not all([config.CLOUDINARY_CLOUD_NAME, config.CLOUDINARY_API_KEY, config.CLOUDINARY_API_SECRET]):
        logger.error("Cloudinary env vars missing. Set CLOUDINARY_CLOUD_NAME, CLOUDINARY_API_KEY, CLOUDINARY_API_SECRET.")
        raise IsagipError("Photo uploads are not configured.", status_code=503)
    cloudinary.config(
        cloud_name=config.CLOUDINARY_CLOUD_NAME,
        api_key=config.CLOUDINARY_API_KEY,
        api_secret=config.CLOUDINARY_API_SECRET,
        secure=True,
    )


def check_photo(file: UploadFile) -> None:
    """Photos must be images of at most 5MB"""
    if not (file.content_type or "").startswith("image/"):
        raise ValidationError("Photo must be an image up to 5MB.", field="photo")
    if file.size is not None and file.size > MAX_PHOTO_BYTES:
        raise ValidationError("Photo must be an image up to 5MB.", field="photo")


async def upload_photo(file: UploadFile, folder: Optional[str] = None) -> str:
    """Upload an image to Cloudinary and return the secure URL.

    The blocking uploader runs in the threadpool.
    """
    check_photo(file)
    _ensure_cloudinary_configured()
    upload_options = {
        "resource_type": "image",
        "use_filename": True,
        "unique_filename": True,
        "overwrite": False,
    }
    if folder:
        upload_options["folder"] = folder

    result = await run_in_threadpool(cloudinary.uploader.upload, file.file, **upload_options)
    secure_url = result.get("secure_url") or result.get("url")
    if not secure_url:
        raise RuntimeError("Cloudinary upload did not return a URL")
    logger.debug("Cloudinary upload successful: %s", secure_url)
    return secure_url

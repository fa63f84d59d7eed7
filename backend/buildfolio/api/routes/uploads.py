"""
Single file upload to object storage, with optional server-side crop for images.
"""
from typing import Optional

import anyio
from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from buildfolio.api.middleware.rate_limit import check_upload_rate_limit
from buildfolio.config import get_settings
from buildfolio.services.errors import UploadError
from buildfolio.services.media import PRESETS, crop_and_resize
from buildfolio.services.storage import (
    ObjectStorage,
    build_upload_path,
    check_bucket,
    get_storage,
    sanitize_filename,
)
from buildfolio.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


@router.post("/upload")
async def upload_file(
    request: Request,
    file: Optional[UploadFile] = File(None),
    bucket: str = Form(""),
    path: str = Form(""),
    preset: Optional[str] = Form(None),
    storage: ObjectStorage = Depends(get_storage),
):
    """
    multipart: file, bucket (profile-photos | project-images | resumes), path,
    optional preset (profile_photo | project_image). Returns {success, url, path}.
    """
    check_upload_rate_limit(request)
    settings = get_settings()

    if file is None or not file.filename:
        raise UploadError("No file provided")
    check_bucket(bucket)
    if preset is not None and preset not in PRESETS:
        raise UploadError("Invalid preset")

    content = await file.read()
    if not content:
        raise UploadError("File is empty")
    if len(content) > settings.upload_max_size_bytes:
        raise UploadError(f"File exceeds {settings.upload_max_size_mb}MB limit", status_code=413)

    filename = file.filename
    content_type = file.content_type
    if preset:
        transformed = await anyio.to_thread.run_sync(
            crop_and_resize, content, filename, PRESETS[preset]
        )
        content, filename, content_type = (
            transformed.content,
            transformed.filename,
            transformed.content_type,
        )

    key = sanitize_filename(path) if path else build_upload_path(filename)
    stored = await storage.upload(bucket, key, content, content_type)
    logger.info("File uploaded", extra={"bucket": bucket, "path": stored.path, "size": len(content)})
    return {"success": True, "url": stored.url, "path": stored.path}

import logging
import os
import uuid

import boto3
from botocore.config import Config
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile

from ..auth import get_current_user
from ..config import R2_ACCESS_KEY_ID, R2_ACCOUNT_ID, R2_BUCKET_NAME, R2_SECRET_ACCESS_KEY
from ..models import User
from ..rate_limiter import create_rate_limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/upload", tags=["Upload"])

# Presigned URL expiration time (1 hour)
PRESIGNED_URL_EXPIRATION = 3600

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
MAX_VIDEO_SIZE = 50 * 1024 * 1024  # 50MB

IMAGE_TYPES = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "image/heic": "heic",
    "image/heif": "heif",
}
DOCUMENT_TYPES = {**IMAGE_TYPES, "application/pdf": "pdf"}
VIDEO_TYPES = {"video/mp4": "mp4", "video/quicktime": "mov", "video/webm": "webm"}

# upload category -> allowed content types
UPLOAD_CATEGORIES = {
    "damage-evidence": {**DOCUMENT_TYPES, **VIDEO_TYPES},
    "kitchen-license": DOCUMENT_TYPES,
    "application-documents": DOCUMENT_TYPES,
}

DANGEROUS_FILENAME_CHARS = ("..", "/", "\\", "<", ">", ":", '"', "|", "?", "*")

upload_rate_limit = create_rate_limiter(limit=30, window_seconds=3600, key_prefix="uploads")


def get_r2_client():
    """Create and return an R2 client."""
    return boto3.client(
        "s3",
        endpoint_url=f"https://{R2_ACCOUNT_ID}.r2.cloudflarestorage.com",
        aws_access_key_id=R2_ACCESS_KEY_ID,
        aws_secret_access_key=R2_SECRET_ACCESS_KEY,
        config=Config(signature_version="s3v4"),
    )


def generate_presigned_url(key: str, expiration: int = PRESIGNED_URL_EXPIRATION) -> str:
    """Generate a presigned URL for accessing a private object in R2."""
    r2 = get_r2_client()
    params = {"Bucket": R2_BUCKET_NAME, "Key": key, "ResponseContentDisposition": "inline"}
    try:
        url = r2.generate_presigned_url("get_object", Params=params, ExpiresIn=expiration)
        logger.info(f"✅ Generated presigned URL for key: {key}")
        return url
    except Exception as e:
        logger.error(f"❌ Failed to generate presigned URL for key {key}: {e}")
        raise


def validate_filename(filename: str) -> str:
    """Reject names that could escape the object prefix; returns the trimmed name"""
    filename = filename.strip()
    for char in DANGEROUS_FILENAME_CHARS:
        if char in filename:
            logger.warning(f"❌ Dangerous character '{char}' detected in filename: '{filename}'")
            raise HTTPException(status_code=400, detail=f"Invalid filename - contains dangerous character '{char}'")
    if len(filename) > 255:
        raise HTTPException(status_code=400, detail="Filename too long - maximum 255 characters")
    return filename


def build_object_key(category: str, user: User, content_type: str) -> str:
    ext = UPLOAD_CATEGORIES[category][content_type]
    return f"{category}/{user.id}/{uuid.uuid4()}.{ext}"


@router.post("/{category}")
async def upload_file(
    category: str,
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    _: None = Depends(upload_rate_limit),
):
    """Upload a private file to R2 and return its key plus a presigned URL."""
    logger.info(f"📤 Uploading {category} file for user {current_user.id}")
    if category not in UPLOAD_CATEGORIES:
        raise HTTPException(status_code=404, detail="Unknown upload category")

    allowed = UPLOAD_CATEGORIES[category]
    if file.content_type not in allowed:
        raise HTTPException(
            status_code=400,
            detail="Invalid file type. Allowed: " + ", ".join(sorted(set(allowed.values()))),
        )

    filename = validate_filename(file.filename) if file.filename else None

    contents = await file.read()
    limit = MAX_VIDEO_SIZE if file.content_type in VIDEO_TYPES else MAX_FILE_SIZE
    if len(contents) > limit:
        raise HTTPException(
            status_code=400,
            detail=f"File size exceeds {limit // (1024 * 1024)}MB limit. "
            f"Your file is {len(contents) / (1024 * 1024):.2f}MB.",
        )
    if not contents:
        raise HTTPException(status_code=400, detail="File is empty")

    key = build_object_key(category, current_user, file.content_type)
    try:
        r2 = get_r2_client()
        r2.put_object(Bucket=R2_BUCKET_NAME, Key=key, Body=contents, ContentType=file.content_type)
        presigned_url = generate_presigned_url(key)
    except Exception as e:
        logger.error(f"❌ Upload failed: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Upload failed: {str(e)}")

    return {
        "url": presigned_url,
        "key": key,
        "fileName": filename or os.path.basename(key),
        "fileSize": len(contents),
        "mimeType": file.content_type,
    }


@router.get("/presigned")
async def get_presigned_url_endpoint(
    key: str = Query(..., min_length=1),
    current_user: User = Depends(get_current_user),
):
    """Get a presigned URL for an existing upload."""
    category = key.split("/", 1)[0]
    if category not in UPLOAD_CATEGORIES or ".." in key or key.startswith("/"):
        raise HTTPException(status_code=400, detail="Invalid file key")

    try:
        return {"url": generate_presigned_url(key)}
    except Exception as e:
        logger.error(f"❌ Failed to generate presigned URL: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to generate file URL")

"""
Photo storage on Cloudflare R2.
Objects are private; customers get short-lived presigned links.
"""

import logging
import uuid
from datetime import date
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..config import (
    PHOTO_URL_EXPIRATION,
    R2_ACCESS_KEY_ID,
    R2_ACCOUNT_ID,
    R2_BUCKET_NAME,
    R2_SECRET_ACCESS_KEY,
)

logger = logging.getLogger(__name__)

MAX_PHOTO_SIZE_BYTES = 15 * 1024 * 1024  # 15MB
ALLOWED_PHOTO_TYPES = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/heic": "heic",
    "image/heif": "heif",
}


class PhotoStorageError(Exception):
    pass


def get_r2_client():
    """Get configured boto3 client for Cloudflare R2"""
    return boto3.client(
        "s3",
        endpoint_url=f"https://{R2_ACCOUNT_ID}.r2.cloudflarestorage.com",
        aws_access_key_id=R2_ACCESS_KEY_ID,
        aws_secret_access_key=R2_SECRET_ACCESS_KEY,
        config=Config(signature_version="s3v4"),
        region_name="auto",
    )


def validate_photo(filename: Optional[str], content_type: Optional[str], size_bytes: int) -> Optional[str]:
    """Return an error message, or None when the file is acceptable"""
    if content_type not in ALLOWED_PHOTO_TYPES:
        return f"{filename or 'File'}: only JPEG, PNG, WebP and HEIC photos are allowed"
    if size_bytes == 0:
        return f"{filename or 'File'}: file is empty"
    if size_bytes > MAX_PHOTO_SIZE_BYTES:
        return f"{filename or 'File'}: exceeds {MAX_PHOTO_SIZE_BYTES // (1024 * 1024)}MB limit"
    if filename and any(char in filename for char in ("..", "/", "\\")):
        return f"{filename}: invalid filename"
    return None


def booking_folder(booking_id: int, postcode: Optional[str], booking_date: Optional[date]) -> str:
    """e.g. 42_SE164NF_2030-03-04"""
    compact = "".join(c for c in (postcode or "") if c.isalnum()).upper() or "NOPOSTCODE"
    day = booking_date.isoformat() if booking_date else "undated"
    return f"{booking_id}_{compact}_{day}"


def generate_photo_key(folder: str, photo_type: str, content_type: str) -> str:
    """Key format: cleaning-photos/{folder}/{photo_type}/{uuid}.{ext}"""
    ext = ALLOWED_PHOTO_TYPES.get(content_type, "jpg")
    return f"cleaning-photos/{folder}/{photo_type}/{uuid.uuid4().hex}.{ext}"


def upload_photo(file_content: bytes, key: str, content_type: str, metadata: Optional[dict] = None) -> None:
    """
    Upload photo bytes to the private bucket.

    Raises:
        PhotoStorageError when R2 rejects the upload
    """
    extra_args = {"ContentType": content_type}
    if metadata:
        extra_args["Metadata"] = {k: str(v) for k, v in metadata.items()}

    try:
        get_r2_client().put_object(Bucket=R2_BUCKET_NAME, Key=key, Body=file_content, **extra_args)
    except (ClientError, BotoCoreError) as e:
        logger.error(f"❌ R2 upload failed for {key}: {e}")
        raise PhotoStorageError(str(e)) from e
    logger.info(f"📤 Uploaded photo to R2: {key}")


def generate_presigned_url(key: str, expiration: int = PHOTO_URL_EXPIRATION) -> Optional[str]:
    """Presigned GET link for a private photo, None when signing fails"""
    try:
        return get_r2_client().generate_presigned_url(
            "get_object",
            Params={"Bucket": R2_BUCKET_NAME, "Key": key, "ResponseContentDisposition": "inline"},
            ExpiresIn=expiration,
        )
    except (ClientError, BotoCoreError) as e:
        logger.error(f"❌ Failed to generate presigned URL for key {key}: {e}")
        return None


def delete_photo(key: str) -> None:
    try:
        get_r2_client().delete_object(Bucket=R2_BUCKET_NAME, Key=key)
    except (ClientError, BotoCoreError) as e:
        logger.error(f"❌ R2 delete failed for {key}: {e}")
        raise PhotoStorageError(str(e)) from e

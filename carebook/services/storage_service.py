"""
Image upload handling.

Uploads are validated (MIME type, extension, size) and then handed to a
storage backend: a local directory served by the app, or Cloudinary when
credentials are configured.
"""
from pathlib import Path
from typing import Optional
import hashlib
import logging
import os
import secrets
import time

import httpx
from fastapi import UploadFile

from ..core.config import settings
from ..core.exceptions import BadRequestError, GatewayError

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/webp", "image/gif"}
ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".gif"}


def build_filename(field_name: str, original_name: str) -> str:
    """``<field>-<millis>-<random><ext>``; the client's name is never reused."""
    ext = os.path.splitext(original_name or "")[1].lower()
    unique_suffix = f"{int(time.time() * 1000)}-{secrets.randbelow(10 ** 9)}"
    return f"{field_name}-{unique_suffix}{ext}"


async def read_image_upload(upload: UploadFile, max_size: Optional[int] = None) -> bytes:
    """Validate an uploaded image and return its bytes."""
    max_size = max_size or settings.MAX_UPLOAD_SIZE

    if upload.content_type not in ALLOWED_MIME_TYPES:
        raise BadRequestError("Only image files (JPEG, PNG, WebP, GIF) are allowed!")

    ext = os.path.splitext(upload.filename or "")[1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise BadRequestError("Invalid file extension!")

    content = await upload.read(max_size + 1)
    if len(content) > max_size:
        raise BadRequestError(f"File too large. Maximum size is {max_size // (1024 * 1024)}MB")
    if not content:
        raise BadRequestError("Uploaded file is empty")

    return content


class LocalImageStorage:
    """Writes images under ``UPLOAD_DIR``; the app serves them at ``UPLOAD_URL_PREFIX``."""

    def __init__(self, directory: str, url_prefix: str):
        self.directory = Path(directory)
        self.url_prefix = url_prefix.rstrip("/")

    async def save(self, filename: str, content: bytes, content_type: str, folder: str = "images") -> str:
        target_dir = self.directory / folder
        target_dir.mkdir(parents=True, exist_ok=True)
        (target_dir / filename).write_bytes(content)
        logger.info(f"Stored image {folder}/{filename} ({len(content)} bytes)")
        return f"{self.url_prefix}/{folder}/{filename}"


class CloudinaryImageStorage:
    """Signed uploads to Cloudinary's REST upload endpoint."""

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.transport = transport

    @property
    def upload_url(self) -> str:
        return f"https://api.cloudinary.com/v1_1/{self.cloud_name}/image/upload"

    def sign(self, params: dict) -> str:
        to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params))
        return hashlib.sha1(f"{to_sign}{self.api_secret}".encode()).hexdigest()

    async def save(self, filename: str, content: bytes, content_type: str, folder: str = "images") -> str:
        params = {
            "folder": folder,
            "public_id": os.path.splitext(filename)[0],
            "timestamp": str(int(time.time())),
        }
        data = {**params, "api_key": self.api_key, "signature": self.sign(params)}

        async with httpx.AsyncClient(transport=self.transport, timeout=30) as client:
            try:
                response = await client.post(
                    self.upload_url,
                    data=data,
                    files={"file": (filename, content, content_type)},
                )
            except httpx.HTTPError as e:
                logger.error(f"Cloudinary upload failed: {str(e)}")
                raise GatewayError("Image upload failed")

        if response.status_code != 200:
            logger.error(f"Cloudinary upload rejected: {response.status_code} {response.text}")
            raise GatewayError("Image upload failed")

        return response.json()["secure_url"]


def get_image_storage():
    """Storage backend dependency."""
    if settings.cloudinary_configured:
        return CloudinaryImageStorage(
            settings.CLOUDINARY_CLOUD_NAME,
            settings.CLOUDINARY_API_KEY,
            settings.CLOUDINARY_API_SECRET,
        )
    return LocalImageStorage(settings.UPLOAD_DIR, settings.UPLOAD_URL_PREFIX)


async def store_image(storage, upload: UploadFile, folder: str) -> str:
    """Validate ``upload`` and persist it; returns the public URL."""
    content = await read_image_upload(upload)
    filename = build_filename("image", upload.filename)
    return await storage.save(filename, content, upload.content_type, folder=folder)

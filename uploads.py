"""
Image uploads for product pictures and UPI QR codes.

Files are forwarded as multipart form data to the configured image host
(an unsigned upload preset), which answers with the public URL.
"""
import logging
from typing import Optional

import httpx

import config
from errors import UpstreamError, ValidationFailed

logger = logging.getLogger("grocery-admin.uploads")

ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")


def get_http_client():
    return httpx.Client(timeout=config.IMAGE_UPLOAD_TIMEOUT)


def validate_image(content_type: Optional[str], size: int) -> None:
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationFailed("Please upload a valid image file (JPEG, PNG, GIF, WebP)")
    if size > config.MAX_IMAGE_BYTES:
        raise ValidationFailed(f"Image size must be less than {config.MAX_IMAGE_BYTES // (1024 * 1024)}MB")


def upload_image(client: httpx.Client, filename: str, content: bytes, content_type: str,
                 folder: Optional[str] = None) -> str:
    validate_image(content_type, len(content))
    if not config.IMAGE_UPLOAD_URL:
        raise UpstreamError("Image upload is not configured")

    data = {"upload_preset": config.IMAGE_UPLOAD_PRESET, "asset_folder": folder or config.IMAGE_UPLOAD_FOLDER}
    try:
        r = client.post(config.IMAGE_UPLOAD_URL, data=data, files={"file": (filename, content, content_type)})
    except httpx.HTTPError as e:
        logger.warning("Image upload failed: %s", e)
        raise UpstreamError("Failed to upload image. Please try again.")
    if r.status_code >= 400:
        logger.warning("Image host rejected upload (%s): %s", r.status_code, r.text[:200])
        raise UpstreamError("Failed to upload image. Please try again.")

    url = r.json().get("secure_url") or r.json().get("url")
    if not url:
        raise UpstreamError("Image host returned no URL")
    return url

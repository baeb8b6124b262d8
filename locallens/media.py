import logging
import time
from functools import lru_cache
from typing import Optional

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
import cloudinary.utils

from . import config
from .errors import AppError

logger = logging.getLogger(__name__)

UPLOAD_FOLDER = "locallens/reports"
MAX_IMAGE_BYTES = 10 * 1024 * 1024  # 10MB
MAX_FILES_PER_REQUEST = 5
TRANSFORMATION = [
    {"width": 1200, "height": 800, "crop": "limit"},
    {"quality": "auto:good"},
    {"fetch_format": "auto"},
]
SIGNED_TRANSFORMATION = "w_1200,h_800,c_limit,q_auto:good,f_auto"


class MediaStorageError(AppError):
    code = "UPLOAD_ERROR"


def make_public_id(user_id: int, index: Optional[int] = None) -> str:
    stamp = int(time.time() * 1000)
    suffix = f"_{index}" if index is not None else ""
    return f"report_{stamp}_{user_id}{suffix}"


def describe_upload(result: dict, caption: Optional[str] = None) -> dict:
    """Canonical image record returned to clients and stored on reports."""
    image = {
        "url": result.get("secure_url") or result.get("url"),
        "publicId": result.get("public_id"),
        "width": result.get("width"),
        "height": result.get("height"),
        "format": result.get("format"),
        "size": result.get("bytes"),
    }
    if caption is not None:
        image["caption"] = caption
    return image


class MediaStore:
    """Thin adapter over the Cloudinary upload API."""

    def __init__(self, cloud_name: str, api_key: str, api_secret: str, folder: str = UPLOAD_FOLDER):
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.folder = folder
        cloudinary.config(cloud_name=cloud_name, api_key=api_key, api_secret=api_secret, secure=True)

    def upload(self, data, public_id: str, caption: Optional[str] = None) -> dict:
        """Upload raw bytes or a data URI and return the canonical image record."""
        try:
            result = cloudinary.uploader.upload(
                data,
                folder=self.folder,
                public_id=public_id,
                resource_type="image",
                transformation=TRANSFORMATION,
            )
        except (cloudinary.exceptions.Error, ValueError) as e:
            # The SDK raises ValueError when cloud_name or credentials are missing
            logger.error("Image upload failed for %s: %s", public_id, e)
            raise MediaStorageError("Failed to upload image")
        return describe_upload(result, caption)

    def delete(self, public_id: str) -> bool:
        try:
            result = cloudinary.uploader.destroy(public_id)
        except (cloudinary.exceptions.Error, ValueError) as e:
            logger.error("Image deletion failed for %s: %s", public_id, e)
            raise MediaStorageError("Failed to delete image", code="DELETE_ERROR")
        return result.get("result") == "ok"

    def signed_upload(self, public_id: str, timestamp: Optional[int] = None) -> dict:
        """Parameters a browser needs to upload straight to Cloudinary."""
        params = {
            "timestamp": timestamp or int(time.time()),
            "public_id": public_id,
            "folder": self.folder,
            "transformation": SIGNED_TRANSFORMATION,
        }
        signature = cloudinary.utils.api_sign_request(params, self.api_secret)
        return {
            "url": f"https://api.cloudinary.com/v1_1/{self.cloud_name}/image/upload",
            "params": {**params, "signature": signature, "api_key": self.api_key},
        }


@lru_cache()
def get_media_store() -> MediaStore:
    return MediaStore(
        cloud_name=config.CLOUDINARY_CLOUD_NAME,
        api_key=config.CLOUDINARY_API_KEY,
        api_secret=config.CLOUDINARY_API_SECRET,
    )

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, UploadFile
from starlette.concurrency import run_in_threadpool

from ..deps import get_current_user
from ..errors import NotFound, ValidationFailed
from ..media import MAX_FILES_PER_REQUEST, MAX_IMAGE_BYTES, MediaStore, get_media_store, make_public_id
from ..models.user import CamelModel, User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/upload", tags=["Upload"])


class Base64Upload(CamelModel):
    image: Optional[str] = None
    caption: Optional[str] = None


async def _read_image(upload: UploadFile, many: bool = False) -> bytes:
    if not (upload.content_type or "").startswith("image/"):
        raise ValidationFailed("Only image files are allowed", code="INVALID_FILE_TYPE")
    data = await upload.read()
    if len(data) > MAX_IMAGE_BYTES:
        message = (
            "One or more files are too large. Maximum size is 10MB per file"
            if many
            else "File size too large. Maximum size is 10MB"
        )
        raise ValidationFailed(message, code="FILE_TOO_LARGE")
    return data


@router.post("/image")
async def upload_image(
    image: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    store: MediaStore = Depends(get_media_store),
):
    if image is None:
        raise ValidationFailed("No image file provided", code="NO_FILE")
    data = await _read_image(image)
    result = await run_in_threadpool(store.upload, data, make_public_id(current_user.user_id))
    return {"message": "Image uploaded successfully", "image": result}


@router.post("/images")
async def upload_images(
    images: Optional[List[UploadFile]] = File(None),
    current_user: User = Depends(get_current_user),
    store: MediaStore = Depends(get_media_store),
):
    if not images:
        raise ValidationFailed("No image files provided", code="NO_FILES")
    if len(images) > MAX_FILES_PER_REQUEST:
        raise ValidationFailed("Too many files. Maximum 5 files allowed", code="TOO_MANY_FILES")

    # Validate every file before the first upload goes out
    payloads = [await _read_image(upload, many=True) for upload in images]
    results = []
    for index, data in enumerate(payloads):
        public_id = make_public_id(current_user.user_id, index)
        results.append(await run_in_threadpool(store.upload, data, public_id))
    return {"message": f"{len(results)} images uploaded successfully", "images": results}


@router.post("/base64")
async def upload_base64(
    payload: Base64Upload,
    current_user: User = Depends(get_current_user),
    store: MediaStore = Depends(get_media_store),
):
    if not payload.image:
        raise ValidationFailed("No base64 image data provided", code="NO_IMAGE_DATA")
    if not payload.image.startswith("data:image/"):
        raise ValidationFailed("Invalid base64 image format", code="INVALID_BASE64_FORMAT")

    result = await run_in_threadpool(
        store.upload, payload.image, make_public_id(current_user.user_id), payload.caption or ""
    )
    return {"message": "Base64 image uploaded successfully", "image": result}


@router.get("/signed-url")
def signed_url(
    current_user: User = Depends(get_current_user),
    store: MediaStore = Depends(get_media_store),
):
    """Signature for direct browser uploads."""
    upload_data = store.signed_upload(make_public_id(current_user.user_id))
    return {"message": "Signed URL generated successfully", "uploadData": upload_data}


@router.delete("/{public_id:path}")
def delete_image(
    public_id: str,
    current_user: User = Depends(get_current_user),
    store: MediaStore = Depends(get_media_store),
):
    if not store.delete(public_id):
        raise NotFound("Image not found or already deleted", code="IMAGE_NOT_FOUND")
    logger.info("Image %s deleted by user %s", public_id, current_user.user_id)
    return {"message": "Image deleted successfully", "publicId": public_id}

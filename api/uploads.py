from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, UploadFile

from assets import AssetService, StoredAsset
from config import Settings
from database import IMAGE_UPLOAD, EntityStore, serialize_document
from deps import get_store
from errors import NotFound, ValidationFailure

router = APIRouter()


def read_images(files: Optional[List[UploadFile]], settings: Settings) -> List[Tuple[str, bytes]]:
    """Check count, type and size of an image upload and return (filename, bytes) pairs."""
    if not files:
        raise ValidationFailure("No files uploaded")
    if len(files) > settings.max_upload_files:
        raise ValidationFailure(f"At most {settings.max_upload_files} files per upload")

    images = []
    for f in files:
        if f.content_type not in settings.allowed_image_types:
            raise ValidationFailure(f"Invalid file type: {f.content_type}")
        data = f.file.read()
        if len(data) > settings.max_upload_bytes:
            raise ValidationFailure(f"{f.filename} is larger than {settings.max_upload_bytes} bytes")
        images.append((f.filename, data))
    return images


def store_images(assets: AssetService, images: List[Tuple[str, bytes]], folder: str) -> List[StoredAsset]:
    return [assets.store(data, folder=folder, filename=filename) for filename, data in images]


@router.get("/")
def list_uploads(store: EntityStore = Depends(get_store)):
    return [serialize_document(d) for d in store.find_many(IMAGE_UPLOAD)]


@router.delete("/deleteAllImages")
def delete_all_uploads(store: EntityStore = Depends(get_store)):
    uploads = store.find_many(IMAGE_UPLOAD)
    if not uploads:
        raise NotFound("No images to delete")
    deleted = [store.delete_by_id(IMAGE_UPLOAD, u["_id"]) for u in uploads]
    return {"deleted": [serialize_document(d) for d in deleted if d]}

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from slugify import slugify

from api.uploads import read_images, store_images
from assets import AssetService
from cascade import CascadeCoordinator
from config import Settings, get_settings
from database import (
    CATEGORY,
    IMAGE_UPLOAD,
    PRODUCT,
    EntityStore,
    optional_object_id,
    parse_object_id,
    serialize_document,
)
from deps import get_assets, get_coordinator, get_store
from errors import Conflict, NotFound, ValidationFailure
from schemas import HEX_COLOR, Category, ImageUrlIn

router = APIRouter()


def _check_parent(store: EntityStore, parent_id: Optional[str], own_id=None):
    parent = optional_object_id(parent_id, "parent category ID")
    if parent is None:
        return None
    if own_id is not None and parent == own_id:
        raise ValidationFailure("A category can not be its own parent")
    if store.find_by_id(CATEGORY, parent, {"_id": 1}) is None:
        raise ValidationFailure("Parent category does not exist.")
    return parent


@router.post("/", status_code=201)
def create_category(payload: Category, store: EntityStore = Depends(get_store)):
    if store.find_one(CATEGORY, {"name": payload.name}):
        raise Conflict("duplicate: Category with this name already exists")

    slug = slugify(payload.slug or payload.name)
    if store.find_one(CATEGORY, {"slug": slug}):
        raise Conflict("Category with this slug already exists")

    category = store.create(
        CATEGORY,
        {
            "name": payload.name,
            "slug": slug,
            "images": payload.images,
            "color": payload.color,
            "parent_id": _check_parent(store, payload.parent_id),
            "subcategory_ids": [],
        },
    )
    return serialize_document(category)


@router.post("/upload", status_code=201)
def upload_category_images(
    images: List[UploadFile] = File(...),
    store: EntityStore = Depends(get_store),
    assets: AssetService = Depends(get_assets),
    settings: Settings = Depends(get_settings),
):
    stored = store_images(assets, read_images(images, settings), settings.category_folder)
    batch = store.create(IMAGE_UPLOAD, {"images": [s.url for s in stored]})
    return {"id": str(batch["_id"]), "images": batch["images"]}


@router.delete("/delete")
def delete_category_image(payload: ImageUrlIn, coordinator: CascadeCoordinator = Depends(get_coordinator)):
    if not payload.img_url:
        raise ValidationFailure("img_url is required")
    deleted = coordinator.discard_uploaded_image(payload.img_url)
    return {"message": "Image deleted successfully", "remote_deleted": deleted}


@router.get("/")
def list_categories(store: EntityStore = Depends(get_store)):
    return [serialize_document(c) for c in store.find_many(CATEGORY, sort=[("name", 1)])]


@router.get("/counts")
def category_counts(store: EntityStore = Depends(get_store)):
    return {
        "parent_categories": store.count(CATEGORY, {"parent_id": None}),
        "sub_categories": store.count(CATEGORY, {"parent_id": {"$ne": None}}),
    }


@router.get("/{category_id}")
def get_category(category_id: str, store: EntityStore = Depends(get_store)):
    category = store.find_by_id(CATEGORY, parse_object_id(category_id, "category ID"))
    if not category:
        raise NotFound("Category not found")
    return serialize_document(category)


@router.put("/{category_id}")
def update_category(
    category_id: str,
    name: Optional[str] = Form(None),
    slug: Optional[str] = Form(None),
    color: Optional[str] = Form(None),
    parent_id: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    store: EntityStore = Depends(get_store),
    assets: AssetService = Depends(get_assets),
    settings: Settings = Depends(get_settings),
):
    cid = parse_object_id(category_id, "category ID")
    category = store.find_by_id(CATEGORY, cid)
    if not category:
        raise NotFound("Category not found")

    changes = {}
    if name and name.strip():
        changes["name"] = name.strip()
    if slug and slug.strip():
        changes["slug"] = slugify(slug.strip())
    if color:
        if not HEX_COLOR.match(color):
            raise ValidationFailure(f"{color} is not a valid hex color code!")
        changes["color"] = color
    if parent_id:
        changes["parent_id"] = _check_parent(store, parent_id, own_id=cid)

    patch = {"$set": changes}
    if images:
        stored = store_images(assets, read_images(images, settings), settings.category_folder)
        patch["$push"] = {"images": {"$each": [s.url for s in stored]}}

    updated = store.update_by_id(CATEGORY, cid, patch)
    if updated is None:
        raise NotFound("Category not found")
    return serialize_document(updated)


@router.delete("/{category_id}")
def delete_category(category_id: str, coordinator: CascadeCoordinator = Depends(get_coordinator)):
    coordinator.delete_category(category_id)
    return {"message": "Category deleted successfully"}


@router.get("/{category_id}/product-count")
def category_product_count(category_id: str, store: EntityStore = Depends(get_store)):
    cid = parse_object_id(category_id, "category ID")
    return {"count": store.count(PRODUCT, {"category_id": cid})}

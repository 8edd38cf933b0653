import math
import re
import uuid
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from slugify import slugify

from api.uploads import read_images, store_images
from assets import AssetService
from cascade import CascadeCoordinator
from config import Settings, get_settings
from database import (
    CATEGORY,
    PRODUCT,
    SUBCATEGORY,
    EntityStore,
    optional_object_id,
    parse_object_id,
    serialize_document,
)
from deps import get_aggregator, get_assets, get_coordinator, get_store
from errors import NotFound, ValidationFailure
from ratings import RatingAggregator
from schemas import Product, ProductUpdate, StorageIdIn

router = APIRouter()

SORTABLE_FIELDS = {"created_at", "updated_at", "name", "price", "average_rating", "num_reviews", "count_in_stock"}


def _check_links(store: EntityStore, data: dict) -> dict:
    """Swap category/subcategory id strings for ObjectIds after checking they exist."""
    if "category_id" in data:
        cid = parse_object_id(data["category_id"], "category ID")
        if store.find_by_id(CATEGORY, cid, {"_id": 1}) is None:
            raise ValidationFailure("Category not found")
        data["category_id"] = cid
    if "sub_category_id" in data:
        sid = optional_object_id(data["sub_category_id"], "subcategory ID")
        if sid is not None and store.find_by_id(SUBCATEGORY, sid, {"_id": 1}) is None:
            raise ValidationFailure("Subcategory not found")
        data["sub_category_id"] = sid
    return data


def _populate(store: EntityStore, products: List[dict]) -> List[dict]:
    """Serialize products with the names of their category and subcategory attached."""
    category_ids = {p.get("category_id") for p in products if p.get("category_id")}
    sub_ids = {p.get("sub_category_id") for p in products if p.get("sub_category_id")}
    names: Dict = {}
    if category_ids:
        for c in store.find_many(CATEGORY, {"_id": {"$in": list(category_ids)}}, projection={"name": 1, "slug": 1}):
            names[c["_id"]] = {"id": str(c["_id"]), "name": c["name"], "slug": c.get("slug")}
    if sub_ids:
        for s in store.find_many(SUBCATEGORY, {"_id": {"$in": list(sub_ids)}}, projection={"name": 1}):
            names[s["_id"]] = {"id": str(s["_id"]), "name": s["name"]}

    items = []
    for p in products:
        item = serialize_document(p)
        item["category"] = names.get(p.get("category_id"))
        item["sub_category"] = names.get(p.get("sub_category_id"))
        items.append(item)
    return items


@router.post("/", status_code=201)
def create_product(payload: Product, store: EntityStore = Depends(get_store)):
    data = _check_links(store, payload.model_dump())
    data["slug"] = slugify(f"{payload.name}-{uuid.uuid4().hex[:6]}")
    data.update({"ratings": [], "average_rating": 0.0, "num_reviews": 0, "rating_version": 0})
    return serialize_document(store.create(PRODUCT, data))


@router.get("/")
def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=1000),
    category: Optional[str] = None,
    sub_category: Optional[str] = None,
    brand: Optional[str] = None,
    is_featured: Optional[bool] = None,
    sort_by: Optional[str] = Query(None, description="field:asc|desc"),
    search: Optional[str] = None,
    store: EntityStore = Depends(get_store),
):
    filter_q = {}
    if category:
        filter_q["category_id"] = parse_object_id(category, "category ID")
    if sub_category:
        filter_q["sub_category_id"] = parse_object_id(sub_category, "subcategory ID")
    if brand:
        filter_q["brand"] = brand
    if is_featured is not None:
        filter_q["is_featured"] = is_featured
    if search:
        pattern = re.escape(search)
        filter_q["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
            {"brand": {"$regex": pattern, "$options": "i"}},
        ]

    sort_spec = [("created_at", -1)]
    if sort_by:
        field, _, direction = sort_by.partition(":")
        if field not in SORTABLE_FIELDS:
            raise ValidationFailure(f"Can not sort by {field}")
        sort_spec = [(field, -1 if direction == "desc" else 1)]

    total = store.count(PRODUCT, filter_q)
    products = store.find_many(PRODUCT, filter_q, sort=sort_spec, skip=(page - 1) * limit, limit=limit)
    return {
        "items": _populate(store, products),
        "pagination": {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)},
    }


@router.post("/upload")
def upload_product_images(
    images: List[UploadFile] = File(...),
    assets: AssetService = Depends(get_assets),
    settings: Settings = Depends(get_settings),
):
    stored = store_images(assets, read_images(images, settings), settings.product_folder)
    return {"files": [s.to_dict() for s in stored], "message": f"{len(stored)} file(s) uploaded successfully"}


@router.delete("/delete-image")
def delete_uploaded_image(payload: StorageIdIn, coordinator: CascadeCoordinator = Depends(get_coordinator)):
    return {"deleted": coordinator.discard_image(payload.storage_id)}


@router.get("/view/{slug}")
def view_product(slug: str, store: EntityStore = Depends(get_store)):
    product = store.find_one(PRODUCT, {"slug": slug})
    if not product:
        raise NotFound("Product not found")
    related = store.find_many(
        PRODUCT,
        {"category_id": product.get("category_id"), "_id": {"$ne": product["_id"]}},
        limit=4,
        projection={"name": 1, "slug": 1, "price": 1, "images": 1},
    )
    return {"product": _populate(store, [product])[0], "related": [serialize_document(r) for r in related]}


@router.get("/{product_id}")
def get_product(product_id: str, store: EntityStore = Depends(get_store)):
    product = store.find_by_id(PRODUCT, parse_object_id(product_id, "product ID"))
    if not product:
        raise NotFound("Product not found")
    return _populate(store, [product])[0]


@router.put("/{product_id}")
def update_product(product_id: str, payload: ProductUpdate, store: EntityStore = Depends(get_store)):
    pid = parse_object_id(product_id, "product ID")
    changes = _check_links(store, payload.model_dump(exclude_unset=True))
    if "name" in changes:
        changes["name"] = changes["name"].strip()
    updated = store.update_by_id(PRODUCT, pid, {"$set": changes})
    if updated is None:
        raise NotFound("Product not found")
    return serialize_document(updated)


@router.delete("/{product_id}")
def delete_product(product_id: str, coordinator: CascadeCoordinator = Depends(get_coordinator)):
    coordinator.delete_product(product_id)
    return {"message": "Product deleted successfully"}


@router.delete("/{product_id}/images")
def delete_product_image(
    product_id: str,
    payload: StorageIdIn,
    coordinator: CascadeCoordinator = Depends(get_coordinator),
):
    coordinator.delete_product_image(product_id, payload.storage_id)
    return {"message": "Image deleted successfully"}


@router.post("/{product_id}/recompute-rating")
def recompute_rating(product_id: str, aggregator: RatingAggregator = Depends(get_aggregator)):
    product = aggregator.recompute(product_id)
    if product is None:
        raise NotFound("Product not found")
    return {"average_rating": product["average_rating"], "num_reviews": product["num_reviews"]}

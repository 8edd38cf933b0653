import re
from typing import Optional

from fastapi import APIRouter, Depends, Query

from cascade import CascadeCoordinator
from database import CATEGORY, SUBCATEGORY, EntityStore, parse_object_id, serialize_document
from deps import get_coordinator, get_store
from errors import NotFound
from schemas import SubCategory

router = APIRouter()

PARENT_FIELDS = {"name": 1, "slug": 1, "images": 1, "color": 1}


@router.post("/", status_code=201)
def create_subcategory(payload: SubCategory, coordinator: CascadeCoordinator = Depends(get_coordinator)):
    return serialize_document(coordinator.create_subcategory(payload.name, payload.parent_id))


@router.delete("/{subcategory_id}")
def delete_subcategory(subcategory_id: str, coordinator: CascadeCoordinator = Depends(get_coordinator)):
    coordinator.delete_subcategory(subcategory_id)
    return {"message": "Subcategory deleted successfully"}


@router.get("/with-parent")
def subcategories_with_parent(
    parent_id: Optional[str] = None,
    name: Optional[str] = None,
    sort: str = Query("name", pattern="^(name|created_at|updated_at)$"),
    order: str = Query("asc", pattern="^(asc|desc)$"),
    store: EntityStore = Depends(get_store),
):
    filter_q = {}
    if parent_id:
        filter_q["parent_id"] = parse_object_id(parent_id, "parent category ID")
    if name:
        filter_q["name"] = {"$regex": re.escape(name), "$options": "i"}

    subcategories = store.find_many(SUBCATEGORY, filter_q, sort=[(sort, 1 if order == "asc" else -1)])
    parent_ids = list({s["parent_id"] for s in subcategories if s.get("parent_id") is not None})
    parents = {}
    if parent_ids:
        for p in store.find_many(CATEGORY, {"_id": {"$in": parent_ids}}, projection=PARENT_FIELDS):
            parents[p["_id"]] = p

    items = []
    for s in subcategories:
        item = serialize_document(s)
        item["slug"] = s["name"].lower()
        item["parent_category"] = serialize_document(parents.get(s.get("parent_id")))
        items.append(item)
    return {"count": len(items), "items": items}


@router.get("/by-parent/{parent_id}")
def subcategories_by_parent(parent_id: str, store: EntityStore = Depends(get_store)):
    pid = parse_object_id(parent_id, "parent category ID")
    parent = store.find_by_id(CATEGORY, pid, PARENT_FIELDS)
    if not parent:
        raise NotFound("Parent category not found")

    parent_info = {"name": parent.get("name"), "images": parent.get("images", []), "color": parent.get("color")}
    items = []
    for s in store.find_many(SUBCATEGORY, {"parent_id": pid}, sort=[("name", 1)]):
        item = serialize_document(s)
        item["parent_category"] = parent_info
        items.append(item)
    return items

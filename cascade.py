"""
Delete propagation between categories, subcategories, products, reviews and
hosted images.

Each operation runs fetch -> mutate dependents -> delete. Nothing is resumed
across requests: a crash in between leaves at most a dangling reference.
Remote image deletion is best-effort, a failure is logged and the entity
delete goes on.
"""
import logging
from typing import Iterable, Optional, Tuple

from assets import AssetService, storage_id_from_url
from config import Settings
from database import (
    CATEGORY,
    IMAGE_UPLOAD,
    PRODUCT,
    REVIEW,
    SUBCATEGORY,
    EntityStore,
    IdLike,
    optional_object_id,
    parse_object_id,
)
from errors import Conflict, DependencyFailure, NotFound, ValidationFailure
from ratings import RatingAggregator

logger = logging.getLogger(__name__)


class CascadeCoordinator:
    def __init__(
        self,
        store: EntityStore,
        assets: AssetService,
        aggregator: RatingAggregator,
        settings: Settings,
    ):
        self.store = store
        self.assets = assets
        self.aggregator = aggregator
        self.cascade_children = settings.cascade_children

    # ---------------------- Images ----------------------

    def discard_image(self, storage_id: str) -> bool:
        try:
            deleted = self.assets.delete(storage_id)
        except DependencyFailure as e:
            logger.warning("Failed to delete image %s: %s", storage_id, e.message)
            return False
        except Exception:
            logger.exception("Unexpected error deleting image %s", storage_id)
            return False
        if not deleted:
            logger.info("Image %s was already gone", storage_id)
        return deleted

    def discard_images(self, storage_ids: Iterable[str]) -> int:
        return sum(1 for storage_id in storage_ids if self.discard_image(storage_id))

    def discard_uploaded_image(self, img_url: str) -> bool:
        """Remove a hosted category image and forget it in every upload batch."""
        deleted = self.discard_image(storage_id_from_url(img_url))
        self.store.update_many(IMAGE_UPLOAD, {"images": img_url}, {"$pull": {"images": img_url}})
        return deleted

    # ---------------------- Categories ----------------------

    def delete_category(self, category_id: IdLike) -> dict:
        category = self.store.find_by_id(CATEGORY, parse_object_id(category_id, "category ID"))
        if category is None:
            raise NotFound("Category not found")

        images = category.get("images") or []
        if images:
            self.discard_images(storage_id_from_url(url) for url in images)

        if self.cascade_children:
            removed = self.store.delete_many(SUBCATEGORY, {"parent_id": category["_id"]})
            logger.info("Deleted %d subcategories of category %s", removed, category["_id"])

        self.store.delete_by_id(CATEGORY, category["_id"])
        return category

    # ---------------------- Subcategories ----------------------

    def create_subcategory(self, name: str, parent_id: Optional[IdLike] = None) -> dict:
        name = (name or "").strip()
        if not name:
            raise ValidationFailure("Subcategory name is required")
        parent = optional_object_id(parent_id, "parent category ID")
        if parent is not None and self.store.find_by_id(CATEGORY, parent, {"_id": 1}) is None:
            raise ValidationFailure("Parent category not found")

        if self.store.find_one(SUBCATEGORY, {"name": name, "parent_id": parent}) is not None:
            raise Conflict("Subcategory with this name already exists")

        subcategory = self.store.create(SUBCATEGORY, {"name": name, "parent_id": parent})
        if parent is not None:
            self.store.update_by_id(CATEGORY, parent, {"$addToSet": {"subcategory_ids": subcategory["_id"]}})
        return subcategory

    def delete_subcategory(self, subcategory_id: IdLike) -> dict:
        sid = parse_object_id(subcategory_id, "subcategory ID")
        subcategory = self.store.find_by_id(SUBCATEGORY, sid)
        if subcategory is None:
            raise NotFound("Subcategory not found")

        # Unlink before delete.
        if subcategory.get("parent_id") is not None:
            self.store.update_by_id(CATEGORY, subcategory["parent_id"], {"$pull": {"subcategory_ids": sid}})
        self.store.delete_by_id(SUBCATEGORY, sid)
        return subcategory

    # ---------------------- Products ----------------------

    def delete_product(self, product_id: IdLike) -> dict:
        product = self.store.find_by_id(PRODUCT, parse_object_id(product_id, "product ID"))
        if product is None:
            raise NotFound("Product not found")

        images = product.get("images") or []
        if images:
            self.discard_images(image["storage_id"] for image in images)

        self.store.delete_by_id(PRODUCT, product["_id"])
        if self.cascade_children:
            removed = self.store.delete_many(REVIEW, {"product_id": product["_id"]})
            logger.info("Deleted %d reviews of product %s", removed, product["_id"])
        return product

    def delete_product_image(self, product_id: IdLike, storage_id: str) -> dict:
        pid = parse_object_id(product_id, "product ID")
        if not storage_id:
            raise ValidationFailure("Image ID is required")
        product = self.store.find_by_id(PRODUCT, pid)
        if product is None:
            raise NotFound("Product not found")
        if not any(image.get("storage_id") == storage_id for image in product.get("images") or []):
            raise NotFound("Image not found")

        self.discard_image(storage_id)
        return self.store.update_by_id(PRODUCT, pid, {"$pull": {"images": {"storage_id": storage_id}}})

    # ---------------------- Reviews ----------------------

    def delete_review(self, review_id: IdLike) -> Tuple[dict, Optional[dict], bool]:
        """Returns the deleted review, the refreshed product (None if gone) and whether the aggregate is stale."""
        review = self.store.delete_by_id(REVIEW, parse_object_id(review_id, "review ID"))
        if review is None:
            raise NotFound("Review not found")
        product, stale = self.aggregator.refresh(review["product_id"])
        return review, product, stale

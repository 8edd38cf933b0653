"""
Product rating aggregate

The review collection is the source of truth. A product only carries the
derived summary (average_rating, num_reviews) and a read-only copy of its
reviews in ``ratings``; all three are rewritten together, in one
conditional update guarded by ``rating_version``.
"""
import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional, Tuple

from bson import ObjectId

from database import PRODUCT, REVIEW, EntityStore, IdLike, optional_object_id, parse_object_id
from errors import DependencyFailure, NotFound, ValidationFailure

logger = logging.getLogger(__name__)

ONE_DECIMAL = Decimal("0.1")
MIN_RATING = 1
MAX_RATING = 5


@dataclass(frozen=True)
class RatingSummary:
    average: float
    count: int


def summarize(values: Iterable[int]) -> RatingSummary:
    """Mean rounded half-up to one decimal place; 0 for no reviews."""
    values = list(values)
    if not values:
        return RatingSummary(average=0.0, count=0)
    mean = Decimal(sum(values)) / Decimal(len(values))
    return RatingSummary(
        average=float(mean.quantize(ONE_DECIMAL, rounding=ROUND_HALF_UP)),
        count=len(values),
    )


def check_rating_value(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not MIN_RATING <= value <= MAX_RATING:
        raise ValidationFailure(f"Rating must be an integer between {MIN_RATING} and {MAX_RATING}")
    return value


class RatingAggregator:
    def __init__(self, store: EntityStore, max_attempts: int = 5):
        self.store = store
        self.max_attempts = max_attempts

    def _reviews(self, product_id: ObjectId, newest_first: bool = False) -> List[dict]:
        direction = -1 if newest_first else 1
        return self.store.find_many(
            REVIEW,
            {"product_id": product_id},
            sort=[("created_at", direction), ("_id", direction)],
        )

    def recompute(self, product_id: IdLike) -> Optional[dict]:
        """
        Rebuild the product's aggregate from its reviews and persist it.

        Returns the updated product, or None when the product no longer
        exists. The write only lands if nobody else recomputed since we read
        ``rating_version``; otherwise we read again.
        """
        pid = parse_object_id(product_id, "product ID")
        for attempt in range(1, self.max_attempts + 1):
            product = self.store.find_one(PRODUCT, {"_id": pid}, {"rating_version": 1})
            if product is None:
                logger.info("Product %s not found, rating update skipped", pid)
                return None

            version = product.get("rating_version")
            reviews = self._reviews(pid)
            summary = summarize(r["value"] for r in reviews)

            guard = {"_id": pid}
            guard["rating_version"] = version if version is not None else {"$exists": False}
            updated = self.store.update_where(
                PRODUCT,
                guard,
                {
                    "$set": {
                        "average_rating": summary.average,
                        "num_reviews": summary.count,
                        "ratings": [
                            {
                                "review_id": r["_id"],
                                "user_id": r.get("user_id"),
                                "value": r["value"],
                                "text": r.get("text"),
                            }
                            for r in reviews
                        ],
                    },
                    "$inc": {"rating_version": 1},
                },
            )
            if updated is not None:
                return updated
            logger.debug("Rating version moved on product %s (attempt %d)", pid, attempt)

        raise DependencyFailure(f"Rating aggregate for product {pid} could not be written")

    def refresh(self, product_id: IdLike) -> Tuple[Optional[dict], bool]:
        """recompute() for callers that already committed a review: failure leaves a stale aggregate."""
        try:
            return self.recompute(product_id), False
        except DependencyFailure as e:
            logger.warning("Rating aggregate for product %s left stale: %s", product_id, e.message)
            return None, True

    def record_review(
        self,
        product_id: IdLike,
        value: int,
        text: str,
        user_id: Optional[IdLike] = None,
    ) -> Tuple[dict, Optional[dict], bool]:
        value = check_rating_value(value)
        if not text or not text.strip():
            raise ValidationFailure("Review text is required")
        pid = parse_object_id(product_id, "product ID")
        if self.store.find_by_id(PRODUCT, pid, {"_id": 1}) is None:
            raise NotFound("Product not found")

        review = self.store.create(
            REVIEW,
            {
                "product_id": pid,
                "user_id": optional_object_id(user_id, "user ID"),
                "value": value,
                "text": text.strip(),
            },
        )
        product, stale = self.refresh(pid)
        return review, product, stale

    def product_reviews(self, product_id: IdLike) -> Tuple[List[dict], RatingSummary]:
        """Reviews newest first plus their summary; repairs the stored aggregate if it drifted."""
        pid = parse_object_id(product_id, "product ID")
        reviews = self._reviews(pid, newest_first=True)
        summary = summarize(r["value"] for r in reviews)

        product = self.store.find_one(PRODUCT, {"_id": pid}, {"average_rating": 1, "num_reviews": 1})
        if product is not None and (
            product.get("average_rating") != summary.average or product.get("num_reviews") != summary.count
        ):
            logger.warning("Stale rating aggregate on product %s, recomputing", pid)
            self.refresh(pid)
        return reviews, summary

from typing import Optional

from bson import ObjectId
from fastapi import APIRouter, Depends

from cascade import CascadeCoordinator
from database import serialize_document
from deps import get_aggregator, get_coordinator, get_optional_user
from ratings import RatingAggregator
from schemas import Review, UserOut

router = APIRouter()


@router.post("/", status_code=201)
def add_review(
    review: Review,
    current: Optional[UserOut] = Depends(get_optional_user),
    aggregator: RatingAggregator = Depends(get_aggregator),
):
    # A client supplied user id that doesn't parse is dropped, the token user wins.
    user_id = current.id if current else review.user_id
    if user_id and not ObjectId.is_valid(user_id):
        user_id = None
    created, product, stale = aggregator.record_review(review.product_id, review.value, review.text, user_id)
    return {
        "review": serialize_document(created),
        "product": serialize_document(product),
        "aggregate_stale": stale,
    }


@router.get("/{product_id}")
def get_reviews(product_id: str, aggregator: RatingAggregator = Depends(get_aggregator)):
    reviews, summary = aggregator.product_reviews(product_id)
    return {
        "reviews": [serialize_document(r) for r in reviews],
        "average_rating": summary.average,
        "num_reviews": summary.count,
    }


@router.delete("/{review_id}")
def delete_review(review_id: str, coordinator: CascadeCoordinator = Depends(get_coordinator)):
    _, product, stale = coordinator.delete_review(review_id)
    return {
        "message": "Review deleted successfully",
        "product": serialize_document(product),
        "aggregate_stale": stale,
    }

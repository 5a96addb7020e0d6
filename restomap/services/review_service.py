"""
Reviews and review likes
"""

import logging
from datetime import datetime
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth.principal import Principal, ensure_owner, ensure_owner_or_admin
from ..db import crud, models
from ..errors import ErrorContext, NotFoundError, ValidationError
from ..storage.image_storage import ImageStorage, ImageUpload, discard_image
from .assembler import ReviewPage, ReviewView, to_review_page, to_review_view
from .restaurant_service import refresh_cached_rating, require_restaurant

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


class ReviewInput(BaseModel):
    content: Optional[str] = None
    rating: Optional[int] = None


def _validate_input(data: ReviewInput) -> None:
    if data.rating is None or not MIN_RATING <= data.rating <= MAX_RATING:
        raise ValidationError(
            f"Rating must be between {MIN_RATING} and {MAX_RATING}",
            ErrorContext(resource="review", additional_info={"rating": data.rating}),
        )
    if not (data.content or "").strip():
        raise ValidationError("Review content must not be empty", ErrorContext(resource="review"))


def require_review(db: Session, review_id: int) -> models.Review:
    review = crud.get_review(db, review_id)
    if review is None:
        raise NotFoundError(f"Review {review_id} not found", ErrorContext(resource="review", resource_id=review_id))
    return review


def _author_name(review: models.Review) -> Optional[str]:
    return str(review.user.username) if review.user is not None else None


def create_review(
    db: Session,
    storage: ImageStorage,
    principal: Principal,
    restaurant_id: int,
    data: ReviewInput,
    image: Optional[ImageUpload] = None,
) -> ReviewView:
    _validate_input(data)
    restaurant = require_restaurant(db, restaurant_id)
    user = crud.get_user_by_username(db, principal.username)
    if user is None:
        raise NotFoundError(f"User {principal.username} not found", ErrorContext(resource="user"))

    image_url = storage.upload_image(image) if image is not None else None

    now = datetime.now()
    review = models.Review(
        content=data.content,
        rating=data.rating,
        image_url=image_url,
        user=user,
        restaurant=restaurant,
        created_at=now,
        updated_at=now,
    )
    try:
        crud.add_review(db, review)
        refresh_cached_rating(restaurant)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        discard_image(storage, image_url)
        raise
    logger.info(f"Review {review.id} created by {principal.username} for restaurant {restaurant_id}")

    return to_review_view(require_review(db, int(review.id)), principal.user_id)


def update_review(
    db: Session,
    storage: ImageStorage,
    principal: Principal,
    review_id: int,
    data: ReviewInput,
    image: Optional[ImageUpload] = None,
) -> ReviewView:
    """Only the author may edit a review; a new image replaces the old one."""
    review = require_review(db, review_id)
    ensure_owner(principal, _author_name(review), "review", review_id)
    _validate_input(data)

    review.content = data.content  # type: ignore[assignment]
    review.rating = data.rating  # type: ignore[assignment]
    review.updated_at = datetime.now()  # type: ignore[assignment]

    old_image_url = review.image_url
    new_image_url = storage.upload_image(image) if image is not None else None
    if new_image_url is not None:
        review.image_url = new_image_url  # type: ignore[assignment]

    refresh_cached_rating(review.restaurant)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        discard_image(storage, new_image_url)
        raise

    if new_image_url is not None:
        discard_image(storage, old_image_url)

    logger.info(f"Review {review_id} updated by {principal.username}")
    return to_review_view(require_review(db, review_id), principal.user_id)


def delete_review(db: Session, principal: Principal, review_id: int) -> None:
    review = require_review(db, review_id)
    ensure_owner_or_admin(principal, _author_name(review), "review", review_id)

    restaurant = review.restaurant
    # delete-orphan on the collection removes the row and its likes
    restaurant.reviews.remove(review)
    db.flush()
    refresh_cached_rating(restaurant)
    db.commit()
    logger.info(f"Review {review_id} deleted by {principal.username}")


def upload_review_image(db: Session, storage: ImageStorage, restaurant_id: int, image: Optional[ImageUpload]) -> str:
    """Store an image ahead of posting a review and return its URL."""
    require_restaurant(db, restaurant_id)
    if image is None:
        raise ValidationError("Missing 'image' part", ErrorContext(resource="restaurant", resource_id=restaurant_id))
    return storage.upload_image(image)


def get_review(db: Session, review_id: int, viewer_id: Optional[int] = None) -> ReviewView:
    return to_review_view(require_review(db, review_id), viewer_id)


def get_restaurant_reviews_page(
    db: Session,
    restaurant_id: int,
    page: int = 0,
    size: int = 10,
    sort: Optional[str] = None,
    viewer_id: Optional[int] = None,
) -> ReviewPage:
    if page < 0:
        raise ValidationError("Page index must not be negative")
    if size < 1:
        raise ValidationError("Page size must be at least 1")
    require_restaurant(db, restaurant_id)
    reviews = crud.list_reviews_for_restaurant(db, restaurant_id)
    return to_review_page(reviews, page, size, sort, viewer_id)


def like_review(db: Session, principal: Principal, review_id: int) -> None:
    require_review(db, review_id)
    context = ErrorContext(username=principal.username, resource="review", resource_id=review_id)
    if crud.get_like(db, principal.user_id, review_id) is not None:  # type: ignore[arg-type]
        raise ValidationError("You have already liked this review", context)

    try:
        crud.add_like(db, principal.user_id, review_id)  # type: ignore[arg-type]
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError("You have already liked this review", context)
    logger.info(f"User {principal.username} liked review {review_id}")


def unlike_review(db: Session, principal: Principal, review_id: int) -> None:
    require_review(db, review_id)
    like = crud.get_like(db, principal.user_id, review_id)  # type: ignore[arg-type]
    if like is None:
        raise ValidationError(
            "You have not liked this review",
            ErrorContext(username=principal.username, resource="review", resource_id=review_id),
        )
    db.delete(like)
    db.commit()
    logger.info(f"User {principal.username} removed like from review {review_id}")


def get_review_like_count(db: Session, review_id: int) -> int:
    require_review(db, review_id)
    return crud.count_likes(db, review_id)

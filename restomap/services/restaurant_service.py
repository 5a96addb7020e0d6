"""
Restaurant directory: create, browse, update, delete, ratings
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth.principal import Principal, ensure_owner_or_admin
from ..db import crud, models
from ..errors import ErrorContext, NotFoundError, ValidationError
from ..storage.image_storage import ImageStorage, ImageUpload, discard_image
from .assembler import (
    RestaurantPage,
    RestaurantView,
    average_rating,
    to_restaurant_page,
    to_restaurant_view,
)

logger = logging.getLogger(__name__)

DEFAULT_SORT = ("id", True)
LATEST_LIMIT = 10


class RestaurantInput(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None


def _validate_input(data: RestaurantInput) -> None:
    missing = [
        field for field in ("name", "address", "category")
        if not (getattr(data, field) or "").strip()
    ]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            ErrorContext(resource="restaurant", additional_info={"missing": missing}),
        )


def parse_sort(sort: Optional[str]) -> Tuple[str, bool]:
    """Parse "field" or "field,asc|desc" into (field, descending)."""
    if sort is None or not sort.strip():
        return DEFAULT_SORT

    parts = [part.strip() for part in sort.split(",")]
    field = parts[0]
    if field not in crud.RESTAURANT_SORT_FIELDS:
        raise ValidationError(
            f"Unsupported sort field: {field}",
            ErrorContext(additional_info={"allowed": list(crud.RESTAURANT_SORT_FIELDS)}),
        )
    if len(parts) == 1 or not parts[1]:
        return field, False

    direction = parts[1].lower()
    if direction not in ("asc", "desc"):
        raise ValidationError(f"Unsupported sort direction: {parts[1]}")
    return field, direction == "desc"


def require_restaurant(db: Session, restaurant_id: int) -> models.Restaurant:
    restaurant = crud.get_restaurant(db, restaurant_id)
    if restaurant is None:
        raise NotFoundError(
            f"Restaurant {restaurant_id} not found",
            ErrorContext(resource="restaurant", resource_id=restaurant_id),
        )
    return restaurant


def refresh_cached_rating(restaurant: models.Restaurant) -> float:
    """Recompute the average from the live reviews and store it in the cached column."""
    value = average_rating(restaurant.reviews)
    restaurant.average_rating = value  # type: ignore[assignment]
    return value


def create_restaurant(
    db: Session,
    storage: ImageStorage,
    principal: Principal,
    data: RestaurantInput,
    image: Optional[ImageUpload] = None,
) -> RestaurantView:
    _validate_input(data)

    image_url = storage.upload_image(image) if image is not None else None

    restaurant = models.Restaurant(
        name=data.name.strip(),  # type: ignore[union-attr]
        address=data.address.strip(),  # type: ignore[union-attr]
        phone=data.phone,
        category=data.category.strip(),  # type: ignore[union-attr]
        description=data.description,
        image_url=image_url,
        created_by_username=principal.username,
        created_at=datetime.now(),
        average_rating=0.0,
    )
    try:
        crud.add_restaurant(db, restaurant)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        discard_image(storage, image_url)
        raise
    logger.info(f"Restaurant {restaurant.id} created by {principal.username}")

    return to_restaurant_view(require_restaurant(db, int(restaurant.id)), principal.user_id)


def list_restaurants(
    db: Session,
    page: int = 0,
    size: int = 10,
    sort: Optional[str] = None,
    keyword: Optional[str] = None,
    category: Optional[str] = None,
    min_rating: Optional[float] = None,
    viewer_id: Optional[int] = None,
) -> RestaurantPage:
    if page < 0:
        raise ValidationError("Page index must not be negative")
    if size < 1:
        raise ValidationError("Page size must be at least 1")

    sort_field, descending = parse_sort(sort)
    items, total = crud.list_restaurants(
        db,
        page,
        size,
        sort_field=sort_field,
        descending=descending,
        keyword=(keyword or "").strip() or None,
        category=(category or "").strip() or None,
        min_rating=min_rating,
    )
    return to_restaurant_page(items, page, size, viewer_id, total_elements=total)


def get_restaurant(db: Session, restaurant_id: int, viewer_id: Optional[int] = None) -> RestaurantView:
    return to_restaurant_view(require_restaurant(db, restaurant_id), viewer_id)


def update_restaurant(
    db: Session,
    storage: ImageStorage,
    principal: Principal,
    restaurant_id: int,
    data: RestaurantInput,
    image: Optional[ImageUpload] = None,
    remove_image: bool = False,
) -> RestaurantView:
    """Update fields; a new image replaces the old one, remove_image drops it, otherwise it is kept."""
    restaurant = require_restaurant(db, restaurant_id)
    ensure_owner_or_admin(principal, restaurant.created_by_username, "restaurant", restaurant_id)
    _validate_input(data)

    restaurant.name = data.name.strip()  # type: ignore[union-attr,assignment]
    restaurant.address = data.address.strip()  # type: ignore[union-attr,assignment]
    restaurant.phone = data.phone  # type: ignore[assignment]
    restaurant.category = data.category.strip()  # type: ignore[union-attr,assignment]
    restaurant.description = data.description  # type: ignore[assignment]

    old_image_url = restaurant.image_url
    new_image_url = storage.upload_image(image) if image is not None else None
    if new_image_url is not None:
        restaurant.image_url = new_image_url  # type: ignore[assignment]
    elif remove_image:
        restaurant.image_url = None  # type: ignore[assignment]

    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        discard_image(storage, new_image_url)
        raise

    if new_image_url is not None or remove_image:
        discard_image(storage, old_image_url)

    logger.info(f"Restaurant {restaurant_id} updated by {principal.username}")
    return to_restaurant_view(require_restaurant(db, restaurant_id), principal.user_id)


def delete_restaurant(db: Session, principal: Principal, restaurant_id: int) -> None:
    restaurant = require_restaurant(db, restaurant_id)
    ensure_owner_or_admin(principal, restaurant.created_by_username, "restaurant", restaurant_id)

    crud.delete_restaurant(db, restaurant)
    db.commit()
    logger.info(f"Restaurant {restaurant_id} deleted by {principal.username}")


def calculate_average_rating(db: Session, restaurant_id: int) -> float:
    restaurant = require_restaurant(db, restaurant_id)
    value = refresh_cached_rating(restaurant)
    db.commit()
    return value


def get_popular_restaurants(db: Session, viewer_id: Optional[int] = None) -> List[RestaurantView]:
    return [to_restaurant_view(r, viewer_id) for r in crud.list_popular_restaurants(db)]


def get_latest_restaurants(db: Session, viewer_id: Optional[int] = None) -> List[RestaurantView]:
    return [to_restaurant_view(r, viewer_id) for r in crud.list_latest_restaurants(db, LATEST_LIMIT)]

"""
Favorite restaurants of a user
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db import crud
from ..errors import ErrorContext, NotFoundError, ValidationError
from .assembler import RestaurantView, to_restaurant_view
from .restaurant_service import require_restaurant

logger = logging.getLogger(__name__)


def add_favorite(db: Session, user_id: int, restaurant_id: int) -> None:
    require_restaurant(db, restaurant_id)
    context = ErrorContext(resource="restaurant", resource_id=restaurant_id, additional_info={"user_id": user_id})
    if crud.get_favorite(db, user_id, restaurant_id) is not None:
        raise ValidationError("Restaurant is already in favorites", context)

    try:
        crud.add_favorite(db, user_id, restaurant_id)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError("Restaurant is already in favorites", context)
    logger.info(f"User {user_id} added restaurant {restaurant_id} to favorites")


def remove_favorite(db: Session, user_id: int, restaurant_id: int) -> None:
    favorite = crud.get_favorite(db, user_id, restaurant_id)
    if favorite is None:
        raise NotFoundError(
            "Restaurant is not in favorites",
            ErrorContext(resource="restaurant", resource_id=restaurant_id, additional_info={"user_id": user_id}),
        )
    db.delete(favorite)
    db.commit()
    logger.info(f"User {user_id} removed restaurant {restaurant_id} from favorites")


def is_favorite(db: Session, user_id: Optional[int], restaurant_id: int) -> bool:
    if user_id is None:
        return False
    return crud.get_favorite(db, user_id, restaurant_id) is not None


def list_favorites(db: Session, user_id: int, viewer_id: Optional[int] = None) -> List[RestaurantView]:
    """Favorite restaurants in the order they were added; empty when there are none."""
    if viewer_id is None:
        viewer_id = user_id
    return [to_restaurant_view(r, viewer_id) for r in crud.list_favorite_restaurants(db, user_id)]

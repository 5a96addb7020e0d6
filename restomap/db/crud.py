from __future__ import annotations

from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from . import models

# Query options that load everything the view assembler reads, so views are
# built from fully loaded objects
RESTAURANT_LOAD = (
    selectinload(models.Restaurant.reviews).selectinload(models.Review.likes),
    selectinload(models.Restaurant.reviews).selectinload(models.Review.user),
)
REVIEW_LOAD = (
    selectinload(models.Review.likes),
    selectinload(models.Review.user),
    selectinload(models.Review.restaurant),
)

# Restaurant list sort keys accepted by list_restaurants
RESTAURANT_SORT_FIELDS = ("id", "name", "createdAt", "averageRating", "category")


def ensure_schema(db: Session) -> None:
    from .database import Base, engine

    Base.metadata.create_all(bind=engine)


def reset_database(db: Session) -> None:
    """Delete every row, children first."""
    for model in (
        models.ReviewLike,
        models.UserRestaurant,
        models.Review,
        models.Restaurant,
        models.User,
    ):
        db.query(model).delete()
    db.commit()


# Users


def upsert_default_admin(db: Session, username: str, password_hash: str, email: Optional[str]) -> models.User:
    """Create or update the bootstrap admin user"""
    user = get_user_by_username(db, username)
    if user:
        user.password = password_hash  # type: ignore[assignment]
        user.role = "ADMIN"  # type: ignore[assignment]
        if email:
            user.email = email  # type: ignore[assignment]
    else:
        user = models.User(username=username, password=password_hash, email=email, role="ADMIN")
        db.add(user)
    db.commit()
    db.refresh(user)
    return user


def create_user(db: Session, username: str, password_hash: str, email: Optional[str], role: str) -> models.User:
    user = models.User(username=username, password=password_hash, email=email, role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def get_user(db: Session, user_id: int) -> Optional[models.User]:
    return db.get(models.User, user_id)


def get_user_by_username(db: Session, username: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.username == username).first()


def username_exists(db: Session, username: str) -> bool:
    return db.query(models.User.id).filter(models.User.username == username).first() is not None


# Restaurants


def _average_rating_expr():  # type: ignore[no-untyped-def]
    return (
        select(func.coalesce(func.avg(models.Review.rating), 0.0))
        .where(models.Review.restaurant_id == models.Restaurant.id)
        .scalar_subquery()
    )


def _review_count_expr():  # type: ignore[no-untyped-def]
    return (
        select(func.count(models.Review.id))
        .where(models.Review.restaurant_id == models.Restaurant.id)
        .scalar_subquery()
    )


def add_restaurant(db: Session, restaurant: models.Restaurant) -> models.Restaurant:
    db.add(restaurant)
    db.flush()
    return restaurant


def get_restaurant(db: Session, restaurant_id: int) -> Optional[models.Restaurant]:
    return (
        db.query(models.Restaurant)
        .options(*RESTAURANT_LOAD)
        .filter(models.Restaurant.id == restaurant_id)
        .first()
    )


def list_restaurants(
    db: Session,
    page: int,
    size: int,
    sort_field: str = "id",
    descending: bool = True,
    keyword: Optional[str] = None,
    category: Optional[str] = None,
    min_rating: Optional[float] = None,
) -> Tuple[List[models.Restaurant], int]:
    """One page of restaurants plus the total number that match the filters.

    The minimum-rating filter and the averageRating sort use the average of
    the live reviews, not the cached column.
    """
    query = db.query(models.Restaurant)
    if keyword:
        pattern = f"%{keyword.lower()}%"
        query = query.filter(
            or_(
                func.lower(models.Restaurant.name).like(pattern),
                func.lower(models.Restaurant.address).like(pattern),
            )
        )
    if category:
        query = query.filter(models.Restaurant.category == category)
    if min_rating is not None:
        query = query.filter(_average_rating_expr() >= min_rating)

    total = query.count()

    columns = {
        "id": models.Restaurant.id,
        "name": models.Restaurant.name,
        "createdAt": models.Restaurant.created_at,
        "averageRating": _average_rating_expr(),
        "category": models.Restaurant.category,
    }
    order_column = columns[sort_field]
    order = order_column.desc() if descending else order_column.asc()
    tiebreak = models.Restaurant.id.desc() if descending else models.Restaurant.id.asc()

    items = (
        query.options(*RESTAURANT_LOAD)
        .order_by(order, tiebreak)
        .offset(page * size)
        .limit(size)
        .all()
    )
    return items, total


def list_popular_restaurants(db: Session, limit: Optional[int] = None) -> List[models.Restaurant]:
    """Most reviewed first, then highest average rating."""
    query = (
        db.query(models.Restaurant)
        .options(*RESTAURANT_LOAD)
        .order_by(_review_count_expr().desc(), _average_rating_expr().desc(), models.Restaurant.id.asc())
    )
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def list_latest_restaurants(db: Session, limit: int = 10) -> List[models.Restaurant]:
    return (
        db.query(models.Restaurant)
        .options(*RESTAURANT_LOAD)
        .order_by(models.Restaurant.created_at.desc(), models.Restaurant.id.desc())
        .limit(limit)
        .all()
    )


def list_restaurants_created_by(db: Session, username: str) -> List[models.Restaurant]:
    return (
        db.query(models.Restaurant)
        .options(*RESTAURANT_LOAD)
        .filter(models.Restaurant.created_by_username == username)
        .order_by(models.Restaurant.id.asc())
        .all()
    )


def delete_restaurant(db: Session, restaurant: models.Restaurant) -> None:
    # reviews, their likes and favorites go with it through the relationship cascades
    db.delete(restaurant)
    db.flush()


# Reviews


def add_review(db: Session, review: models.Review) -> models.Review:
    db.add(review)
    db.flush()
    return review


def get_review(db: Session, review_id: int) -> Optional[models.Review]:
    return (
        db.query(models.Review)
        .options(*REVIEW_LOAD)
        .filter(models.Review.id == review_id)
        .first()
    )


def list_reviews_for_restaurant(db: Session, restaurant_id: int) -> List[models.Review]:
    return (
        db.query(models.Review)
        .options(*REVIEW_LOAD)
        .filter(models.Review.restaurant_id == restaurant_id)
        .order_by(models.Review.id.asc())
        .all()
    )


def list_reviews_by_user(db: Session, user_id: int) -> List[models.Review]:
    return (
        db.query(models.Review)
        .options(*REVIEW_LOAD)
        .filter(models.Review.user_id == user_id)
        .order_by(models.Review.id.asc())
        .all()
    )


# Likes


def get_like(db: Session, user_id: int, review_id: int) -> Optional[models.ReviewLike]:
    return (
        db.query(models.ReviewLike)
        .filter(models.ReviewLike.user_id == user_id, models.ReviewLike.review_id == review_id)
        .first()
    )


def add_like(db: Session, user_id: int, review_id: int) -> models.ReviewLike:
    like = models.ReviewLike(user_id=user_id, review_id=review_id)
    db.add(like)
    db.flush()
    return like


def count_likes(db: Session, review_id: int) -> int:
    return db.query(models.ReviewLike).filter(models.ReviewLike.review_id == review_id).count()


# Favorites


def get_favorite(db: Session, user_id: int, restaurant_id: int) -> Optional[models.UserRestaurant]:
    return (
        db.query(models.UserRestaurant)
        .filter(
            models.UserRestaurant.user_id == user_id,
            models.UserRestaurant.restaurant_id == restaurant_id,
        )
        .first()
    )


def add_favorite(db: Session, user_id: int, restaurant_id: int) -> models.UserRestaurant:
    favorite = models.UserRestaurant(user_id=user_id, restaurant_id=restaurant_id)
    db.add(favorite)
    db.flush()
    return favorite


def list_favorite_restaurants(db: Session, user_id: int) -> List[models.Restaurant]:
    return (
        db.query(models.Restaurant)
        .join(models.UserRestaurant, models.UserRestaurant.restaurant_id == models.Restaurant.id)
        .options(*RESTAURANT_LOAD)
        .filter(models.UserRestaurant.user_id == user_id)
        .order_by(models.UserRestaurant.id.asc())
        .all()
    )

"""
View models and the functions that assemble them from loaded entities.

Every derived field (average rating, review count, like count, isLiked,
isEdited, pagination, star distribution) is computed here from the live
collections of already-loaded objects. The functions only read attributes,
so ORM rows and plain namespaces work equally well.

Views point one way only: a restaurant view nests its reviews, while a
review view carries just the ids and names of its author and restaurant.
"""

import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class _View(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserView(_View):
    id: int
    username: str
    email: Optional[str] = None
    role: Optional[str] = None
    profile_picture: Optional[str] = None


class ReviewView(_View):
    id: int
    content: str
    rating: int
    image_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    user_id: Optional[int] = None
    username: Optional[str] = None
    user_role: Optional[str] = None
    restaurant_id: Optional[int] = None
    restaurant_name: Optional[str] = None
    like_count: int = 0
    is_liked: bool = False
    is_edited: bool = False


class RestaurantView(_View):
    id: int
    name: str
    address: str
    phone: Optional[str] = None
    category: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    created_by_username: Optional[str] = None
    created_at: Optional[datetime] = None
    average_rating: float = 0.0
    review_count: int = 0
    reviews: List[ReviewView] = []


class RestaurantPage(_View):
    content: List[RestaurantView]
    total_elements: int
    total_pages: int
    current_page: int
    size: int


class ReviewPage(_View):
    content: List[ReviewView]
    total_elements: int
    total_pages: int
    current_page: int
    size: int
    star_distribution: Dict[int, int]
    average_rating: float


def _role_value(role: Any) -> Optional[str]:
    if role is None:
        return None
    return getattr(role, "value", role)


def average_rating(reviews: Optional[Iterable[Any]]) -> float:
    """Mean rating of the reviews, 0.0 when there are none."""
    ratings = [review.rating for review in (reviews or [])]
    if not ratings:
        return 0.0
    return sum(ratings) / len(ratings)


def is_edited(review: Any) -> bool:
    created_at = getattr(review, "created_at", None)
    updated_at = getattr(review, "updated_at", None)
    return bool(created_at and updated_at and created_at < updated_at)


def is_liked(review: Any, viewer_id: Optional[int]) -> bool:
    if viewer_id is None:
        return False
    return any(like.user_id == viewer_id for like in (review.likes or []))


def to_user_view(user: Any) -> UserView:
    return UserView(
        id=user.id,
        username=user.username,
        email=getattr(user, "email", None),
        role=_role_value(getattr(user, "role", None)),
        profile_picture=getattr(user, "profile_picture", None),
    )


def to_review_view(review: Any, viewer_id: Optional[int] = None, restaurant: Any = None) -> ReviewView:
    """View of one review; pass the restaurant when the caller already holds it."""
    author = getattr(review, "user", None)
    if restaurant is None:
        restaurant = getattr(review, "restaurant", None)
    return ReviewView(
        id=review.id,
        content=review.content,
        rating=review.rating,
        image_url=getattr(review, "image_url", None),
        created_at=getattr(review, "created_at", None),
        updated_at=getattr(review, "updated_at", None),
        user_id=author.id if author is not None else getattr(review, "user_id", None),
        username=author.username if author is not None else None,
        user_role=_role_value(getattr(author, "role", None)),
        restaurant_id=restaurant.id if restaurant is not None else getattr(review, "restaurant_id", None),
        restaurant_name=restaurant.name if restaurant is not None else None,
        like_count=len(review.likes or []),
        is_liked=is_liked(review, viewer_id),
        is_edited=is_edited(review),
    )


def to_restaurant_view(restaurant: Any, viewer_id: Optional[int] = None) -> RestaurantView:
    reviews = list(restaurant.reviews or [])
    return RestaurantView(
        id=restaurant.id,
        name=restaurant.name,
        address=restaurant.address,
        phone=getattr(restaurant, "phone", None),
        category=restaurant.category,
        description=getattr(restaurant, "description", None),
        image_url=getattr(restaurant, "image_url", None),
        created_by_username=getattr(restaurant, "created_by_username", None),
        created_at=getattr(restaurant, "created_at", None),
        average_rating=average_rating(reviews),
        review_count=len(reviews),
        reviews=[to_review_view(review, viewer_id, restaurant) for review in reviews],
    )


def sort_by_likes(views: Sequence[ReviewView]) -> List[ReviewView]:
    """Stable sort, most liked first."""
    return sorted(views, key=lambda view: view.like_count, reverse=True)


def paginate(items: Sequence[T], page: int, size: int) -> List[T]:
    """Items of one zero-based page; an out-of-range page is empty."""
    if page < 0 or size <= 0:
        return []
    start = page * size
    if start >= len(items):
        return []
    return list(items[start:min(start + size, len(items))])


def total_pages(total: int, size: int) -> int:
    if size <= 0:
        return 0
    return math.ceil(total / size)


def star_distribution(reviews: Iterable[Any]) -> Dict[int, int]:
    distribution = {star: 0 for star in range(1, 6)}
    for review in reviews:
        if review.rating in distribution:
            distribution[review.rating] += 1
    return distribution


def to_review_page(
    reviews: Sequence[Any],
    page: int,
    size: int,
    sort: Optional[str] = None,
    viewer_id: Optional[int] = None,
) -> ReviewPage:
    views = [to_review_view(review, viewer_id) for review in reviews]
    if sort == "likes":
        views = sort_by_likes(views)
    return ReviewPage(
        content=paginate(views, page, size),
        total_elements=len(views),
        total_pages=total_pages(len(views), size),
        current_page=page,
        size=size,
        star_distribution=star_distribution(reviews),
        average_rating=average_rating(reviews),
    )


def to_restaurant_page(
    restaurants: Sequence[Any],
    page: int,
    size: int,
    viewer_id: Optional[int] = None,
    total_elements: Optional[int] = None,
) -> RestaurantPage:
    """Page view of restaurants.

    When total_elements is given, restaurants is taken to be the already
    sliced page (as returned by the database query) rather than the full list.
    """
    if total_elements is None:
        total_elements = len(restaurants)
        restaurants = paginate(restaurants, page, size)
    return RestaurantPage(
        content=[to_restaurant_view(restaurant, viewer_id) for restaurant in restaurants],
        total_elements=total_elements,
        total_pages=total_pages(total_elements, size),
        current_page=page,
        size=size,
    )

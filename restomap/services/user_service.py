"""
User accounts: registration, login, profile and password management
"""

import logging
import re
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth.jwt_auth import JWTAuth
from ..auth.principal import Role
from ..db import crud, models
from ..errors import AuthenticationError, ErrorContext, NotFoundError, ValidationError
from .assembler import RestaurantView, ReviewView, UserView, to_restaurant_view, to_review_view, to_user_view

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9+_.-]+@(.+)$")


def _validate_email(email: Optional[str]) -> None:
    if email is None or not EMAIL_PATTERN.match(email):
        raise ValidationError("Please enter a valid email address", ErrorContext(additional_info={"email": email}))


def _validate_password(password: Optional[str]) -> None:
    if password is None or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


def _require_user(db: Session, user_id: int) -> models.User:
    user = crud.get_user(db, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found", ErrorContext(resource="user", resource_id=user_id))
    return user


def register_user(db: Session, auth: JWTAuth, username: str, password: str, email: Optional[str]) -> UserView:
    username = (username or "").strip()
    if not username:
        raise ValidationError("Username is required")
    if crud.username_exists(db, username):
        logger.warning(f"Registration rejected, username taken: {username}")
        raise ValidationError("Username already exists", ErrorContext(username=username))
    _validate_password(password)
    _validate_email(email)

    try:
        user = crud.create_user(db, username, auth.get_password_hash(password), email, Role.REVIEWER.value)
    except IntegrityError:
        db.rollback()
        raise ValidationError("Username already exists", ErrorContext(username=username))

    logger.info(f"Registered user {username} (id={user.id})")
    return to_user_view(user)


def authenticate_user(db: Session, auth: JWTAuth, username: str, password: str) -> str:
    """Check credentials and issue a token"""
    user = crud.get_user_by_username(db, username)
    if user is None or not auth.verify_password(password, str(user.password)):
        logger.warning(f"Failed login for {username}")
        raise AuthenticationError("Bad credentials", ErrorContext(username=username, operation="login"))

    logger.info(f"User logged in: {username}")
    return auth.generate_token(user)


def get_user_profile(db: Session, user_id: int) -> UserView:
    return to_user_view(_require_user(db, user_id))


def update_user_profile(
    db: Session, user_id: int, email: Optional[str], profile_picture: Optional[str]
) -> UserView:
    user = _require_user(db, user_id)
    if email is not None:
        _validate_email(email)
        user.email = email  # type: ignore[assignment]
    if profile_picture is not None:
        user.profile_picture = profile_picture or None  # type: ignore[assignment]
    db.commit()
    db.refresh(user)
    logger.info(f"Updated profile of user {user_id}")
    return to_user_view(user)


def change_password(db: Session, auth: JWTAuth, user_id: int, old_password: str, new_password: str) -> None:
    user = _require_user(db, user_id)
    if not auth.verify_password(old_password, str(user.password)):
        logger.warning(f"Password change rejected for user {user_id}: old password mismatch")
        raise ValidationError("Old password is incorrect", ErrorContext(username=str(user.username)))
    _validate_password(new_password)

    user.password = auth.get_password_hash(new_password)  # type: ignore[assignment]
    db.commit()
    logger.info(f"Password changed for user {user_id}")


def get_user_reviews(db: Session, user_id: int, viewer_id: Optional[int] = None) -> List[ReviewView]:
    _require_user(db, user_id)
    return [to_review_view(review, viewer_id) for review in crud.list_reviews_by_user(db, user_id)]


def get_user_created_restaurants(db: Session, user_id: int, viewer_id: Optional[int] = None) -> List[RestaurantView]:
    user = _require_user(db, user_id)
    restaurants = crud.list_restaurants_created_by(db, str(user.username))
    return [to_restaurant_view(restaurant, viewer_id) for restaurant in restaurants]


def ensure_default_admin(db: Session, auth: JWTAuth, username: str, password: str, email: Optional[str] = None) -> models.User:
    """Create or refresh the bootstrap ADMIN account"""
    user = crud.upsert_default_admin(db, username, auth.get_password_hash(password), email)
    logger.info(f"Default admin ensured: {username}")
    return user

from __future__ import annotations

from datetime import datetime
from sqlalchemy import (
    Column,
    String,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String, unique=True, nullable=False, index=True)
    password = Column(String, nullable=False)  # bcrypt hash
    email = Column(String)
    role = Column(String, nullable=False, default="REVIEWER")
    profile_picture = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.now)

    reviews = relationship("Review", back_populates="user", order_by="Review.id")
    favorites = relationship("UserRestaurant", back_populates="user", cascade="all, delete-orphan")


class Restaurant(Base):
    __tablename__ = "restaurants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, index=True)
    address = Column(String, nullable=False)
    phone = Column(String)
    category = Column(String, nullable=False, index=True)
    description = Column(Text)
    image_url = Column(Text)
    # Cached value only; views recompute from the live reviews
    average_rating = Column(Float, default=0.0)
    created_by_username = Column(String, index=True)
    created_at = Column(DateTime, default=datetime.now)

    reviews = relationship(
        "Review",
        back_populates="restaurant",
        order_by="Review.id",
        cascade="all, delete-orphan",
    )
    favorites = relationship(
        "UserRestaurant", back_populates="restaurant", cascade="all, delete-orphan"
    )


class Review(Base):
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, autoincrement=True)
    content = Column(Text, nullable=False)
    rating = Column(Integer, nullable=False)
    image_url = Column(Text)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)

    user = relationship("User", back_populates="reviews")
    restaurant = relationship("Restaurant", back_populates="reviews")
    likes = relationship("ReviewLike", back_populates="review", cascade="all, delete-orphan")


class ReviewLike(Base):
    __tablename__ = "review_likes"
    __table_args__ = (UniqueConstraint("user_id", "review_id", name="uq_review_like_user_review"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    review_id = Column(Integer, ForeignKey("reviews.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.now)

    review = relationship("Review", back_populates="likes")


class UserRestaurant(Base):
    """A user's favorite restaurant."""

    __tablename__ = "user_restaurants"
    __table_args__ = (
        UniqueConstraint("user_id", "restaurant_id", name="uq_user_restaurant_favorite"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.now)

    user = relationship("User", back_populates="favorites")
    restaurant = relationship("Restaurant", back_populates="favorites")

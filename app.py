"""
RestoMap FastAPI Application
Restaurant directory and review API: users, restaurants, reviews, likes, favorites
"""

import logging
import os
import time
from datetime import datetime
from http import HTTPStatus
from typing import Any, Dict, List, Optional, Type, TypeVar

from restomap.logging_util import setup_logging_util

# Configure logging first
setup_logging_util()
logger = logging.getLogger(__name__)

from fastapi import (  # noqa: E402
    FastAPI,
    Depends,
    File,
    Form,
    Query,
    Request,
    Response,
    UploadFile,
)
from fastapi.exceptions import RequestValidationError  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402
from pydantic import BaseModel, ConfigDict  # noqa: E402
from pydantic import ValidationError as PydanticValidationError  # noqa: E402
from pydantic.alias_generators import to_camel  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from starlette.concurrency import run_in_threadpool  # noqa: E402
from starlette.exceptions import HTTPException as StarletteHTTPException  # noqa: E402
from mangum import Mangum  # noqa: E402
import uvicorn  # noqa: E402

from restomap import __version__  # noqa: E402
from restomap.auth.jwt_auth import JWTAuth  # noqa: E402
from restomap.auth.middleware import (  # noqa: E402
    AuthenticationMiddleware,
    get_principal,
    require_principal,
    require_role,
)
from restomap.auth.principal import Principal, Role  # noqa: E402
from restomap.db import crud as db_crud  # noqa: E402
from restomap.db import models as db_models  # noqa: E402,F401
from restomap.db.database import SessionLocal, get_db  # noqa: E402
from restomap.errors import RestoMapError, ValidationError  # noqa: E402
from restomap.services import (  # noqa: E402
    favorite_service,
    restaurant_service,
    review_service,
    user_service,
)
from restomap.services.assembler import (  # noqa: E402
    RestaurantPage,
    RestaurantView,
    ReviewPage,
    ReviewView,
    UserView,
)
from restomap.services.restaurant_service import RestaurantInput  # noqa: E402
from restomap.services.review_service import ReviewInput  # noqa: E402
from restomap.storage.image_storage import ImageStorage, ImageUpload, get_image_storage  # noqa: E402

M = TypeVar("M", bound=BaseModel)

# Token service; a blank JWT_SECRET_KEY fails here, at startup
jwt_auth = JWTAuth()

image_storage: ImageStorage = get_image_storage()


def get_storage() -> ImageStorage:
    return image_storage


def load_user(username: str) -> Optional[db_models.User]:
    """User lookup for the authentication middleware"""
    db = SessionLocal()
    try:
        return db_crud.get_user_by_username(db, username)
    finally:
        db.close()


# Initialize FastAPI app
app = FastAPI(
    title="RestoMap API",
    description="Restaurant directory and review API",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Middleware runs outermost-last-added: CORS -> request logging -> authentication
app.add_middleware(AuthenticationMiddleware, auth=jwt_auth, load_user=load_user)


@app.middleware("http")
async def log_requests(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Log method, path, status and latency of every request"""
    start = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f} ms)")
    return response


allowed_origins = [
    origin.strip()
    for origin in os.environ.get("CORS_ALLOWED_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


# Database schema and default admin
with SessionLocal() as _db:
    db_crud.ensure_schema(_db)
    DEFAULT_ADMIN_USERNAME = os.environ.get("DEFAULT_ADMIN_USERNAME")
    DEFAULT_ADMIN_PASSWORD = os.environ.get("DEFAULT_ADMIN_PASSWORD")
    if DEFAULT_ADMIN_USERNAME and DEFAULT_ADMIN_PASSWORD:
        user_service.ensure_default_admin(
            _db,
            jwt_auth,
            DEFAULT_ADMIN_USERNAME,
            DEFAULT_ADMIN_PASSWORD,
            os.environ.get("DEFAULT_ADMIN_EMAIL"),
        )


# Exception handlers


@app.exception_handler(RestoMapError)
async def restomap_error_handler(request: Request, exc: RestoMapError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(exc.get_log_message())
    else:
        logger.warning(exc.get_log_message())
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', '')}"
        for err in exc.errors()
    )
    error = ValidationError(details or "Invalid request")
    logger.warning(error.get_log_message())
    return JSONResponse(status_code=400, content=error.to_body())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    try:
        code = HTTPStatus(exc.status_code).phrase
    except ValueError:
        code = "Error"
    body = {"error": code, "message": str(exc.detail), "timestamp": datetime.now().isoformat()}
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    body = {
        "error": str(exc),
        "message": "An unexpected error occurred",
        "timestamp": datetime.now().isoformat(),
    }
    return JSONResponse(status_code=500, content=body)


# Request bodies


class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(_Body):
    username: str
    password: str
    email: Optional[str] = None


class LoginRequest(_Body):
    username: str
    password: str


class ProfileUpdateRequest(_Body):
    email: Optional[str] = None
    profile_picture: Optional[str] = None


class PasswordChangeRequest(_Body):
    old_password: str
    new_password: str


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str


def _parse_json_part(model: Type[M], raw: Optional[str], part_name: str) -> M:
    """Parse the JSON part of a multipart request into a request model"""
    if raw is None or not raw.strip():
        raise ValidationError(f"Missing '{part_name}' part")
    try:
        return model.model_validate_json(raw)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid '{part_name}' data: {e.error_count()} error(s)")


async def _read_image(image: Optional[UploadFile]) -> Optional[ImageUpload]:
    """An absent or empty image part means no image"""
    if image is None or not image.filename:
        return None
    data = await image.read()
    if not data:
        return None
    return ImageUpload(filename=image.filename, content_type=image.content_type, data=data)


def _viewer_id(principal: Optional[Principal]) -> Optional[int]:
    return principal.user_id if principal is not None else None


reviewer_only = require_role(Role.REVIEWER)
reviewer_or_admin = require_role(Role.REVIEWER, Role.ADMIN)


# API Endpoints


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Liveness probe"""
    return HealthResponse(status="healthy", timestamp=datetime.now().isoformat(), version=__version__)


# Users


@app.post("/users/register", response_model=UserView, status_code=201)
def register(request: RegisterRequest, db: Session = Depends(get_db)) -> UserView:
    logger.info(f"Register endpoint called for user: {request.username}")
    return user_service.register_user(db, jwt_auth, request.username, request.password, request.email)


@app.post("/users/login", response_model=str)
def login(request: LoginRequest, db: Session = Depends(get_db)) -> str:
    return user_service.authenticate_user(db, jwt_auth, request.username, request.password)


@app.get("/users/me", response_model=UserView)
def get_current_user(
    principal: Principal = Depends(require_principal), db: Session = Depends(get_db)
) -> UserView:
    return user_service.get_user_profile(db, principal.user_id)  # type: ignore[arg-type]


@app.put("/users/me", response_model=UserView)
def update_current_user(
    request: ProfileUpdateRequest,
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
) -> UserView:
    return user_service.update_user_profile(
        db, principal.user_id, request.email, request.profile_picture  # type: ignore[arg-type]
    )


@app.put("/users/me/password")
def change_current_user_password(
    request: PasswordChangeRequest,
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
) -> Dict[str, str]:
    user_service.change_password(
        db, jwt_auth, principal.user_id, request.old_password, request.new_password  # type: ignore[arg-type]
    )
    return {"message": "Password changed"}


@app.get("/users/{user_id}", response_model=UserView)
def get_user(
    user_id: int, principal: Principal = Depends(reviewer_only), db: Session = Depends(get_db)
) -> UserView:
    return user_service.get_user_profile(db, user_id)


@app.get("/users/{user_id}/favorites", response_model=List[RestaurantView])
def get_user_favorites(
    user_id: int, principal: Principal = Depends(reviewer_only), db: Session = Depends(get_db)
) -> List[RestaurantView]:
    user_service.get_user_profile(db, user_id)
    return favorite_service.list_favorites(db, user_id, viewer_id=principal.user_id)


@app.get("/users/{user_id}/reviews", response_model=List[ReviewView])
def get_user_reviews(
    user_id: int, principal: Principal = Depends(reviewer_only), db: Session = Depends(get_db)
) -> List[ReviewView]:
    return user_service.get_user_reviews(db, user_id, viewer_id=principal.user_id)


@app.get("/users/{user_id}/restaurants", response_model=List[RestaurantView])
def get_user_restaurants(
    user_id: int, principal: Principal = Depends(reviewer_only), db: Session = Depends(get_db)
) -> List[RestaurantView]:
    return user_service.get_user_created_restaurants(db, user_id, viewer_id=principal.user_id)


# Restaurants


@app.get("/restaurants", response_model=RestaurantPage)
def list_restaurants(
    page: int = Query(0, ge=0),
    size: int = Query(10, ge=1, le=100),
    sort: Optional[str] = None,
    keyword: Optional[str] = None,
    category: Optional[str] = None,
    min_rating: Optional[float] = Query(None, alias="minRating"),
    principal: Optional[Principal] = Depends(get_principal),
    db: Session = Depends(get_db),
) -> RestaurantPage:
    return restaurant_service.list_restaurants(
        db, page, size, sort, keyword, category, min_rating, viewer_id=_viewer_id(principal)
    )


@app.get("/restaurants/popular", response_model=List[RestaurantView])
def popular_restaurants(
    principal: Optional[Principal] = Depends(get_principal), db: Session = Depends(get_db)
) -> List[RestaurantView]:
    return restaurant_service.get_popular_restaurants(db, _viewer_id(principal))


@app.get("/restaurants/latest", response_model=List[RestaurantView])
def latest_restaurants(
    principal: Optional[Principal] = Depends(get_principal), db: Session = Depends(get_db)
) -> List[RestaurantView]:
    return restaurant_service.get_latest_restaurants(db, _viewer_id(principal))


@app.get("/restaurants/favorites", response_model=List[RestaurantView])
def my_favorite_restaurants(
    principal: Principal = Depends(reviewer_only), db: Session = Depends(get_db)
) -> List[RestaurantView]:
    return favorite_service.list_favorites(db, principal.user_id)  # type: ignore[arg-type]


@app.get("/restaurants/{restaurant_id}", response_model=RestaurantView)
def get_restaurant(
    restaurant_id: int,
    principal: Optional[Principal] = Depends(get_principal),
    db: Session = Depends(get_db),
) -> RestaurantView:
    return restaurant_service.get_restaurant(db, restaurant_id, _viewer_id(principal))


@app.get("/restaurants/{restaurant_id}/rating", response_model=float)
def get_restaurant_rating(restaurant_id: int, db: Session = Depends(get_db)) -> float:
    return restaurant_service.calculate_average_rating(db, restaurant_id)


@app.get("/restaurants/{restaurant_id}/favorite/status", response_model=bool)
def get_favorite_status(
    restaurant_id: int,
    principal: Optional[Principal] = Depends(get_principal),
    db: Session = Depends(get_db),
) -> bool:
    return favorite_service.is_favorite(db, _viewer_id(principal), restaurant_id)


@app.post("/restaurants", response_model=RestaurantView)
async def create_restaurant(
    restaurant: str = Form(...),
    image: Optional[UploadFile] = File(None),
    principal: Principal = Depends(reviewer_only),
    db: Session = Depends(get_db),
    storage: ImageStorage = Depends(get_storage),
) -> RestaurantView:
    data = _parse_json_part(RestaurantInput, restaurant, "restaurant")
    upload = await _read_image(image)
    return await run_in_threadpool(restaurant_service.create_restaurant, db, storage, principal, data, upload)


@app.put("/restaurants/{restaurant_id}", response_model=RestaurantView)
async def update_restaurant(
    restaurant_id: int,
    restaurant: str = Form(...),
    image: Optional[UploadFile] = File(None),
    remove_image: Optional[str] = Form(None, alias="removeImage"),
    principal: Principal = Depends(reviewer_or_admin),
    db: Session = Depends(get_db),
    storage: ImageStorage = Depends(get_storage),
) -> RestaurantView:
    data = _parse_json_part(RestaurantInput, restaurant, "restaurant")
    upload = await _read_image(image)
    remove = (remove_image or "").strip().lower() == "true"
    return await run_in_threadpool(
        restaurant_service.update_restaurant, db, storage, principal, restaurant_id, data, upload, remove_image=remove
    )


@app.delete("/restaurants/{restaurant_id}", status_code=204)
def delete_restaurant(
    restaurant_id: int,
    principal: Principal = Depends(reviewer_or_admin),
    db: Session = Depends(get_db),
) -> Response:
    restaurant_service.delete_restaurant(db, principal, restaurant_id)
    return Response(status_code=204)


@app.post("/restaurants/{restaurant_id}/favorite", status_code=201)
def add_favorite(
    restaurant_id: int, principal: Principal = Depends(reviewer_only), db: Session = Depends(get_db)
) -> Dict[str, str]:
    favorite_service.add_favorite(db, principal.user_id, restaurant_id)  # type: ignore[arg-type]
    return {"message": "Added to favorites"}


@app.delete("/restaurants/{restaurant_id}/favorite")
def remove_favorite(
    restaurant_id: int, principal: Principal = Depends(reviewer_only), db: Session = Depends(get_db)
) -> Dict[str, str]:
    favorite_service.remove_favorite(db, principal.user_id, restaurant_id)  # type: ignore[arg-type]
    return {"message": "Removed from favorites"}


# Reviews


@app.get("/reviews/restaurant/{restaurant_id}/page", response_model=ReviewPage)
def restaurant_reviews_page(
    restaurant_id: int,
    page: int = Query(0, ge=0),
    size: int = Query(10, ge=1, le=100),
    sort: Optional[str] = None,
    principal: Optional[Principal] = Depends(get_principal),
    db: Session = Depends(get_db),
) -> ReviewPage:
    return review_service.get_restaurant_reviews_page(
        db, restaurant_id, page, size, sort, viewer_id=_viewer_id(principal)
    )


@app.post("/reviews/{restaurant_id}", response_model=ReviewView)
async def create_review(
    restaurant_id: int,
    review: str = Form(...),
    image: Optional[UploadFile] = File(None),
    principal: Principal = Depends(reviewer_only),
    db: Session = Depends(get_db),
    storage: ImageStorage = Depends(get_storage),
) -> ReviewView:
    data = _parse_json_part(ReviewInput, review, "review")
    upload = await _read_image(image)
    return await run_in_threadpool(review_service.create_review, db, storage, principal, restaurant_id, data, upload)


@app.post("/reviews/{restaurant_id}/upload", response_model=str)
async def upload_review_image(
    restaurant_id: int,
    image: Optional[UploadFile] = File(None),
    principal: Principal = Depends(reviewer_only),
    db: Session = Depends(get_db),
    storage: ImageStorage = Depends(get_storage),
) -> str:
    upload = await _read_image(image)
    return await run_in_threadpool(review_service.upload_review_image, db, storage, restaurant_id, upload)


@app.get("/reviews/{review_id}", response_model=ReviewView)
def get_review(
    review_id: int, principal: Principal = Depends(require_principal), db: Session = Depends(get_db)
) -> ReviewView:
    return review_service.get_review(db, review_id, principal.user_id)


@app.put("/reviews/{review_id}", response_model=ReviewView)
async def update_review(
    review_id: int,
    review: str = Form(...),
    image: Optional[UploadFile] = File(None),
    principal: Principal = Depends(reviewer_only),
    db: Session = Depends(get_db),
    storage: ImageStorage = Depends(get_storage),
) -> ReviewView:
    data = _parse_json_part(ReviewInput, review, "review")
    upload = await _read_image(image)
    return await run_in_threadpool(review_service.update_review, db, storage, principal, review_id, data, upload)


@app.delete("/reviews/{review_id}", status_code=204)
def delete_review(
    review_id: int,
    principal: Principal = Depends(reviewer_or_admin),
    db: Session = Depends(get_db),
) -> Response:
    review_service.delete_review(db, principal, review_id)
    return Response(status_code=204)


@app.get("/reviews/{review_id}/like-count", response_model=int)
def review_like_count(
    review_id: int, principal: Principal = Depends(require_principal), db: Session = Depends(get_db)
) -> int:
    return review_service.get_review_like_count(db, review_id)


@app.post("/reviews/{review_id}/like")
def like_review(
    review_id: int, principal: Principal = Depends(reviewer_only), db: Session = Depends(get_db)
) -> Dict[str, str]:
    review_service.like_review(db, principal, review_id)
    return {"message": "Review liked"}


@app.delete("/reviews/{review_id}/like")
def unlike_review(
    review_id: int, principal: Principal = Depends(reviewer_only), db: Session = Depends(get_db)
) -> Dict[str, str]:
    review_service.unlike_review(db, principal, review_id)
    return {"message": "Like removed"}


# Images


@app.get("/images/{file_name}")
def get_image(file_name: str, storage: ImageStorage = Depends(get_storage)) -> Response:
    content, content_type = storage.read_image(file_name)
    return Response(content=content, media_type=content_type)


# AWS Lambda entry point
handler = Mangum(app, lifespan="off")


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))

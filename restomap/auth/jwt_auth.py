"""
JWT Authentication Module
Handles token issuance, validation, claim extraction and password hashing
"""

import logging
import os
import time
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from ..errors import ConfigurationError
from .principal import Role, parse_role

logger = logging.getLogger(__name__)

# Configuration
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
ALGORITHM = "HS256"
try:
    ACCESS_TOKEN_EXPIRE_SECONDS = int(os.getenv("JWT_EXPIRATION_SECONDS", "86400"))
except ValueError:
    ACCESS_TOKEN_EXPIRE_SECONDS = 86400

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class JWTAuth:
    """JWT Authentication handler"""

    def __init__(
        self,
        secret_key: str = SECRET_KEY,
        algorithm: str = ALGORITHM,
        expire_seconds: int = ACCESS_TOKEN_EXPIRE_SECONDS,
    ):
        if not secret_key or not secret_key.strip():
            raise ConfigurationError("JWT secret key cannot be null or empty")
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_seconds = expire_seconds

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """Verify a password against its hash"""
        try:
            result = pwd_context.verify(plain_password, hashed_password)
        except (ValueError, TypeError):
            # Unknown or malformed hash
            return False
        return bool(result)

    def get_password_hash(self, password: str) -> str:
        """Hash a password"""
        # Bcrypt has a 72-byte limit, so truncate if necessary
        if len(password.encode('utf-8')) > 72:
            password = password.encode('utf-8')[:72].decode('utf-8', 'ignore')
        result = pwd_context.hash(password)
        return str(result)

    def create_access_token(
        self, data: Dict[str, Any], expires_delta: Optional[timedelta] = None
    ) -> str:
        """Create a JWT access token"""
        to_encode = data.copy()

        now = datetime.now(timezone.utc)
        if expires_delta is not None:
            expire = now + expires_delta
        else:
            expire = now + timedelta(seconds=self.expire_seconds)

        to_encode.update({"exp": expire, "iat": now})

        encoded_jwt = jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)
        logger.info(f"Token created for user: {data.get('sub', 'unknown')}")
        return str(encoded_jwt)

    def generate_token(self, user: Any, expires_delta: Optional[timedelta] = None) -> str:
        """Issue a token for a user: username as subject, role and user id as claims"""
        username = str(user.username)
        role = parse_role(getattr(user, "role", None)) or Role.REVIEWER
        data: Dict[str, Any] = {"sub": username, "username": username, "role": role.value}
        user_id = getattr(user, "id", None)
        if user_id is not None:
            data["userId"] = int(user_id)
        return self.create_access_token(data, expires_delta)

    def _decode(self, token: str) -> Dict[str, Any]:
        return dict(jwt.decode(token, self.secret_key, algorithms=[self.algorithm]))

    def verify_token(self, token: str) -> Optional[Dict[str, Any]]:
        """Verify and decode a JWT token; None when it cannot be trusted"""
        try:
            payload = self._decode(token)
        except JWTError as e:
            logger.warning(f"Token verification failed: {type(e).__name__}")
            return None
        except Exception as e:
            logger.warning(f"Token could not be parsed: {type(e).__name__}")
            return None

        # A token is only valid strictly before its expiry instant
        exp = payload.get("exp")
        if not isinstance(exp, (int, float)) or exp <= time.time():
            logger.warning("Token expired")
            return None

        return payload

    def validate_token(self, token: str) -> bool:
        """True when the token has a good signature and has not expired"""
        return self.verify_token(token) is not None

    def get_username_from_token(self, token: str) -> str:
        """Subject claim. Raises JWTError for tokens that do not validate."""
        return str(self._decode(token)["sub"])

    def get_role_from_token(self, token: str) -> Optional[Role]:
        """Role claim, or None when it is missing or unknown."""
        return parse_role(self._decode(token).get("role"))

    def get_user_id_from_token(self, token: str) -> Optional[int]:
        user_id = self._decode(token).get("userId")
        return int(user_id) if user_id is not None else None

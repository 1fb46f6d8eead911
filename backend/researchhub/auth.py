import secrets
from datetime import datetime, timezone
from uuid import UUID

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from . import config, models
from .database import get_db
from .errors import AuthenticationError, AuthorizationError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return pwd_context.verify(password, hashed)


def create_access_token(data: dict, expires_delta=None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or config.ACCESS_TOKEN_EXPIRE)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


def create_user_token(user: models.User) -> str:
    return create_access_token({"sub": str(user.id)})


def generate_one_time_token() -> str:
    """Random single-use token for email verification and password reset."""

    return secrets.token_hex(32)


def is_expired(expires_at: datetime | None) -> bool:
    if expires_at is None:
        return True
    return models.as_utc(expires_at) < datetime.now(timezone.utc)


async def get_current_user(
    token: str | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> models.User:
    if not token:
        raise AuthenticationError("Access token required")
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
        user_id = UUID(str(payload.get("sub")))
    except (JWTError, ValueError):
        raise AuthenticationError("Invalid or expired token")
    user = db.get(models.User, user_id)
    if user is None:
        raise AuthenticationError("User not found")
    if not user.is_email_verified:
        raise AuthorizationError("Please verify your email address")
    return user


def require_role(*allowed_roles: models.UserRole):
    async def _dep(user: models.User = Depends(get_current_user)) -> models.User:
        if user.role not in allowed_roles:
            raise AuthorizationError("Insufficient permissions")
        return user

    return _dep


require_admin = require_role(models.UserRole.ADMINISTRATOR)

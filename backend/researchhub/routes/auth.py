import logging

from fastapi import APIRouter, Depends, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import config, models, notify, schemas
from ..auth import create_user_token, generate_one_time_token, get_password_hash, is_expired, verify_password
from ..database import get_db
from ..errors import AuthenticationError, ConflictError, NotFoundError, StorageError, ValidationError

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)


def rate_limit(limit: str):
    if config.TESTING:
        def wrapper(func):
            return func
        return wrapper
    return limiter.limit(limit)


router = APIRouter(prefix="/api/auth", tags=["auth"])


def _issue_verification_token(user: models.User) -> str:
    token = generate_one_time_token()
    user.email_verification_token = token
    user.email_verification_expires = models.utcnow() + config.EMAIL_VERIFICATION_EXPIRE
    return token


def _send_verification(user: models.User, token: str) -> None:
    # registration stands whatever the mailer raises
    try:
        notify.send_verification_email(user.email, token)
    except Exception:
        logger.warning("Verification email to %s failed", user.email, exc_info=True)


@router.post("/register", response_model=schemas.Envelope[schemas.UserOut], status_code=201)
@rate_limit("5/minute")
async def register(request: Request, user: schemas.UserCreate, db: Session = Depends(get_db)):
    existing = (
        db.query(models.User)
        .filter(or_(models.User.email == user.email, models.User.username == user.username))
        .first()
    )
    if existing:
        raise ConflictError("User with this email or username already exists")
    db_user = models.User(
        username=user.username,
        email=user.email,
        hashed_password=get_password_hash(user.password),
        affiliation=user.affiliation,
        role=user.role,
        is_email_verified=False,
    )
    token = _issue_verification_token(db_user)
    db.add(db_user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("User with this email or username already exists")
    db.refresh(db_user)
    logger.info("Registered user %s", db_user.id, extra={"user_id": str(db_user.id)})
    _send_verification(db_user, token)
    return schemas.Envelope(
        message="Registration successful! Please check your email to verify your account.",
        data=schemas.UserOut.model_validate(db_user),
    )


@router.get("/verify-email/{token}", response_model=schemas.Envelope[schemas.UserSummary])
async def verify_email(token: str, db: Session = Depends(get_db)):
    user = db.query(models.User).filter(models.User.email_verification_token == token).first()
    if not user or is_expired(user.email_verification_expires):
        raise ValidationError(
            "Invalid or expired verification token. Please request a new verification email."
        )
    user.is_email_verified = True
    user.email_verification_token = None
    user.email_verification_expires = None
    db.commit()
    db.refresh(user)
    return schemas.Envelope(
        message="Email verified successfully! You can now login to your account.",
        data=schemas.UserSummary.model_validate(user),
    )


@router.post("/resend-verification", response_model=schemas.Envelope[None])
@rate_limit("3/minute")
async def resend_verification(request: Request, data: schemas.EmailRequest, db: Session = Depends(get_db)):
    user = db.query(models.User).filter(models.User.email == data.email).first()
    if not user:
        raise NotFoundError("No account found with this email address")
    if user.is_email_verified:
        raise ValidationError("Email is already verified")
    token = _issue_verification_token(user)
    db.commit()
    _send_verification(user, token)
    return schemas.Envelope(message="Verification email sent")


@router.post("/login", response_model=schemas.Envelope[schemas.LoginOut])
@rate_limit("10/minute")
async def login(request: Request, credentials: schemas.LoginRequest, db: Session = Depends(get_db)):
    db_user = db.query(models.User).filter(models.User.email == credentials.email).first()
    if not db_user:
        raise AuthenticationError("Invalid email or password")
    if not db_user.is_email_verified:
        raise AuthenticationError("Please verify your email before logging in")
    if not verify_password(credentials.password, db_user.hashed_password):
        raise AuthenticationError("Invalid email or password")
    logger.info("User %s logged in", db_user.id, extra={"user_id": str(db_user.id)})
    return schemas.Envelope(
        message="Login successful",
        data=schemas.LoginOut(
            access_token=create_user_token(db_user),
            user=schemas.UserOut.model_validate(db_user),
        ),
    )


@router.post("/forgot-password", response_model=schemas.Envelope[None])
@rate_limit("3/minute")
async def forgot_password(request: Request, data: schemas.EmailRequest, db: Session = Depends(get_db)):
    user = db.query(models.User).filter(models.User.email == data.email).first()
    if not user:
        raise NotFoundError("No account found with this email address")
    token = generate_one_time_token()
    user.reset_password_token = token
    user.reset_password_expires = models.utcnow() + config.PASSWORD_RESET_EXPIRE
    db.commit()
    try:
        notify.send_password_reset_email(user.email, token)
    except OSError as exc:
        logger.error("Password reset email to %s failed", user.email, exc_info=True)
        user.reset_password_token = None
        user.reset_password_expires = None
        db.commit()
        raise StorageError("Failed to send password reset email. Please try again.") from exc
    return schemas.Envelope(message="Password reset email sent successfully. Please check your email.")


@router.post("/reset-password/{token}", response_model=schemas.Envelope[None])
async def reset_password(token: str, data: schemas.PasswordResetConfirm, db: Session = Depends(get_db)):
    user = db.query(models.User).filter(models.User.reset_password_token == token).first()
    if not user or is_expired(user.reset_password_expires):
        raise ValidationError("Invalid or expired password reset token")
    user.hashed_password = get_password_hash(data.new_password)
    user.reset_password_token = None
    user.reset_password_expires = None
    db.commit()
    return schemas.Envelope(
        message="Password reset successfully. You can now login with your new password."
    )

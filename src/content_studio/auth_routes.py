"""
Authentication and account API routes
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session
from pydantic import BaseModel, EmailStr
from typing import Optional

from .db import get_db, User, NotificationSettings
from .auth import (
    verify_password,
    get_password_hash,
    create_user_token,
    get_current_user,
    ACCESS_TOKEN_EXPIRE_MINUTES,
    AUTH_COOKIE_NAME,
)
from .config import config
from .services.credits_service import CreditsService, credits_for_plan, DEFAULT_PLAN
from .services.content_service import delete_user_data

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["authentication"])
account_router = APIRouter(prefix="/api/account", tags=["account"])

MIN_PASSWORD_LENGTH = 8


class UserSignup(BaseModel):
    email: EmailStr
    password: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class Token(BaseModel):
    access_token: str
    token_type: str
    user: dict


class DeleteAccountRequest(BaseModel):
    password: str


class NotificationSettingsUpdate(BaseModel):
    email_marketing: Optional[bool] = None
    email_product: Optional[bool] = None
    email_billing: Optional[bool] = None


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "full_name": user.full_name,
        "is_active": user.is_active,
        "is_admin": bool(user.is_admin),
    }


def _token_response(user: User, response: Response) -> dict:
    access_token = create_user_token(user)
    response.set_cookie(
        key=AUTH_COOKIE_NAME,
        value=access_token,
        httponly=True,
        secure=not config.is_dev and config.ENV != "test",
        samesite="lax",
        max_age=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    return {
        "access_token": access_token,
        "token_type": "bearer",
        "user": serialize_user(user),
    }


@router.post("/signup", response_model=Token)
async def signup(user_data: UserSignup, response: Response, db: Session = Depends(get_db)):
    """Register a new user with email and password"""
    logger.info(f"Signup attempt for email: {user_data.email}")

    existing_user = db.query(User).filter(User.email == user_data.email).first()
    if existing_user:
        logger.warning(f"Signup failed: Email already registered - {user_data.email}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    if len(user_data.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )

    new_user = User(
        email=user_data.email,
        hashed_password=get_password_hash(user_data.password),
        first_name=user_data.first_name or None,
        last_name=user_data.last_name or None,
        is_active=True,
        is_admin=False,
    )
    db.add(new_user)
    db.commit()
    db.refresh(new_user)
    logger.info(f"User created successfully with ID: {new_user.id}")

    CreditsService(db).get_or_create(new_user.id, credits_for_plan(DEFAULT_PLAN))

    return _token_response(new_user, response)


@router.post("/login", response_model=Token)
async def login(
    response: Response,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
):
    """Login with email and password"""
    user = db.query(User).filter(User.email == form_data.username).first()

    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive"
        )

    return _token_response(user, response)


@router.get("/session")
async def get_session(current_user: User = Depends(get_current_user)):
    """Current session user"""
    return {"user": serialize_user(current_user)}


@router.get("/status")
async def auth_status(current_user: User = Depends(get_current_user)):
    """Authentication status with admin flag"""
    return {
        "authenticated": True,
        "isAdmin": bool(current_user.is_admin),
        "user": serialize_user(current_user),
    }


@router.post("/refresh", response_model=Token)
async def refresh_token(response: Response, current_user: User = Depends(get_current_user)):
    """Issue a fresh token for the current user"""
    return _token_response(current_user, response)


@router.post("/logout")
async def logout(response: Response):
    """Logout user (client should discard token)"""
    response.delete_cookie(AUTH_COOKIE_NAME)
    return {"message": "Logged out successfully"}


@router.delete("/account")
async def delete_account(
    request_data: DeleteAccountRequest,
    response: Response,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Delete the current user's account after re-checking the password"""
    if not verify_password(request_data.password, current_user.hashed_password):
        logger.warning(f"Account deletion rejected for user {current_user.id}: incorrect password")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Incorrect password"
        )

    delete_user_data(db, current_user)
    response.delete_cookie(AUTH_COOKIE_NAME)
    return {"success": True, "message": "Account deleted successfully"}


def _get_or_create_notification_settings(db: Session, user: User) -> NotificationSettings:
    settings = db.query(NotificationSettings).filter(NotificationSettings.user_id == user.id).first()
    if settings is None:
        settings = NotificationSettings(user_id=user.id)
        db.add(settings)
        db.commit()
        db.refresh(settings)
    return settings


def _serialize_notifications(settings: NotificationSettings) -> dict:
    return {
        "email_marketing": settings.email_marketing,
        "email_product": settings.email_product,
        "email_billing": settings.email_billing,
    }


@account_router.get("/notifications")
async def get_notification_settings(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    settings = _get_or_create_notification_settings(db, current_user)
    return {"settings": _serialize_notifications(settings)}


@account_router.put("/notifications")
async def update_notification_settings(
    update: NotificationSettingsUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    settings = _get_or_create_notification_settings(db, current_user)
    for key, value in update.model_dump(exclude_none=True).items():
        setattr(settings, key, value)
    db.commit()
    db.refresh(settings)
    return {"success": True, "settings": _serialize_notifications(settings)}


@account_router.put("/profile")
async def update_profile(
    update: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    if update.first_name is not None:
        current_user.first_name = update.first_name.strip() or None
    if update.last_name is not None:
        current_user.last_name = update.last_name.strip() or None
    db.commit()
    db.refresh(current_user)
    return {"success": True, "user": serialize_user(current_user)}

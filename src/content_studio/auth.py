"""
Authentication utilities and JWT token handling
"""
import os
import hashlib
import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
import bcrypt
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from .db import get_db, User

logger = logging.getLogger(__name__)


def get_secret_key():
    """Get secret key from config module"""
    from .config import config
    return config.SECRET_KEY


# Security configuration
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 120
AUTH_COOKIE_NAME = "auth_token"

# Cost factor: each increment doubles hashing time
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

http_bearer = HTTPBearer(auto_error=False)


def _prepare_password(password: str) -> bytes:
    """bcrypt only reads 72 bytes; longer passwords are pre-hashed with SHA-256"""
    password_bytes = password.encode("utf-8")
    if len(password_bytes) > 72:
        return hashlib.sha256(password_bytes).hexdigest().encode("utf-8")
    return password_bytes


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    if not plain_password or not hashed_password:
        return False
    try:
        return bcrypt.checkpw(_prepare_password(plain_password), hashed_password.encode("utf-8"))
    except ValueError as e:
        logger.warning(f"Password verification failed: {type(e).__name__}")
        return False


def get_password_hash(password: str) -> str:
    """Hash a password, handling bcrypt's 72-byte limit"""
    if not password:
        raise ValueError("Password cannot be empty")
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(_prepare_password(password), salt).decode("utf-8")


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token

    Args:
        data: Dictionary with user data (must include 'sub' - user ID)
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    to_encode = data.copy()
    now = datetime.utcnow()
    expire = now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))

    to_encode.update({
        "exp": expire,
        "jti": str(uuid.uuid4()),
        "iat": now,
    })
    return jwt.encode(to_encode, get_secret_key(), algorithm=ALGORITHM)


def create_user_token(user: User) -> str:
    # JWT requires 'sub' claim to be a string
    return create_access_token(
        data={"sub": str(user.id)},
        expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )


def verify_token(token: str) -> Optional[dict]:
    """Verify and decode a JWT token"""
    try:
        return jwt.decode(token, get_secret_key(), algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.warning("Token verification failed: Token has expired")
        return None
    except jwt.JWTClaimsError as e:
        logger.warning(f"Token verification failed: Invalid token claims - {str(e)}")
        return None
    except JWTError as e:
        logger.warning(f"Token verification failed: {type(e).__name__} - {str(e)}")
        return None


def get_auth_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer)
) -> Optional[str]:
    """
    Extract authentication token from Authorization header or cookie.
    Returns None if no token is found.
    """
    if credentials and credentials.credentials:
        return credentials.credentials

    cookie_token = request.cookies.get(AUTH_COOKIE_NAME)
    if cookie_token:
        logger.debug("Using token from cookie (no Authorization header present)")
        return cookie_token
    return None


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=message,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    token: Optional[str] = Depends(get_auth_token),
    db: Session = Depends(get_db)
) -> User:
    """Get current authenticated user from token

    Checks both Authorization header (Bearer token) and auth_token cookie.
    """
    if not token or not token.strip():
        logger.warning("Authentication failed: No authorization credentials provided")
        raise _unauthorized("Authentication token is missing. Please log in again.")

    payload = verify_token(token.strip())
    if payload is None:
        raise _unauthorized("Invalid or expired authentication token. Please log in again.")

    user_id_str = payload.get("sub")
    if user_id_str is None:
        logger.warning("Authentication failed: Token payload missing user ID")
        raise _unauthorized("Invalid token format: missing user identifier")

    try:
        user_id = int(user_id_str)
    except (ValueError, TypeError):
        logger.warning(f"Authentication failed: Invalid user ID format in token: {user_id_str}")
        raise _unauthorized("Invalid token format: user identifier is not valid")

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        logger.warning(f"Authentication failed: User with ID {user_id} not found in database")
        raise _unauthorized("User account not found. Please log in again.")

    if not user.is_active:
        logger.warning(f"Authentication failed: User {user_id} account is inactive")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive"
        )

    return user


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    """
    Require user to be an admin

    Raises:
        HTTPException: 403 if the user's is_admin flag is not set
    """
    if not current_user.is_admin:
        logger.warning(f"Non-admin user {current_user.id} ({current_user.email}) attempted to access admin endpoint")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return current_user

# auth.py — Authentication for BoardFlow
# Features:
# - HS256 JWT access tokens (sub = user id)
# - bcrypt password hashing
# - Password policy enforcement (min 8 chars)
# - Brute force protection on login
# - Per-user text-generation API key storage

import os
import uuid
import secrets
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from collections import defaultdict

import bcrypt
from jose import jwt, JWTError, ExpiredSignatureError
from fastapi import HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db_session
from errors import Conflict
from models import User, utcnow

logger = logging.getLogger("boardflow.auth")

# ============================================================
# CONFIGURATION
# ============================================================

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
if not SECRET_KEY or SECRET_KEY == "change-this-to-a-secure-random-key-in-production":
    SECRET_KEY = secrets.token_urlsafe(64)
    logger.warning(
        "JWT_SECRET_KEY not set or insecure. Generated ephemeral key. "
        "Set JWT_SECRET_KEY in production!"
    )

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "10080"))
MIN_PASSWORD_LENGTH = 8
MIN_AI_KEY_LENGTH = 10
MAX_LOGIN_ATTEMPTS = 5
LOGIN_LOCKOUT_MINUTES = 15

security = HTTPBearer()

# In-memory brute force tracker (per process)
_login_attempts: Dict[str, list] = defaultdict(list)


# ============================================================
# PYDANTIC SCHEMAS
# ============================================================

class UserRegister(BaseModel):
    email: EmailStr
    password: str
    name: str = ""

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if len(v) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        return v


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: Dict[str, Any]


class CurrentUser(BaseModel):
    id: str
    email: str
    name: str


class AIKeyUpdate(BaseModel):
    api_key: Optional[str] = None

    @field_validator("api_key")
    @classmethod
    def validate_key(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if not v:
            return None
        if len(v) < MIN_AI_KEY_LENGTH:
            raise ValueError(f"API key must be at least {MIN_AI_KEY_LENGTH} characters")
        return v


# ============================================================
# AUTH SERVICE
# ============================================================

class AuthService:
    """Password, token and account operations"""

    @staticmethod
    def hash_password(password: str) -> str:
        salt = bcrypt.gensalt(rounds=12)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))

    @staticmethod
    def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
        to_encode = data.copy()
        now = datetime.now(timezone.utc)
        to_encode.update({
            "exp": now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)),
            "iat": now,
            "type": "access",
            "jti": str(uuid.uuid4()),
        })
        return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

    @staticmethod
    def verify_token(token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        except ExpiredSignatureError:
            raise HTTPException(status_code=401, detail="Token expired")
        except JWTError:
            raise HTTPException(status_code=401, detail="Invalid token")

    @staticmethod
    def _check_brute_force(email: str) -> None:
        """Check if login attempts exceed threshold"""
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=LOGIN_LOCKOUT_MINUTES)
        _login_attempts[email] = [t for t in _login_attempts[email] if t > cutoff]
        if len(_login_attempts[email]) >= MAX_LOGIN_ATTEMPTS:
            raise HTTPException(
                status_code=429,
                detail=f"Too many login attempts. Try again in {LOGIN_LOCKOUT_MINUTES} minutes.",
            )

    @staticmethod
    def _record_failed_attempt(email: str) -> None:
        _login_attempts[email].append(datetime.now(timezone.utc))

    @staticmethod
    def _clear_attempts(email: str) -> None:
        _login_attempts.pop(email, None)

    @staticmethod
    async def register_user(user_data: UserRegister, db: AsyncSession) -> User:
        email = user_data.email.lower()
        existing = await db.execute(select(User.id).where(User.email == email))
        if existing.scalar_one_or_none():
            raise Conflict("User already exists")

        new_user = User(
            email=email,
            name=user_data.name.strip() or email.split("@")[0],
            password_hash=AuthService.hash_password(user_data.password),
        )
        db.add(new_user)
        await db.commit()
        await db.refresh(new_user)
        logger.info(f"Registered user {new_user.id}")
        return new_user

    @staticmethod
    async def authenticate_user(email: str, password: str, db: AsyncSession) -> Optional[User]:
        email = email.lower()
        AuthService._check_brute_force(email)

        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if not user or not AuthService.verify_password(password, user.password_hash):
            AuthService._record_failed_attempt(email)
            return None

        AuthService._clear_attempts(email)
        return user

    @staticmethod
    async def set_ai_key(user: User, api_key: Optional[str], db: AsyncSession) -> User:
        user.groq_api_key = api_key
        user.groq_api_key_last4 = api_key[-4:] if api_key else None
        user.updated_at = utcnow()
        await db.commit()
        await db.refresh(user)
        return user


# ============================================================
# FASTAPI DEPENDENCIES
# ============================================================

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db_session),
) -> CurrentUser:
    payload = AuthService.verify_token(credentials.credentials)

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    return CurrentUser(id=user.id, email=user.email, name=user.name or "")

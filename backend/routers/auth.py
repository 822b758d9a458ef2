# routers/auth.py — Registration, login, profile and AI key settings
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from auth import (
    ACCESS_TOKEN_EXPIRE_MINUTES, AIKeyUpdate, AuthService, TokenResponse,
    UserLogin, UserRegister, get_current_user, CurrentUser,
)
from database import get_db_session
from errors import NotFound
from models import User, isoformat_utc

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


def _profile(user_obj: User) -> dict:
    return {
        "id": user_obj.id,
        "email": user_obj.email,
        "name": user_obj.name or "",
        "avatar_url": user_obj.avatar_url,
        "has_ai_key": bool(user_obj.groq_api_key),
        "ai_key_last4": user_obj.groq_api_key_last4,
        "created_at": isoformat_utc(user_obj.created_at),
    }


def _build_token_response(user_obj: User) -> TokenResponse:
    """Build token response from a user ORM instance"""
    access_token = AuthService.create_access_token({"sub": user_obj.id, "email": user_obj.email})
    return TokenResponse(
        access_token=access_token,
        expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=_profile(user_obj),
    )


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    user_data: UserRegister,
    db: AsyncSession = Depends(get_db_session),
):
    """Register a new user account"""
    user = await AuthService.register_user(user_data, db)
    return _build_token_response(user)


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db_session),
):
    """Authenticate and receive a token"""
    user = await AuthService.authenticate_user(credentials.email, credentials.password, db)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return _build_token_response(user)


@router.get("/me")
async def get_me(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    user_obj = await db.get(User, user.id)
    if not user_obj:
        raise NotFound("User", user.id)
    return _profile(user_obj)


@router.put("/ai-key")
async def update_ai_key(
    data: AIKeyUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Store the caller's text-generation API key; null or blank clears it"""
    user_obj = await db.get(User, user.id)
    if not user_obj:
        raise NotFound("User", user.id)
    user_obj = await AuthService.set_ai_key(user_obj, data.api_key, db)
    return _profile(user_obj)

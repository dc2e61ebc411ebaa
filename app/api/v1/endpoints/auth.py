from datetime import timedelta
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_

from app.core.database import get_db, utcnow
from app.core.security import (
    verify_password,
    create_access_token,
    create_refresh_token,
    verify_token,
    get_password_hash,
    get_current_user
)
from app.core.config import settings
from app.core.redis_client import get_redis
from app.models.user import User
from app.schemas.auth import Token
from app.schemas.user import UserCreate, UserResponse
from app.services.activity_log import ActivityLog

router = APIRouter()


async def store_tokens(user_id: int, access_token: str, refresh_token: str = None):
    redis_client = await get_redis()
    await redis_client.setex(
        f"access_token:{user_id}",
        settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        access_token
    )
    if refresh_token is not None:
        await redis_client.setex(
            f"refresh_token:{user_id}",
            settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
            refresh_token
        )


@router.post("/register", response_model=UserResponse)
async def register(user: UserCreate, db: AsyncSession = Depends(get_db)):
    """Register a new user"""
    # Check if user already exists
    result = await db.execute(
        select(User).where(or_(User.username == user.username, User.email == user.email))
    )
    if result.scalars().first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User already exists with this username or email"
        )

    if len(user.password) < settings.MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters long"
        )

    # Create new user
    db_user = User(
        username=user.username,
        email=user.email,
        hashed_password=get_password_hash(user.password)
    )
    db.add(db_user)
    await db.commit()
    await db.refresh(db_user)

    response = UserResponse.model_validate(db_user)
    await ActivityLog(db).record(db_user.id, "user_registered")
    return response


@router.post("/login", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: AsyncSession = Depends(get_db)):
    """Login with username or email and return JWT tokens"""
    result = await db.execute(
        select(User).where(or_(User.username == form_data.username, User.email == form_data.username))
    )
    user = result.scalars().first()

    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Inactive user"
        )

    # Create tokens
    access_token_expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = create_access_token(
        data={"sub": user.username}, expires_delta=access_token_expires
    )
    refresh_token = create_refresh_token(data={"sub": user.username})
    await store_tokens(user.id, access_token, refresh_token)

    user.last_login = utcnow()
    await db.commit()
    await ActivityLog(db).record(user.id, "user_login")

    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "bearer"
    }


@router.post("/refresh", response_model=Token)
async def refresh_token(refresh_token: str, db: AsyncSession = Depends(get_db)):
    """Refresh access token using refresh token"""
    payload = verify_token(refresh_token, "refresh")
    username = payload.get("sub")

    result = await db.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()

    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )

    # Check if refresh token exists in Redis
    redis_client = await get_redis()
    stored_refresh_token = await redis_client.get(f"refresh_token:{user.id}")

    if not stored_refresh_token or stored_refresh_token != refresh_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token"
        )

    access_token = create_access_token(data={"sub": user.username})
    await store_tokens(user.id, access_token)

    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "bearer"
    }


@router.post("/logout")
async def logout(current_user: User = Depends(get_current_user)):
    """Logout user by removing tokens from Redis"""
    redis_client = await get_redis()
    await redis_client.delete(f"access_token:{current_user.id}")
    await redis_client.delete(f"refresh_token:{current_user.id}")

    return {"message": "Successfully logged out"}

from typing import List
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_

from app.core.database import get_db
from app.core.security import get_current_active_user
from app.models.user import User
from app.models.mindmap import MindMap
from app.models.collaborator import Collaborator
from app.schemas.user import UserResponse, UserStatistics
from app.services.mindmap_store import like_pattern

router = APIRouter()


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: User = Depends(get_current_active_user)):
    """Get current user information"""
    return current_user


@router.get("/me/statistics", response_model=UserStatistics)
async def get_current_user_statistics(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    """Count the caller's active maps, public maps and accepted collaborations"""
    total = await db.execute(
        select(func.count(MindMap.id)).where(
            and_(MindMap.owner_id == current_user.id, MindMap.is_archived == False)  # noqa: E712
        )
    )
    public = await db.execute(
        select(func.count(MindMap.id)).where(
            and_(MindMap.owner_id == current_user.id, MindMap.is_public == True)  # noqa: E712
        )
    )
    collaborations = await db.execute(
        select(func.count(Collaborator.id)).where(
            and_(Collaborator.user_id == current_user.id, Collaborator.status == "accepted")
        )
    )

    return UserStatistics(
        total_mindmaps=total.scalar_one(),
        public_mindmaps=public.scalar_one(),
        collaborations=collaborations.scalar_one()
    )


@router.get("/search", response_model=List[UserResponse])
async def search_users(
    query: str = Query(..., description="Search text in username"),
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    """Search users by username"""
    if not query or len(query.strip()) < 2:
        return []

    search_term = like_pattern(query.strip())

    result = await db.execute(
        select(User).where(
            and_(
                User.is_active == True,  # noqa: E712
                User.id != current_user.id,
                User.username.ilike(search_term, escape="\\")
            )
        ).limit(10)
    )

    return result.scalars().all()


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    """Get user by ID"""
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    return user

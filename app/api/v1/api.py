from fastapi import APIRouter
from app.api.v1.endpoints import auth, users, categories, mindmaps

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["authentication"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(categories.router, prefix="/categories", tags=["categories"])
api_router.include_router(mindmaps.router, prefix="/mindmaps", tags=["mindmaps"])

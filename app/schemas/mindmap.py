from pydantic import BaseModel, Field
from datetime import datetime
from typing import Literal, Optional, List

from .node import NodeResponse, ConnectionResponse
from .collaborator import CollaboratorResponse


class MindMapCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = ""
    category_id: Optional[int] = None
    theme: Optional[str] = "default"
    is_public: Optional[bool] = False
    central_node: Optional[str] = None


class MindMapUpdate(BaseModel):
    """Fields a map patch may touch, anything else in the payload is dropped"""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    category_id: Optional[int] = None
    theme: Optional[str] = None
    is_public: Optional[bool] = None
    canvas_width: Optional[int] = None
    canvas_height: Optional[int] = None
    zoom_level: Optional[float] = None
    center_x: Optional[float] = None
    center_y: Optional[float] = None


class MindMapDuplicate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    copy_viewport: bool = False


class MindMapArchive(BaseModel):
    archive: bool = True


class MindMapFilters(BaseModel):
    category_id: Optional[int] = None
    is_archived: Optional[bool] = None
    search: Optional[str] = None


class MindMapResponse(BaseModel):
    id: int
    owner_id: int
    title: str
    description: Optional[str] = ""
    category_id: Optional[int] = None
    theme: str
    is_public: bool
    is_archived: bool
    canvas_width: int
    canvas_height: int
    zoom_level: float
    center_x: float
    center_y: float
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_accessed: Optional[datetime] = None

    class Config:
        from_attributes = True


class MindMapDetail(MindMapResponse):
    owner_username: Optional[str] = None
    category_name: Optional[str] = None
    category_color: Optional[str] = None
    nodes: List[NodeResponse] = []
    connections: List[ConnectionResponse] = []
    collaborators: List[CollaboratorResponse] = []


class MindMapSummary(BaseModel):
    id: int
    title: str
    description: Optional[str] = ""
    theme: str
    is_public: bool
    is_archived: bool
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_accessed: Optional[datetime] = None
    category_name: Optional[str] = None
    category_color: Optional[str] = None
    owner_username: Optional[str] = None
    node_count: int = 0
    permission: Literal["owner", "admin", "edit", "view"]

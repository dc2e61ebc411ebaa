from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, List


def clean_tag_names(value):
    """Strip and drop blank names, keeping first occurrence of each"""
    if value is None:
        return None
    names = []
    for name in value:
        name = str(name).strip()
        if name and name not in names:
            names.append(name)
    return names


class NodeFields(BaseModel):
    node_type: Optional[str] = None
    parent_id: Optional[int] = None
    color: Optional[str] = None
    background_color: Optional[str] = None
    text_color: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    font_size: Optional[int] = None
    font_weight: Optional[str] = None
    icon: Optional[str] = None
    image_url: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    due_date: Optional[datetime] = None
    notes: Optional[str] = None
    order_index: Optional[int] = None
    is_collapsed: Optional[bool] = None
    tags: Optional[List[str]] = None

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, value):
        return clean_tag_names(value)


class NodeCreate(NodeFields):
    node_text: str = Field(..., min_length=1)
    position_x: float
    position_y: float


class NodeUpdate(NodeFields):
    node_text: Optional[str] = Field(None, min_length=1)
    position_x: Optional[float] = None
    position_y: Optional[float] = None


class NodeResponse(BaseModel):
    id: int
    map_id: int
    parent_id: Optional[int] = None
    node_text: str
    node_type: str
    color: Optional[str] = None
    background_color: Optional[str] = None
    text_color: Optional[str] = None
    font_size: Optional[int] = None
    font_weight: Optional[str] = None
    icon: Optional[str] = None
    image_url: Optional[str] = None
    position_x: float
    position_y: float
    width: Optional[int] = None
    height: Optional[int] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    due_date: Optional[datetime] = None
    notes: Optional[str] = None
    order_index: int = 0
    is_collapsed: bool = False
    tags: List[str] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator("tags", mode="before")
    @classmethod
    def tags_to_names(cls, value):
        # ORM rows carry Tag objects, API payloads carry names
        return [getattr(tag, "name", tag) for tag in value or []]


class ConnectionCreate(BaseModel):
    from_node_id: int
    to_node_id: int
    label: Optional[str] = None


class ConnectionResponse(BaseModel):
    id: int
    from_node_id: int
    to_node_id: int
    label: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

from .user import UserCreate, UserResponse, UserStatistics
from .auth import Token
from .common import ApiResponse
from .category import CategoryCreate, CategoryResponse
from .node import NodeCreate, NodeUpdate, NodeResponse, ConnectionCreate, ConnectionResponse
from .collaborator import CollaboratorInvite, InvitationReply, CollaboratorResponse
from .mindmap import (
    MindMapCreate, MindMapUpdate, MindMapDuplicate, MindMapArchive, MindMapFilters,
    MindMapResponse, MindMapDetail, MindMapSummary,
)

__all__ = [
    "UserCreate", "UserResponse", "UserStatistics",
    "Token",
    "ApiResponse",
    "CategoryCreate", "CategoryResponse",
    "NodeCreate", "NodeUpdate", "NodeResponse", "ConnectionCreate", "ConnectionResponse",
    "CollaboratorInvite", "InvitationReply", "CollaboratorResponse",
    "MindMapCreate", "MindMapUpdate", "MindMapDuplicate", "MindMapArchive", "MindMapFilters",
    "MindMapResponse", "MindMapDetail", "MindMapSummary",
]

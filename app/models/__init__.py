from .user import User
from .category import Category
from .mindmap import MindMap
from .node import Node
from .tag import Tag
from .node_tag import node_tags
from .connection import Connection
from .collaborator import Collaborator
from .activity_log import ActivityLogEntry

__all__ = [
    "User", "Category", "MindMap", "Node", "Tag", "node_tags",
    "Connection", "Collaborator", "ActivityLogEntry",
]

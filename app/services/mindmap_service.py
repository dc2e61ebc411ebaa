import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, settings
from app.core.exceptions import AccessDenied, InvalidInput, LimitExceeded, NotFound
from app.models.mindmap import MindMap
from app.models.node import Node
from app.schemas.common import parse_payload
from app.schemas.collaborator import CollaboratorResponse
from app.schemas.mindmap import (
    MindMapCreate, MindMapUpdate, MindMapFilters, MindMapResponse, MindMapDetail, MindMapSummary,
)
from app.schemas.node import NodeCreate, NodeUpdate, NodeResponse, ConnectionCreate, ConnectionResponse
from app.services.activity_log import ActivityLog
from app.services.export import export_mindmap
from app.services.mindmap_store import MindMapStore

logger = logging.getLogger(__name__)

VIEWPORT_FIELDS = ("canvas_width", "canvas_height", "zoom_level", "center_x", "center_y")

# Patch keys that may be set back to null, every other null in a patch is dropped
MAP_NULLABLE_FIELDS = {"category_id"}
NODE_NULLABLE_FIELDS = {
    "parent_id", "color", "background_color", "text_color", "width", "height",
    "font_size", "icon", "image_url", "due_date", "notes",
}

EDIT_PERMISSIONS = ("edit", "admin")
PERMISSIONS = ("view", "edit", "admin")


class MindMapService:
    """Business rules over MindMapStore: access control, subscription caps,
    duplication and export.

    Each public operation is one unit of work. Audit entries are written after
    that unit commits and never decide the outcome of the operation.
    """

    def __init__(self, db: AsyncSession, activity_log: Optional[ActivityLog] = None, config: Settings = settings):
        self.db = db
        self.store = MindMapStore(db)
        self.activity = activity_log or ActivityLog(db)
        self.settings = config

    @asynccontextmanager
    async def _transaction(self):
        try:
            yield
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    # Access control

    @staticmethod
    def _is_owner(mindmap: MindMap, user_id: int) -> bool:
        return mindmap.owner_id == user_id

    async def _has_read_access(self, mindmap: MindMap, user_id: int) -> bool:
        if self._is_owner(mindmap, user_id) or mindmap.is_public:
            return True
        grant = await self.store.get_collaborator(mindmap.id, user_id)
        return grant is not None and grant.status == "accepted"

    async def _has_edit_access(self, mindmap: MindMap, user_id: int) -> bool:
        if self._is_owner(mindmap, user_id):
            return True
        grant = await self.store.get_collaborator(mindmap.id, user_id)
        return grant is not None and grant.status == "accepted" and grant.permission in EDIT_PERMISSIONS

    async def _can_manage_collaborators(self, mindmap: MindMap, user_id: int) -> bool:
        if self._is_owner(mindmap, user_id):
            return True
        grant = await self.store.get_collaborator(mindmap.id, user_id)
        return grant is not None and grant.status == "accepted" and grant.permission == "admin"

    async def _load_mindmap(self, map_id: int) -> MindMap:
        mindmap = await self.store.get_mindmap(map_id)
        if mindmap is None:
            raise NotFound("Mindmap not found")
        return mindmap

    async def _load_node(self, node_id: int) -> Node:
        node = await self.store.get_node(node_id)
        if node is None:
            raise NotFound("Node not found")
        return node

    async def _require_read(self, map_id: int, user_id: int) -> MindMap:
        mindmap = await self._load_mindmap(map_id)
        if not await self._has_read_access(mindmap, user_id):
            raise AccessDenied("Access denied to this mindmap")
        return mindmap

    async def _require_edit(self, map_id: int, user_id: int) -> MindMap:
        mindmap = await self._load_mindmap(map_id)
        if not await self._has_edit_access(mindmap, user_id):
            raise AccessDenied("No edit permission for this mindmap")
        return mindmap

    # Validation helpers

    async def _check_mindmap_limit(self, user_id: int) -> None:
        user = await self.store.get_user(user_id)
        if user is None:
            raise NotFound("User not found")

        limit = self.settings.mindmap_limits.get(user.subscription_type, self.settings.MAX_MINDMAPS_FREE)
        if limit == -1:
            return

        count = await self.store.count_active_mindmaps(user_id)
        if count >= limit:
            raise LimitExceeded(f"Mindmap limit reached for {user.subscription_type} subscription")

    async def _check_category(self, category_id: Optional[int]) -> None:
        if category_id is not None and await self.store.get_category(category_id) is None:
            raise InvalidInput("Category not found")

    async def _check_parent(self, map_id: int, parent_id: int, node: Optional[Node] = None) -> None:
        parent = await self.store.get_node(parent_id)
        if parent is None or parent.map_id != map_id:
            raise InvalidInput("Parent node must belong to the same mindmap")
        if node is not None:
            if parent_id == node.id:
                raise InvalidInput("A node cannot be its own parent")
            if parent_id in await self.store.get_descendant_ids(node.id):
                raise InvalidInput("A node cannot be moved under one of its descendants")

    @staticmethod
    def _allowed_fields(schema, patch, nullable) -> dict:
        fields = parse_payload(schema, patch).model_dump(exclude_unset=True)
        return {key: value for key, value in fields.items() if value is not None or key in nullable}

    def _node_defaults(self) -> dict:
        return {
            "color": self.settings.DEFAULT_NODE_COLOR,
            "background_color": self.settings.DEFAULT_NODE_BACKGROUND_COLOR,
            "text_color": self.settings.DEFAULT_NODE_TEXT_COLOR,
            "width": self.settings.DEFAULT_NODE_WIDTH,
            "height": self.settings.DEFAULT_NODE_HEIGHT,
            "font_size": self.settings.DEFAULT_NODE_FONT_SIZE,
        }

    async def _build_detail(self, mindmap: MindMap, owner_username=None, category_name=None,
                            category_color=None) -> MindMapDetail:
        nodes = await self.store.get_nodes(mindmap.id)
        connections = await self.store.get_connections(mindmap.id)
        collaborators = await self.store.get_accepted_collaborators(mindmap.id)

        return MindMapDetail(
            **MindMapResponse.model_validate(mindmap).model_dump(),
            owner_username=owner_username,
            category_name=category_name,
            category_color=category_color,
            nodes=[NodeResponse.model_validate(node) for node in nodes],
            connections=[ConnectionResponse.model_validate(connection) for connection in connections],
            collaborators=[
                CollaboratorResponse(
                    id=grant.id,
                    map_id=grant.map_id,
                    user_id=grant.user_id,
                    username=username,
                    email=email,
                    permission=grant.permission,
                    status=grant.status,
                    created_at=grant.created_at
                )
                for grant, username, email in collaborators
            ]
        )

    async def _mark_accessed(self, mindmap: MindMap) -> None:
        try:
            await self.store.touch_last_accessed(mindmap)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning("Could not update last_accessed for mindmap %s: %s", mindmap.id, e)

    # Mind maps

    async def create_mindmap(self, owner_id: int, draft: MindMapCreate) -> int:
        async with self._transaction():
            await self._check_mindmap_limit(owner_id)
            await self._check_category(draft.category_id)

            mindmap = await self.store.add_mindmap(
                owner_id=owner_id,
                title=draft.title,
                description=draft.description or "",
                category_id=draft.category_id,
                theme=draft.theme or "default",
                is_public=bool(draft.is_public)
            )

            if draft.central_node and draft.central_node.strip():
                await self.store.add_node(
                    mindmap.id,
                    **{
                        **self._node_defaults(),
                        "node_text": draft.central_node,
                        "node_type": "central",
                        "position_x": self.settings.CENTRAL_NODE_X,
                        "position_y": self.settings.CENTRAL_NODE_Y,
                    }
                )

            map_id = mindmap.id

        logger.info("Mindmap %s created by user %s", map_id, owner_id)
        await self.activity.record(owner_id, "mindmap_created", map_id)
        return map_id

    async def get_mindmap(self, map_id: int, requester_id: int) -> MindMapDetail:
        row = await self.store.get_mindmap_with_meta(map_id)
        if row is None:
            raise NotFound("Mindmap not found")

        mindmap, owner_username, category_name, category_color = row
        if not await self._has_read_access(mindmap, requester_id):
            raise AccessDenied("Access denied to this mindmap")

        detail = await self._build_detail(mindmap, owner_username, category_name, category_color)

        await self._mark_accessed(mindmap)
        await self.activity.record(requester_id, "mindmap_viewed", map_id)
        return detail

    async def update_mindmap(self, map_id: int, requester_id: int, patch: dict) -> None:
        async with self._transaction():
            mindmap = await self._require_edit(map_id, requester_id)

            fields = self._allowed_fields(MindMapUpdate, patch, MAP_NULLABLE_FIELDS)
            if not fields:
                raise InvalidInput("No valid fields to update")
            await self._check_category(fields.get("category_id"))

            await self.store.update_mindmap(mindmap, fields)

        await self.activity.record(requester_id, "mindmap_updated", map_id, patch)

    async def delete_mindmap(self, map_id: int, requester_id: int) -> None:
        async with self._transaction():
            mindmap = await self._load_mindmap(map_id)
            if not self._is_owner(mindmap, requester_id):
                raise AccessDenied("Only owner can delete mindmap")

            await self.store.delete_mindmap(map_id)

        logger.info("Mindmap %s deleted by user %s", map_id, requester_id)
        await self.activity.record(requester_id, "mindmap_deleted", map_id)

    async def archive_mindmap(self, map_id: int, requester_id: int, archive: bool = True) -> None:
        async with self._transaction():
            mindmap = await self._require_edit(map_id, requester_id)
            await self.store.set_archived(mindmap, archive)

        action = "mindmap_archived" if archive else "mindmap_unarchived"
        await self.activity.record(requester_id, action, map_id)

    async def list_mindmaps(self, requester_id: int, filters: Optional[MindMapFilters] = None) -> List[MindMapSummary]:
        filters = filters or MindMapFilters()
        rows = await self.store.list_mindmaps(
            requester_id,
            category_id=filters.category_id,
            is_archived=filters.is_archived,
            search=filters.search
        )

        summaries = []
        for mindmap, permission, owner_username, category_name, category_color, node_count in rows:
            if self._is_owner(mindmap, requester_id):
                permission = "owner"
            summaries.append(MindMapSummary(
                id=mindmap.id,
                title=mindmap.title,
                description=mindmap.description,
                theme=mindmap.theme,
                is_public=mindmap.is_public,
                is_archived=mindmap.is_archived,
                version=mindmap.version,
                created_at=mindmap.created_at,
                updated_at=mindmap.updated_at,
                last_accessed=mindmap.last_accessed,
                category_name=category_name,
                category_color=category_color,
                owner_username=owner_username,
                node_count=node_count or 0,
                permission=permission or "view"
            ))
        return summaries

    async def duplicate_mindmap(self, map_id: int, requester_id: int, new_title: str,
                                copy_viewport: bool = False) -> int:
        if not new_title or not new_title.strip():
            raise InvalidInput("Title is required")

        async with self._transaction():
            source = await self._require_read(map_id, requester_id)
            await self._check_mindmap_limit(requester_id)

            fields = {
                "description": source.description,
                "category_id": source.category_id,
                "theme": source.theme,
            }
            if copy_viewport:
                fields.update({field: getattr(source, field) for field in VIEWPORT_FIELDS})

            duplicate = await self.store.add_mindmap(owner_id=requester_id, title=new_title, **fields)
            id_map = await self.store.copy_nodes(source.id, duplicate.id)
            new_id = duplicate.id

        logger.info("Mindmap %s duplicated into %s (%d nodes)", map_id, new_id, len(id_map))
        await self.activity.record(requester_id, "mindmap_duplicated", new_id, {"source_id": map_id})
        return new_id

    async def export_mindmap(self, map_id: int, requester_id: int, export_format: str = "json") -> bytes:
        row = await self.store.get_mindmap_with_meta(map_id)
        if row is None:
            raise NotFound("Mindmap not found")

        mindmap, owner_username, category_name, category_color = row
        if not await self._has_read_access(mindmap, requester_id):
            raise AccessDenied("Access denied to this mindmap")

        detail = await self._build_detail(mindmap, owner_username, category_name, category_color)
        content = export_mindmap(detail, export_format)

        await self.activity.record(requester_id, "mindmap_exported", map_id, {"format": export_format})
        return content

    # Nodes

    async def create_node(self, map_id: int, requester_id: int, draft: NodeCreate) -> int:
        async with self._transaction():
            mindmap = await self._require_edit(map_id, requester_id)

            fields = draft.model_dump(exclude={"tags"}, exclude_none=True)
            if "parent_id" in fields:
                await self._check_parent(mindmap.id, fields["parent_id"])

            node = await self.store.add_node(mindmap.id, **{**self._node_defaults(), **fields})
            if draft.tags is not None:
                await self.store.replace_node_tags(node.id, draft.tags)
            await self.store.touch(mindmap)
            node_id = node.id

        await self.activity.record(requester_id, "node_created", node_id, {"map_id": map_id})
        return node_id

    async def update_node(self, node_id: int, requester_id: int, patch: dict) -> None:
        async with self._transaction():
            node = await self._load_node(node_id)
            mindmap = await self._require_edit(node.map_id, requester_id)

            fields = self._allowed_fields(NodeUpdate, patch, NODE_NULLABLE_FIELDS)
            tags = fields.pop("tags", None)
            if not fields and tags is None:
                raise InvalidInput("No valid fields to update")

            if fields.get("parent_id") is not None:
                await self._check_parent(node.map_id, fields["parent_id"], node)

            await self.store.update_node(node, fields)
            if tags is not None:
                await self.store.replace_node_tags(node.id, tags)
            await self.store.touch(mindmap)

        await self.activity.record(requester_id, "node_updated", node_id, patch)

    async def delete_node(self, node_id: int, requester_id: int) -> int:
        """Delete a node and its whole subtree, returning how many nodes went"""
        async with self._transaction():
            node = await self._load_node(node_id)
            mindmap = await self._require_edit(node.map_id, requester_id)

            node_ids = {node.id} | await self.store.get_descendant_ids(node.id)
            await self.store.delete_nodes(node_ids)
            await self.store.touch(mindmap)

        await self.activity.record(requester_id, "node_deleted", node_id, {"removed": len(node_ids)})
        return len(node_ids)

    # Connections

    async def create_connection(self, map_id: int, requester_id: int, draft: ConnectionCreate) -> int:
        async with self._transaction():
            mindmap = await self._require_edit(map_id, requester_id)

            if draft.from_node_id == draft.to_node_id:
                raise InvalidInput("A connection needs two different nodes")
            for node_id in (draft.from_node_id, draft.to_node_id):
                endpoint = await self.store.get_node(node_id)
                if endpoint is None or endpoint.map_id != mindmap.id:
                    raise InvalidInput("Both connection endpoints must belong to the mindmap")

            connection = await self.store.add_connection(draft.from_node_id, draft.to_node_id, draft.label)
            await self.store.touch(mindmap)
            connection_id = connection.id

        await self.activity.record(requester_id, "connection_created", connection_id, {"map_id": map_id})
        return connection_id

    async def delete_connection(self, connection_id: int, requester_id: int) -> None:
        async with self._transaction():
            connection = await self.store.get_connection(connection_id)
            if connection is None:
                raise NotFound("Connection not found")

            endpoint = await self._load_node(connection.from_node_id)
            mindmap = await self._require_edit(endpoint.map_id, requester_id)

            await self.store.delete_connection(connection)
            await self.store.touch(mindmap)

        await self.activity.record(requester_id, "connection_deleted", connection_id)

    # Collaborators

    async def invite_collaborator(self, map_id: int, requester_id: int, user_id: int,
                                  permission: str = "view") -> int:
        if permission not in PERMISSIONS:
            raise InvalidInput("Permission must be one of: view, edit, admin")

        async with self._transaction():
            mindmap = await self._load_mindmap(map_id)
            if not await self._can_manage_collaborators(mindmap, requester_id):
                raise AccessDenied("Only the owner or an admin can manage collaborators")

            target = await self.store.get_user(user_id)
            if target is None or not target.is_active:
                raise NotFound("User not found")
            if self._is_owner(mindmap, user_id):
                raise InvalidInput("The owner cannot be added as a collaborator")

            grant = await self.store.get_collaborator(map_id, user_id)
            if grant is None:
                grant = await self.store.add_collaborator(map_id, user_id, permission, invited_by=requester_id)
            else:
                grant.permission = permission
                await self.db.flush()
            grant_id = grant.id

        await self.activity.record(
            requester_id, "collaborator_invited", map_id, {"user_id": user_id, "permission": permission}
        )
        return grant_id

    async def respond_to_invitation(self, map_id: int, requester_id: int, accept: bool = True) -> None:
        async with self._transaction():
            grant = await self.store.get_collaborator(map_id, requester_id)
            if grant is None:
                raise NotFound("Invitation not found")

            if accept:
                grant.status = "accepted"
                await self.db.flush()
            else:
                await self.store.delete_collaborator(grant)

        action = "collaborator_accepted" if accept else "collaborator_declined"
        await self.activity.record(requester_id, action, map_id)

    async def remove_collaborator(self, map_id: int, requester_id: int, user_id: int) -> None:
        async with self._transaction():
            mindmap = await self._load_mindmap(map_id)
            if requester_id != user_id and not await self._can_manage_collaborators(mindmap, requester_id):
                raise AccessDenied("Only the owner or an admin can manage collaborators")

            grant = await self.store.get_collaborator(map_id, user_id)
            if grant is None:
                raise NotFound("Collaborator not found")

            await self.store.delete_collaborator(grant)

        await self.activity.record(requester_id, "collaborator_removed", map_id, {"user_id": user_id})

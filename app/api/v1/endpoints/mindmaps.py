from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.exceptions import InvalidInput
from app.core.security import get_current_active_user
from app.models.user import User
from app.schemas.common import ApiResponse, parse_payload
from app.schemas.collaborator import CollaboratorInvite, InvitationReply
from app.schemas.mindmap import MindMapCreate, MindMapDuplicate, MindMapArchive, MindMapFilters
from app.schemas.node import NodeCreate, ConnectionCreate
from app.services.activity_log import ActivityLog
from app.services.export import EXPORT_MEDIA_TYPES
from app.services.mindmap_service import MindMapService

router = APIRouter()


def get_mindmap_service(db: AsyncSession = Depends(get_db)) -> MindMapService:
    return MindMapService(db, ActivityLog(db))


def envelope(message: str, data: Any = None, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(ApiResponse(success=status_code < 400, message=message, data=data)),
    )


def require(value, message: str):
    if value is None:
        raise InvalidInput(message)
    return value


@router.post("/")
async def post_action(
    action: str = Query(..., description="create, duplicate, create-node, create-connection, invite"),
    map_id: Optional[int] = Query(None),
    body: Optional[Dict[str, Any]] = Body(None),
    current_user: User = Depends(get_current_active_user),
    service: MindMapService = Depends(get_mindmap_service)
):
    """Create maps, nodes, connections and collaborator grants"""
    if action == "create":
        draft = parse_payload(MindMapCreate, body)
        new_id = await service.create_mindmap(current_user.id, draft)
        return envelope("Mindmap created successfully", {"map_id": new_id})

    if action == "duplicate":
        map_id = require(map_id, "Map ID and title are required")
        draft = parse_payload(MindMapDuplicate, body)
        new_id = await service.duplicate_mindmap(map_id, current_user.id, draft.title, draft.copy_viewport)
        return envelope("Mindmap duplicated successfully", {"map_id": new_id})

    if action == "create-node":
        map_id = require(map_id, "Missing required node data")
        draft = parse_payload(NodeCreate, body)
        node_id = await service.create_node(map_id, current_user.id, draft)
        return envelope("Node created successfully", {"node_id": node_id})

    if action == "create-connection":
        map_id = require(map_id, "Map ID is required")
        draft = parse_payload(ConnectionCreate, body)
        connection_id = await service.create_connection(map_id, current_user.id, draft)
        return envelope("Connection created successfully", {"connection_id": connection_id})

    if action == "invite":
        map_id = require(map_id, "Map ID is required")
        invite = parse_payload(CollaboratorInvite, body)
        grant_id = await service.invite_collaborator(map_id, current_user.id, invite.user_id, invite.permission)
        return envelope("Collaborator invited successfully", {"collaborator_id": grant_id})

    raise InvalidInput("Invalid action")


@router.get("/")
async def get_action(
    action: str = Query(..., description="get, list, export"),
    map_id: Optional[int] = Query(None),
    category_id: Optional[int] = Query(None),
    archived: bool = Query(False),
    search: Optional[str] = Query(None, description="Search text in title and description"),
    export_format: str = Query("json", alias="format", description="Export format: json or xml"),
    current_user: User = Depends(get_current_active_user),
    service: MindMapService = Depends(get_mindmap_service)
):
    """Read a map, list accessible maps or export a map"""
    if action == "get":
        map_id = require(map_id, "Map ID is required")
        mindmap = await service.get_mindmap(map_id, current_user.id)
        return envelope("Mindmap retrieved successfully", mindmap)

    if action == "list":
        filters = MindMapFilters(category_id=category_id, is_archived=archived, search=search or None)
        mindmaps = await service.list_mindmaps(current_user.id, filters)
        return envelope("Mindmaps retrieved successfully", mindmaps)

    if action == "export":
        map_id = require(map_id, "Map ID is required")
        content = await service.export_mindmap(map_id, current_user.id, export_format)
        return Response(
            content=content,
            media_type=EXPORT_MEDIA_TYPES[export_format],
            headers={"Content-Disposition": f'attachment; filename="mindmap_{map_id}.{export_format}"'}
        )

    raise InvalidInput("Invalid action")


@router.put("/")
async def put_action(
    action: str = Query(..., description="update, update-node, archive, respond-invite"),
    map_id: Optional[int] = Query(None),
    node_id: Optional[int] = Query(None),
    body: Optional[Dict[str, Any]] = Body(None),
    current_user: User = Depends(get_current_active_user),
    service: MindMapService = Depends(get_mindmap_service)
):
    """Patch maps and nodes, archive maps, answer invitations"""
    if action == "update":
        if map_id is None or not body:
            raise InvalidInput("Map ID and data are required")
        await service.update_mindmap(map_id, current_user.id, body)
        return envelope("Mindmap updated successfully")

    if action == "update-node":
        if node_id is None or not body:
            raise InvalidInput("Node ID and data are required")
        await service.update_node(node_id, current_user.id, body)
        return envelope("Node updated successfully")

    if action == "archive":
        map_id = require(map_id, "Map ID is required")
        archive = parse_payload(MindMapArchive, body).archive
        await service.archive_mindmap(map_id, current_user.id, archive)
        message = "Mindmap archived successfully" if archive else "Mindmap unarchived successfully"
        return envelope(message)

    if action == "respond-invite":
        map_id = require(map_id, "Map ID is required")
        reply = parse_payload(InvitationReply, body)
        await service.respond_to_invitation(map_id, current_user.id, reply.accept)
        message = "Invitation accepted" if reply.accept else "Invitation declined"
        return envelope(message)

    raise InvalidInput("Invalid action")


@router.delete("/")
async def delete_action(
    action: str = Query(..., description="delete, delete-node, delete-connection, remove-collaborator"),
    map_id: Optional[int] = Query(None),
    node_id: Optional[int] = Query(None),
    connection_id: Optional[int] = Query(None),
    user_id: Optional[int] = Query(None),
    current_user: User = Depends(get_current_active_user),
    service: MindMapService = Depends(get_mindmap_service)
):
    """Delete maps, nodes, connections and collaborator grants"""
    if action == "delete":
        map_id = require(map_id, "Map ID is required")
        await service.delete_mindmap(map_id, current_user.id)
        return envelope("Mindmap deleted successfully")

    if action == "delete-node":
        node_id = require(node_id, "Node ID is required")
        removed = await service.delete_node(node_id, current_user.id)
        return envelope("Node deleted successfully", {"removed": removed})

    if action == "delete-connection":
        connection_id = require(connection_id, "Connection ID is required")
        await service.delete_connection(connection_id, current_user.id)
        return envelope("Connection deleted successfully")

    if action == "remove-collaborator":
        if map_id is None or user_id is None:
            raise InvalidInput("Map ID and user ID are required")
        await service.remove_collaborator(map_id, current_user.id, user_id)
        return envelope("Collaborator removed successfully")

    raise InvalidInput("Invalid action")

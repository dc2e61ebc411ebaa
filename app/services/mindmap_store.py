from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy import select, update, delete, insert, func, or_, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased, selectinload

from app.core.database import utcnow
from app.models.user import User
from app.models.category import Category
from app.models.mindmap import MindMap
from app.models.node import Node
from app.models.tag import Tag
from app.models.node_tag import node_tags
from app.models.connection import Connection
from app.models.collaborator import Collaborator

# Node columns carried over verbatim when a map is duplicated
NODE_COPY_COLUMNS = [
    column.key for column in Node.__table__.columns
    if column.key not in ("id", "map_id", "parent_id", "created_at", "updated_at")
]


def like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class MindMapStore:
    """Persistence and queries for maps, nodes, connections, tags and collaborators.

    Methods only flush. The caller owns the transaction and commits once per
    logical operation, so multi-row writes become visible together.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # Users and categories

    async def get_user(self, user_id: int) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_category(self, category_id: int) -> Optional[Category]:
        result = await self.db.execute(select(Category).where(Category.id == category_id))
        return result.scalar_one_or_none()

    async def count_active_mindmaps(self, owner_id: int) -> int:
        result = await self.db.execute(
            select(func.count(MindMap.id)).where(
                and_(MindMap.owner_id == owner_id, MindMap.is_archived == False)  # noqa: E712
            )
        )
        return result.scalar_one()

    # Mind maps

    async def add_mindmap(self, owner_id: int, **fields) -> MindMap:
        mindmap = MindMap(owner_id=owner_id, **fields)
        self.db.add(mindmap)
        await self.db.flush()
        return mindmap

    async def get_mindmap(self, map_id: int) -> Optional[MindMap]:
        result = await self.db.execute(
            select(MindMap)
            .where(MindMap.id == map_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_mindmap_with_meta(self, map_id: int):
        """Return (map, owner username, category name, category color) or None"""
        result = await self.db.execute(
            select(MindMap, User.username, Category.name, Category.color)
            .outerjoin(User, User.id == MindMap.owner_id)
            .outerjoin(Category, Category.id == MindMap.category_id)
            .where(MindMap.id == map_id)
            .execution_options(populate_existing=True)
        )
        return result.one_or_none()

    async def list_mindmaps(
        self,
        user_id: int,
        category_id: Optional[int] = None,
        is_archived: Optional[bool] = None,
        search: Optional[str] = None
    ):
        """Maps owned by the user or shared with them through an accepted grant.

        Rows are (map, collaborator permission, owner username, category name,
        category color, node count), most recently updated first.
        """
        node_count = (
            select(func.count(Node.id))
            .where(Node.map_id == MindMap.id)
            .correlate(MindMap)
            .scalar_subquery()
        )
        query = (
            select(
                MindMap,
                Collaborator.permission,
                User.username,
                Category.name,
                Category.color,
                node_count.label("node_count"),
            )
            .outerjoin(
                Collaborator,
                and_(
                    Collaborator.map_id == MindMap.id,
                    Collaborator.user_id == user_id,
                    Collaborator.status == "accepted",
                )
            )
            .outerjoin(User, User.id == MindMap.owner_id)
            .outerjoin(Category, Category.id == MindMap.category_id)
            .where(or_(MindMap.owner_id == user_id, Collaborator.user_id == user_id))
        )

        if category_id is not None:
            query = query.where(MindMap.category_id == category_id)

        if is_archived is not None:
            query = query.where(MindMap.is_archived == is_archived)

        if search:
            pattern = like_pattern(search)
            query = query.where(
                or_(
                    MindMap.title.ilike(pattern, escape="\\"),
                    MindMap.description.ilike(pattern, escape="\\"),
                )
            )

        query = query.order_by(MindMap.updated_at.desc(), MindMap.id.desc())
        result = await self.db.execute(query.execution_options(populate_existing=True))
        return result.all()

    async def update_mindmap(self, mindmap: MindMap, fields: dict, bump_version: bool = True) -> MindMap:
        for field, value in fields.items():
            setattr(mindmap, field, value)
        mindmap.updated_at = utcnow()
        if bump_version:
            mindmap.version = mindmap.version + 1
        await self.db.flush()
        return mindmap

    async def set_archived(self, mindmap: MindMap, archived: bool) -> None:
        mindmap.is_archived = archived
        await self.db.flush()

    async def touch_last_accessed(self, mindmap: MindMap) -> None:
        mindmap.last_accessed = utcnow()
        await self.db.flush()

    async def touch(self, mindmap: MindMap) -> None:
        """Refresh updated_at without versioning the map"""
        mindmap.updated_at = utcnow()
        await self.db.flush()

    async def delete_mindmap(self, map_id: int) -> None:
        """Delete a map together with its nodes, their links and its grants"""
        node_ids = select(Node.id).where(Node.map_id == map_id)

        await self.db.execute(delete(node_tags).where(node_tags.c.node_id.in_(node_ids)))
        await self.db.execute(
            delete(Connection)
            .where(or_(Connection.from_node_id.in_(node_ids), Connection.to_node_id.in_(node_ids)))
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            update(Node)
            .where(Node.map_id == map_id)
            .values(parent_id=None)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            delete(Node).where(Node.map_id == map_id).execution_options(synchronize_session=False)
        )
        await self.db.execute(
            delete(Collaborator)
            .where(Collaborator.map_id == map_id)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            delete(MindMap).where(MindMap.id == map_id).execution_options(synchronize_session=False)
        )

    # Nodes

    async def add_node(self, map_id: int, **fields) -> Node:
        node = Node(map_id=map_id, **fields)
        self.db.add(node)
        await self.db.flush()
        return node

    async def get_node(self, node_id: int) -> Optional[Node]:
        result = await self.db.execute(
            select(Node).where(Node.id == node_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_nodes(self, map_id: int) -> List[Node]:
        """All nodes of a map with their tags resolved"""
        result = await self.db.execute(
            select(Node)
            .options(selectinload(Node.tags))
            .where(Node.map_id == map_id)
            .order_by(Node.order_index, Node.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def update_node(self, node: Node, fields: dict) -> Node:
        for field, value in fields.items():
            setattr(node, field, value)
        node.updated_at = utcnow()
        await self.db.flush()
        return node

    async def get_descendant_ids(self, node_id: int) -> Set[int]:
        descendants: Set[int] = set()
        frontier = [node_id]
        while frontier:
            result = await self.db.execute(select(Node.id).where(Node.parent_id.in_(frontier)))
            frontier = [child for child in result.scalars().all() if child not in descendants]
            descendants.update(frontier)
        return descendants

    async def delete_nodes(self, node_ids: Iterable[int]) -> None:
        node_ids = list(node_ids)
        if not node_ids:
            return

        await self.db.execute(delete(node_tags).where(node_tags.c.node_id.in_(node_ids)))
        await self.db.execute(
            delete(Connection)
            .where(or_(Connection.from_node_id.in_(node_ids), Connection.to_node_id.in_(node_ids)))
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            update(Node)
            .where(Node.id.in_(node_ids))
            .values(parent_id=None)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            delete(Node).where(Node.id.in_(node_ids)).execution_options(synchronize_session=False)
        )

    # Tags

    async def _find_tag(self, name: str) -> Optional[Tag]:
        result = await self.db.execute(select(Tag).where(Tag.name == name))
        return result.scalar_one_or_none()

    async def get_or_create_tag(self, name: str) -> Tag:
        tag = await self._find_tag(name)
        if tag:
            return tag

        # Another request may insert the same name between the lookup and the flush
        try:
            async with self.db.begin_nested():
                tag = Tag(name=name)
                self.db.add(tag)
        except IntegrityError:
            tag = await self._find_tag(name)

        return tag

    async def replace_node_tags(self, node_id: int, names: List[str]) -> None:
        """Drop every tag link of the node, then link the given names"""
        await self.db.execute(delete(node_tags).where(node_tags.c.node_id == node_id))

        tag_ids = []
        for name in names:
            tag = await self.get_or_create_tag(name)
            if tag.id not in tag_ids:
                tag_ids.append(tag.id)

        if tag_ids:
            await self.db.execute(
                insert(node_tags),
                [{"node_id": node_id, "tag_id": tag_id} for tag_id in tag_ids]
            )

    # Connections

    async def add_connection(self, from_node_id: int, to_node_id: int, label: Optional[str] = None) -> Connection:
        connection = Connection(from_node_id=from_node_id, to_node_id=to_node_id, label=label)
        self.db.add(connection)
        await self.db.flush()
        return connection

    async def get_connection(self, connection_id: int) -> Optional[Connection]:
        result = await self.db.execute(
            select(Connection)
            .where(Connection.id == connection_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_connections(self, map_id: int) -> List[Connection]:
        """Connections whose two endpoints both belong to the map"""
        from_node = aliased(Node)
        to_node = aliased(Node)
        result = await self.db.execute(
            select(Connection)
            .join(from_node, Connection.from_node_id == from_node.id)
            .join(to_node, Connection.to_node_id == to_node.id)
            .where(and_(from_node.map_id == map_id, to_node.map_id == map_id))
            .order_by(Connection.id)
        )
        return list(result.scalars().all())

    async def delete_connection(self, connection: Connection) -> None:
        await self.db.delete(connection)
        await self.db.flush()

    # Collaborators

    async def get_collaborator(self, map_id: int, user_id: int) -> Optional[Collaborator]:
        result = await self.db.execute(
            select(Collaborator)
            .where(and_(Collaborator.map_id == map_id, Collaborator.user_id == user_id))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_accepted_collaborators(self, map_id: int):
        """Rows of (grant, username, email) for accepted grants"""
        result = await self.db.execute(
            select(Collaborator, User.username, User.email)
            .join(User, User.id == Collaborator.user_id)
            .where(and_(Collaborator.map_id == map_id, Collaborator.status == "accepted"))
            .order_by(Collaborator.id)
        )
        return result.all()

    async def add_collaborator(
        self,
        map_id: int,
        user_id: int,
        permission: str,
        invited_by: Optional[int] = None,
        status: str = "pending"
    ) -> Collaborator:
        grant = Collaborator(
            map_id=map_id,
            user_id=user_id,
            permission=permission,
            status=status,
            invited_by=invited_by
        )
        self.db.add(grant)
        await self.db.flush()
        return grant

    async def delete_collaborator(self, grant: Collaborator) -> None:
        await self.db.delete(grant)
        await self.db.flush()

    # Duplication

    async def copy_nodes(self, source_map_id: int, target_map_id: int) -> Dict[int, int]:
        """Copy every node of one map into another and return old id -> new id.

        Nodes are inserted with no parent first, then parent references are
        rewritten through the id map, so insertion order never matters and no
        copy can point outside the target map. Tag links and connections are
        rewritten through the same map.
        """
        result = await self.db.execute(
            select(Node).where(Node.map_id == source_map_id).order_by(Node.id)
        )
        originals = list(result.scalars().all())
        if not originals:
            return {}

        copies: Dict[int, Node] = {}
        for node in originals:
            clone = Node(
                map_id=target_map_id,
                parent_id=None,
                **{column: getattr(node, column) for column in NODE_COPY_COLUMNS}
            )
            self.db.add(clone)
            copies[node.id] = clone
        await self.db.flush()

        id_map = {old_id: clone.id for old_id, clone in copies.items()}

        for node in originals:
            if node.parent_id is not None and node.parent_id in id_map:
                copies[node.id].parent_id = id_map[node.parent_id]
        await self.db.flush()

        result = await self.db.execute(
            select(node_tags.c.node_id, node_tags.c.tag_id).where(node_tags.c.node_id.in_(list(id_map)))
        )
        tag_links = [{"node_id": id_map[node_id], "tag_id": tag_id} for node_id, tag_id in result.all()]
        if tag_links:
            await self.db.execute(insert(node_tags), tag_links)

        for connection in await self.get_connections(source_map_id):
            self.db.add(Connection(
                from_node_id=id_map[connection.from_node_id],
                to_node_id=id_map[connection.to_node_id],
                label=connection.label
            ))
        await self.db.flush()

        return id_map

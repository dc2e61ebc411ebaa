import pytest
from sqlalchemy import func, select

from app.core.config import Settings
from app.core.exceptions import AccessDenied, InvalidInput, LimitExceeded, NotFound
from app.models.activity_log import ActivityLogEntry
from app.models.category import Category
from app.models.collaborator import Collaborator
from app.models.connection import Connection
from app.models.mindmap import MindMap
from app.models.node import Node
from app.models.node_tag import node_tags
from app.schemas.mindmap import MindMapCreate, MindMapFilters
from app.schemas.node import ConnectionCreate, NodeCreate
from app.services.mindmap_service import MindMapService


async def actions_for(db, target_id=None):
    query = select(ActivityLogEntry.action).order_by(ActivityLogEntry.id)
    if target_id is not None:
        query = query.where(ActivityLogEntry.target_id == target_id)
    result = await db.execute(query)
    return list(result.scalars().all())


async def count_rows(db, model_column, *criteria):
    result = await db.execute(select(func.count(model_column)).where(*criteria))
    return result.scalar_one()


async def add_node(service, map_id, user_id, text, parent_id=None, **fields):
    draft = NodeCreate(node_text=text, position_x=10, position_y=20, parent_id=parent_id, **fields)
    return await service.create_node(map_id, user_id, draft)


async def accepted_collaborator(service, map_id, owner_id, user_id, permission):
    await service.invite_collaborator(map_id, owner_id, user_id, permission)
    await service.respond_to_invitation(map_id, user_id, accept=True)


# Creation and subscription caps

async def test_create_mindmap_with_central_node(service, make_user, db):
    owner = await make_user("alice")

    map_id = await service.create_mindmap(owner, MindMapCreate(title="Plans", central_node="Goals"))

    detail = await service.get_mindmap(map_id, owner)
    assert detail.title == "Plans"
    assert detail.version == 1
    assert detail.owner_username == "alice"
    assert len(detail.nodes) == 1
    central = detail.nodes[0]
    assert central.node_text == "Goals"
    assert central.node_type == "central"
    assert (central.position_x, central.position_y) == (1000, 750)
    assert await actions_for(db, map_id) == ["mindmap_created", "mindmap_viewed"]


async def test_create_mindmap_without_central_node(service, make_user):
    owner = await make_user("alice")

    map_id = await service.create_mindmap(owner, MindMapCreate(title="Empty", central_node="   "))

    detail = await service.get_mindmap(map_id, owner)
    assert detail.nodes == []


async def test_create_mindmap_rejects_unknown_category(service, make_user):
    owner = await make_user("alice")

    with pytest.raises(InvalidInput):
        await service.create_mindmap(owner, MindMapCreate(title="Plans", category_id=999))


async def test_free_tier_cap_counts_only_active_maps(service, make_user):
    owner = await make_user("alice")
    map_ids = [await service.create_mindmap(owner, MindMapCreate(title=f"Map {i}")) for i in range(3)]

    with pytest.raises(LimitExceeded) as excinfo:
        await service.create_mindmap(owner, MindMapCreate(title="One too many"))
    assert "free" in excinfo.value.message

    await service.archive_mindmap(map_ids[0], owner)
    assert await service.create_mindmap(owner, MindMapCreate(title="Fits again"))


async def test_cap_follows_configured_tier_limits(db, make_user):
    owner = await make_user("bob", subscription_type="enterprise")
    service = MindMapService(db, config=Settings(SECRET_KEY="k", MAX_MINDMAPS_FREE=1))

    for i in range(5):
        await service.create_mindmap(owner, MindMapCreate(title=f"Map {i}"))

    free_user = await make_user("carol")
    await service.create_mindmap(free_user, MindMapCreate(title="Only one"))
    with pytest.raises(LimitExceeded):
        await service.create_mindmap(free_user, MindMapCreate(title="Second"))


# Reading and access control

async def test_get_missing_map_is_not_found(service, make_user):
    user = await make_user("alice")

    with pytest.raises(NotFound):
        await service.get_mindmap(12345, user)


async def test_private_map_denied_to_stranger(service, make_user, db):
    owner = await make_user("alice")
    stranger = await make_user("mallory")
    map_id = await service.create_mindmap(owner, MindMapCreate(title="Secret"))

    with pytest.raises(AccessDenied):
        await service.get_mindmap(map_id, stranger)

    assert "mindmap_viewed" not in await actions_for(db, map_id)


async def test_public_map_readable_and_logged(service, make_user, db):
    owner = await make_user("alice")
    reader = await make_user("bob")
    map_id = await service.create_mindmap(owner, MindMapCreate(title="Open", is_public=True))

    detail = await service.get_mindmap(map_id, reader)

    assert detail.id == map_id
    result = await db.execute(
        select(ActivityLogEntry).where(ActivityLogEntry.action == "mindmap_viewed")
    )
    entry = result.scalar_one()
    assert (entry.user_id, entry.target_id) == (reader, map_id)


async def test_get_mindmap_sets_last_accessed(service, make_user):
    owner = await make_user("alice")
    map_id = await service.create_mindmap(owner, MindMapCreate(title="Plans"))

    await service.get_mindmap(map_id, owner)
    detail = await service.get_mindmap(map_id, owner)

    assert detail.last_accessed is not None


async def test_pending_invitation_grants_nothing(service, make_user):
    owner = await make_user("alice")
    guest = await make_user("bob")
    map_id = await service.create_mindmap(owner, MindMapCreate(title="Plans"))
    await service.invite_collaborator(map_id, owner, guest, "edit")

    with pytest.raises(AccessDenied):
        await service.get_mindmap(map_id, guest)
    with pytest.raises(AccessDenied):
        await service.update_mindmap(map_id, guest, {"title": "Mine"})

    await service.respond_to_invitation(map_id, guest, accept=True)
    await service.update_mindmap(map_id, guest, {"title": "Ours"})
    assert (await service.get_mindmap(map_id, owner)).title == "Ours"


async def test_view_collaborator_cannot_edit(service, make_user):
    owner = await make_user("alice")
    viewer = await make_user("bob")
    map_id = await service.create_mindmap(owner, MindMapCreate(title="Plans", central_node="Root"))
    await accepted_collaborator(service, map_id, owner, viewer, "view")

    detail = await service.get_mindmap(map_id, viewer)
    assert [c.username for c in detail.collaborators] == ["bob"]

    with pytest.raises(AccessDenied):
        await service.update_mindmap(map_id, viewer, {"title": "Nope"})
    with pytest.raises(AccessDenied):
        await service.update_node(detail.nodes[0].id, viewer, {"node_text": "Nope"})
    with pytest.raises(AccessDenied):
        await service.delete_node(detail.nodes[0].id, viewer)


async def test_node_operations_check_map_access(service, make_user):
    owner = await make_user("alice")
    stranger = await make_user("mallory")
    map_id = await service.create_mindmap(owner, MindMapCreate(title="Plans", central_node="Root"))
    node_id = (await service.get_mindmap(map_id, owner)).nodes[0].id

    with pytest.raises(AccessDenied):
        await add_node(service, map_id, stranger, "Intruder")
    with pytest.raises(AccessDenied):
        await service.update_node(node_id, stranger, {"node_text": "Hacked"})
    with pytest.raises(NotFound):
        await service.update_node(99999, owner, {"node_text": "Ghost"})

    assert (await service.get_mindmap(map_id, owner)).nodes[0].node_text == "Root"


# Updates and versioning

async def test_update_bumps_version_once(service, make_user, db):
    owner = await make_user("alice")
    map_id = await service.create_mindmap(owner, MindMapCreate(title="Plans"))

    await service.update_mindmap(map_id, owner, {"title": "Better plans", "zoom_level": 1.5})

    detail = await service.get_mindmap(map_id, owner)
    assert detail.title == "Better plans"
    assert detail.zoom_level == 1.5
    assert detail.version == 2
    assert "mindmap_updated" in await actions_for(db, map_id)


@pytest.mark.parametrize("patch", [{}, {"owner_id": 42, "version": 10, "bogus": True}])
async def test_update_without_recognized_fields_is_rejected(service, make_user, patch):
    owner = await make_user("alice")
    map_id = await service.create_mindmap(owner, MindMapCreate(title="Plans"))

    with pytest.raises(InvalidInput) as excinfo:
        await service.update_mindmap(map_id, owner, patch)
    assert excinfo.value.message == "No valid fields to update"

    detail = await service.get_mindmap(map_id, owner)
    assert detail.version == 1
    assert detail.owner_id == owner


async def test_update_checks_access_before_fields(service, make_user):
    owner = await make_user("alice")
    stranger = await make_user("mallory")
    map_id = await service.create_mindmap(owner, MindMapCreate(title="Plans"))

    with pytest.raises(AccessDenied):
        await service.update_mindmap(map_id, stranger, {})


async def test_update_can_clear_category(service, make_user, db):
    owner = await make_user("alice")
    category = Category(name="Work", color="#ff0000")
    db.add(category)
    await db.commit()
    map_id = await service.create_mindmap(owner, MindMapCreate(title="Plans", category_id=category.id))
    assert (await service.get_mindmap(map_id, owner)).category_name == "Work"

    await service.update_mindmap(map_id, owner, {"category_id": None})

    assert (await service.get_mindmap(map_id, owner)).category_id is None


async def test_node_changes_do_not_version_the_map(service, make_user):
    owner = await make_user("alice")
    map_id = await service.create_mindmap(owner, MindMapCreate(title="Plans", central_node="Root"))
    before = await service.get_mindmap(map_id, owner)

    await add_node(service, map_id, owner, "Child", parent_id=before.nodes[0].id)

    after = await service.get_mindmap(map_id, owner)
    assert after.version == before.version
    assert len(after.nodes) == 2


async def test_archive_is_idempotent_and_requires_edit(service, make_user, db):
    owner = await make_user("alice")
    viewer = await make_user("bob")
    map_id = await service.create_mindmap(owner, MindMapCreate(title="Plans"))
    await accepted_collaborator(service, map_id, owner, viewer, "view")

    await service.archive_mindmap(map_id, owner)
    await service.archive_mindmap(map_id, owner)
    with pytest.raises(AccessDenied):
        await service.archive_mindmap(map_id, viewer, archive=False)

    archived = await service.list_mindmaps(owner, MindMapFilters(is_archived=True))
    assert [summary.id for summary in archived] == [map_id]

    await service.archive_mindmap(map_id, owner, archive=False)

    [summary] = await service.list_mindmaps(owner)
    assert summary.is_archived is False
    assert summary.version == 1
    assert await actions_for(db, map_id) == [
        "mindmap_created",
        "collaborator_invited",
        "collaborator_accepted",
        "mindmap_archived",
        "mindmap_archived",
        "mindmap_unarchived",
    ]


# Deletion

async def test_delete_requires_owner(service, make_user):
    owner = await make_user("alice")
    admin = await make_user("bob")
    map_id = await service.create_mindmap(owner, MindMapCreate(title="Plans"))
    await accepted_collaborator(service, map_id, owner, admin, "admin")

    with pytest.raises(AccessDenied):
        await service.delete_mindmap(map_id, admin)


async def test_delete_removes_everything_belonging_to_the_map(service, make_user, db):
    owner = await make_user("alice")
    friends = [await make_user("bob"), await make_user("carol")]
    map_id = await service.create_mindmap(owner, MindMapCreate(title="Plans", central_node="Root"))
    root_id = (await service.get_mindmap(map_id, owner)).nodes[0].id
    node_ids = [root_id]
    for i in range(4):
        node_ids.append(await add_node(service, map_id, owner, f"Node {i}", parent_id=root_id, tags=["x"]))
    await service.create_connection(map_id, owner, ConnectionCreate(from_node_id=node_ids[1], to_node_id=node_ids[2]))
    for friend in friends:
        await accepted_collaborator(service, map_id, owner, friend, "edit")

    await service.delete_mindmap(map_id, owner)

    with pytest.raises(NotFound):
        await service.get_mindmap(map_id, owner)
    assert await count_rows(db, MindMap.id, MindMap.id == map_id) == 0
    assert await count_rows(db, Node.id, Node.map_id == map_id) == 0
    assert await count_rows(db, Collaborator.id, Collaborator.map_id == map_id) == 0
    assert await count_rows(db, Connection.id, Connection.from_node_id.in_(node_ids)) == 0
    assert await count_rows(db, node_tags.c.node_id, node_tags.c.node_id.in_(node_ids)) == 0
    assert "mindmap_deleted" in await actions_for(db, map_id)


async def test_delete_node_removes_subtree_and_links(service, make_user):
    owner = await make_user("alice")
    map_id = await service.create_mindmap(owner, MindMapCreate(title="Plans", central_node="Root"))
    root_id = (await service.get_mindmap(map_id, owner)).nodes[0].id
    branch = await add_node(service, map_id, owner, "Branch", parent_id=root_id)
    leaf = await add_node(service, map_id, owner, "Leaf", parent_id=branch)
    other = await add_node(service, map_id, owner, "Other", parent_id=root_id)
    await service.create_connection(map_id, owner, ConnectionCreate(from_node_id=leaf, to_node_id=other))

    removed = await service.delete_node(branch, owner)

    assert removed == 2
    detail = await service.get_mindmap(map_id, owner)
    assert sorted(node.node_text for node in detail.nodes) == ["Other", "Root"]
    assert detail.connections == []


# Nodes, tags and connections

async def test_node_defaults_and_parent_validation(service, make_user):
    owner = await make_user("alice")
    first = await service.create_mindmap(owner, MindMapCreate(title="First", central_node="Root"))
    second = await service.create_mindmap(owner, MindMapCreate(title="Second", central_node="Elsewhere"))
    foreign_root = (await service.get_mindmap(second, owner)).nodes[0].id

    node_id = await add_node(service, first, owner, "Plain")
    node = next(n for n in (await service.get_mindmap(first, owner)).nodes if n.id == node_id)
    assert node.color == "#007bff"
    assert node.node_type == "main"
    assert (node.width, node.height, node.font_size) == (150, 50, 14)

    with pytest.raises(InvalidInput):
        await add_node(service, first, owner, "Orphan", parent_id=foreign_root)


async def test_node_cannot_move_under_its_descendant(service, make_user):
    owner = await make_user("alice")
    map_id = await service.create_mindmap(owner, MindMapCreate(title="Plans", central_node="Root"))
    root_id = (await service.get_mindmap(map_id, owner)).nodes[0].id
    child = await add_node(service, map_id, owner, "Child", parent_id=root_id)
    grandchild = await add_node(service, map_id, owner, "Grandchild", parent_id=child)

    with pytest.raises(InvalidInput):
        await service.update_node(child, owner, {"parent_id": grandchild})
    with pytest.raises(InvalidInput):
        await service.update_node(child, owner, {"parent_id": child})


async def test_node_update_replaces_tags(service, make_user):
    owner = await make_user("alice")
    map_id = await service.create_mindmap(owner, MindMapCreate(title="Plans"))
    node_id = await add_node(service, map_id, owner, "Task", tags=["urgent", " urgent ", "", "home"])

    async def tags_of():
        detail = await service.get_mindmap(map_id, owner)
        return next(n for n in detail.nodes if n.id == node_id).tags

    assert sorted(await tags_of()) == ["home", "urgent"]

    await service.update_node(node_id, owner, {"tags": ["Work", "work"]})
    assert sorted(await tags_of()) == ["Work", "work"]

    await service.update_node(node_id, owner, {"tags": []})
    assert await tags_of() == []


async def test_node_update_ignores_unknown_fields(service, make_user):
    owner = await make_user("alice")
    map_id = await service.create_mindmap(owner, MindMapCreate(title="Plans"))
    node_id = await add_node(service, map_id, owner, "Task")

    with pytest.raises(InvalidInput):
        await service.update_node(node_id, owner, {"map_id": 7})

    await service.update_node(node_id, owner, {"node_text": "Done", "status": "completed", "map_id": 7})
    node = (await service.get_mindmap(map_id, owner)).nodes[0]
    assert (node.node_text, node.status, node.map_id) == ("Done", "completed", map_id)


async def test_connection_endpoints_must_share_the_map(service, make_user):
    owner = await make_user("alice")
    first = await service.create_mindmap(owner, MindMapCreate(title="First", central_node="A"))
    second = await service.create_mindmap(owner, MindMapCreate(title="Second", central_node="B"))
    a = (await service.get_mindmap(first, owner)).nodes[0].id
    b = (await service.get_mindmap(second, owner)).nodes[0].id

    with pytest.raises(InvalidInput):
        await service.create_connection(first, owner, ConnectionCreate(from_node_id=a, to_node_id=b))
    with pytest.raises(InvalidInput):
        await service.create_connection(first, owner, ConnectionCreate(from_node_id=a, to_node_id=a))

    c = await add_node(service, first, owner, "C", parent_id=a)
    connection_id = await service.create_connection(
        first, owner, ConnectionCreate(from_node_id=a, to_node_id=c, label="relates")
    )
    assert [conn.label for conn in (await service.get_mindmap(first, owner)).connections] == ["relates"]

    await service.delete_connection(connection_id, owner)
    assert (await service.get_mindmap(first, owner)).connections == []


# Listing

async def test_list_includes_owned_and_accepted_maps(service, make_user):
    alice = await make_user("alice")
    bob = await make_user("bob")
    own = await service.create_mindmap(bob, MindMapCreate(title="Bob's", central_node="Root"))
    shared = await service.create_mindmap(alice, MindMapCreate(title="Shared"))
    pending = await service.create_mindmap(alice, MindMapCreate(title="Pending"))
    await accepted_collaborator(service, shared, alice, bob, "edit")
    await service.invite_collaborator(pending, alice, bob, "view")

    summaries = await service.list_mindmaps(bob)

    by_id = {summary.id: summary for summary in summaries}
    assert set(by_id) == {own, shared}
    assert by_id[own].permission == "owner"
    assert by_id[own].node_count == 1
    assert by_id[shared].permission == "edit"
    assert by_id[shared].owner_username == "alice"


async def test_list_orders_by_last_update(service, make_user):
    owner = await make_user("alice")
    older = await service.create_mindmap(owner, MindMapCreate(title="Older"))
    newer = await service.create_mindmap(owner, MindMapCreate(title="Newer"))

    assert [s.id for s in await service.list_mindmaps(owner)] == [newer, older]

    await service.update_mindmap(older, owner, {"description": "touched"})
    assert [s.id for s in await service.list_mindmaps(owner)] == [older, newer]


async def test_list_filters(service, make_user):
    owner = await make_user("alice", subscription_type="premium")
    done = await service.create_mindmap(owner, MindMapCreate(title="100% done"))
    await service.create_mindmap(owner, MindMapCreate(title="1000 done"))
    archived = await service.create_mindmap(owner, MindMapCreate(title="Old", description="archived stuff"))
    await service.archive_mindmap(archived, owner)

    matches = await service.list_mindmaps(owner, MindMapFilters(search="0%"))
    assert [s.id for s in matches] == [done]

    only_archived = await service.list_mindmaps(owner, MindMapFilters(is_archived=True))
    assert [s.id for s in only_archived] == [archived]

    assert len(await service.list_mindmaps(owner, MindMapFilters(is_archived=False))) == 2
    assert len(await service.list_mindmaps(owner)) == 3


# Collaborators

async def test_invitation_decline_and_removal(service, make_user, db):
    owner = await make_user("alice")
    guest = await make_user("bob")
    map_id = await service.create_mindmap(owner, MindMapCreate(title="Plans"))

    with pytest.raises(InvalidInput):
        await service.invite_collaborator(map_id, owner, owner, "view")
    with pytest.raises(NotFound):
        await service.invite_collaborator(map_id, owner, 9999, "view")
    with pytest.raises(InvalidInput):
        await service.invite_collaborator(map_id, owner, guest, "superuser")

    await service.invite_collaborator(map_id, owner, guest, "view")
    await service.respond_to_invitation(map_id, guest, accept=False)
    assert await count_rows(db, Collaborator.id, Collaborator.map_id == map_id) == 0

    with pytest.raises(NotFound):
        await service.respond_to_invitation(map_id, guest, accept=True)

    await accepted_collaborator(service, map_id, owner, guest, "view")
    await service.remove_collaborator(map_id, guest, guest)
    with pytest.raises(AccessDenied):
        await service.get_mindmap(map_id, guest)


async def test_reinvite_updates_permission(service, make_user):
    owner = await make_user("alice")
    guest = await make_user("bob")
    map_id = await service.create_mindmap(owner, MindMapCreate(title="Plans"))

    first = await service.invite_collaborator(map_id, owner, guest, "view")
    await service.respond_to_invitation(map_id, guest)
    second = await service.invite_collaborator(map_id, owner, guest, "edit")

    assert first == second
    await service.update_mindmap(map_id, guest, {"title": "Edited by Bob"})


async def test_only_managers_change_collaborators(service, make_user):
    owner = await make_user("alice")
    editor = await make_user("bob")
    other = await make_user("carol")
    map_id = await service.create_mindmap(owner, MindMapCreate(title="Plans"))
    await accepted_collaborator(service, map_id, owner, editor, "edit")

    with pytest.raises(AccessDenied):
        await service.invite_collaborator(map_id, editor, other, "view")

    await accepted_collaborator(service, map_id, owner, other, "admin")
    await service.remove_collaborator(map_id, other, editor)
    with pytest.raises(AccessDenied):
        await service.get_mindmap(map_id, editor)

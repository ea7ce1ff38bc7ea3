"""Tests for the workflow directory tree."""

import uuid

import pytest

from clinicflow.services import directory_service
from clinicflow.services.directory_service import DESCENDANT_ERROR
from clinicflow.services.errors import NotFoundError


@pytest.fixture
def chain(db, test_org):
    """A -> B -> C (C deepest)."""
    a = directory_service.create_directory(db, test_org.id, "A")
    b = directory_service.create_directory(db, test_org.id, "B", parent_id=a.id)
    c = directory_service.create_directory(db, test_org.id, "C", parent_id=b.id)
    return a, b, c


# =============================================================================
# Create
# =============================================================================

def test_create_directory_under_missing_parent(db, test_org):
    with pytest.raises(NotFoundError):
        directory_service.create_directory(db, test_org.id, "Orphan", parent_id=uuid.uuid4())


def test_create_directory_requires_name(db, test_org):
    with pytest.raises(ValueError):
        directory_service.create_directory(db, test_org.id, "   ")


def test_parent_from_other_org_is_not_found(db, test_org, other_org):
    foreign = directory_service.create_directory(db, other_org.id, "Foreign")
    with pytest.raises(NotFoundError):
        directory_service.create_directory(db, test_org.id, "Mine", parent_id=foreign.id)


# =============================================================================
# Cycle Prevention
# =============================================================================

def test_descendants_are_transitive(db, test_org, chain):
    a, b, c = chain
    assert directory_service.get_descendant_ids(db, test_org.id, a.id) == {b.id, c.id}
    assert directory_service.get_descendant_ids(db, test_org.id, c.id) == set()


def test_move_into_own_descendant_is_rejected_without_mutation(db, test_org, chain):
    a, b, c = chain

    with pytest.raises(ValueError, match=DESCENDANT_ERROR):
        directory_service.update_directory(db, test_org.id, a.id, name="Renamed", parent_id=c.id)

    db.refresh(a)
    assert a.parent_id is None
    assert a.name == "A"


def test_move_into_self_is_rejected(db, test_org, chain):
    a, _, _ = chain
    with pytest.raises(ValueError, match=DESCENDANT_ERROR):
        directory_service.move_directory(db, test_org.id, a.id, a.id)


def test_move_to_unrelated_directory_and_back_to_root(db, test_org, chain):
    a, b, c = chain
    other = directory_service.create_directory(db, test_org.id, "Other")

    moved = directory_service.move_directory(db, test_org.id, b.id, other.id)
    assert moved.parent_id == other.id
    assert directory_service.get_descendant_ids(db, test_org.id, other.id) == {b.id, c.id}

    moved = directory_service.move_directory(db, test_org.id, b.id, None)
    assert moved.parent_id is None


def test_deep_chain_cycle_check(db, test_org):
    parent = None
    nodes = []
    for i in range(60):
        node = directory_service.create_directory(
            db, test_org.id, f"Level {i}", parent_id=parent.id if parent else None
        )
        nodes.append(node)
        parent = node

    with pytest.raises(ValueError):
        directory_service.move_directory(db, test_org.id, nodes[0].id, nodes[-1].id)


def test_update_without_parent_keeps_parent(db, test_org, chain):
    _, b, _ = chain
    parent_before = b.parent_id
    updated = directory_service.update_directory(db, test_org.id, b.id, color="#ff0000")
    assert updated.parent_id == parent_before
    assert updated.color == "#ff0000"


# =============================================================================
# Delete
# =============================================================================

def test_delete_reparents_children_and_moves_workflows_to_root(db, test_org, chain, make_workflow):
    a, b, c = chain
    workflow = make_workflow(directory_id=b.id)

    directory_service.delete_directory(db, test_org.id, b.id)

    db.refresh(c)
    db.refresh(workflow)
    assert c.parent_id == a.id
    assert workflow.directory_id is None
    assert directory_service.get_directory(db, test_org.id, b.id) is None


def test_delete_root_directory_promotes_children_to_root(db, test_org, chain):
    a, b, _ = chain
    directory_service.delete_directory(db, test_org.id, a.id)
    db.refresh(b)
    assert b.parent_id is None


# =============================================================================
# Tree
# =============================================================================

def test_directory_tree_nests_and_counts_workflows(db, test_org, chain, make_workflow):
    a, b, c = chain
    make_workflow(directory_id=c.id)
    make_workflow(directory_id=c.id)
    make_workflow(directory_id=a.id)

    tree = directory_service.get_directory_tree(db, test_org.id)

    assert [n["name"] for n in tree] == ["A"]
    root = tree[0]
    assert root["workflow_count"] == 1
    assert root["children"][0]["id"] == b.id
    assert root["children"][0]["children"][0]["workflow_count"] == 2


def test_move_workflow_between_directories(db, test_org, chain, make_workflow):
    a, _, _ = chain
    workflow = make_workflow()

    moved = directory_service.move_workflow_to_directory(db, test_org.id, workflow.id, a.id)
    assert moved.directory_id == a.id
    assert [w.id for w in directory_service.list_workflows_in_directory(db, test_org.id, a.id)] == [
        workflow.id
    ]

    directory_service.move_workflow_to_directory(db, test_org.id, workflow.id, None)
    assert directory_service.list_workflows_in_directory(db, test_org.id, a.id) == []


# =============================================================================
# API
# =============================================================================

@pytest.mark.asyncio
async def test_api_rejects_cycle_with_422(authed_client, db, test_org, chain):
    a, _, c = chain
    res = await authed_client.patch(
        f"/workflow-directories/{a.id}", json={"parent_id": str(c.id)}
    )
    assert res.status_code == 422
    assert res.json()["detail"] == DESCENDANT_ERROR


@pytest.mark.asyncio
async def test_api_patch_with_null_parent_moves_to_root(authed_client, db, test_org, chain):
    _, b, _ = chain
    res = await authed_client.patch(f"/workflow-directories/{b.id}", json={"parent_id": None})
    assert res.status_code == 200
    assert res.json()["parent_id"] is None


@pytest.mark.asyncio
async def test_api_tree_and_create(authed_client):
    res = await authed_client.post("/workflow-directories", json={"name": "Follow-ups"})
    assert res.status_code == 201
    parent_id = res.json()["id"]

    res = await authed_client.post(
        "/workflow-directories", json={"name": "Botox", "parent_id": parent_id}
    )
    assert res.status_code == 201

    tree = (await authed_client.get("/workflow-directories")).json()
    assert tree[0]["name"] == "Follow-ups"
    assert tree[0]["children"][0]["name"] == "Botox"

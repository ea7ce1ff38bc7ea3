"""Workflow directory service - the folder tree used to organize workflows."""

import logging
from collections import defaultdict, deque
from uuid import UUID

from sqlalchemy.orm import Session

from clinicflow.db.models import Workflow, WorkflowDirectory
from clinicflow.services.errors import NotFoundError

logger = logging.getLogger(__name__)

DESCENDANT_ERROR = "Cannot move directory into its own descendant"

# Sentinel distinguishing "parent_id not supplied" from "move to root"
_UNSET = object()


# =============================================================================
# Lookups
# =============================================================================

def get_directory(db: Session, org_id: UUID, directory_id: UUID) -> WorkflowDirectory | None:
    return (
        db.query(WorkflowDirectory)
        .filter(
            WorkflowDirectory.id == directory_id,
            WorkflowDirectory.organization_id == org_id,
        )
        .first()
    )


def _require_directory(db: Session, org_id: UUID, directory_id: UUID) -> WorkflowDirectory:
    directory = get_directory(db, org_id, directory_id)
    if not directory:
        raise NotFoundError("Directory", directory_id)
    return directory


def get_descendant_ids(db: Session, org_id: UUID, directory_id: UUID) -> set[UUID]:
    """
    Return every directory below directory_id (not including itself).

    Loads the org's (id, parent_id) pairs in one query and walks the
    children map breadth-first.
    """
    rows = (
        db.query(WorkflowDirectory.id, WorkflowDirectory.parent_id)
        .filter(WorkflowDirectory.organization_id == org_id)
        .all()
    )
    children: dict[UUID, list[UUID]] = defaultdict(list)
    for node_id, parent_id in rows:
        if parent_id is not None:
            children[parent_id].append(node_id)

    descendants: set[UUID] = set()
    queue = deque(children.get(directory_id, []))
    while queue:
        node_id = queue.popleft()
        if node_id in descendants:
            continue
        descendants.add(node_id)
        queue.extend(children.get(node_id, []))
    return descendants


def is_descendant_or_self(
    db: Session, org_id: UUID, directory_id: UUID, candidate_id: UUID
) -> bool:
    if candidate_id == directory_id:
        return True
    return candidate_id in get_descendant_ids(db, org_id, directory_id)


def _validate_new_parent(
    db: Session, org_id: UUID, directory: WorkflowDirectory, parent_id: UUID | None
) -> None:
    if parent_id is None:
        return
    _require_directory(db, org_id, parent_id)
    if is_descendant_or_self(db, org_id, directory.id, parent_id):
        raise ValueError(DESCENDANT_ERROR)


# =============================================================================
# Mutations
# =============================================================================

def create_directory(
    db: Session,
    org_id: UUID,
    name: str,
    parent_id: UUID | None = None,
    color: str | None = None,
    description: str | None = None,
) -> WorkflowDirectory:
    """Create a directory. A new node has no descendants, so no cycle check applies."""
    if not name or not name.strip():
        raise ValueError("Directory name is required")
    if parent_id is not None:
        _require_directory(db, org_id, parent_id)

    directory = WorkflowDirectory(
        organization_id=org_id,
        name=name.strip(),
        parent_id=parent_id,
        color=color,
        description=description,
    )
    db.add(directory)
    db.commit()
    db.refresh(directory)
    return directory


def update_directory(
    db: Session,
    org_id: UUID,
    directory_id: UUID,
    name: str | None = None,
    description: str | None = None,
    color: str | None = None,
    parent_id=_UNSET,
) -> WorkflowDirectory:
    """
    Patch a directory.

    A new parent_id is validated before anything is written: moving a
    directory under itself or one of its descendants raises ValueError and
    leaves the row untouched.
    """
    directory = _require_directory(db, org_id, directory_id)

    if parent_id is not _UNSET:
        _validate_new_parent(db, org_id, directory, parent_id)

    if name is not None:
        if not name.strip():
            raise ValueError("Directory name is required")
        directory.name = name.strip()
    if description is not None:
        directory.description = description
    if color is not None:
        directory.color = color
    if parent_id is not _UNSET:
        directory.parent_id = parent_id

    db.commit()
    db.refresh(directory)
    return directory


def move_directory(
    db: Session, org_id: UUID, directory_id: UUID, new_parent_id: UUID | None
) -> WorkflowDirectory:
    """Move a directory under new_parent_id, or to the root when None."""
    return update_directory(db, org_id, directory_id, parent_id=new_parent_id)


def delete_directory(db: Session, org_id: UUID, directory_id: UUID) -> None:
    """
    Delete a directory.

    Its workflows move to the root level and its child directories are
    re-attached to the deleted directory's parent.
    """
    directory = _require_directory(db, org_id, directory_id)
    new_parent_id = directory.parent_id

    moved_workflows = (
        db.query(Workflow)
        .filter(Workflow.organization_id == org_id, Workflow.directory_id == directory.id)
        .update({Workflow.directory_id: None}, synchronize_session="fetch")
    )
    moved_children = (
        db.query(WorkflowDirectory)
        .filter(
            WorkflowDirectory.organization_id == org_id,
            WorkflowDirectory.parent_id == directory.id,
        )
        .update({WorkflowDirectory.parent_id: new_parent_id}, synchronize_session="fetch")
    )
    db.delete(directory)
    db.commit()
    logger.info(
        "Deleted directory %s (workflows moved=%s, children reparented=%s)",
        directory_id,
        moved_workflows,
        moved_children,
    )


def move_workflow_to_directory(
    db: Session, org_id: UUID, workflow_id: UUID, directory_id: UUID | None
) -> Workflow:
    """Move a workflow into a directory, or to the root when directory_id is None."""
    workflow = (
        db.query(Workflow)
        .filter(Workflow.id == workflow_id, Workflow.organization_id == org_id)
        .first()
    )
    if not workflow:
        raise NotFoundError("Workflow", workflow_id)
    if directory_id is not None:
        _require_directory(db, org_id, directory_id)

    workflow.directory_id = directory_id
    db.commit()
    db.refresh(workflow)
    return workflow


# =============================================================================
# Tree Reads
# =============================================================================

def list_directories(db: Session, org_id: UUID) -> list[WorkflowDirectory]:
    return (
        db.query(WorkflowDirectory)
        .filter(WorkflowDirectory.organization_id == org_id)
        .order_by(WorkflowDirectory.name)
        .all()
    )


def get_directory_tree(db: Session, org_id: UUID) -> list[dict]:
    """
    Build the org's directory forest.

    First pass indexes every node, second pass attaches it to its parent
    (or to the root list). Nodes whose parent no longer exists are dropped.
    """
    directories = list_directories(db, org_id)
    workflow_counts: dict[UUID, int] = defaultdict(int)
    for (dir_id,) in (
        db.query(Workflow.directory_id)
        .filter(Workflow.organization_id == org_id, Workflow.directory_id.isnot(None))
        .all()
    ):
        workflow_counts[dir_id] += 1

    nodes: dict[UUID, dict] = {}
    for directory in directories:
        nodes[directory.id] = {
            "id": directory.id,
            "name": directory.name,
            "description": directory.description,
            "color": directory.color,
            "parent_id": directory.parent_id,
            "workflow_count": workflow_counts.get(directory.id, 0),
            "created_at": directory.created_at,
            "children": [],
        }

    roots: list[dict] = []
    for directory in directories:
        node = nodes[directory.id]
        if directory.parent_id is None:
            roots.append(node)
        elif directory.parent_id in nodes:
            nodes[directory.parent_id]["children"].append(node)
    return roots


def list_workflows_in_directory(
    db: Session, org_id: UUID, directory_id: UUID | None
) -> list[Workflow]:
    """Workflows directly inside a directory (root level when directory_id is None)."""
    query = db.query(Workflow).filter(Workflow.organization_id == org_id)
    if directory_id is None:
        query = query.filter(Workflow.directory_id.is_(None))
    else:
        query = query.filter(Workflow.directory_id == directory_id)
    return query.order_by(Workflow.created_at.desc()).all()

"""Client service - client records and tag management."""

import logging
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from clinicflow.db.enums import PortalStatus, WorkflowTriggerType
from clinicflow.db.models import Client
from clinicflow.schemas.client import ClientCreate, ClientUpdate
from clinicflow.services.errors import NotFoundError

logger = logging.getLogger(__name__)


def _normalize_tag(tag: str) -> str:
    tag = tag.strip()
    if not tag:
        raise ValueError("Tag cannot be empty")
    return tag


def create_client(db: Session, org_id: UUID, data: ClientCreate) -> Client:
    """
    Create a client and enroll them into client_created workflows.

    Enrollment only schedules the workflow run; steps execute in the worker.
    """
    from clinicflow.services import execution_service

    client = Client(
        organization_id=org_id,
        full_name=data.full_name.strip(),
        gender=data.gender.value if data.gender else None,
        date_of_birth=data.date_of_birth,
        phones=[p.strip() for p in data.phones if p.strip()],
        email=data.email.lower().strip() if data.email else None,
        tags=list(dict.fromkeys(_normalize_tag(t) for t in data.tags)),
        referral_source=data.referral_source,
        portal_status=(data.portal_status or PortalStatus.ACTIVE).value,
        notes=data.notes,
    )
    db.add(client)
    db.commit()
    db.refresh(client)

    execution_service.trigger_workflows(
        db,
        org_id=org_id,
        trigger=WorkflowTriggerType.CLIENT_CREATED,
        client=client,
        reason="Client created",
    )
    return client


def get_client(db: Session, org_id: UUID, client_id: UUID) -> Client | None:
    return (
        db.query(Client)
        .filter(Client.id == client_id, Client.organization_id == org_id)
        .first()
    )


def require_client(db: Session, org_id: UUID, client_id: UUID) -> Client:
    client = get_client(db, org_id, client_id)
    if not client:
        raise NotFoundError("Client", client_id)
    return client


def list_clients(
    db: Session,
    org_id: UUID,
    search: str | None = None,
    tag: str | None = None,
    portal_status: PortalStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Client], int]:
    """List the org's clients, newest first. Returns (items, total)."""
    query = db.query(Client).filter(Client.organization_id == org_id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(Client.full_name.ilike(pattern), Client.email.ilike(pattern))
        )
    if portal_status:
        query = query.filter(Client.portal_status == portal_status.value)
    query = query.order_by(Client.created_at.desc())

    if tag:
        # Tag membership is checked in Python so the filter works on JSON and JSONB alike
        matches = [c for c in query.all() if tag in (c.tags or [])]
        return matches[offset : offset + limit], len(matches)

    total = query.count()
    return query.offset(offset).limit(limit).all(), total


def update_client(db: Session, client: Client, data: ClientUpdate) -> Client:
    updates = data.model_dump(exclude_unset=True)
    if "full_name" in updates and updates["full_name"] is not None:
        client.full_name = updates["full_name"].strip()
    if "email" in updates:
        client.email = updates["email"].lower().strip() if updates["email"] else None
    if "phones" in updates and updates["phones"] is not None:
        client.phones = [p.strip() for p in updates["phones"] if p.strip()]
    if "gender" in updates:
        client.gender = updates["gender"].value if updates["gender"] else None
    if "portal_status" in updates and updates["portal_status"] is not None:
        client.portal_status = updates["portal_status"].value
    for field in ("date_of_birth", "referral_source", "notes"):
        if field in updates:
            setattr(client, field, updates[field])
    db.commit()
    db.refresh(client)
    return client


def delete_client(db: Session, client: Client) -> None:
    db.delete(client)
    db.commit()


def add_tag(db: Session, org_id: UUID, client_id: UUID, tag: str) -> Client:
    """Add a tag to a client. Adding a tag the client already has is a no-op."""
    client = require_client(db, org_id, client_id)
    tag = _normalize_tag(tag)
    tags = list(client.tags or [])
    if tag not in tags:
        client.tags = [*tags, tag]
        db.commit()
        db.refresh(client)
    return client


def remove_tag(
    db: Session,
    org_id: UUID,
    client_id: UUID,
    tag: str | None = None,
    remove_all: bool = False,
) -> Client:
    """Remove one tag, or every tag when remove_all is set."""
    client = require_client(db, org_id, client_id)
    if remove_all:
        client.tags = []
    else:
        if not tag:
            raise ValueError("Tag is required unless remove_all is set")
        client.tags = [t for t in (client.tags or []) if t != tag.strip()]
    db.commit()
    db.refresh(client)
    return client

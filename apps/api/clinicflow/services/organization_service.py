"""Organization service - tenant bootstrap and lookup."""

import re
from uuid import UUID

from sqlalchemy.orm import Session

from clinicflow.db.models import Organization

SLUG_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


def create_organization(
    db: Session,
    name: str,
    slug: str,
    client_limit: int | None = None,
    storage_gb_limit: int | None = None,
    messages_per_month_limit: int | None = None,
) -> Organization:
    """Create a tenant. Raises ValueError on a malformed or taken slug."""
    slug = slug.lower().strip()
    if not SLUG_PATTERN.match(slug):
        raise ValueError("Slug must be alphanumeric (with optional hyphens/underscores)")
    if get_organization_by_slug(db, slug):
        raise ValueError(f"Organization with slug '{slug}' already exists")

    org = Organization(
        name=name.strip(),
        slug=slug,
        client_limit=client_limit,
        storage_gb_limit=storage_gb_limit,
        messages_per_month_limit=messages_per_month_limit,
    )
    db.add(org)
    db.commit()
    db.refresh(org)
    return org


def get_organization(db: Session, org_id: UUID) -> Organization | None:
    return db.query(Organization).filter(Organization.id == org_id).first()


def get_organization_by_slug(db: Session, slug: str) -> Organization | None:
    return db.query(Organization).filter(Organization.slug == slug).first()

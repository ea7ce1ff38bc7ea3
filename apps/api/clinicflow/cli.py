"""CLI tools for Clinicflow administration."""

import asyncio
from uuid import UUID, uuid4

import click

from clinicflow.core.security import create_session_token
from clinicflow.db.enums import Role
from clinicflow.db.session import SessionLocal
from clinicflow.services import organization_service


@click.group()
def cli():
    """Clinicflow CLI tools."""
    pass


@cli.command()
@click.option("--name", required=True, help="Organization name")
@click.option("--slug", required=True, help="URL-friendly slug (lowercase, no spaces)")
@click.option("--client-limit", type=int, default=None, help="Maximum number of clients")
def create_org(name: str, slug: str, client_limit: int | None):
    """
    Create an organization (tenant).

    Example:
        clinicflow create-org --name "Glow Aesthetics" --slug "glow"
    """
    db = SessionLocal()
    try:
        org = organization_service.create_organization(
            db, name=name, slug=slug, client_limit=client_limit
        )
        click.echo(f"✓ Created organization: {org.name}")
        click.echo(f"  ID: {org.id}")
        click.echo(f"  Slug: {org.slug}")
    except ValueError as e:
        db.rollback()
        click.echo(f"❌ {e}")
        raise SystemExit(1)
    finally:
        db.close()


@cli.command()
@click.option("--org-slug", required=True, help="Organization slug")
@click.option(
    "--role",
    type=click.Choice([r.value for r in Role]),
    default=Role.ADMIN.value,
    show_default=True,
)
@click.option("--user-id", default=None, help="User id to embed (random if omitted)")
@click.option("--hours", type=int, default=None, help="Lifetime in hours")
def issue_token(org_slug: str, role: str, user_id: str | None, hours: int | None):
    """Mint a session token for an organization (for API clients and local testing)."""
    db = SessionLocal()
    try:
        org = organization_service.get_organization_by_slug(db, org_slug.lower().strip())
        if not org:
            click.echo(f"❌ Organization '{org_slug}' not found")
            raise SystemExit(1)
        token = create_session_token(
            UUID(user_id) if user_id else uuid4(), org.id, role, expires_hours=hours
        )
        click.echo(token)
    finally:
        db.close()


@cli.command()
@click.option("--limit", type=int, default=None, help="Batch size (defaults to WORKER_BATCH_SIZE)")
def run_due_actions(limit: int | None):
    """Process one batch of due scheduled actions and exit (for cron)."""
    from clinicflow.worker import BATCH_SIZE, run_due_actions as run_batch

    db = SessionLocal()
    try:
        processed = asyncio.run(run_batch(db, limit=limit or BATCH_SIZE))
        click.echo(f"✓ Processed {processed} scheduled action(s)")
    finally:
        db.close()


if __name__ == "__main__":
    cli()

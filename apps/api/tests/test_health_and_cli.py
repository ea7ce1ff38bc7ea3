"""Tests for the health endpoint and the admin CLI."""

import pytest
from click.testing import CliRunner
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import sessionmaker

from clinicflow import cli as cli_module
from clinicflow import worker_service
from clinicflow.core.security import decode_session_token
from clinicflow.db.models import Organization
from clinicflow.services import organization_service


@pytest.mark.asyncio
async def test_health(client):
    res = await client.get("/health")
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "ok"
    assert body["env"] == "test"


@pytest.mark.asyncio
async def test_worker_service_health_without_worker():
    transport = ASGITransport(app=worker_service.app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        res = await c.get("/health")
    assert res.status_code == 200
    assert res.json()["worker_running"] is False
    assert res.json()["status"] == "degraded"


@pytest.fixture
def runner(db, monkeypatch):
    """CliRunner whose commands use the test database."""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db.get_bind())
    monkeypatch.setattr(cli_module, "SessionLocal", TestingSession)
    return CliRunner()


def test_create_org(runner, db):
    result = runner.invoke(cli_module.cli, ["create-org", "--name", "Glow Aesthetics", "--slug", "Glow"])

    assert result.exit_code == 0, result.output
    assert "✓ Created organization: Glow Aesthetics" in result.output
    org = db.query(Organization).filter(Organization.slug == "glow").one()
    assert org.name == "Glow Aesthetics"
    assert organization_service.get_organization(db, org.id).slug == "glow"


def test_create_org_rejects_bad_slug(runner):
    result = runner.invoke(cli_module.cli, ["create-org", "--name", "Bad", "--slug", "has space"])
    assert result.exit_code == 1
    assert "❌" in result.output


def test_issue_token(runner, test_org):
    result = runner.invoke(
        cli_module.cli, ["issue-token", "--org-slug", test_org.slug, "--role", "manager"]
    )

    assert result.exit_code == 0, result.output
    payload = decode_session_token(result.output.strip())
    assert payload["org_id"] == str(test_org.id)
    assert payload["role"] == "manager"


def test_issue_token_unknown_org(runner):
    result = runner.invoke(cli_module.cli, ["issue-token", "--org-slug", "nope"])
    assert result.exit_code == 1


def test_run_due_actions_with_empty_queue(runner):
    result = runner.invoke(cli_module.cli, ["run-due-actions"])
    assert result.exit_code == 0, result.output
    assert "Processed 0" in result.output

"""Initial schema: tenants, clients, automation, messaging, scheduling.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')
TS = sa.DateTime(timezone=True)


def _org_fk() -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE')


def upgrade() -> None:
    # ==========================================================================
    # organizations
    # ==========================================================================
    op.create_table(
        'organizations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(100), nullable=False),
        sa.Column('client_limit', sa.Integer(), nullable=True),
        sa.Column('storage_gb_limit', sa.Integer(), nullable=True),
        sa.Column('messages_per_month_limit', sa.Integer(), nullable=True),
        sa.Column('created_at', TS, server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', TS, server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug'),
    )

    # ==========================================================================
    # clients & appointments
    # ==========================================================================
    op.create_table(
        'clients',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('gender', sa.String(20), nullable=True),
        sa.Column('date_of_birth', sa.Date(), nullable=True),
        sa.Column('phones', JSON, nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('tags', JSON, nullable=False),
        sa.Column('referral_source', sa.String(100), nullable=True),
        sa.Column('portal_status', sa.String(20), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', TS, server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', TS, server_default=sa.func.now(), nullable=False),
        _org_fk(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_clients_org_created', 'clients', ['organization_id', 'created_at'])
    op.create_index('idx_clients_org_email', 'clients', ['organization_id', 'email'])

    op.create_table(
        'appointments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('client_id', sa.Uuid(), nullable=False),
        sa.Column('scheduled_at', TS, nullable=False),
        sa.Column('appointment_type', sa.String(100), nullable=False),
        sa.Column('provider', sa.String(255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('created_at', TS, server_default=sa.func.now(), nullable=False),
        sa.Column('completed_at', TS, nullable=True),
        _org_fk(),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_appointments_org_scheduled', 'appointments', ['organization_id', 'scheduled_at'])
    op.create_index('idx_appointments_client', 'appointments', ['client_id'])

    # ==========================================================================
    # workflow automation
    # ==========================================================================
    op.create_table(
        'workflow_directories',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('parent_id', sa.Uuid(), nullable=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('color', sa.String(20), nullable=True),
        sa.Column('created_at', TS, server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', TS, server_default=sa.func.now(), nullable=False),
        _org_fk(),
        sa.ForeignKeyConstraint(['parent_id'], ['workflow_directories.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_wf_dirs_org_parent', 'workflow_directories', ['organization_id', 'parent_id'])

    op.create_table(
        'workflows',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('directory_id', sa.Uuid(), nullable=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('trigger', sa.String(50), nullable=False),
        sa.Column('is_enabled', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('blocks', JSON, nullable=False),
        sa.Column('connections', JSON, nullable=False),
        sa.Column('prevent_duplicates', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('duplicate_prevention_days', sa.Integer(), server_default='30', nullable=False),
        sa.Column('total_runs', sa.Integer(), server_default='0', nullable=False),
        sa.Column('successful_runs', sa.Integer(), server_default='0', nullable=False),
        sa.Column('failed_runs', sa.Integer(), server_default='0', nullable=False),
        sa.Column('last_run_at', TS, nullable=True),
        sa.Column('created_at', TS, server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', TS, server_default=sa.func.now(), nullable=False),
        _org_fk(),
        sa.ForeignKeyConstraint(['directory_id'], ['workflow_directories.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_workflows_org_trigger', 'workflows', ['organization_id', 'trigger', 'is_enabled'])
    op.create_index('idx_workflows_org_directory', 'workflows', ['organization_id', 'directory_id'])

    op.create_table(
        'workflow_executions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('workflow_id', sa.Uuid(), nullable=False),
        sa.Column('client_id', sa.Uuid(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('actions_completed', JSON, nullable=False),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('enrollment_reason', sa.String(255), nullable=True),
        sa.Column('context', JSON, nullable=False),
        sa.Column('current_block_id', sa.String(100), nullable=True),
        sa.Column('started_at', TS, server_default=sa.func.now(), nullable=False),
        sa.Column('completed_at', TS, nullable=True),
        sa.Column('next_execution_at', TS, nullable=True),
        _org_fk(),
        sa.ForeignKeyConstraint(['workflow_id'], ['workflows.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_wf_exec_workflow', 'workflow_executions', ['workflow_id', 'started_at'])
    op.create_index('idx_wf_exec_client', 'workflow_executions', ['organization_id', 'client_id'])
    op.create_index('idx_wf_exec_org_status', 'workflow_executions', ['organization_id', 'status'])

    op.create_table(
        'execution_logs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('workflow_id', sa.Uuid(), nullable=False),
        sa.Column('execution_id', sa.Uuid(), nullable=True),
        sa.Column('client_id', sa.Uuid(), nullable=False),
        sa.Column('step_id', sa.String(100), nullable=False),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('details', JSON, nullable=False),
        sa.Column('execution_time_ms', sa.Integer(), nullable=True),
        sa.Column('executed_at', TS, server_default=sa.func.now(), nullable=False),
        _org_fk(),
        sa.ForeignKeyConstraint(['workflow_id'], ['workflows.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['execution_id'], ['workflow_executions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_exec_logs_execution', 'execution_logs', ['execution_id', 'executed_at'])
    op.create_index('idx_exec_logs_workflow', 'execution_logs', ['organization_id', 'workflow_id', 'executed_at'])

    # ==========================================================================
    # messaging
    # ==========================================================================
    op.create_table(
        'messages',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('client_id', sa.Uuid(), nullable=False),
        sa.Column('channel', sa.String(10), nullable=False),
        sa.Column('subject', sa.String(255), nullable=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('external_id', sa.String(255), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', TS, server_default=sa.func.now(), nullable=False),
        sa.Column('sent_at', TS, nullable=True),
        _org_fk(),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_messages_client', 'messages', ['organization_id', 'client_id'])

    op.create_table(
        'bulk_messages',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('channel', sa.String(10), nullable=False),
        sa.Column('subject', sa.String(255), nullable=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('scheduled_for', TS, nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('total_recipients', sa.Integer(), server_default='0', nullable=False),
        sa.Column('sent_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('failed_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('created_at', TS, server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', TS, server_default=sa.func.now(), nullable=False),
        _org_fk(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_bulk_messages_org_status', 'bulk_messages', ['organization_id', 'status'])

    op.create_table(
        'message_recipients',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('bulk_message_id', sa.Uuid(), nullable=False),
        sa.Column('client_id', sa.Uuid(), nullable=False),
        sa.Column('channel', sa.String(10), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('external_id', sa.String(255), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('sent_at', TS, nullable=True),
        sa.Column('delivered_at', TS, nullable=True),
        sa.Column('created_at', TS, server_default=sa.func.now(), nullable=False),
        _org_fk(),
        sa.ForeignKeyConstraint(['bulk_message_id'], ['bulk_messages.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_recipients_bulk_status', 'message_recipients', ['bulk_message_id', 'status'])

    # ==========================================================================
    # scheduling
    # ==========================================================================
    op.create_table(
        'scheduled_actions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('args', JSON, nullable=False),
        sa.Column('scheduled_for', TS, nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('attempts', sa.Integer(), server_default='0', nullable=False),
        sa.Column('max_attempts', sa.Integer(), server_default='3', nullable=False),
        sa.Column('last_attempt_at', TS, nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', TS, server_default=sa.func.now(), nullable=False),
        sa.Column('completed_at', TS, nullable=True),
        _org_fk(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_scheduled_actions_due', 'scheduled_actions', ['status', 'scheduled_for'])
    op.create_index('idx_scheduled_actions_org', 'scheduled_actions', ['organization_id', 'scheduled_for'])

    op.create_table(
        'social_posts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(255), nullable=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('hashtags', JSON, nullable=False),
        sa.Column('target_platforms', JSON, nullable=False),
        sa.Column('media_files', JSON, nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('scheduled_for', TS, nullable=True),
        sa.Column('timezone', sa.String(64), nullable=False),
        sa.Column('scheduled_action_id', sa.Uuid(), nullable=True),
        sa.Column('publishing_results', JSON, nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', TS, server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', TS, server_default=sa.func.now(), nullable=False),
        sa.Column('published_at', TS, nullable=True),
        _org_fk(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_social_posts_org_status', 'social_posts', ['organization_id', 'status'])


def downgrade() -> None:
    for table in (
        'social_posts',
        'scheduled_actions',
        'message_recipients',
        'bulk_messages',
        'messages',
        'execution_logs',
        'workflow_executions',
        'workflows',
        'workflow_directories',
        'appointments',
        'clients',
        'organizations',
    ):
        op.drop_table(table)

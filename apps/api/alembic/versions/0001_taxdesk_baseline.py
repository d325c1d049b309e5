"""Baseline migration - tenants, clients, document requests, intake, campaigns

Revision ID: 0001_taxdesk_baseline
Revises:
Create Date: 2026-10-18

Creates every table used by the document request engine, intake links
and the drip campaign sequencer.
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '0001_taxdesk_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables."""

    # ==========================================================================
    # Organizations / Users
    # ==========================================================================
    op.execute('''
        CREATE TABLE organizations (
            id UUID PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            slug VARCHAR(100) UNIQUE NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')

    op.execute('''
        CREATE TABLE users (
            id UUID PRIMARY KEY,
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            email VARCHAR(255) NOT NULL,
            display_name VARCHAR(255) NOT NULL,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')

    # ==========================================================================
    # Clients / Tasks
    # ==========================================================================
    op.execute('''
        CREATE TABLE clients (
            id UUID PRIMARY KEY,
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            first_name VARCHAR(100) NOT NULL,
            last_name VARCHAR(100) NOT NULL,
            email VARCHAR(255),
            phone VARCHAR(50),
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_clients_org ON clients(organization_id)')
    op.execute('CREATE INDEX idx_clients_org_email ON clients(organization_id, email)')

    op.execute('''
        CREATE TABLE tasks (
            id UUID PRIMARY KEY,
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            client_id UUID REFERENCES clients(id) ON DELETE CASCADE,
            title VARCHAR(255) NOT NULL,
            description TEXT,
            priority VARCHAR(20) NOT NULL DEFAULT 'medium',
            status VARCHAR(20) NOT NULL DEFAULT 'pending',
            completed_at TIMESTAMPTZ,
            created_by_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_tasks_org_status ON tasks(organization_id, status)')
    op.execute('CREATE INDEX idx_tasks_client ON tasks(client_id)')

    # ==========================================================================
    # Documents / Document Requests
    # ==========================================================================
    op.execute('''
        CREATE TABLE documents (
            id UUID PRIMARY KEY,
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            client_id UUID NOT NULL REFERENCES clients(id) ON DELETE CASCADE,
            uploaded_by_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            name VARCHAR(255) NOT NULL,
            storage_path VARCHAR(512) NOT NULL,
            mime_type VARCHAR(100) NOT NULL,
            file_size BIGINT NOT NULL,
            category VARCHAR(30) NOT NULL DEFAULT 'other',
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_documents_client ON documents(client_id)')
    op.execute('CREATE INDEX idx_documents_org_created ON documents(organization_id, created_at)')

    op.execute('''
        CREATE TABLE document_requests (
            id UUID PRIMARY KEY,
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            client_id UUID NOT NULL REFERENCES clients(id) ON DELETE CASCADE,
            task_id UUID REFERENCES tasks(id) ON DELETE SET NULL,
            created_by_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            token VARCHAR(64) NOT NULL,
            status VARCHAR(30) NOT NULL DEFAULT 'pending',
            expires_at TIMESTAMPTZ NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE UNIQUE INDEX idx_document_requests_token ON document_requests(token)')
    op.execute('CREATE INDEX idx_document_requests_client ON document_requests(client_id)')
    op.execute(
        'CREATE INDEX idx_document_requests_org_status ON document_requests(organization_id, status)'
    )

    op.execute('''
        CREATE TABLE document_request_items (
            id UUID PRIMARY KEY,
            document_request_id UUID NOT NULL REFERENCES document_requests(id) ON DELETE CASCADE,
            position INTEGER NOT NULL DEFAULT 0,
            name VARCHAR(255) NOT NULL,
            description TEXT,
            status VARCHAR(20) NOT NULL DEFAULT 'pending',
            uploaded_at TIMESTAMPTZ,
            document_id UUID REFERENCES documents(id) ON DELETE SET NULL,
            file_path VARCHAR(512),
            file_name VARCHAR(255),
            file_size BIGINT,
            file_type VARCHAR(100),
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute(
        'CREATE INDEX idx_document_request_items_request '
        'ON document_request_items(document_request_id)'
    )

    # ==========================================================================
    # Intake Links / Campaign Enrollments
    # ==========================================================================
    op.execute('''
        CREATE TABLE intake_links (
            id UUID PRIMARY KEY,
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            client_id UUID REFERENCES clients(id) ON DELETE CASCADE,
            created_by_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            token VARCHAR(64) NOT NULL,
            email VARCHAR(255),
            expires_at TIMESTAMPTZ NOT NULL,
            used_at TIMESTAMPTZ,
            prefill_first_name VARCHAR(100),
            prefill_last_name VARCHAR(100),
            answers JSONB,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE UNIQUE INDEX idx_intake_links_token ON intake_links(token)')
    op.execute('CREATE INDEX idx_intake_links_client ON intake_links(client_id)')

    op.execute('''
        CREATE TABLE campaign_enrollments (
            id UUID PRIMARY KEY,
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            client_id UUID NOT NULL REFERENCES clients(id) ON DELETE CASCADE,
            intake_link_id UUID REFERENCES intake_links(id) ON DELETE SET NULL,
            campaign_name VARCHAR(100) NOT NULL,
            current_stage INTEGER NOT NULL DEFAULT 0,
            status VARCHAR(20) NOT NULL DEFAULT 'active',
            next_email_due_at TIMESTAMPTZ,
            last_email_sent_at TIMESTAMPTZ,
            completed_at TIMESTAMPTZ,
            unsubscribed_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute(
        'CREATE INDEX idx_campaign_enrollments_due '
        'ON campaign_enrollments(status, next_email_due_at)'
    )
    op.execute(
        'CREATE INDEX idx_campaign_enrollments_client_campaign '
        'ON campaign_enrollments(client_id, campaign_name)'
    )
    op.execute(
        'CREATE INDEX idx_campaign_enrollments_org_campaign '
        'ON campaign_enrollments(organization_id, campaign_name)'
    )

    # ==========================================================================
    # Activity Log
    # ==========================================================================
    op.execute('''
        CREATE TABLE activity_log (
            id UUID PRIMARY KEY,
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            client_id UUID REFERENCES clients(id) ON DELETE CASCADE,
            actor_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            kind VARCHAR(40) NOT NULL,
            description VARCHAR(500) NOT NULL,
            payload JSONB NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute(
        'CREATE INDEX idx_activity_log_client_created ON activity_log(client_id, created_at)'
    )


def downgrade() -> None:
    """Drop all tables."""
    for table in (
        'activity_log',
        'campaign_enrollments',
        'intake_links',
        'document_request_items',
        'document_requests',
        'documents',
        'tasks',
        'clients',
        'users',
        'organizations',
    ):
        op.execute(f'DROP TABLE IF EXISTS {table} CASCADE')

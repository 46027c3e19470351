"""Initial schema: profiles, NGOs, org units, work items and their owned rows.

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


WORK_ITEM_STATUSES = (
    'draft', 'not_started', 'in_progress', 'waiting_on_ngo', 'waiting_on_hpg',
    'submitted', 'under_review', 'approved', 'rejected', 'complete', 'canceled',
)
EVIDENCE_STATUSES = ('missing', 'uploaded', 'under_review', 'approved', 'rejected')
MODULES = (
    'ngo_coordination', 'administration', 'operations', 'program', 'curriculum',
    'development', 'partnership', 'marketing', 'communications', 'hr', 'it',
    'finance', 'legal',
)
DOCUMENT_CATEGORIES = (
    'onboarding', 'compliance', 'finance', 'hr', 'marketing', 'communications',
    'program', 'curriculum', 'it', 'legal', 'other',
)


def upgrade() -> None:
    op.create_table(
        'profiles',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255)),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_profiles_email', 'profiles', ['email'], unique=True)

    op.create_table(
        'ngos',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('legal_name', sa.String(255), nullable=False),
        sa.Column('common_name', sa.String(255)),
        sa.Column('bundle', sa.String(100)),
        sa.Column('country', sa.String(100)),
        sa.Column('state_province', sa.String(100)),
        sa.Column('city', sa.String(100)),
        sa.Column('status', sa.Enum('prospect', 'onboarding', 'active', 'at_risk', 'offboarding', 'closed', name='ngostatus'), nullable=False, server_default='prospect'),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_ngos_bundle', 'ngos', ['bundle'])
    op.create_index('idx_ngos_country', 'ngos', ['country'])
    op.create_index('idx_ngos_state_province', 'ngos', ['state_province'])
    op.create_index('idx_ngos_status', 'ngos', ['status'])

    op.create_table(
        'org_units',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('department_name', sa.String(100), nullable=False),
        sa.Column('sub_department_name', sa.String(100)),
        sa.Column('lead_user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('profiles.id', ondelete='SET NULL')),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_org_units_department_name', 'org_units', ['department_name'])
    op.create_index('idx_org_units_lead_user_id', 'org_units', ['lead_user_id'])

    op.create_table(
        'work_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('module', sa.Enum(*MODULES, name='moduletype'), nullable=False),
        sa.Column('type', sa.String(100)),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('ngo_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('ngos.id', ondelete='SET NULL')),
        sa.Column('department_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('org_units.id', ondelete='SET NULL')),
        sa.Column('owner_user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('profiles.id', ondelete='SET NULL')),
        sa.Column('created_by_user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('profiles.id', ondelete='SET NULL')),
        sa.Column('status', sa.Enum(*WORK_ITEM_STATUSES, name='workitemstatus'), nullable=False, server_default='not_started'),
        sa.Column('priority', sa.Enum('low', 'medium', 'high', name='priority'), nullable=False, server_default='medium'),
        sa.Column('due_date', sa.Date),
        sa.Column('start_date', sa.Date),
        sa.Column('completed_at', sa.DateTime),
        sa.Column('evidence_required', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('evidence_status', sa.Enum(*EVIDENCE_STATUSES, name='evidencestatus')),
        sa.Column('approval_required', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('approver_user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('profiles.id', ondelete='SET NULL')),
        sa.Column('approval_policy', postgresql.JSONB),
        sa.Column('dependencies', postgresql.JSONB, nullable=False, server_default='[]'),
        sa.Column('external_visible', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('trello_sync', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('trello_card_id', sa.String(100)),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_work_items_module', 'work_items', ['module'])
    op.create_index('idx_work_items_ngo_id', 'work_items', ['ngo_id'])
    op.create_index('idx_work_items_department_id', 'work_items', ['department_id'])
    op.create_index('idx_work_items_owner_user_id', 'work_items', ['owner_user_id'])
    op.create_index('idx_work_items_approver_user_id', 'work_items', ['approver_user_id'])
    op.create_index('idx_work_items_status', 'work_items', ['status'])
    op.create_index('idx_work_items_due_date', 'work_items', ['due_date'])
    op.create_index('idx_work_items_created_at', 'work_items', ['created_at'])
    # Dashboard queries filter active items by status and due date together
    op.create_index('idx_work_items_status_due_date', 'work_items', ['status', 'due_date'])

    op.create_table(
        'documents',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('file_name', sa.String(255), nullable=False),
        sa.Column('file_path', sa.String(1024), nullable=False),
        sa.Column('file_size', sa.Integer),
        sa.Column('file_type', sa.String(100)),
        sa.Column('category', sa.Enum(*DOCUMENT_CATEGORIES, name='documentcategory'), nullable=False, server_default='other'),
        sa.Column('work_item_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('work_items.id', ondelete='CASCADE')),
        sa.Column('ngo_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('ngos.id', ondelete='SET NULL')),
        sa.Column('uploaded_by_user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('profiles.id', ondelete='SET NULL')),
        sa.Column('uploaded_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('review_status', sa.Enum('pending', 'approved', 'rejected', name='reviewstatus'), nullable=False, server_default='pending'),
        sa.Column('reviewer_user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('profiles.id', ondelete='SET NULL')),
        sa.Column('reviewed_at', sa.DateTime),
        sa.Column('review_notes', sa.Text),
    )
    op.create_index('idx_documents_work_item_id', 'documents', ['work_item_id'])
    op.create_index('idx_documents_ngo_id', 'documents', ['ngo_id'])
    op.create_index('idx_documents_uploaded_at', 'documents', ['uploaded_at'])
    op.create_index('idx_documents_review_status', 'documents', ['review_status'])

    op.create_table(
        'reminders',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('work_item_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('work_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('remind_at', sa.DateTime, nullable=False),
        sa.Column('seen_at', sa.DateTime),
        sa.Column('status', sa.String(20), nullable=False, server_default='scheduled'),
        sa.Column('channel', sa.String(20), nullable=False, server_default='in_app'),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_reminders_work_item_id', 'reminders', ['work_item_id'])
    op.create_index('idx_reminders_user_id', 'reminders', ['user_id'])
    op.create_index('idx_reminders_remind_at', 'reminders', ['remind_at'])

    op.create_table(
        'work_item_approvals',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('work_item_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('work_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('approver_user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('profiles.id', ondelete='SET NULL')),
        sa.Column('decision', sa.Enum('approved', 'rejected', name='reviewdecision'), nullable=False),
        sa.Column('notes', sa.Text),
        sa.Column('decided_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_work_item_approvals_work_item_id', 'work_item_approvals', ['work_item_id'])
    op.create_index('idx_work_item_approvals_decided_at', 'work_item_approvals', ['decided_at'])

    op.create_table(
        'work_item_history',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('work_item_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('work_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('change_type', sa.String(50), nullable=False),
        sa.Column('field_name', sa.String(100)),
        sa.Column('old_value', sa.Text),
        sa.Column('new_value', sa.Text),
        sa.Column('changed_by_user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('profiles.id', ondelete='SET NULL')),
        sa.Column('changed_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('change_reason', sa.Text),
    )
    op.create_index('idx_work_item_history_work_item_id', 'work_item_history', ['work_item_id'])
    op.create_index('idx_work_item_history_changed_at', 'work_item_history', ['changed_at'])


def downgrade() -> None:
    op.drop_table('work_item_history')
    op.drop_table('work_item_approvals')
    op.drop_table('reminders')
    op.drop_table('documents')
    op.drop_table('work_items')
    op.drop_table('org_units')
    op.drop_table('ngos')
    op.drop_table('profiles')

    for enum_name in (
        'reviewdecision', 'reviewstatus', 'documentcategory', 'evidencestatus',
        'priority', 'workitemstatus', 'moduletype', 'ngostatus',
    ):
        op.execute(f'DROP TYPE IF EXISTS {enum_name}')

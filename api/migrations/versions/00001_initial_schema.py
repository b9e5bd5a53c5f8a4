"""Initial schema - applications, history, evaluations, AI settings, outbox, jobs.

Revision ID: 00001
Revises:
Create Date: 2025-01-14

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '00001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # =====================
    # Independent tables (no foreign keys)
    # =====================

    # ai_settings
    op.create_table(
        'ai_settings',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('department', sa.String(255), nullable=False),
        sa.Column('auto_accept_threshold', sa.Float(), nullable=False),
        sa.Column('auto_reject_threshold', sa.Float(), nullable=False),
        sa.Column('review_threshold', sa.Float(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_auto_accept_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_auto_reject_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_self_calibrating', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('last_calibration_date', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('department'),
        sa.CheckConstraint('auto_accept_threshold > auto_reject_threshold', name='ck_ai_settings_band'),
    )

    # outbox_events
    op.create_table(
        'outbox_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('aggregate_type', sa.String(100), nullable=False),
        sa.Column('aggregate_id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('payload', sa.Text(), nullable=False),
        sa.Column('processed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('creation_time', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_outbox_pending', 'outbox_events', ['processed', 'creation_time'])
    op.create_index('idx_outbox_aggregate', 'outbox_events', ['aggregate_type', 'aggregate_id'])

    # =====================
    # Application aggregate
    # =====================

    # applications
    op.create_table(
        'applications',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('reference', sa.String(50), nullable=False),
        sa.Column('candidate_id', sa.String(255), nullable=False),
        sa.Column('job_posting_id', sa.Integer(), nullable=False),
        sa.Column('resume_document_id', sa.Integer(), nullable=True),
        sa.Column('cover_letter_document_id', sa.Integer(), nullable=True),
        sa.Column('candidate_message', sa.Text(), nullable=True),
        sa.Column('recruiter_notes', sa.Text(), nullable=True),
        sa.Column('candidate_name', sa.String(255), nullable=True),
        sa.Column('job_title', sa.String(255), nullable=True),
        sa.Column('job_department', sa.String(255), nullable=True),
        sa.Column('status', sa.String(50), nullable=False, server_default='SUBMITTED'),
        sa.Column('ai_processed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('ai_score', sa.Float(), nullable=True),
        sa.Column('auto_decision', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_shortlisted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('interview_id', sa.Integer(), nullable=True),
        sa.Column('interview_requested_at', sa.DateTime(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('last_status_changed_at', sa.DateTime(), nullable=True),
        sa.Column('last_status_changed_by', sa.String(255), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reference'),
        sa.UniqueConstraint('candidate_id', 'job_posting_id', name='uq_applications_candidate_posting'),
    )
    op.create_index('idx_applications_department', 'applications', ['job_department'])
    op.create_index('idx_applications_status', 'applications', ['status'])

    # application_status_history
    op.create_table(
        'application_status_history',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('application_id', sa.Integer(), nullable=False),
        sa.Column('from_status', sa.String(50), nullable=True),
        sa.Column('to_status', sa.String(50), nullable=False),
        sa.Column('changed_by', sa.String(255), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('changed_at', sa.DateTime(), nullable=False),
        sa.Column('is_system_change', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_automatic_decision', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['application_id'], ['applications.id']),
    )
    op.create_index(
        'idx_status_history_application',
        'application_status_history',
        ['application_id', 'changed_at'],
    )

    # evaluations
    op.create_table(
        'evaluations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('application_id', sa.Integer(), nullable=False),
        sa.Column('overall_score', sa.Float(), nullable=False),
        sa.Column('category_scores', sa.Text(), nullable=True),
        sa.Column('recommendation', sa.String(20), nullable=False, server_default='REVIEW'),
        sa.Column('justification', sa.Text(), nullable=True),
        sa.Column('strengths', sa.Text(), nullable=True),
        sa.Column('weaknesses', sa.Text(), nullable=True),
        sa.Column('model_used', sa.String(100), nullable=True),
        sa.Column('exceeded_auto_threshold', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('raw_response', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['application_id'], ['applications.id']),
        sa.UniqueConstraint('application_id'),
    )

    # =====================
    # Processing queue
    # =====================

    # jobs
    op.create_table(
        'jobs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('application_id', sa.Integer(), nullable=True),
        sa.Column('job_type', sa.String(50), nullable=False),
        sa.Column('status', sa.String(50), server_default='pending'),
        sa.Column('priority', sa.Integer(), server_default='0'),
        sa.Column('attempts', sa.Integer(), server_default='0'),
        sa.Column('max_attempts', sa.Integer(), server_default='3'),
        sa.Column('payload', sa.Text(), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('scheduled_for', sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['application_id'], ['applications.id']),
    )
    op.create_index('idx_jobs_pending', 'jobs', ['status', 'scheduled_for', 'priority'])
    op.create_index('idx_jobs_application', 'jobs', ['application_id'])


def downgrade() -> None:
    op.drop_table('jobs')
    op.drop_table('evaluations')
    op.drop_table('application_status_history')
    op.drop_table('applications')
    op.drop_table('outbox_events')
    op.drop_table('ai_settings')

"""initial schema

Revision ID: 3e7a91c0b5d2
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3e7a91c0b5d2'
down_revision = None
branch_labels = None
depends_on = None

STATUS_CHECK = "IN ('untested', 'pass', 'fail', 'blocked')"


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=80), nullable=False),
        sa.Column('display_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=120), nullable=True),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    op.create_table(
        'projects',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'suites',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('project_id', sa.Integer(), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('parent_id', sa.Integer(), sa.ForeignKey('suites.id', ondelete='SET NULL'), nullable=True),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('project_id', 'name', name='uq_project_suite_name'),
    )
    op.create_index('ix_suites_project_id', 'suites', ['project_id'])

    # head 포인터 FK는 버전 테이블 생성 후 추가
    op.create_table(
        'test_cases',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('project_id', sa.Integer(), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('suite_id', sa.Integer(), sa.ForeignKey('suites.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('quality_attribute', sa.String(length=200), nullable=True),
        sa.Column('category_large', sa.String(length=200), nullable=True),
        sa.Column('category_medium', sa.String(length=200), nullable=True),
        sa.Column('preconditions', sa.Text(), nullable=True),
        sa.Column('priority', sa.String(length=20), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('current_version_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('suite_id', 'title', name='uq_suite_case_title'),
    )
    op.create_index('ix_test_cases_project_id', 'test_cases', ['project_id'])
    op.create_index('ix_test_cases_suite_id', 'test_cases', ['suite_id'])

    op.create_table(
        'test_case_versions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('case_id', sa.Integer(), sa.ForeignKey('test_cases.id', ondelete='CASCADE'), nullable=False),
        sa.Column('version_no', sa.Integer(), nullable=False),
        sa.Column('snapshot', sa.JSON(), nullable=False),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('case_id', 'version_no', name='uq_case_version_no'),
    )
    op.create_index('ix_test_case_versions_case_id', 'test_case_versions', ['case_id'])

    with op.batch_alter_table('test_cases') as batch_op:
        batch_op.create_foreign_key(
            'fk_test_cases_current_version_id', 'test_case_versions',
            ['current_version_id'], ['id'], ondelete='SET NULL',
        )

    op.create_table(
        'test_steps',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('case_version_id', sa.Integer(),
                  sa.ForeignKey('test_case_versions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('step_no', sa.Integer(), nullable=False),
        sa.Column('action', sa.Text(), nullable=False),
        sa.Column('input_data', sa.Text(), nullable=True),
        sa.Column('expected_result', sa.Text(), nullable=False),
        sa.UniqueConstraint('case_version_id', 'step_no', name='uq_version_step_no'),
    )
    op.create_index('ix_test_steps_case_version_id', 'test_steps', ['case_version_id'])

    op.create_table(
        'test_runs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('project_id', sa.Integer(), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('release_version', sa.String(length=100), nullable=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(length=10), nullable=False),
        sa.CheckConstraint("status IN ('open', 'closed')", name='ck_test_runs_status'),
    )
    op.create_index('ix_test_runs_project_id', 'test_runs', ['project_id'])

    op.create_table(
        'test_run_cases',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('run_id', sa.Integer(), sa.ForeignKey('test_runs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('case_id', sa.Integer(), sa.ForeignKey('test_cases.id', ondelete='CASCADE'), nullable=False),
        sa.Column('case_version_id', sa.Integer(),
                  sa.ForeignKey('test_case_versions.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('status', sa.String(length=10), nullable=False),
        sa.UniqueConstraint('run_id', 'case_id', name='uq_run_case'),
        sa.CheckConstraint(f'status {STATUS_CHECK}', name='ck_test_run_cases_status'),
    )
    op.create_index('ix_test_run_cases_run_id', 'test_run_cases', ['run_id'])
    op.create_index('ix_test_run_cases_case_id', 'test_run_cases', ['case_id'])

    op.create_table(
        'test_results',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('run_case_id', sa.Integer(),
                  sa.ForeignKey('test_run_cases.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('overall_status', sa.String(length=10), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('executed_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('executed_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint(f'overall_status {STATUS_CHECK}', name='ck_test_results_status'),
    )

    op.create_table(
        'test_step_results',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('result_id', sa.Integer(), sa.ForeignKey('test_results.id', ondelete='CASCADE'), nullable=False),
        sa.Column('step_no', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=10), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.UniqueConstraint('result_id', 'step_no', name='uq_result_step_no'),
        sa.CheckConstraint(f'status {STATUS_CHECK}', name='ck_test_step_results_status'),
    )
    op.create_index('ix_test_step_results_result_id', 'test_step_results', ['result_id'])

    op.create_table(
        'import_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('file_name', sa.String(length=300), nullable=False),
        sa.Column('total_rows', sa.Integer(), nullable=False),
        sa.Column('success_count', sa.Integer(), nullable=False),
        sa.Column('fail_count', sa.Integer(), nullable=False),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'import_log_rows',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('import_log_id', sa.Integer(),
                  sa.ForeignKey('import_logs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('row_number', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=10), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
    )
    op.create_index('ix_import_log_rows_import_log_id', 'import_log_rows', ['import_log_id'])


def downgrade():
    op.drop_index('ix_import_log_rows_import_log_id', table_name='import_log_rows')
    op.drop_table('import_log_rows')
    op.drop_table('import_logs')
    op.drop_index('ix_test_step_results_result_id', table_name='test_step_results')
    op.drop_table('test_step_results')
    op.drop_table('test_results')
    op.drop_index('ix_test_run_cases_case_id', table_name='test_run_cases')
    op.drop_index('ix_test_run_cases_run_id', table_name='test_run_cases')
    op.drop_table('test_run_cases')
    op.drop_index('ix_test_runs_project_id', table_name='test_runs')
    op.drop_table('test_runs')
    op.drop_index('ix_test_steps_case_version_id', table_name='test_steps')
    op.drop_table('test_steps')

    with op.batch_alter_table('test_cases') as batch_op:
        batch_op.drop_constraint('fk_test_cases_current_version_id', type_='foreignkey')

    op.drop_index('ix_test_case_versions_case_id', table_name='test_case_versions')
    op.drop_table('test_case_versions')
    op.drop_index('ix_test_cases_suite_id', table_name='test_cases')
    op.drop_index('ix_test_cases_project_id', table_name='test_cases')
    op.drop_table('test_cases')
    op.drop_index('ix_suites_project_id', table_name='suites')
    op.drop_table('suites')
    op.drop_table('projects')
    op.drop_index('ix_users_username', table_name='users')
    op.drop_table('users')

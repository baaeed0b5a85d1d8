"""initial halaqat schema

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


revision = '20261017_0001'
down_revision = None
branch_labels = None
depends_on = None


def _id():
    return sa.Column('id', sa.Integer(), primary_key=True)


def _created_at():
    return sa.Column('created_at', sa.DateTime(), nullable=True)


def _indexes(table: str, *columns: str) -> None:
    op.create_index(f'ix_{table}_id', table, ['id'], unique=False)
    for column in columns:
        op.create_index(f'ix_{table}_{column}', table, [column], unique=False)


def upgrade() -> None:
    op.create_table(
        'centers',
        _id(),
        sa.Column('name', sa.String(length=180), nullable=False),
        sa.Column('location', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('phone', sa.String(length=32), nullable=False, server_default=''),
        sa.Column('email', sa.String(length=180), nullable=False, server_default=''),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('logo_url', sa.String(length=500), nullable=False, server_default=''),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    _indexes('centers', 'is_active', 'created_at')

    op.create_table(
        'auth_users',
        _id(),
        sa.Column('full_name', sa.String(length=180), nullable=False),
        sa.Column('username', sa.String(length=180), nullable=False, server_default=''),
        sa.Column('email', sa.String(length=180), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=False, server_default=''),
        sa.Column('password_hash', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('center_id', sa.Integer(), sa.ForeignKey('centers.id'), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
        _created_at(),
    )
    _indexes('auth_users', 'full_name', 'username', 'center_id', 'is_active', 'created_at')
    op.create_index('ix_auth_users_email', 'auth_users', ['email'], unique=True)

    op.create_table(
        'user_roles',
        _id(),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('auth_users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', sa.String(length=40), nullable=False),
        sa.Column('center_id', sa.Integer(), sa.ForeignKey('centers.id'), nullable=True),
        _created_at(),
        sa.UniqueConstraint('user_id', 'role', 'center_id', name='uq_user_roles_user_role_center'),
    )
    _indexes('user_roles', 'user_id', 'role', 'center_id')

    op.create_table(
        'halaqat',
        _id(),
        sa.Column('center_id', sa.Integer(), sa.ForeignKey('centers.id'), nullable=False),
        sa.Column('name', sa.String(length=180), nullable=False),
        sa.Column('teacher_id', sa.Integer(), sa.ForeignKey('auth_users.id'), nullable=True),
        sa.Column('max_students', sa.Integer(), nullable=False, server_default='20'),
        sa.Column('category', sa.String(length=80), nullable=False, server_default=''),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
    )
    _indexes('halaqat', 'center_id', 'teacher_id', 'is_active', 'created_at')
    op.create_index('ix_halaqat_center_active', 'halaqat', ['center_id', 'is_active'], unique=False)

    op.create_table(
        'students',
        _id(),
        sa.Column('center_id', sa.Integer(), sa.ForeignKey('centers.id'), nullable=False),
        sa.Column('halqa_id', sa.Integer(), sa.ForeignKey('halaqat.id'), nullable=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('auth_users.id'), nullable=True),
        sa.Column('full_name', sa.String(length=180), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False, server_default=''),
        sa.Column('birth_date', sa.Date(), nullable=True),
        sa.Column('photo_url', sa.String(length=500), nullable=False, server_default=''),
        sa.Column('notes', sa.Text(), nullable=False, server_default=''),
        sa.Column('previous_surah', sa.String(length=80), nullable=False, server_default=''),
        sa.Column('previous_ayah', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
    )
    _indexes('students', 'center_id', 'halqa_id', 'full_name', 'is_active', 'created_at')
    op.create_index('ix_students_user_id', 'students', ['user_id'], unique=True)
    op.create_index('ix_students_halqa_active', 'students', ['halqa_id', 'is_active'], unique=False)

    op.create_table(
        'parents',
        _id(),
        sa.Column('center_id', sa.Integer(), sa.ForeignKey('centers.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('auth_users.id'), nullable=True),
        sa.Column('full_name', sa.String(length=180), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False, server_default=''),
        sa.Column('work', sa.String(length=180), nullable=False, server_default=''),
        _created_at(),
    )
    _indexes('parents', 'center_id', 'full_name', 'phone', 'created_at')
    op.create_index('ix_parents_user_id', 'parents', ['user_id'], unique=True)

    op.create_table(
        'student_parents',
        _id(),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.id', ondelete='CASCADE'), nullable=False),
        sa.Column('parent_id', sa.Integer(), sa.ForeignKey('parents.id', ondelete='CASCADE'), nullable=False),
        sa.Column('relation', sa.String(length=40), nullable=False, server_default='أب'),
        _created_at(),
        sa.UniqueConstraint('parent_id', 'student_id', name='uq_student_parents_parent_student'),
    )
    _indexes('student_parents', 'student_id', 'parent_id')

    op.create_table(
        'badge_settings',
        _id(),
        sa.Column('center_id', sa.Integer(), sa.ForeignKey('centers.id'), nullable=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('icon_name', sa.String(length=60), nullable=False, server_default='award'),
        sa.Column('points_value', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('requirements_type', sa.String(length=40), nullable=False, server_default='excellent_days'),
        sa.Column('requirements_value', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
    )
    _indexes('badge_settings', 'center_id', 'is_active')

    op.create_table(
        'store_items',
        _id(),
        sa.Column('center_id', sa.Integer(), sa.ForeignKey('centers.id'), nullable=True),
        sa.Column('name', sa.String(length=180), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('image_url', sa.String(length=500), nullable=False, server_default=''),
        sa.Column('points_cost', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('badges_cost', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('item_type', sa.String(length=20), nullable=False, server_default='student'),
        sa.Column('stock_quantity', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.CheckConstraint('points_cost >= 0', name='ck_store_items_points_cost'),
        sa.CheckConstraint('badges_cost >= 0', name='ck_store_items_badges_cost'),
    )
    _indexes('store_items', 'center_id', 'item_type', 'is_active')

    op.create_table(
        'student_badges',
        _id(),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.id', ondelete='CASCADE'), nullable=False),
        sa.Column('badge_setting_id', sa.Integer(), sa.ForeignKey('badge_settings.id'), nullable=False),
        sa.Column('notes', sa.Text(), nullable=False, server_default=''),
        sa.Column('awarded_by', sa.Integer(), sa.ForeignKey('auth_users.id'), nullable=True),
        sa.Column('earned_at', sa.DateTime(), nullable=True),
    )
    _indexes('student_badges', 'student_id', 'badge_setting_id', 'earned_at')

    op.create_table(
        'halqa_badges',
        _id(),
        sa.Column('halqa_id', sa.Integer(), sa.ForeignKey('halaqat.id', ondelete='CASCADE'), nullable=False),
        sa.Column('badge_name', sa.String(length=120), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('points_value', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('earned_at', sa.DateTime(), nullable=True),
    )
    _indexes('halqa_badges', 'halqa_id', 'earned_at')

    op.create_table(
        'points_conversions',
        _id(),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.id', ondelete='CASCADE'), nullable=False),
        sa.Column('conversion_type', sa.String(length=30), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('points_delta', sa.Integer(), nullable=False),
        sa.Column('badges_delta', sa.Integer(), nullable=False),
        _created_at(),
    )
    _indexes('points_conversions', 'student_id', 'created_at')

    op.create_table(
        'halqa_points',
        _id(),
        sa.Column('halqa_id', sa.Integer(), sa.ForeignKey('halaqat.id', ondelete='CASCADE'), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('auth_users.id'), nullable=True),
        _created_at(),
        sa.CheckConstraint('points <> 0', name='ck_halqa_points_nonzero'),
    )
    _indexes('halqa_points', 'halqa_id', 'created_at')

    op.create_table(
        'student_purchases',
        _id(),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.id', ondelete='CASCADE'), nullable=False),
        sa.Column('item_id', sa.Integer(), sa.ForeignKey('store_items.id'), nullable=False),
        sa.Column('points_spent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('badges_spent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('notes', sa.Text(), nullable=False, server_default=''),
        sa.Column('reviewed_by', sa.Integer(), sa.ForeignKey('auth_users.id'), nullable=True),
        sa.Column('purchased_at', sa.DateTime(), nullable=True),
        sa.Column('delivered_at', sa.DateTime(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
    )
    _indexes('student_purchases', 'student_id', 'item_id', 'status', 'purchased_at')
    op.create_index(
        'ix_student_purchases_student_status', 'student_purchases', ['student_id', 'status'], unique=False
    )

    op.create_table(
        'halqa_purchase_votes',
        _id(),
        sa.Column('halqa_id', sa.Integer(), sa.ForeignKey('halaqat.id', ondelete='CASCADE'), nullable=False),
        sa.Column('item_id', sa.Integer(), sa.ForeignKey('store_items.id'), nullable=False),
        sa.Column('initiated_by', sa.Integer(), sa.ForeignKey('students.id'), nullable=False),
        sa.Column('total_students', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('required_votes', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('votes_for', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('votes_against', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='voting'),
        sa.Column('ends_at', sa.DateTime(), nullable=False),
        sa.Column('closed_at', sa.DateTime(), nullable=True),
        _created_at(),
    )
    _indexes('halqa_purchase_votes', 'halqa_id', 'item_id', 'initiated_by', 'status', 'ends_at', 'created_at')

    op.create_table(
        'student_votes',
        _id(),
        sa.Column('vote_id', sa.Integer(), sa.ForeignKey('halqa_purchase_votes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.id', ondelete='CASCADE'), nullable=False),
        sa.Column('vote', sa.Boolean(), nullable=False),
        sa.Column('voted_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('vote_id', 'student_id', name='uq_student_votes_vote_student'),
    )
    _indexes('student_votes', 'vote_id', 'student_id')

    op.create_table(
        'daily_reports',
        _id(),
        sa.Column('center_id', sa.Integer(), sa.ForeignKey('centers.id'), nullable=False),
        sa.Column('halqa_id', sa.Integer(), sa.ForeignKey('halaqat.id'), nullable=False),
        sa.Column('teacher_id', sa.Integer(), sa.ForeignKey('auth_users.id'), nullable=False),
        sa.Column('report_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('write_state', sa.String(length=20), nullable=False, server_default='partial'),
        sa.Column('reviewer_id', sa.Integer(), sa.ForeignKey('auth_users.id'), nullable=True),
        sa.Column('review_notes', sa.Text(), nullable=False, server_default=''),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    _indexes('daily_reports', 'center_id', 'halqa_id', 'teacher_id', 'report_date', 'status', 'created_at')
    op.create_index('ix_daily_reports_center_status', 'daily_reports', ['center_id', 'status'], unique=False)
    op.create_index('ix_daily_reports_halqa_date', 'daily_reports', ['halqa_id', 'report_date'], unique=False)

    op.create_table(
        'report_students',
        _id(),
        sa.Column('report_id', sa.Integer(), sa.ForeignKey('daily_reports.id', ondelete='CASCADE'), nullable=False),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.id'), nullable=False),
        sa.Column('attendance_status', sa.String(length=30), nullable=False, server_default='present'),
        sa.Column('notes', sa.Text(), nullable=False, server_default=''),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.UniqueConstraint('report_id', 'student_id', name='uq_report_students_report_student'),
    )
    _indexes('report_students', 'report_id', 'student_id')

    op.create_table(
        'recitations',
        _id(),
        sa.Column(
            'report_entry_id', sa.Integer(), sa.ForeignKey('report_students.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column('surah_name', sa.String(length=80), nullable=False),
        sa.Column('from_ayah', sa.Integer(), nullable=False),
        sa.Column('to_ayah', sa.Integer(), nullable=False),
        sa.Column('recitation_type', sa.String(length=30), nullable=False, server_default='new_memorization'),
        sa.Column('grade', sa.Float(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=False, server_default=''),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.CheckConstraint('from_ayah >= 1', name='ck_recitations_from_ayah'),
        sa.CheckConstraint('to_ayah >= 1', name='ck_recitations_to_ayah'),
    )
    _indexes('recitations', 'report_entry_id')

    op.create_table(
        'student_points',
        _id(),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.id', ondelete='CASCADE'), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('source', sa.String(length=20), nullable=False, server_default='manual'),
        sa.Column(
            'report_entry_id', sa.Integer(), sa.ForeignKey('report_students.id', ondelete='SET NULL'), nullable=True
        ),
        sa.Column('recitation_id', sa.Integer(), sa.ForeignKey('recitations.id', ondelete='SET NULL'), nullable=True),
        sa.Column('purchase_id', sa.Integer(), sa.ForeignKey('student_purchases.id'), nullable=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('auth_users.id'), nullable=True),
        _created_at(),
        sa.CheckConstraint('points <> 0', name='ck_student_points_nonzero'),
    )
    _indexes('student_points', 'student_id', 'source', 'purchase_id', 'created_at')
    op.create_index(
        'ix_student_points_student_created', 'student_points', ['student_id', 'created_at'], unique=False
    )

    op.create_table(
        'activities',
        _id(),
        sa.Column('center_id', sa.Integer(), sa.ForeignKey('centers.id'), nullable=False),
        sa.Column('name', sa.String(length=180), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('location', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('requires_approval', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('auth_users.id'), nullable=True),
        _created_at(),
    )
    _indexes('activities', 'center_id', 'start_date', 'is_active', 'created_at')

    op.create_table(
        'activity_halaqat',
        _id(),
        sa.Column('activity_id', sa.Integer(), sa.ForeignKey('activities.id', ondelete='CASCADE'), nullable=False),
        sa.Column('halqa_id', sa.Integer(), sa.ForeignKey('halaqat.id', ondelete='CASCADE'), nullable=False),
        sa.UniqueConstraint('activity_id', 'halqa_id', name='uq_activity_halaqat_activity_halqa'),
    )
    _indexes('activity_halaqat', 'activity_id', 'halqa_id')

    op.create_table(
        'activity_approvals',
        _id(),
        sa.Column('activity_id', sa.Integer(), sa.ForeignKey('activities.id', ondelete='CASCADE'), nullable=False),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.id', ondelete='CASCADE'), nullable=False),
        sa.Column('parent_id', sa.Integer(), sa.ForeignKey('parents.id', ondelete='CASCADE'), nullable=False),
        sa.Column('approved', sa.Boolean(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=False, server_default=''),
        sa.Column('response_date', sa.DateTime(), nullable=True),
        _created_at(),
        sa.UniqueConstraint(
            'activity_id', 'student_id', 'parent_id', name='uq_activity_approvals_activity_student_parent'
        ),
    )
    _indexes('activity_approvals', 'activity_id', 'student_id', 'parent_id', 'approved')

    op.create_table(
        'holidays',
        _id(),
        sa.Column('center_id', sa.Integer(), sa.ForeignKey('centers.id'), nullable=False),
        sa.Column('name', sa.String(length=180), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False, server_default=''),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('is_recurring', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('auth_users.id'), nullable=True),
        _created_at(),
    )
    _indexes('holidays', 'center_id', 'start_date', 'created_at')

    op.create_table(
        'holiday_halaqat',
        _id(),
        sa.Column('holiday_id', sa.Integer(), sa.ForeignKey('holidays.id', ondelete='CASCADE'), nullable=False),
        sa.Column('halqa_id', sa.Integer(), sa.ForeignKey('halaqat.id', ondelete='CASCADE'), nullable=False),
        sa.UniqueConstraint('holiday_id', 'halqa_id', name='uq_holiday_halaqat_holiday_halqa'),
    )
    _indexes('holiday_halaqat', 'holiday_id', 'halqa_id')

    op.create_table(
        'holiday_attendance',
        _id(),
        sa.Column('holiday_id', sa.Integer(), sa.ForeignKey('holidays.id', ondelete='CASCADE'), nullable=False),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.id', ondelete='CASCADE'), nullable=False),
        sa.Column('parent_id', sa.Integer(), sa.ForeignKey('parents.id', ondelete='SET NULL'), nullable=True),
        sa.Column('parent_approved', sa.Boolean(), nullable=True),
        sa.Column('parent_response_date', sa.DateTime(), nullable=True),
        sa.Column('attended', sa.Boolean(), nullable=True),
        sa.Column('marked_by', sa.Integer(), sa.ForeignKey('auth_users.id'), nullable=True),
        sa.Column('marked_at', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=False, server_default=''),
        _created_at(),
    )
    _indexes('holiday_attendance', 'holiday_id', 'student_id', 'parent_id')
    op.create_index(
        'ix_holiday_attendance_holiday_student', 'holiday_attendance', ['holiday_id', 'student_id'], unique=False
    )


def downgrade() -> None:
    for table in (
        'holiday_attendance',
        'holiday_halaqat',
        'holidays',
        'activity_approvals',
        'activity_halaqat',
        'activities',
        'student_points',
        'recitations',
        'report_students',
        'daily_reports',
        'student_votes',
        'halqa_purchase_votes',
        'student_purchases',
        'halqa_points',
        'points_conversions',
        'halqa_badges',
        'student_badges',
        'store_items',
        'badge_settings',
        'student_parents',
        'parents',
        'students',
        'halaqat',
        'user_roles',
        'auth_users',
        'centers',
    ):
        op.drop_table(table)

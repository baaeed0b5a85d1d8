from datetime import date, datetime
from enum import Enum

from sqlalchemy import JSON, Boolean, CheckConstraint, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from halaqat.db import Base


class Role(str, Enum):
    SUPER_ADMIN = 'super_admin'
    CENTER_ADMIN = 'center_admin'
    TEACHER = 'teacher'
    COMMUNICATION_OFFICER = 'communication_officer'
    PARENT = 'parent'
    STUDENT = 'student'


class AttendanceStatus(str, Enum):
    PRESENT = 'present'
    ABSENT = 'absent'
    ABSENT_WITH_PERMISSION = 'absent_with_permission'
    ESCAPED = 'escaped'


class RecitationType(str, Enum):
    NEW_MEMORIZATION = 'new_memorization'
    REVIEW = 'review'
    RECITATION = 'recitation'
    TALQEEN = 'talqeen'


class ReportStatus(str, Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'


class PurchaseStatus(str, Enum):
    PENDING = 'pending'
    DELIVERED = 'delivered'
    REJECTED = 'rejected'


class VoteStatus(str, Enum):
    VOTING = 'voting'
    PASSED = 'passed'
    FAILED = 'failed'
    EXPIRED = 'expired'


class ItemScope(str, Enum):
    STUDENT = 'student'
    HALQA = 'halqa'


class PointSource(str, Enum):
    MANUAL = 'manual'
    ATTENDANCE = 'attendance'
    RECITATION = 'recitation'
    BADGE = 'badge'
    CONVERSION = 'conversion'
    REFUND = 'refund'


class ConversionType(str, Enum):
    POINTS_TO_BADGES = 'points_to_badges'
    BADGES_TO_POINTS = 'badges_to_points'


class BadgeRequirement(str, Enum):
    EXCELLENT_DAYS = 'excellent_days'
    ATTENDANCE_MONTH = 'attendance_month'
    COURSE_COMPLETION = 'course_completion'
    EXAM_SCORE = 'exam_score'
    MEMORIZATION_PAGES = 'memorization_pages'
    ACTIVITIES = 'activities'
    MONTHLY_PLAN = 'monthly_plan'
    EXTRA_EFFORT = 'extra_effort'


class Center(Base):
    __tablename__ = 'centers'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(180))
    location: Mapped[str] = mapped_column(String(255), default='')
    phone: Mapped[str] = mapped_column(String(32), default='')
    email: Mapped[str] = mapped_column(String(180), default='')
    description: Mapped[str] = mapped_column(Text, default='')
    logo_url: Mapped[str] = mapped_column(String(500), default='')
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class AuthUser(Base):
    __tablename__ = 'auth_users'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    full_name: Mapped[str] = mapped_column(String(180), index=True)
    username: Mapped[str] = mapped_column(String(180), default='', index=True)
    email: Mapped[str | None] = mapped_column(String(180), nullable=True, unique=True, index=True)
    phone: Mapped[str] = mapped_column(String(32), default='')
    password_hash: Mapped[str] = mapped_column(String(255), default='')
    center_id: Mapped[int | None] = mapped_column(ForeignKey('centers.id'), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    roles = relationship('UserRole', back_populates='user', cascade='all, delete-orphan')


class UserRole(Base):
    __tablename__ = 'user_roles'
    __table_args__ = (
        UniqueConstraint('user_id', 'role', 'center_id', name='uq_user_roles_user_role_center'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('auth_users.id', ondelete='CASCADE'), index=True)
    role: Mapped[str] = mapped_column(String(40), index=True)
    center_id: Mapped[int | None] = mapped_column(ForeignKey('centers.id'), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    user = relationship('AuthUser', back_populates='roles')


class Halqa(Base):
    __tablename__ = 'halaqat'
    __table_args__ = (
        Index('ix_halaqat_center_active', 'center_id', 'is_active'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    center_id: Mapped[int] = mapped_column(ForeignKey('centers.id'), index=True)
    name: Mapped[str] = mapped_column(String(180))
    teacher_id: Mapped[int | None] = mapped_column(ForeignKey('auth_users.id'), nullable=True, index=True)
    max_students: Mapped[int] = mapped_column(Integer, default=20)
    category: Mapped[str] = mapped_column(String(80), default='')
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)


class Student(Base):
    __tablename__ = 'students'
    __table_args__ = (
        Index('ix_students_halqa_active', 'halqa_id', 'is_active'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    center_id: Mapped[int] = mapped_column(ForeignKey('centers.id'), index=True)
    halqa_id: Mapped[int | None] = mapped_column(ForeignKey('halaqat.id'), nullable=True, index=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey('auth_users.id'), nullable=True, unique=True, index=True)
    full_name: Mapped[str] = mapped_column(String(180), index=True)
    phone: Mapped[str] = mapped_column(String(32), default='')
    birth_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    photo_url: Mapped[str] = mapped_column(String(500), default='')
    notes: Mapped[str] = mapped_column(Text, default='')
    previous_surah: Mapped[str] = mapped_column(String(80), default='')
    previous_ayah: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)


class Parent(Base):
    __tablename__ = 'parents'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    center_id: Mapped[int] = mapped_column(ForeignKey('centers.id'), index=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey('auth_users.id'), nullable=True, unique=True, index=True)
    full_name: Mapped[str] = mapped_column(String(180), index=True)
    phone: Mapped[str] = mapped_column(String(32), default='', index=True)
    work: Mapped[str] = mapped_column(String(180), default='')
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)


class StudentParent(Base):
    __tablename__ = 'student_parents'
    __table_args__ = (
        UniqueConstraint('parent_id', 'student_id', name='uq_student_parents_parent_student'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey('students.id', ondelete='CASCADE'), index=True)
    parent_id: Mapped[int] = mapped_column(ForeignKey('parents.id', ondelete='CASCADE'), index=True)
    relation: Mapped[str] = mapped_column(String(40), default='أب')
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class PointEntry(Base):
    """Append-only student ledger row; balances are always derived from these."""

    __tablename__ = 'student_points'
    __table_args__ = (
        CheckConstraint('points <> 0', name='ck_student_points_nonzero'),
        Index('ix_student_points_student_created', 'student_id', 'created_at'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey('students.id', ondelete='CASCADE'), index=True)
    points: Mapped[int] = mapped_column(Integer)
    reason: Mapped[str] = mapped_column(String(255), default='')
    source: Mapped[str] = mapped_column(String(20), default=PointSource.MANUAL.value, index=True)
    report_entry_id: Mapped[int | None] = mapped_column(ForeignKey('report_students.id', ondelete='SET NULL'), nullable=True)
    recitation_id: Mapped[int | None] = mapped_column(ForeignKey('recitations.id', ondelete='SET NULL'), nullable=True)
    purchase_id: Mapped[int | None] = mapped_column(ForeignKey('student_purchases.id'), nullable=True, index=True)
    created_by: Mapped[int | None] = mapped_column(ForeignKey('auth_users.id'), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)


class HalqaPointEntry(Base):
    __tablename__ = 'halqa_points'
    __table_args__ = (
        CheckConstraint('points <> 0', name='ck_halqa_points_nonzero'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    halqa_id: Mapped[int] = mapped_column(ForeignKey('halaqat.id', ondelete='CASCADE'), index=True)
    points: Mapped[int] = mapped_column(Integer)
    reason: Mapped[str] = mapped_column(String(255), default='')
    created_by: Mapped[int | None] = mapped_column(ForeignKey('auth_users.id'), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)


class PointsConversion(Base):
    __tablename__ = 'points_conversions'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey('students.id', ondelete='CASCADE'), index=True)
    conversion_type: Mapped[str] = mapped_column(String(30))
    amount: Mapped[int] = mapped_column(Integer)
    points_delta: Mapped[int] = mapped_column(Integer)
    badges_delta: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)


class BadgeSetting(Base):
    __tablename__ = 'badge_settings'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    center_id: Mapped[int | None] = mapped_column(ForeignKey('centers.id'), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(120))
    description: Mapped[str] = mapped_column(Text, default='')
    icon_name: Mapped[str] = mapped_column(String(60), default='award')
    points_value: Mapped[int] = mapped_column(Integer, default=0)
    requirements_type: Mapped[str] = mapped_column(String(40), default=BadgeRequirement.EXCELLENT_DAYS.value)
    requirements_value: Mapped[dict] = mapped_column(JSON, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class StudentBadge(Base):
    __tablename__ = 'student_badges'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey('students.id', ondelete='CASCADE'), index=True)
    badge_setting_id: Mapped[int] = mapped_column(ForeignKey('badge_settings.id'), index=True)
    notes: Mapped[str] = mapped_column(Text, default='')
    awarded_by: Mapped[int | None] = mapped_column(ForeignKey('auth_users.id'), nullable=True)
    earned_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)


class HalqaBadge(Base):
    __tablename__ = 'halqa_badges'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    halqa_id: Mapped[int] = mapped_column(ForeignKey('halaqat.id', ondelete='CASCADE'), index=True)
    badge_name: Mapped[str] = mapped_column(String(120))
    description: Mapped[str] = mapped_column(Text, default='')
    points_value: Mapped[int] = mapped_column(Integer, default=0)
    earned_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)


class StoreItem(Base):
    __tablename__ = 'store_items'
    __table_args__ = (
        CheckConstraint('points_cost >= 0', name='ck_store_items_points_cost'),
        CheckConstraint('badges_cost >= 0', name='ck_store_items_badges_cost'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    center_id: Mapped[int | None] = mapped_column(ForeignKey('centers.id'), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(180))
    description: Mapped[str] = mapped_column(Text, default='')
    image_url: Mapped[str] = mapped_column(String(500), default='')
    points_cost: Mapped[int] = mapped_column(Integer, default=0)
    badges_cost: Mapped[int] = mapped_column(Integer, default=0)
    item_type: Mapped[str] = mapped_column(String(20), default=ItemScope.STUDENT.value, index=True)
    stock_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class PurchaseRequest(Base):
    __tablename__ = 'student_purchases'
    __table_args__ = (
        Index('ix_student_purchases_student_status', 'student_id', 'status'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey('students.id', ondelete='CASCADE'), index=True)
    item_id: Mapped[int] = mapped_column(ForeignKey('store_items.id'), index=True)
    points_spent: Mapped[int] = mapped_column(Integer, default=0)
    badges_spent: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(20), default=PurchaseStatus.PENDING.value, index=True)
    notes: Mapped[str] = mapped_column(Text, default='')
    reviewed_by: Mapped[int | None] = mapped_column(ForeignKey('auth_users.id'), nullable=True)
    purchased_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    item = relationship('StoreItem')
    student = relationship('Student')


class GroupPurchaseVote(Base):
    __tablename__ = 'halqa_purchase_votes'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    halqa_id: Mapped[int] = mapped_column(ForeignKey('halaqat.id', ondelete='CASCADE'), index=True)
    item_id: Mapped[int] = mapped_column(ForeignKey('store_items.id'), index=True)
    initiated_by: Mapped[int] = mapped_column(ForeignKey('students.id'), index=True)
    total_students: Mapped[int] = mapped_column(Integer, default=1)
    required_votes: Mapped[int] = mapped_column(Integer, default=1)
    votes_for: Mapped[int] = mapped_column(Integer, default=0)
    votes_against: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(20), default=VoteStatus.VOTING.value, index=True)
    ends_at: Mapped[datetime] = mapped_column(DateTime, index=True)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    item = relationship('StoreItem')


class StudentVote(Base):
    __tablename__ = 'student_votes'
    __table_args__ = (
        UniqueConstraint('vote_id', 'student_id', name='uq_student_votes_vote_student'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    vote_id: Mapped[int] = mapped_column(ForeignKey('halqa_purchase_votes.id', ondelete='CASCADE'), index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey('students.id', ondelete='CASCADE'), index=True)
    vote: Mapped[bool] = mapped_column(Boolean)
    voted_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class DailyReport(Base):
    __tablename__ = 'daily_reports'
    __table_args__ = (
        Index('ix_daily_reports_center_status', 'center_id', 'status'),
        Index('ix_daily_reports_halqa_date', 'halqa_id', 'report_date'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    center_id: Mapped[int] = mapped_column(ForeignKey('centers.id'), index=True)
    halqa_id: Mapped[int] = mapped_column(ForeignKey('halaqat.id'), index=True)
    teacher_id: Mapped[int] = mapped_column(ForeignKey('auth_users.id'), index=True)
    report_date: Mapped[date] = mapped_column(Date, index=True)
    status: Mapped[str] = mapped_column(String(20), default=ReportStatus.PENDING.value, index=True)
    write_state: Mapped[str] = mapped_column(String(20), default='partial')
    reviewer_id: Mapped[int | None] = mapped_column(ForeignKey('auth_users.id'), nullable=True)
    review_notes: Mapped[str] = mapped_column(Text, default='')
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    entries = relationship(
        'ReportEntry',
        back_populates='report',
        cascade='all, delete-orphan',
        order_by='ReportEntry.position',
    )
    halqa = relationship('Halqa')


class ReportEntry(Base):
    __tablename__ = 'report_students'
    __table_args__ = (
        UniqueConstraint('report_id', 'student_id', name='uq_report_students_report_student'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    report_id: Mapped[int] = mapped_column(ForeignKey('daily_reports.id', ondelete='CASCADE'), index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey('students.id'), index=True)
    attendance_status: Mapped[str] = mapped_column(String(30), default=AttendanceStatus.PRESENT.value)
    notes: Mapped[str] = mapped_column(Text, default='')
    position: Mapped[int] = mapped_column(Integer, default=0)

    report = relationship('DailyReport', back_populates='entries')
    student = relationship('Student')
    recitations = relationship(
        'Recitation',
        back_populates='entry',
        cascade='all, delete-orphan',
        order_by='Recitation.position',
    )


class Recitation(Base):
    __tablename__ = 'recitations'
    __table_args__ = (
        CheckConstraint('from_ayah >= 1', name='ck_recitations_from_ayah'),
        CheckConstraint('to_ayah >= 1', name='ck_recitations_to_ayah'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    report_entry_id: Mapped[int] = mapped_column(ForeignKey('report_students.id', ondelete='CASCADE'), index=True)
    surah_name: Mapped[str] = mapped_column(String(80))
    from_ayah: Mapped[int] = mapped_column(Integer)
    to_ayah: Mapped[int] = mapped_column(Integer)
    recitation_type: Mapped[str] = mapped_column(String(30), default=RecitationType.NEW_MEMORIZATION.value)
    grade: Mapped[float | None] = mapped_column(Float, nullable=True)
    notes: Mapped[str] = mapped_column(Text, default='')
    position: Mapped[int] = mapped_column(Integer, default=0)

    entry = relationship('ReportEntry', back_populates='recitations')


class Activity(Base):
    __tablename__ = 'activities'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    center_id: Mapped[int] = mapped_column(ForeignKey('centers.id'), index=True)
    name: Mapped[str] = mapped_column(String(180))
    description: Mapped[str] = mapped_column(Text, default='')
    location: Mapped[str] = mapped_column(String(255), default='')
    start_date: Mapped[date] = mapped_column(Date, index=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    requires_approval: Mapped[bool] = mapped_column(Boolean, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_by: Mapped[int | None] = mapped_column(ForeignKey('auth_users.id'), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)


class ActivityHalqa(Base):
    __tablename__ = 'activity_halaqat'
    __table_args__ = (
        UniqueConstraint('activity_id', 'halqa_id', name='uq_activity_halaqat_activity_halqa'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    activity_id: Mapped[int] = mapped_column(ForeignKey('activities.id', ondelete='CASCADE'), index=True)
    halqa_id: Mapped[int] = mapped_column(ForeignKey('halaqat.id', ondelete='CASCADE'), index=True)


class ActivityApproval(Base):
    __tablename__ = 'activity_approvals'
    __table_args__ = (
        UniqueConstraint('activity_id', 'student_id', 'parent_id', name='uq_activity_approvals_activity_student_parent'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    activity_id: Mapped[int] = mapped_column(ForeignKey('activities.id', ondelete='CASCADE'), index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey('students.id', ondelete='CASCADE'), index=True)
    parent_id: Mapped[int] = mapped_column(ForeignKey('parents.id', ondelete='CASCADE'), index=True)
    approved: Mapped[bool | None] = mapped_column(Boolean, nullable=True, index=True)
    notes: Mapped[str] = mapped_column(Text, default='')
    response_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class Holiday(Base):
    __tablename__ = 'holidays'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    center_id: Mapped[int] = mapped_column(ForeignKey('centers.id'), index=True)
    name: Mapped[str] = mapped_column(String(180))
    reason: Mapped[str] = mapped_column(Text, default='')
    start_date: Mapped[date] = mapped_column(Date, index=True)
    end_date: Mapped[date] = mapped_column(Date)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False)
    created_by: Mapped[int | None] = mapped_column(ForeignKey('auth_users.id'), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)


class HolidayHalqa(Base):
    __tablename__ = 'holiday_halaqat'
    __table_args__ = (
        UniqueConstraint('holiday_id', 'halqa_id', name='uq_holiday_halaqat_holiday_halqa'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    holiday_id: Mapped[int] = mapped_column(ForeignKey('holidays.id', ondelete='CASCADE'), index=True)
    halqa_id: Mapped[int] = mapped_column(ForeignKey('halaqat.id', ondelete='CASCADE'), index=True)


class HolidayAttendance(Base):
    __tablename__ = 'holiday_attendance'
    __table_args__ = (
        Index('ix_holiday_attendance_holiday_student', 'holiday_id', 'student_id'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    holiday_id: Mapped[int] = mapped_column(ForeignKey('holidays.id', ondelete='CASCADE'), index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey('students.id', ondelete='CASCADE'), index=True)
    parent_id: Mapped[int | None] = mapped_column(ForeignKey('parents.id', ondelete='SET NULL'), nullable=True, index=True)
    parent_approved: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    parent_response_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    attended: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    marked_by: Mapped[int | None] = mapped_column(ForeignKey('auth_users.id'), nullable=True)
    marked_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    notes: Mapped[str] = mapped_column(Text, default='')
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

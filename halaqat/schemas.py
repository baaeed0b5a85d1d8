from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, Field


AttendanceValue = Literal['present', 'absent', 'absent_with_permission', 'escaped']
RecitationValue = Literal['new_memorization', 'review', 'recitation', 'talqeen']


class LoginByNameRequest(BaseModel):
    identifier: str
    password: str


class CreateUserRequest(BaseModel):
    full_name: str = ''
    password: str = ''
    role: str = ''
    center_id: int | None = None
    email: str | None = None
    username: str | None = None
    phone: str = ''


class ToggleUserStatusRequest(BaseModel):
    user_id: int
    action: Literal['enable', 'disable']


class CreateStudentWithParentRequest(BaseModel):
    student_name: str = ''
    student_phone: str = ''
    birth_date: date | None = None
    halqa_id: int | None = None
    center_id: int | None = None
    parent_name: str = ''
    parent_phone: str = ''
    parent_work: str = ''
    relationship: str = ''


class AdminOperationRequest(BaseModel):
    action: str | None = None
    operation: str | None = None
    table: str
    data: dict[str, Any] | list[dict[str, Any]] | None = None
    id: int | None = None


class CenterCreateRequest(BaseModel):
    name: str
    location: str = ''
    phone: str = ''
    email: str = ''
    description: str = ''


class CenterUpdateRequest(BaseModel):
    name: str | None = None
    location: str | None = None
    phone: str | None = None
    email: str | None = None
    description: str | None = None
    is_active: bool | None = None


class HalqaCreateRequest(BaseModel):
    name: str
    teacher_id: int | None = None
    max_students: int = Field(default=20, ge=1, le=500)
    category: str = ''
    center_id: int | None = None


class HalqaUpdateRequest(BaseModel):
    name: str | None = None
    teacher_id: int | None = None
    max_students: int | None = Field(default=None, ge=1, le=500)
    category: str | None = None
    is_active: bool | None = None


class HalqaAssignStudentRequest(BaseModel):
    student_id: int


class StudentCreateRequest(BaseModel):
    full_name: str
    phone: str = ''
    birth_date: date | None = None
    halqa_id: int | None = None
    notes: str = ''
    previous_surah: str = ''
    previous_ayah: int | None = Field(default=None, ge=1)
    center_id: int | None = None


class StudentUpdateRequest(BaseModel):
    full_name: str | None = None
    phone: str | None = None
    birth_date: date | None = None
    halqa_id: int | None = None
    notes: str | None = None
    previous_surah: str | None = None
    previous_ayah: int | None = Field(default=None, ge=1)
    is_active: bool | None = None


class ParentCreateRequest(BaseModel):
    full_name: str
    phone: str = ''
    work: str = ''
    center_id: int | None = None


class ParentStudentLinkRequest(BaseModel):
    parent_id: int
    student_id: int
    relation: str = 'أب'


class PointsAwardRequest(BaseModel):
    student_id: int
    points: int
    reason: str


class HalqaPointsAwardRequest(BaseModel):
    halqa_id: int
    points: int
    reason: str


class ConversionRequest(BaseModel):
    amount: int = Field(ge=1)


class BadgeSettingCreateRequest(BaseModel):
    name: str
    description: str = ''
    icon_name: str = 'award'
    points_value: int = 0
    requirements_type: str = 'excellent_days'
    requirements_value: dict[str, float] = Field(default_factory=dict)
    global_badge: bool = False


class BadgeSettingUpdateRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    icon_name: str | None = None
    points_value: int | None = None
    requirements_type: str | None = None
    requirements_value: dict[str, float] | None = None
    is_active: bool | None = None


class BadgeAwardRequest(BaseModel):
    student_id: int
    badge_setting_id: int
    notes: str = ''


class HalqaBadgeAwardRequest(BaseModel):
    halqa_id: int
    badge_name: str
    points_value: int = 0
    description: str = ''


class StoreItemCreateRequest(BaseModel):
    name: str
    description: str = ''
    image_url: str = ''
    points_cost: int = Field(default=0, ge=0)
    badges_cost: int = Field(default=0, ge=0)
    item_type: Literal['student', 'halqa'] = 'student'
    stock_quantity: int | None = Field(default=None, ge=0)
    global_item: bool = False


class StoreItemUpdateRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    image_url: str | None = None
    points_cost: int | None = Field(default=None, ge=0)
    badges_cost: int | None = Field(default=None, ge=0)
    item_type: Literal['student', 'halqa'] | None = None
    stock_quantity: int | None = Field(default=None, ge=0)
    is_active: bool | None = None


class PurchaseCreateRequest(BaseModel):
    item_id: int


class PurchaseReviewRequest(BaseModel):
    notes: str = ''


class VoteCreateRequest(BaseModel):
    item_id: int


class VoteCastRequest(BaseModel):
    vote: bool


class RecitationItem(BaseModel):
    surah_name: str = 'الفاتحة'
    from_ayah: int = Field(default=1, ge=1)
    to_ayah: int = Field(default=7, ge=1)
    recitation_type: RecitationValue = 'new_memorization'
    grade: float | None = Field(default=10, ge=0, le=10)
    notes: str = ''


class ReportEntryItem(BaseModel):
    student_id: int
    attendance_status: AttendanceValue = 'present'
    notes: str = ''
    recitations: list[RecitationItem] = Field(default_factory=list)


class ReportCreateRequest(BaseModel):
    halqa_id: int
    report_date: date
    entries: list[ReportEntryItem]


class ReportUpdateRequest(BaseModel):
    report_date: date | None = None
    entries: list[ReportEntryItem]


class ReportReviewRequest(BaseModel):
    approve: bool
    review_notes: str = ''


class ActivityCreateRequest(BaseModel):
    name: str
    description: str = ''
    location: str = ''
    start_date: date
    end_date: date | None = None
    requires_approval: bool = True
    halqa_ids: list[int] = Field(default_factory=list)
    center_id: int | None = None


class ActivityUpdateRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    location: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    requires_approval: bool | None = None
    is_active: bool | None = None
    halqa_ids: list[int] | None = None


class ApprovalRequestCreate(BaseModel):
    student_id: int
    parent_id: int


class ConsentResponseRequest(BaseModel):
    approved: bool
    notes: str = ''


class HolidayCreateRequest(BaseModel):
    name: str
    reason: str = ''
    start_date: date
    end_date: date
    is_recurring: bool = False
    halqa_ids: list[int] = Field(default_factory=list)
    center_id: int | None = None


class HolidayUpdateRequest(BaseModel):
    name: str | None = None
    reason: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    is_recurring: bool | None = None
    halqa_ids: list[int] | None = None


class HolidayAttendanceMarkRequest(BaseModel):
    attended: bool | None

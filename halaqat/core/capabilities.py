from __future__ import annotations

from enum import Enum

from halaqat.core.errors import AccessDeniedError
from halaqat.models import Role


class Capability(str, Enum):
    MANAGE_CENTERS = 'manage_centers'
    MANAGE_USERS = 'manage_users'
    MANAGE_HALAQAT = 'manage_halaqat'
    MANAGE_STUDENTS = 'manage_students'
    VIEW_STUDENTS = 'view_students'
    VIEW_ALL_HALAQAT = 'view_all_halaqat'
    SUBMIT_REPORTS = 'submit_reports'
    REVIEW_REPORTS = 'review_reports'
    AWARD_POINTS = 'award_points'
    MANAGE_BADGES = 'manage_badges'
    MANAGE_STORE = 'manage_store'
    REVIEW_PURCHASES = 'review_purchases'
    PURCHASE_ITEMS = 'purchase_items'
    CAST_VOTES = 'cast_votes'
    MANAGE_ACTIVITIES = 'manage_activities'
    MANAGE_HOLIDAYS = 'manage_holidays'
    MARK_HOLIDAY_ATTENDANCE = 'mark_holiday_attendance'
    RESPOND_CONSENT = 'respond_consent'
    UPLOAD_FILES = 'upload_files'
    ADMIN_OPERATIONS = 'admin_operations'


_STAFF_READ = {
    Capability.VIEW_STUDENTS,
}

ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.SUPER_ADMIN: frozenset(Capability) - {Capability.PURCHASE_ITEMS, Capability.CAST_VOTES, Capability.RESPOND_CONSENT},
    Role.CENTER_ADMIN: frozenset(
        {
            Capability.MANAGE_USERS,
            Capability.MANAGE_HALAQAT,
            Capability.MANAGE_STUDENTS,
            Capability.VIEW_ALL_HALAQAT,
            Capability.SUBMIT_REPORTS,
            Capability.REVIEW_REPORTS,
            Capability.AWARD_POINTS,
            Capability.MANAGE_BADGES,
            Capability.MANAGE_STORE,
            Capability.REVIEW_PURCHASES,
            Capability.MANAGE_ACTIVITIES,
            Capability.MANAGE_HOLIDAYS,
            Capability.MARK_HOLIDAY_ATTENDANCE,
            Capability.UPLOAD_FILES,
            Capability.ADMIN_OPERATIONS,
        }
        | _STAFF_READ
    ),
    Role.TEACHER: frozenset(
        {
            Capability.SUBMIT_REPORTS,
            Capability.AWARD_POINTS,
            Capability.MARK_HOLIDAY_ATTENDANCE,
        }
        | _STAFF_READ
    ),
    Role.COMMUNICATION_OFFICER: frozenset(
        {
            Capability.VIEW_ALL_HALAQAT,
            Capability.REVIEW_REPORTS,
            Capability.REVIEW_PURCHASES,
            Capability.MANAGE_ACTIVITIES,
            Capability.MANAGE_HOLIDAYS,
            Capability.MARK_HOLIDAY_ATTENDANCE,
        }
        | _STAFF_READ
    ),
    Role.PARENT: frozenset({Capability.RESPOND_CONSENT}),
    Role.STUDENT: frozenset({Capability.PURCHASE_ITEMS, Capability.CAST_VOTES}),
}


def actor_roles(actor: dict | None) -> set[Role]:
    roles: set[Role] = set()
    for raw in (actor or {}).get('roles') or []:
        try:
            roles.add(Role(str(raw).strip().lower()))
        except ValueError:
            continue
    return roles


def has_role(actor: dict | None, role: Role) -> bool:
    return role in actor_roles(actor)


def has_capability(actor: dict | None, capability: Capability) -> bool:
    return any(capability in ROLE_CAPABILITIES[role] for role in actor_roles(actor))


def require_capability(actor: dict | None, capability: Capability) -> None:
    if not has_capability(actor, capability):
        raise AccessDeniedError(f'Missing capability: {capability.value}')

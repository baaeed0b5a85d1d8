from datetime import date

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from halaqat.config import settings
from halaqat.core.capabilities import Capability
from halaqat.core.router_guard import domain_errors, require_auth_user, require_capability
from halaqat.core.time_provider import default_time_provider
from halaqat.db import get_db
from halaqat.models import DailyReport
from halaqat.schemas import ReportCreateRequest, ReportReviewRequest, ReportUpdateRequest
from halaqat.services.report_service import (
    assert_report_visible,
    create_report,
    get_report,
    list_reports,
    pending_review_count,
    report_draft,
    review_report,
    update_report,
)


router = APIRouter(prefix='/reports', tags=['Reports'])


def serialize_report(row: DailyReport, *, include_entries: bool = True) -> dict:
    payload = {
        'id': row.id,
        'center_id': row.center_id,
        'halqa_id': row.halqa_id,
        'teacher_id': row.teacher_id,
        'report_date': row.report_date.isoformat(),
        'status': row.status,
        'reviewer_id': row.reviewer_id,
        'review_notes': row.review_notes,
        'reviewed_at': row.reviewed_at.isoformat() if row.reviewed_at else None,
        'student_count': len(row.entries),
    }
    if include_entries:
        payload['entries'] = [
            {
                'id': entry.id,
                'student_id': entry.student_id,
                'attendance_status': entry.attendance_status,
                'notes': entry.notes,
                'recitations': [
                    {
                        'id': rec.id,
                        'surah_name': rec.surah_name,
                        'from_ayah': rec.from_ayah,
                        'to_ayah': rec.to_ayah,
                        'recitation_type': rec.recitation_type,
                        'grade': rec.grade,
                        'notes': rec.notes,
                    }
                    for rec in entry.recitations
                ],
            }
            for entry in row.entries
        ]
    return payload


@router.get('/draft')
def draft(halqa_id: int, request: Request, report_date: date | None = None, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    with domain_errors():
        return report_draft(db, user, halqa_id, report_date or default_time_provider.today())


@router.get('/pending-count')
def pending_count(request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.REVIEW_REPORTS)
    return {'pending': pending_review_count(db, user)}


@router.get('')
def list_all(
    request: Request,
    status: str | None = None,
    halqa_id: int | None = None,
    limit: int | None = None,
    db: Session = Depends(get_db),
):
    user = require_auth_user(request)
    require_capability(user, Capability.VIEW_STUDENTS)
    clean_limit = max(1, min(int(limit or settings.report_list_limit), 200))
    with domain_errors():
        rows = list_reports(db, user, status=status, halqa_id=halqa_id, limit=clean_limit)
    return [serialize_report(row, include_entries=False) for row in rows]


@router.post('')
def create(payload: ReportCreateRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    with domain_errors():
        row = create_report(
            db,
            user,
            halqa_id=payload.halqa_id,
            report_date=payload.report_date,
            entries=[entry.model_dump() for entry in payload.entries],
        )
    return serialize_report(row)


@router.get('/{report_id}')
def detail(report_id: int, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.VIEW_STUDENTS)
    with domain_errors():
        row = get_report(db, report_id)
        assert_report_visible(db, user, row)
    return serialize_report(row)


@router.put('/{report_id}')
def update(report_id: int, payload: ReportUpdateRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.VIEW_STUDENTS)
    with domain_errors():
        row = update_report(
            db,
            user,
            report_id,
            entries=[entry.model_dump() for entry in payload.entries],
            report_date=payload.report_date,
        )
    return serialize_report(row)


@router.post('/{report_id}/review')
def review(report_id: int, payload: ReportReviewRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    with domain_errors():
        row = review_report(db, user, report_id, approve=payload.approve, notes=payload.review_notes)
    return serialize_report(row)

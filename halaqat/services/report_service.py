from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from halaqat.core.capabilities import Capability, has_capability, require_capability
from halaqat.core.errors import ConflictError, NotFoundError, ValidationFailedError
from halaqat.core.time_provider import TimeProvider, default_time_provider
from halaqat.models import (
    AttendanceStatus,
    DailyReport,
    PointSource,
    Recitation,
    RecitationType,
    ReportEntry,
    ReportStatus,
    Student,
)
from halaqat.services.access_scope_service import assert_center_access, assert_halqa_access
from halaqat.services.center_scope_service import apply_center_scope
from halaqat.services.halqa_service import get_halqa, list_active_students
from halaqat.services.ledger_service import add_point_entry


logger = logging.getLogger(__name__)

LOCKED_REPORT_MESSAGE = 'لا يمكن تعديل التقرير بعد اعتماده'
EDITABLE_STATUSES = {ReportStatus.PENDING.value, ReportStatus.REJECTED.value}

ATTENDANCE_POINTS = {
    AttendanceStatus.PRESENT.value: 2,
    AttendanceStatus.ABSENT.value: -2,
    AttendanceStatus.ABSENT_WITH_PERMISSION.value: 0,
    AttendanceStatus.ESCAPED.value: -3,
}

RECITATION_WEIGHTS = {
    RecitationType.NEW_MEMORIZATION.value: 1.0,
    RecitationType.REVIEW.value: 0.5,
    RecitationType.RECITATION.value: 0.5,
    RecitationType.TALQEEN.value: 0.3,
}

ATTENDANCE_REASONS = {
    AttendanceStatus.PRESENT.value: 'حضور',
    AttendanceStatus.ABSENT.value: 'غياب',
    AttendanceStatus.ESCAPED.value: 'هروب من الحلقة',
}


def attendance_points(status: str) -> int:
    return ATTENDANCE_POINTS.get(status, 0)


def recitation_points(recitation_type: str, grade: float | None) -> int:
    if grade is None:
        return 0
    return int(round(float(grade) * RECITATION_WEIGHTS.get(recitation_type, 0.0)))


def _clean_recitation(raw: dict) -> dict:
    surah = str(raw.get('surah_name') or '').strip()
    if not surah:
        raise ValidationFailedError('surah_name is required')
    try:
        from_ayah = int(raw.get('from_ayah'))
        to_ayah = int(raw.get('to_ayah'))
    except (TypeError, ValueError) as exc:
        raise ValidationFailedError('Ayah numbers must be integers') from exc
    if from_ayah < 1 or to_ayah < 1:
        raise ValidationFailedError('Ayah numbers start at 1')
    if to_ayah < from_ayah:
        raise ValidationFailedError('to_ayah must not be before from_ayah')
    try:
        recitation_type = RecitationType(str(raw.get('recitation_type') or RecitationType.NEW_MEMORIZATION.value)).value
    except ValueError as exc:
        raise ValidationFailedError(f"Unknown recitation type: {raw.get('recitation_type')}") from exc
    grade = raw.get('grade')
    if grade is not None:
        grade = float(grade)
        if grade < 0 or grade > 10:
            raise ValidationFailedError('Grade must be between 0 and 10')
    return {
        'surah_name': surah,
        'from_ayah': from_ayah,
        'to_ayah': to_ayah,
        'recitation_type': recitation_type,
        'grade': grade,
        'notes': str(raw.get('notes') or ''),
    }


def _clean_entries(db: Session, halqa_id: int, entries: list[dict]) -> list[dict]:
    if not entries:
        raise ValidationFailedError('A report needs at least one student')
    member_ids = {student.id for student in list_active_students(db, halqa_id)}
    seen: set[int] = set()
    cleaned = []
    for raw in entries:
        student_id = int(raw.get('student_id') or 0)
        if student_id not in member_ids:
            raise ValidationFailedError(f'Student {student_id} is not an active member of this halqa')
        if student_id in seen:
            raise ValidationFailedError(f'Student {student_id} appears twice')
        seen.add(student_id)
        try:
            status = AttendanceStatus(str(raw.get('attendance_status') or AttendanceStatus.PRESENT.value)).value
        except ValueError as exc:
            raise ValidationFailedError(f"Unknown attendance status: {raw.get('attendance_status')}") from exc
        cleaned.append(
            {
                'student_id': student_id,
                'attendance_status': status,
                'notes': str(raw.get('notes') or ''),
                'recitations': [_clean_recitation(item) for item in raw.get('recitations') or []],
            }
        )
    return cleaned


def _write_entries(db: Session, report: DailyReport, entries: list[dict]) -> None:
    for position, item in enumerate(entries):
        entry = ReportEntry(
            report_id=report.id,
            student_id=item['student_id'],
            attendance_status=item['attendance_status'],
            notes=item['notes'],
            position=position,
        )
        db.add(entry)
        db.flush()
        for rec_position, rec in enumerate(item['recitations']):
            db.add(Recitation(report_entry_id=entry.id, position=rec_position, **rec))
    db.flush()


def get_report(db: Session, report_id: int) -> DailyReport:
    row = (
        db.query(DailyReport)
        .options(selectinload(DailyReport.entries).selectinload(ReportEntry.recitations))
        .filter(DailyReport.id == int(report_id))
        .first()
    )
    if not row:
        raise NotFoundError('Report not found')
    return row


def assert_report_visible(db: Session, user: dict, report: DailyReport) -> None:
    assert_center_access(user, report.center_id)
    if has_capability(user, Capability.REVIEW_REPORTS) or has_capability(user, Capability.VIEW_ALL_HALAQAT):
        return
    if int(report.teacher_id) != int(user.get('user_id') or 0):
        raise NotFoundError('Report not found')


def report_draft(db: Session, user: dict, halqa_id: int, report_date: date) -> dict:
    halqa = get_halqa(db, halqa_id)
    require_capability(user, Capability.SUBMIT_REPORTS)
    assert_halqa_access(db, user, halqa)
    return {
        'halqa_id': halqa.id,
        'report_date': report_date.isoformat(),
        'entries': [
            {
                'student_id': student.id,
                'full_name': student.full_name,
                'attendance_status': AttendanceStatus.PRESENT.value,
                'notes': '',
                'recitations': [],
            }
            for student in list_active_students(db, halqa.id)
        ],
    }


def create_report(
    db: Session,
    user: dict,
    *,
    halqa_id: int,
    report_date: date,
    entries: list[dict],
) -> DailyReport:
    """Save a report with its entries and recitations as one unit.

    Rows are written parent first; the report stays 'partial' until every child
    row is flushed and nothing is committed on failure.
    """
    require_capability(user, Capability.SUBMIT_REPORTS)
    halqa = get_halqa(db, halqa_id)
    assert_halqa_access(db, user, halqa)
    cleaned = _clean_entries(db, halqa.id, entries)

    try:
        report = DailyReport(
            center_id=halqa.center_id,
            halqa_id=halqa.id,
            teacher_id=int(user['user_id']),
            report_date=report_date,
            status=ReportStatus.PENDING.value,
            write_state='partial',
        )
        db.add(report)
        db.flush()
        _write_entries(db, report, cleaned)
        report.write_state = 'complete'
        db.commit()
    except Exception:
        db.rollback()
        logger.exception('report_save_failed halqa_id=%s report_date=%s', halqa.id, report_date)
        raise
    logger.info(
        'report_created report_id=%s halqa_id=%s entries=%s',
        report.id,
        halqa.id,
        len(cleaned),
    )
    return get_report(db, report.id)


def update_report(
    db: Session,
    user: dict,
    report_id: int,
    *,
    entries: list[dict],
    report_date: date | None = None,
) -> DailyReport:
    """Replace every entry and recitation of an editable report and send it back for review."""
    report = get_report(db, report_id)
    assert_report_visible(db, user, report)
    if int(report.teacher_id) != int(user.get('user_id') or 0) and not has_capability(user, Capability.REVIEW_REPORTS):
        raise NotFoundError('Report not found')
    if report.status not in EDITABLE_STATUSES:
        raise ConflictError(LOCKED_REPORT_MESSAGE)
    cleaned = _clean_entries(db, report.halqa_id, entries)

    try:
        report.write_state = 'partial'
        report.entries.clear()
        db.flush()
        if report_date is not None:
            report.report_date = report_date
        report.status = ReportStatus.PENDING.value
        report.reviewer_id = None
        report.review_notes = ''
        report.reviewed_at = None
        _write_entries(db, report, cleaned)
        report.write_state = 'complete'
        db.commit()
    except Exception:
        db.rollback()
        logger.exception('report_update_failed report_id=%s', report_id)
        raise
    db.expire_all()
    logger.info('report_resubmitted report_id=%s entries=%s', report_id, len(cleaned))
    return get_report(db, report_id)


def _grant_report_points(db: Session, report: DailyReport, reviewer_id: int) -> int:
    granted = 0
    for entry in report.entries:
        status_points = attendance_points(entry.attendance_status)
        if status_points:
            add_point_entry(
                db,
                student_id=entry.student_id,
                points=status_points,
                reason=f"{ATTENDANCE_REASONS.get(entry.attendance_status, entry.attendance_status)} - {report.report_date.isoformat()}",
                source=PointSource.ATTENDANCE,
                created_by=reviewer_id,
                report_entry_id=entry.id,
            )
            granted += 1
        for rec in entry.recitations:
            points = recitation_points(rec.recitation_type, rec.grade)
            if not points:
                continue
            add_point_entry(
                db,
                student_id=entry.student_id,
                points=points,
                reason=f'تسميع {rec.surah_name} {rec.from_ayah}-{rec.to_ayah}',
                source=PointSource.RECITATION,
                created_by=reviewer_id,
                report_entry_id=entry.id,
                recitation_id=rec.id,
            )
            granted += 1
    return granted


def review_report(
    db: Session,
    user: dict,
    report_id: int,
    *,
    approve: bool,
    notes: str = '',
    time_provider: TimeProvider = default_time_provider,
) -> DailyReport:
    require_capability(user, Capability.REVIEW_REPORTS)
    report = get_report(db, report_id)
    assert_center_access(user, report.center_id)
    status = ReportStatus.APPROVED if approve else ReportStatus.REJECTED
    reviewer_id = int(user['user_id'])

    updated = (
        db.query(DailyReport)
        .filter(DailyReport.id == report.id, DailyReport.status == ReportStatus.PENDING.value)
        .update(
            {
                DailyReport.status: status.value,
                DailyReport.reviewer_id: reviewer_id,
                DailyReport.review_notes: notes or '',
                DailyReport.reviewed_at: time_provider.utcnow(),
            },
            synchronize_session=False,
        )
    )
    if not updated:
        db.rollback()
        raise ConflictError(f'Report is already {get_report(db, report_id).status}')
    granted = _grant_report_points(db, report, reviewer_id) if approve else 0
    db.commit()
    db.expire_all()
    logger.info('report_reviewed report_id=%s status=%s ledger_entries=%s', report.id, status.value, granted)
    return get_report(db, report_id)


def list_reports(
    db: Session,
    user: dict,
    *,
    status: str | None = None,
    halqa_id: int | None = None,
    limit: int = 20,
) -> list[DailyReport]:
    query = apply_center_scope(db.query(DailyReport), user)
    if not (has_capability(user, Capability.REVIEW_REPORTS) or has_capability(user, Capability.VIEW_ALL_HALAQAT)):
        query = query.filter(DailyReport.teacher_id == int(user.get('user_id') or 0))
    if status:
        query = query.filter(DailyReport.status == ReportStatus(status).value)
    if int(halqa_id or 0):
        query = query.filter(DailyReport.halqa_id == int(halqa_id))
    return (
        query.options(selectinload(DailyReport.entries).selectinload(ReportEntry.recitations))
        .order_by(DailyReport.report_date.desc(), DailyReport.id.desc())
        .limit(max(1, int(limit)))
        .all()
    )


def pending_review_count(db: Session, user: dict) -> int:
    query = apply_center_scope(db.query(DailyReport), user)
    return int(query.filter(DailyReport.status == ReportStatus.PENDING.value).with_entities(func.count(DailyReport.id)).scalar() or 0)


def student_recitation_history(db: Session, student_id: int, *, limit: int = 50) -> list[dict]:
    rows = (
        db.query(Recitation, DailyReport.report_date, DailyReport.status)
        .join(ReportEntry, ReportEntry.id == Recitation.report_entry_id)
        .join(DailyReport, DailyReport.id == ReportEntry.report_id)
        .join(Student, Student.id == ReportEntry.student_id)
        .filter(ReportEntry.student_id == int(student_id))
        .order_by(DailyReport.report_date.desc(), Recitation.id.desc())
        .limit(max(1, int(limit)))
        .all()
    )
    return [
        {
            'report_date': report_date.isoformat(),
            'report_status': report_status,
            'surah_name': rec.surah_name,
            'from_ayah': rec.from_ayah,
            'to_ayah': rec.to_ayah,
            'recitation_type': rec.recitation_type,
            'grade': rec.grade,
        }
        for rec, report_date, report_status in rows
    ]

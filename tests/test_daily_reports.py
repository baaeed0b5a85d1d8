import tempfile
import unittest
from datetime import date
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from halaqat.core.errors import AccessDeniedError, ConflictError, ValidationFailedError
from halaqat.db import Base
from halaqat.models import (
    AuthUser,
    Center,
    DailyReport,
    Halqa,
    PointEntry,
    PointSource,
    Recitation,
    ReportEntry,
    ReportStatus,
    Student,
)
from halaqat.services.ledger_service import student_balance
from halaqat.services.report_service import (
    LOCKED_REPORT_MESSAGE,
    attendance_points,
    create_report,
    list_reports,
    pending_review_count,
    recitation_points,
    report_draft,
    review_report,
    student_recitation_history,
    update_report,
)


TEACHER = {'user_id': 10, 'roles': ['teacher'], 'center_id': 1, 'full_name': 'Teacher One'}
OTHER_TEACHER = {'user_id': 20, 'roles': ['teacher'], 'center_id': 1, 'full_name': 'Teacher Two'}
REVIEWER = {'user_id': 30, 'roles': ['communication_officer'], 'center_id': 1, 'full_name': 'Officer'}
FOREIGN_REVIEWER = {'user_id': 40, 'roles': ['center_admin'], 'center_id': 2, 'full_name': 'Admin Two'}


def _entries():
    return [
        {
            'student_id': 101,
            'attendance_status': 'present',
            'recitations': [
                {'surah_name': 'البقرة', 'from_ayah': 1, 'to_ayah': 5, 'recitation_type': 'new_memorization', 'grade': 9},
                {'surah_name': 'الفاتحة', 'from_ayah': 1, 'to_ayah': 7, 'recitation_type': 'review', 'grade': 8},
            ],
        },
        {'student_id': 102, 'attendance_status': 'absent'},
        {'student_id': 103, 'attendance_status': 'absent_with_permission'},
    ]


class DailyReportTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_daily_reports.db'
        cls._engine = create_engine(f"sqlite:///{db_path}", connect_args={'check_same_thread': False})
        cls._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=cls._engine)
        Base.metadata.create_all(bind=cls._engine)

    @classmethod
    def tearDownClass(cls):
        cls._engine.dispose()
        cls._tmpdir.cleanup()

    def setUp(self):
        db = self._session_factory()
        try:
            for table in reversed(Base.metadata.sorted_tables):
                db.execute(table.delete())
            db.add_all(
                [
                    Center(id=1, name='Center 1'),
                    Center(id=2, name='Center 2'),
                    AuthUser(id=10, full_name='Teacher One', center_id=1),
                    AuthUser(id=20, full_name='Teacher Two', center_id=1),
                    Halqa(id=11, center_id=1, name='Halqa A', teacher_id=10, max_students=10),
                    Halqa(id=12, center_id=1, name='Halqa B', teacher_id=20, max_students=10),
                    Student(id=101, center_id=1, halqa_id=11, full_name='Ali'),
                    Student(id=102, center_id=1, halqa_id=11, full_name='Bilal'),
                    Student(id=103, center_id=1, halqa_id=11, full_name='Hamza'),
                    Student(id=201, center_id=1, halqa_id=12, full_name='Omar'),
                ]
            )
            db.commit()
        finally:
            db.close()

    def test_point_rules(self):
        self.assertEqual(attendance_points('present'), 2)
        self.assertEqual(attendance_points('absent'), -2)
        self.assertEqual(attendance_points('escaped'), -3)
        self.assertEqual(attendance_points('absent_with_permission'), 0)
        self.assertEqual(recitation_points('new_memorization', 9), 9)
        self.assertEqual(recitation_points('review', 8), 4)
        self.assertEqual(recitation_points('talqeen', 10), 3)
        self.assertEqual(recitation_points('recitation', None), 0)

    def test_draft_lists_active_members_as_present(self):
        db = self._session_factory()
        try:
            draft = report_draft(db, TEACHER, 11, date(2026, 10, 17))
            self.assertEqual([row['student_id'] for row in draft['entries']], [101, 102, 103])
            self.assertTrue(all(row['attendance_status'] == 'present' for row in draft['entries']))
            with self.assertRaises(AccessDeniedError):
                report_draft(db, OTHER_TEACHER, 11, date(2026, 10, 17))
        finally:
            db.close()

    def test_create_writes_report_entries_and_recitations_together(self):
        db = self._session_factory()
        try:
            report = create_report(db, TEACHER, halqa_id=11, report_date=date(2026, 10, 17), entries=_entries())
            self.assertEqual(report.status, ReportStatus.PENDING.value)
            self.assertEqual(report.write_state, 'complete')
            self.assertEqual(report.center_id, 1)
            self.assertEqual([entry.student_id for entry in report.entries], [101, 102, 103])
            self.assertEqual(len(report.entries[0].recitations), 2)
            # Nothing is granted before review.
            self.assertEqual(db.query(PointEntry).count(), 0)
        finally:
            db.close()

    def test_invalid_entries_leave_no_partial_report(self):
        db = self._session_factory()
        try:
            bad_recitation = _entries()
            bad_recitation[0]['recitations'][0]['to_ayah'] = 0
            with self.assertRaises(ValidationFailedError):
                create_report(db, TEACHER, halqa_id=11, report_date=date(2026, 10, 17), entries=bad_recitation)

            with self.assertRaises(ValidationFailedError):
                create_report(
                    db,
                    TEACHER,
                    halqa_id=11,
                    report_date=date(2026, 10, 17),
                    entries=[{'student_id': 201, 'attendance_status': 'present'}],
                )
            with self.assertRaises(ValidationFailedError):
                create_report(
                    db,
                    TEACHER,
                    halqa_id=11,
                    report_date=date(2026, 10, 17),
                    entries=[{'student_id': 101}, {'student_id': 101}],
                )
            with self.assertRaises(ValidationFailedError):
                create_report(db, TEACHER, halqa_id=11, report_date=date(2026, 10, 17), entries=[])

            self.assertEqual(db.query(DailyReport).count(), 0)
            self.assertEqual(db.query(ReportEntry).count(), 0)
            self.assertEqual(db.query(Recitation).count(), 0)
        finally:
            db.close()

    def test_teacher_cannot_report_for_another_halqa(self):
        db = self._session_factory()
        try:
            with self.assertRaises(AccessDeniedError):
                create_report(db, OTHER_TEACHER, halqa_id=11, report_date=date(2026, 10, 17), entries=_entries())
        finally:
            db.close()

    def test_approval_grants_points_and_locks_the_report(self):
        db = self._session_factory()
        try:
            report = create_report(db, TEACHER, halqa_id=11, report_date=date(2026, 10, 17), entries=_entries())
            approved = review_report(db, REVIEWER, report.id, approve=True, notes='ممتاز')
            self.assertEqual(approved.status, ReportStatus.APPROVED.value)
            self.assertEqual(approved.reviewer_id, 30)

            # present +2, memorization 9 * 1.0, review 8 * 0.5
            self.assertEqual(student_balance(db, 101)['total_points'], 15)
            self.assertEqual(student_balance(db, 102)['total_points'], -2)
            self.assertEqual(student_balance(db, 103)['total_points'], 0)
            sources = {row.source for row in db.query(PointEntry).filter(PointEntry.student_id == 101).all()}
            self.assertEqual(sources, {PointSource.ATTENDANCE.value, PointSource.RECITATION.value})

            with self.assertRaises(ConflictError) as ctx:
                update_report(db, TEACHER, report.id, entries=_entries())
            self.assertEqual(str(ctx.exception), LOCKED_REPORT_MESSAGE)
            with self.assertRaises(ConflictError):
                review_report(db, REVIEWER, report.id, approve=True)
            self.assertEqual(student_balance(db, 101)['total_points'], 15)
        finally:
            db.close()

    def test_rejected_report_is_edited_and_resubmitted(self):
        db = self._session_factory()
        try:
            report = create_report(db, TEACHER, halqa_id=11, report_date=date(2026, 10, 17), entries=_entries())
            rejected = review_report(db, REVIEWER, report.id, approve=False, notes='أكمل التسميع')
            self.assertEqual(rejected.status, ReportStatus.REJECTED.value)
            self.assertEqual(db.query(PointEntry).count(), 0)

            updated = update_report(
                db,
                TEACHER,
                report.id,
                entries=[{'student_id': 101, 'attendance_status': 'escaped'}],
            )
            self.assertEqual(updated.status, ReportStatus.PENDING.value)
            self.assertIsNone(updated.reviewer_id)
            self.assertEqual(updated.review_notes, '')
            self.assertEqual(len(updated.entries), 1)
            self.assertEqual(db.query(ReportEntry).count(), 1)
            self.assertEqual(db.query(Recitation).count(), 0)

            review_report(db, REVIEWER, report.id, approve=True)
            self.assertEqual(student_balance(db, 101)['total_points'], -3)
        finally:
            db.close()

    def test_reviewer_from_another_center_is_denied(self):
        db = self._session_factory()
        try:
            report = create_report(db, TEACHER, halqa_id=11, report_date=date(2026, 10, 17), entries=_entries())
            with self.assertRaises(AccessDeniedError):
                review_report(db, FOREIGN_REVIEWER, report.id, approve=True)
            with self.assertRaises(AccessDeniedError):
                review_report(db, TEACHER, report.id, approve=True)
        finally:
            db.close()

    def test_listing_and_history(self):
        db = self._session_factory()
        try:
            first = create_report(db, TEACHER, halqa_id=11, report_date=date(2026, 10, 16), entries=_entries())
            create_report(db, TEACHER, halqa_id=11, report_date=date(2026, 10, 17), entries=_entries())
            create_report(
                db,
                OTHER_TEACHER,
                halqa_id=12,
                report_date=date(2026, 10, 17),
                entries=[{'student_id': 201}],
            )
            review_report(db, REVIEWER, first.id, approve=True)

            self.assertEqual(len(list_reports(db, TEACHER)), 2)
            self.assertEqual(len(list_reports(db, REVIEWER)), 3)
            self.assertEqual(len(list_reports(db, REVIEWER, status='pending')), 2)
            self.assertEqual(len(list_reports(db, REVIEWER, limit=1)), 1)
            self.assertEqual(pending_review_count(db, REVIEWER), 2)
            self.assertEqual(pending_review_count(db, FOREIGN_REVIEWER), 0)

            history = student_recitation_history(db, 101)
            self.assertEqual(len(history), 4)
            self.assertEqual(history[0]['report_date'], '2026-10-17')
        finally:
            db.close()


if __name__ == '__main__':
    unittest.main()

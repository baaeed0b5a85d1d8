import tempfile
import unittest
from datetime import date
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from halaqat.core.errors import AccessDeniedError, ConflictError, NotFoundError, ValidationFailedError
from halaqat.db import Base
from halaqat.models import (
    Activity,
    ActivityApproval,
    ActivityHalqa,
    Center,
    Halqa,
    Holiday,
    HolidayAttendance,
    HolidayHalqa,
    Parent,
    Student,
    StudentParent,
)
from halaqat.services.activity_service import (
    activity_halqa_ids,
    approval_summary,
    create_activity,
    delete_activity,
    get_activity,
    list_approvals,
    list_pending_for_parent as pending_activities_for_parent,
    request_approval,
    respond_approval,
    update_activity,
)
from halaqat.services.holiday_service import (
    attendance_summary,
    create_holiday,
    delete_holiday,
    holiday_halqa_ids,
    list_attendance,
    list_pending_for_parent as pending_holidays_for_parent,
    mark_attendance,
    respond_holiday,
    update_holiday,
)
from halaqat.services.parent_service import link_parent_student


class ConsentWorkflowTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_consent_workflows.db'
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
                    Halqa(id=11, center_id=1, name='Halqa A', max_students=10),
                    Halqa(id=12, center_id=1, name='Halqa B', max_students=10),
                    Halqa(id=22, center_id=2, name='Halqa C', max_students=10),
                    Student(id=101, center_id=1, halqa_id=11, full_name='Ali'),
                    Student(id=102, center_id=1, halqa_id=11, full_name='Bilal'),
                    Student(id=103, center_id=1, halqa_id=11, full_name='Hamza'),
                    Student(id=121, center_id=1, halqa_id=12, full_name='Omar'),
                    Parent(id=501, center_id=1, full_name='Parent Ali'),
                    Parent(id=502, center_id=1, full_name='Mother Ali'),
                    Parent(id=503, center_id=1, full_name='Parent Bilal'),
                    Parent(id=521, center_id=1, full_name='Parent Omar'),
                    StudentParent(student_id=101, parent_id=501, relation='أب'),
                    StudentParent(student_id=101, parent_id=502, relation='أم'),
                    StudentParent(student_id=102, parent_id=503, relation='أب'),
                    StudentParent(student_id=121, parent_id=521, relation='أب'),
                ]
            )
            db.commit()
        finally:
            db.close()

    def test_activity_fan_out_creates_one_request_per_linked_parent(self):
        db = self._session_factory()
        try:
            activity = create_activity(
                db,
                center_id=1,
                name='رحلة',
                start_date=date(2026, 11, 1),
                halqa_ids=[11],
                created_by=1,
            )
            pairs = {
                (row.student_id, row.parent_id)
                for row in db.query(ActivityApproval).filter(ActivityApproval.activity_id == activity.id).all()
            }
            # Hamza has no parent and is skipped.
            self.assertEqual(pairs, {(101, 501), (101, 502), (102, 503)})
            self.assertEqual(approval_summary(db, activity.id), {'approved': 0, 'rejected': 0, 'pending': 3})

            update_activity(db, activity.id, {'halqa_ids': [11, 12]})
            self.assertEqual(approval_summary(db, activity.id)['pending'], 4)
        finally:
            db.close()

    def test_activity_without_consent_creates_no_requests(self):
        db = self._session_factory()
        try:
            activity = create_activity(
                db,
                center_id=1,
                name='درس عام',
                start_date=date(2026, 11, 1),
                requires_approval=False,
                halqa_ids=[11, 12],
            )
            self.assertEqual(db.query(ActivityApproval).count(), 0)
            self.assertEqual(list_approvals(db, activity.id), [])
        finally:
            db.close()

    def test_activity_validation(self):
        db = self._session_factory()
        try:
            with self.assertRaises(ValidationFailedError):
                create_activity(db, center_id=1, name='  ', start_date=date(2026, 11, 1))
            with self.assertRaises(ValidationFailedError):
                create_activity(
                    db,
                    center_id=1,
                    name='رحلة',
                    start_date=date(2026, 11, 2),
                    end_date=date(2026, 11, 1),
                )
            with self.assertRaises(ValidationFailedError):
                create_activity(db, center_id=1, name='رحلة', start_date=date(2026, 11, 1), halqa_ids=[22])
        finally:
            db.close()

    def test_parent_responds_once_and_only_to_own_request(self):
        db = self._session_factory()
        try:
            activity = create_activity(db, center_id=1, name='رحلة', start_date=date(2026, 11, 1), halqa_ids=[11])
            approval = (
                db.query(ActivityApproval)
                .filter(ActivityApproval.activity_id == activity.id, ActivityApproval.parent_id == 501)
                .one()
            )
            with self.assertRaises(AccessDeniedError):
                respond_approval(db, approval.id, 503, True)

            answered = respond_approval(db, approval.id, 501, True, notes='موافق')
            self.assertTrue(answered.approved)
            self.assertIsNotNone(answered.response_date)
            with self.assertRaises(ConflictError):
                respond_approval(db, approval.id, 501, False)

            # The second guardian answers independently.
            self.assertEqual([row.student_id for row in pending_activities_for_parent(db, 502)], [101])
            self.assertEqual(pending_activities_for_parent(db, 501), [])
            self.assertEqual(approval_summary(db, activity.id), {'approved': 1, 'rejected': 0, 'pending': 2})
        finally:
            db.close()

    def test_manual_request_requires_a_parent_link_and_is_unique(self):
        db = self._session_factory()
        try:
            activity = create_activity(
                db,
                center_id=1,
                name='مسابقة',
                start_date=date(2026, 11, 1),
                halqa_ids=[],
            )
            row = request_approval(db, activity.id, 121, 521)
            self.assertIsNone(row.approved)
            with self.assertRaises(ConflictError):
                request_approval(db, activity.id, 121, 521)
            with self.assertRaises(ValidationFailedError):
                request_approval(db, activity.id, 121, 501)

            delete_activity(db, activity.id)
            self.assertEqual(db.query(ActivityApproval).count(), 0)
        finally:
            db.close()

    def test_holiday_fan_out_includes_students_without_parents(self):
        db = self._session_factory()
        try:
            holiday = create_holiday(
                db,
                center_id=1,
                name='إجازة',
                start_date=date(2026, 11, 5),
                end_date=date(2026, 11, 7),
                halqa_ids=[11],
            )
            rows = db.query(HolidayAttendance).filter(HolidayAttendance.holiday_id == holiday.id).all()
            pairs = {(row.student_id, row.parent_id) for row in rows}
            self.assertEqual(pairs, {(101, 501), (101, 502), (102, 503), (103, None)})
            self.assertEqual(attendance_summary(db, holiday.id)['pending'], 3)

            update_holiday(db, holiday.id, {'halqa_ids': [11, 12]})
            self.assertEqual(db.query(HolidayAttendance).count(), 5)
        finally:
            db.close()

    def test_holiday_response_and_staff_marking_are_independent(self):
        db = self._session_factory()
        try:
            holiday = create_holiday(
                db,
                center_id=1,
                name='إجازة',
                start_date=date(2026, 11, 5),
                end_date=date(2026, 11, 5),
                halqa_ids=[11],
            )
            row = (
                db.query(HolidayAttendance)
                .filter(HolidayAttendance.holiday_id == holiday.id, HolidayAttendance.parent_id == 503)
                .one()
            )
            self.assertEqual([item.id for item in pending_holidays_for_parent(db, 503)], [row.id])
            respond_holiday(db, row.id, 503, False, notes='مسافر')
            with self.assertRaises(ConflictError):
                respond_holiday(db, row.id, 503, True)
            with self.assertRaises(AccessDeniedError):
                respond_holiday(db, row.id, 501, True)

            orphan = (
                db.query(HolidayAttendance)
                .filter(HolidayAttendance.holiday_id == holiday.id, HolidayAttendance.student_id == 103)
                .one()
            )
            mark_attendance(db, orphan.id, True, marked_by=9)
            marked = mark_attendance(db, orphan.id, False, marked_by=9)
            self.assertFalse(marked.attended)
            self.assertIsNone(marked.parent_approved)

            summary = attendance_summary(db, holiday.id)
            self.assertEqual(summary['rejected'], 1)
            self.assertEqual(summary['pending'], 2)
            self.assertEqual(summary['attended'], 0)
            self.assertEqual(len(list_attendance(db, holiday.id)), 4)
        finally:
            db.close()

    def test_holiday_dates_must_be_ordered(self):
        db = self._session_factory()
        try:
            with self.assertRaises(ValidationFailedError):
                create_holiday(
                    db,
                    center_id=1,
                    name='إجازة',
                    start_date=date(2026, 11, 7),
                    end_date=date(2026, 11, 5),
                )
        finally:
            db.close()

    def test_activity_update_adds_new_requests_and_keeps_answers(self):
        db = self._session_factory()
        try:
            activity = create_activity(db, center_id=1, name='رحلة', start_date=date(2026, 11, 1), halqa_ids=[11])
            answered = (
                db.query(ActivityApproval)
                .filter(ActivityApproval.activity_id == activity.id, ActivityApproval.parent_id == 501)
                .one()
            )
            respond_approval(db, answered.id, 501, True)

            updated = update_activity(db, activity.id, {'name': 'رحلة المزرعة', 'halqa_ids': [11, 12]})
            self.assertEqual(updated.name, 'رحلة المزرعة')
            self.assertEqual(activity_halqa_ids(db, activity.id), [11, 12])
            rows = db.query(ActivityApproval).filter(ActivityApproval.activity_id == activity.id).all()
            self.assertEqual(
                {(row.student_id, row.parent_id) for row in rows},
                {(101, 501), (101, 502), (102, 503), (121, 521)},
            )
            kept = db.query(ActivityApproval).filter(ActivityApproval.id == answered.id).one()
            self.assertTrue(kept.approved)
            self.assertEqual(approval_summary(db, activity.id), {'approved': 1, 'rejected': 0, 'pending': 3})
        finally:
            db.close()

    def test_delete_activity_removes_links_and_requests(self):
        db = self._session_factory()
        try:
            activity = create_activity(db, center_id=1, name='رحلة', start_date=date(2026, 11, 1), halqa_ids=[11, 12])
            self.assertEqual(db.query(ActivityHalqa).count(), 2)
            delete_activity(db, activity.id)
            self.assertEqual(db.query(ActivityApproval).count(), 0)
            self.assertEqual(db.query(ActivityHalqa).count(), 0)
            self.assertEqual(db.query(Activity).count(), 0)
            with self.assertRaises(NotFoundError):
                get_activity(db, activity.id)
        finally:
            db.close()

    def test_holiday_update_keeps_responses_and_delete_clears_rows(self):
        db = self._session_factory()
        try:
            holiday = create_holiday(
                db,
                center_id=1,
                name='إجازة',
                start_date=date(2026, 11, 5),
                end_date=date(2026, 11, 7),
                halqa_ids=[11],
            )
            row = (
                db.query(HolidayAttendance)
                .filter(HolidayAttendance.holiday_id == holiday.id, HolidayAttendance.parent_id == 503)
                .one()
            )
            respond_holiday(db, row.id, 503, True)

            update_holiday(db, holiday.id, {'end_date': date(2026, 11, 8), 'halqa_ids': [11, 12]})
            self.assertEqual(holiday_halqa_ids(db, holiday.id), [11, 12])
            self.assertTrue(db.query(HolidayAttendance).filter(HolidayAttendance.id == row.id).one().parent_approved)
            self.assertEqual(
                db.query(HolidayAttendance)
                .filter(HolidayAttendance.holiday_id == holiday.id, HolidayAttendance.student_id == 121)
                .count(),
                1,
            )
            self.assertEqual(attendance_summary(db, holiday.id)['approved'], 1)

            delete_holiday(db, holiday.id)
            self.assertEqual(db.query(HolidayAttendance).count(), 0)
            self.assertEqual(db.query(HolidayHalqa).count(), 0)
            self.assertEqual(db.query(Holiday).count(), 0)
        finally:
            db.close()

    def test_parent_linked_after_fan_out_takes_over_the_parentless_row(self):
        db = self._session_factory()
        try:
            holiday = create_holiday(
                db,
                center_id=1,
                name='إجازة',
                start_date=date(2026, 11, 5),
                end_date=date(2026, 11, 5),
                halqa_ids=[11],
            )
            orphan = (
                db.query(HolidayAttendance)
                .filter(HolidayAttendance.holiday_id == holiday.id, HolidayAttendance.student_id == 103)
                .one()
            )
            mark_attendance(db, orphan.id, True, marked_by=9)

            link_parent_student(db, 503, 103)
            update_holiday(db, holiday.id, {'halqa_ids': [11]})

            rows = (
                db.query(HolidayAttendance)
                .filter(HolidayAttendance.holiday_id == holiday.id, HolidayAttendance.student_id == 103)
                .all()
            )
            self.assertEqual(len(rows), 1)
            self.assertEqual(rows[0].id, orphan.id)
            self.assertEqual(rows[0].parent_id, 503)
            self.assertTrue(rows[0].attended)
            self.assertIsNone(rows[0].parent_approved)
            self.assertEqual(sorted(item.student_id for item in pending_holidays_for_parent(db, 503)), [102, 103])
        finally:
            db.close()


if __name__ == '__main__':
    unittest.main()

import tempfile
import unittest
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from halaqat.core.capabilities import Capability, has_capability, require_capability
from halaqat.core.errors import (
    AccessDeniedError,
    ConflictError,
    InsufficientBalanceError,
    NotFoundError,
    ValidationFailedError,
    error_kind,
    http_status_for,
)
from halaqat.db import Base
from halaqat.models import AuthUser, BadgeSetting, Center, Halqa, Parent, StoreItem, Student, StudentParent
from halaqat.services.access_scope_service import (
    apply_halqa_scope,
    assert_halqa_access,
    assert_student_access,
    get_parent_for_user,
    get_student_for_user,
)
from halaqat.services.center_scope_service import apply_center_scope, center_context, get_actor_center_id


SUPER_ADMIN = {'user_id': 1, 'roles': ['super_admin'], 'center_id': None, 'full_name': 'Root'}
CENTER_ADMIN = {'user_id': 2, 'roles': ['center_admin'], 'center_id': 1, 'full_name': 'Admin'}
TEACHER = {'user_id': 10, 'roles': ['teacher'], 'center_id': 1, 'full_name': 'Teacher'}
OFFICER = {'user_id': 30, 'roles': ['communication_officer'], 'center_id': 1, 'full_name': 'Officer'}
PARENT = {'user_id': 50, 'roles': ['parent'], 'center_id': 1, 'full_name': 'Parent Ali'}
STUDENT = {'user_id': 60, 'roles': ['student'], 'center_id': 1, 'full_name': 'Ali'}
ORPHAN = {'user_id': 70, 'roles': ['teacher'], 'center_id': None, 'full_name': 'No center'}


class CapabilityMatrixTests(unittest.TestCase):
    def test_role_capabilities(self):
        self.assertTrue(has_capability(SUPER_ADMIN, Capability.MANAGE_CENTERS))
        self.assertFalse(has_capability(SUPER_ADMIN, Capability.PURCHASE_ITEMS))
        self.assertFalse(has_capability(CENTER_ADMIN, Capability.MANAGE_CENTERS))
        self.assertTrue(has_capability(CENTER_ADMIN, Capability.ADMIN_OPERATIONS))
        self.assertTrue(has_capability(TEACHER, Capability.SUBMIT_REPORTS))
        self.assertFalse(has_capability(TEACHER, Capability.REVIEW_REPORTS))
        self.assertFalse(has_capability(TEACHER, Capability.VIEW_ALL_HALAQAT))
        self.assertTrue(has_capability(OFFICER, Capability.REVIEW_PURCHASES))
        self.assertFalse(has_capability(OFFICER, Capability.MANAGE_STORE))
        self.assertEqual(
            [cap for cap in Capability if has_capability(PARENT, cap)],
            [Capability.RESPOND_CONSENT],
        )
        self.assertEqual(
            {cap for cap in Capability if has_capability(STUDENT, cap)},
            {Capability.PURCHASE_ITEMS, Capability.CAST_VOTES},
        )

    def test_unknown_roles_grant_nothing(self):
        actor = {'user_id': 99, 'roles': ['janitor'], 'center_id': 1}
        self.assertFalse(any(has_capability(actor, cap) for cap in Capability))
        self.assertFalse(has_capability(None, Capability.VIEW_STUDENTS))
        with self.assertRaises(AccessDeniedError):
            require_capability(actor, Capability.VIEW_STUDENTS)

    def test_error_kinds_map_to_statuses(self):
        cases = [
            (AccessDeniedError('x'), 'forbidden', 403),
            (NotFoundError('x'), 'not_found', 404),
            (ConflictError('x'), 'conflict', 409),
            (InsufficientBalanceError('x'), 'insufficient_balance', 400),
            (ValidationFailedError('x'), 'validation', 400),
        ]
        for exc, kind, status in cases:
            self.assertEqual(error_kind(exc), kind)
            self.assertEqual(http_status_for(exc), status)


class ScopeTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_capabilities_and_scope.db'
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
                    AuthUser(id=10, full_name='Teacher', center_id=1),
                    AuthUser(id=50, full_name='Parent Ali', center_id=1),
                    AuthUser(id=60, full_name='Ali', center_id=1),
                    Halqa(id=11, center_id=1, name='Halqa A', teacher_id=10, max_students=10),
                    Halqa(id=12, center_id=1, name='Halqa B', max_students=10),
                    Halqa(id=22, center_id=2, name='Halqa C', max_students=10),
                    Student(id=101, center_id=1, halqa_id=11, user_id=60, full_name='Ali'),
                    Student(id=121, center_id=1, halqa_id=12, full_name='Omar'),
                    Student(id=221, center_id=2, halqa_id=22, full_name='Zaid'),
                    Parent(id=501, center_id=1, user_id=50, full_name='Parent Ali'),
                    StudentParent(student_id=101, parent_id=501),
                    StoreItem(id=1, center_id=None, name='Global pen'),
                    StoreItem(id=2, center_id=1, name='Center 1 book'),
                    StoreItem(id=3, center_id=2, name='Center 2 book'),
                    BadgeSetting(id=1, center_id=None, name='Global badge'),
                    BadgeSetting(id=2, center_id=2, name='Center 2 badge'),
                ]
            )
            db.commit()
        finally:
            db.close()

    def test_center_scope_by_actor(self):
        db = self._session_factory()
        try:
            self.assertEqual(apply_center_scope(db.query(Halqa), SUPER_ADMIN).count(), 3)
            self.assertEqual(
                sorted(row.id for row in apply_center_scope(db.query(Halqa), CENTER_ADMIN).all()),
                [11, 12],
            )
            self.assertEqual(apply_center_scope(db.query(Halqa), ORPHAN).count(), 0)
            self.assertEqual(
                sorted(row.id for row in apply_center_scope(db.query(StoreItem), CENTER_ADMIN).all()),
                [1, 2],
            )
        finally:
            db.close()

    def test_request_center_overrides_actor_center(self):
        db = self._session_factory()
        try:
            with center_context(2):
                self.assertEqual(get_actor_center_id(SUPER_ADMIN), 2)
                ids = sorted(row.id for row in apply_center_scope(db.query(Halqa), SUPER_ADMIN).all())
                self.assertEqual(ids, [22])
            self.assertIsNone(get_actor_center_id(SUPER_ADMIN))
            self.assertEqual(get_actor_center_id(TEACHER), 1)
        finally:
            db.close()

    def test_session_filter_applies_inside_center_context(self):
        db = self._session_factory()
        try:
            with center_context(1):
                self.assertEqual(sorted(row.id for row in db.query(Student).all()), [101, 121])
                self.assertEqual(sorted(row.id for row in db.query(StoreItem).all()), [1, 2])
                self.assertEqual(sorted(row.id for row in db.query(BadgeSetting).all()), [1])
                self.assertIsNone(db.query(Halqa).filter(Halqa.id == 22).first())
            self.assertEqual(db.query(Student).count(), 3)
        finally:
            db.close()

    def test_halqa_access(self):
        db = self._session_factory()
        try:
            own = db.query(Halqa).filter(Halqa.id == 11).one()
            other = db.query(Halqa).filter(Halqa.id == 12).one()
            foreign = db.query(Halqa).filter(Halqa.id == 22).one()

            assert_halqa_access(db, TEACHER, own)
            with self.assertRaises(AccessDeniedError):
                assert_halqa_access(db, TEACHER, other)
            assert_halqa_access(db, OFFICER, other)
            with self.assertRaises(AccessDeniedError):
                assert_halqa_access(db, OFFICER, foreign)
            assert_halqa_access(db, SUPER_ADMIN, foreign)

            self.assertEqual([row.id for row in apply_halqa_scope(db.query(Halqa), TEACHER).all()], [11])
            self.assertEqual([row.id for row in apply_halqa_scope(db.query(Student), TEACHER).all()], [101])
            self.assertEqual(apply_halqa_scope(db.query(Student), PARENT).count(), 0)
        finally:
            db.close()

    def test_student_access_by_relationship(self):
        db = self._session_factory()
        try:
            ali = db.query(Student).filter(Student.id == 101).one()
            omar = db.query(Student).filter(Student.id == 121).one()
            zaid = db.query(Student).filter(Student.id == 221).one()

            for actor in (TEACHER, PARENT, STUDENT, OFFICER, CENTER_ADMIN):
                assert_student_access(db, actor, ali)
            for actor in (TEACHER, PARENT, STUDENT):
                with self.assertRaises(AccessDeniedError):
                    assert_student_access(db, actor, omar)
            with self.assertRaises(AccessDeniedError):
                assert_student_access(db, CENTER_ADMIN, zaid)

            self.assertEqual(get_student_for_user(db, STUDENT).id, 101)
            self.assertEqual(get_parent_for_user(db, PARENT).id, 501)
            with self.assertRaises(NotFoundError):
                get_student_for_user(db, PARENT)
        finally:
            db.close()


if __name__ == '__main__':
    unittest.main()

import tempfile
import unittest
from datetime import date
from pathlib import Path

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from halaqat.core import router_guard
from halaqat.db import Base, get_db
from halaqat.models import (
    AuthUser,
    Center,
    Halqa,
    PointEntry,
    PurchaseRequest,
    StoreItem,
    Student,
)
from halaqat.routers import groups, purchases, reports


_SESSIONS = {
    'teacher': {'user_id': 10, 'roles': ['teacher'], 'center_id': 1, 'name': 'Teacher One'},
    'officer': {'user_id': 30, 'roles': ['communication_officer'], 'center_id': 1, 'name': 'Officer'},
    'foreign-admin': {'user_id': 40, 'roles': ['center_admin'], 'center_id': 2, 'name': 'Admin Two'},
    'student': {'user_id': 60, 'roles': ['student'], 'center_id': 1, 'name': 'Ali'},
    'parent': {'user_id': 50, 'roles': ['parent'], 'center_id': 1, 'name': 'Parent'},
}


def _fake_validate(token, **kwargs):
    return _SESSIONS.get(token or '')


def _auth(name: str) -> dict:
    return {'authorization': f'Bearer {name}'}


class RouterScopeEnforcementTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_router_scope.db'
        cls._engine = create_engine(f"sqlite:///{db_path}", connect_args={'check_same_thread': False})
        cls._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=cls._engine)
        Base.metadata.create_all(bind=cls._engine)

        cls._original_validate = router_guard.validate_session_token
        router_guard.validate_session_token = _fake_validate

        app = FastAPI()
        app.include_router(groups.router)
        app.include_router(purchases.router)
        app.include_router(reports.router)

        def override_get_db():
            db = cls._session_factory()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        cls.client = TestClient(app)

    @classmethod
    def tearDownClass(cls):
        router_guard.validate_session_token = cls._original_validate
        cls.client.close()
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
                    AuthUser(id=60, full_name='Ali', center_id=1),
                    Halqa(id=11, center_id=1, name='Halqa A', teacher_id=10, max_students=10),
                    Halqa(id=12, center_id=1, name='Halqa B', max_students=10),
                    Halqa(id=22, center_id=2, name='Halqa C', max_students=10),
                    Student(id=101, center_id=1, halqa_id=11, user_id=60, full_name='Ali'),
                    Student(id=102, center_id=1, halqa_id=11, full_name='Bilal'),
                    StoreItem(id=1, center_id=1, name='Book', points_cost=10),
                    StoreItem(id=2, center_id=1, name='Trip', item_type='halqa', points_cost=100),
                    PointEntry(student_id=101, points=12, reason='seed', source='manual'),
                ]
            )
            db.commit()
        finally:
            db.close()

    def test_unauthenticated_requests_are_rejected(self):
        self.assertEqual(self.client.get('/halaqat').status_code, 401)
        self.assertEqual(self.client.get('/halaqat', headers=_auth('unknown')).status_code, 401)

    def test_teacher_lists_only_own_halaqat(self):
        response = self.client.get('/halaqat', headers=_auth('teacher'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual([row['id'] for row in response.json()], [11])
        self.assertEqual(response.json()[0]['student_count'], 2)

        officer = self.client.get('/halaqat', headers=_auth('officer')).json()
        self.assertEqual([row['id'] for row in officer], [11, 12])

        self.assertEqual(self.client.get('/halaqat/12', headers=_auth('teacher')).status_code, 403)
        self.assertEqual(self.client.get('/halaqat/22', headers=_auth('officer')).status_code, 403)
        self.assertEqual(self.client.get('/halaqat/999', headers=_auth('officer')).status_code, 404)
        self.assertEqual(self.client.get('/halaqat', headers=_auth('parent')).status_code, 403)

    def test_student_purchase_over_http(self):
        response = self.client.post('/purchases', json={'item_id': 1}, headers=_auth('student'))
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['purchase']['status'], 'pending')
        self.assertEqual(body['balance']['total_points'], 12)
        self.assertEqual(body['balance']['available_points'], 2)

        again = self.client.post('/purchases', json={'item_id': 1}, headers=_auth('student'))
        self.assertEqual(again.status_code, 400)
        group_item = self.client.post('/purchases', json={'item_id': 2}, headers=_auth('student'))
        self.assertEqual(group_item.status_code, 400)
        self.assertEqual(
            self.client.post('/purchases', json={'item_id': 1}, headers=_auth('teacher')).status_code,
            403,
        )

        mine = self.client.get('/purchases/me', headers=_auth('student')).json()
        self.assertEqual(len(mine), 1)

    def test_purchase_review_is_center_scoped(self):
        self.client.post('/purchases', json={'item_id': 1}, headers=_auth('student'))
        db = self._session_factory()
        try:
            purchase_id = db.query(PurchaseRequest).one().id
        finally:
            db.close()

        foreign = self.client.post(f'/purchases/{purchase_id}/reject', json={}, headers=_auth('foreign-admin'))
        self.assertEqual(foreign.status_code, 403)
        self.assertEqual(self.client.get('/purchases', headers=_auth('foreign-admin')).json(), [])

        queue = self.client.get('/purchases', params={'status': 'pending'}, headers=_auth('officer')).json()
        self.assertEqual([row['id'] for row in queue], [purchase_id])

        delivered = self.client.post(f'/purchases/{purchase_id}/deliver', headers=_auth('officer'))
        self.assertEqual(delivered.status_code, 200)
        self.assertEqual(delivered.json()['status'], 'delivered')
        rejected = self.client.post(f'/purchases/{purchase_id}/reject', json={}, headers=_auth('officer'))
        self.assertEqual(rejected.status_code, 409)

    def test_report_review_over_http(self):
        created = self.client.post(
            '/reports',
            json={
                'halqa_id': 11,
                'report_date': date(2026, 10, 17).isoformat(),
                'entries': [
                    {'student_id': 101, 'recitations': [{'recitation_type': 'review', 'grade': 8}]},
                    {'student_id': 102, 'attendance_status': 'absent'},
                ],
            },
            headers=_auth('teacher'),
        )
        self.assertEqual(created.status_code, 200)
        report_id = created.json()['id']
        self.assertEqual(created.json()['status'], 'pending')

        self.assertEqual(
            self.client.post(f'/reports/{report_id}/review', json={'approve': True}, headers=_auth('teacher')).status_code,
            403,
        )
        self.assertEqual(
            self.client.post(
                f'/reports/{report_id}/review', json={'approve': True}, headers=_auth('foreign-admin')
            ).status_code,
            403,
        )
        self.assertEqual(
            self.client.post('/reports/999/review', json={'approve': True}, headers=_auth('officer')).status_code,
            404,
        )

        approved = self.client.post(f'/reports/{report_id}/review', json={'approve': True}, headers=_auth('officer'))
        self.assertEqual(approved.status_code, 200)
        self.assertEqual(approved.json()['status'], 'approved')
        again = self.client.post(f'/reports/{report_id}/review', json={'approve': False}, headers=_auth('officer'))
        self.assertEqual(again.status_code, 409)

        self.assertEqual(self.client.get('/reports/pending-count', headers=_auth('officer')).json(), {'pending': 0})
        self.assertEqual(
            self.client.post(
                '/reports',
                json={'halqa_id': 12, 'report_date': '2026-10-17', 'entries': [{'student_id': 101}]},
                headers=_auth('teacher'),
            ).status_code,
            403,
        )


if __name__ == '__main__':
    unittest.main()

import tempfile
import unittest
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from halaqat.db import Base
from halaqat.models import AuthUser, Center, Halqa
from halaqat.services.auth_service import _encode_jwt
from halaqat.services.center_scope_service import get_current_center_id
from halaqat.tenant_middleware import TenantResolutionMiddleware, get_request_center_id


class TenantMiddlewareTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_tenant_middleware.db'
        cls._engine = create_engine(f"sqlite:///{db_path}", connect_args={'check_same_thread': False})
        cls._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=cls._engine)
        Base.metadata.create_all(bind=cls._engine)

        app = FastAPI()
        app.add_middleware(TenantResolutionMiddleware, session_factory=cls._session_factory)

        @app.get('/private')
        def private_route(request: Request):
            return {'center_id': get_request_center_id(request), 'context_center_id': get_current_center_id()}

        @app.get('/halaqat')
        def halaqat_route():
            db = cls._session_factory()
            try:
                # Loader criteria restrict rows to the resolved center.
                return sorted(row.name for row in db.query(Halqa).all())
            finally:
                db.close()

        cls.client = TestClient(app)

    @classmethod
    def tearDownClass(cls):
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
                    Center(id=1, name='Alpha'),
                    Center(id=2, name='Beta'),
                    Center(id=3, name='Closed', is_active=False),
                    AuthUser(id=1, full_name='Teacher Alpha', center_id=1),
                    AuthUser(id=2, full_name='Disabled', center_id=1, is_active=False),
                    AuthUser(id=9, full_name='Root', center_id=None),
                    Halqa(id=11, center_id=1, name='Halqa Alpha', max_students=10),
                    Halqa(id=22, center_id=2, name='Halqa Beta', max_students=10),
                ]
            )
            db.commit()
        finally:
            db.close()

    def _token(self, *, user_id: int, roles: list[str], center_id: int | None) -> str:
        return _encode_jwt(
            {
                'sub': int(user_id),
                'name': 'probe',
                'roles': roles,
                'center_id': int(center_id or 0),
                'iat': 0,
            }
        )

    def test_anonymous_request_has_no_center(self):
        response = self.client.get('/private')
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.json()['center_id'])
        self.assertEqual(sorted(self.client.get('/halaqat').json()), ['Halqa Alpha', 'Halqa Beta'])

    def test_center_comes_from_the_session(self):
        token = self._token(user_id=1, roles=['teacher'], center_id=1)
        response = self.client.get('/private', cookies={'auth_session': token})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'center_id': 1, 'context_center_id': 1})

        rows = self.client.get('/halaqat', headers={'authorization': f'Bearer {token}'}).json()
        self.assertEqual(rows, ['Halqa Alpha'])

    def test_regular_user_cannot_switch_center_by_header(self):
        token = self._token(user_id=1, roles=['teacher'], center_id=1)
        response = self.client.get('/private', headers={'authorization': f'Bearer {token}', 'x-center-id': '2'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['center_id'], 1)

    def test_disabled_account_is_rejected(self):
        token = self._token(user_id=2, roles=['teacher'], center_id=1)
        response = self.client.get('/private', cookies={'auth_session': token})
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json().get('detail'), 'Account disabled')

    def test_super_admin_selects_center_by_header(self):
        token = self._token(user_id=9, roles=['super_admin'], center_id=None)
        unscoped = self.client.get('/private', cookies={'auth_session': token})
        self.assertIsNone(unscoped.json()['center_id'])

        scoped = self.client.get('/halaqat', headers={'authorization': f'Bearer {token}', 'x-center-id': '2'})
        self.assertEqual(scoped.status_code, 200)
        self.assertEqual(scoped.json(), ['Halqa Beta'])

    def test_super_admin_unknown_or_inactive_center_is_not_found(self):
        token = self._token(user_id=9, roles=['super_admin'], center_id=None)
        for header in ('404', '3'):
            response = self.client.get('/private', headers={'authorization': f'Bearer {token}', 'x-center-id': header})
            self.assertEqual(response.status_code, 404)
            self.assertEqual(response.json().get('detail'), 'Center not found')


if __name__ == '__main__':
    unittest.main()

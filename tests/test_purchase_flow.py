import tempfile
import unittest
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from halaqat.core.errors import ConflictError, InsufficientBalanceError, NotFoundError, ValidationFailedError
from halaqat.db import Base
from halaqat.models import (
    BadgeSetting,
    Center,
    Halqa,
    PointEntry,
    PointSource,
    PurchaseStatus,
    StoreItem,
    Student,
)
from halaqat.services.badge_service import award_badge
from halaqat.services.ledger_service import award_points, student_balance
from halaqat.services.purchase_service import (
    REFUND_REASON,
    deliver_purchase,
    list_purchases,
    reject_purchase,
    submit_purchase,
)
from halaqat.services.store_service import list_items


REVIEWER = {'user_id': 7, 'roles': ['communication_officer'], 'center_id': 1, 'full_name': 'Officer'}


class PurchaseFlowTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_purchase_flow.db'
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
                    Student(id=101, center_id=1, halqa_id=11, full_name='Ali'),
                    Student(id=102, center_id=1, halqa_id=11, full_name='Bilal'),
                    StoreItem(id=1, center_id=1, name='Mushaf', points_cost=50, badges_cost=0),
                    StoreItem(id=2, center_id=1, name='Bag', points_cost=20, badges_cost=2, stock_quantity=1),
                    StoreItem(id=3, center_id=1, name='Trip', points_cost=0, item_type='halqa'),
                    StoreItem(id=4, center_id=2, name='Other center pen', points_cost=1),
                    StoreItem(id=5, center_id=None, name='Global bookmark', points_cost=5),
                    BadgeSetting(id=9, center_id=1, name='Helper', points_value=0),
                ]
            )
            db.commit()
        finally:
            db.close()

    def test_catalog_lists_center_and_global_items_by_scope(self):
        db = self._session_factory()
        try:
            student_items = list_items(db, REVIEWER, item_type='student')
            self.assertEqual([row.id for row in student_items], [5, 2, 1])
            self.assertEqual([row.id for row in list_items(db, REVIEWER, item_type='halqa')], [3])
        finally:
            db.close()

    def test_pending_purchase_reduces_available_but_not_total(self):
        db = self._session_factory()
        try:
            award_points(db, 101, 80, 'Monthly reward')
            purchase = submit_purchase(db, 101, 1)
            self.assertEqual(purchase.status, PurchaseStatus.PENDING.value)
            self.assertEqual(purchase.points_spent, 50)

            balance = student_balance(db, 101)
            self.assertEqual(balance['total_points'], 80)
            self.assertEqual(balance['available_points'], 30)
            # No ledger row is written for the purchase itself.
            self.assertEqual(db.query(PointEntry).filter(PointEntry.student_id == 101).count(), 1)
        finally:
            db.close()

    def test_purchase_rejected_when_either_cost_exceeds_balance(self):
        db = self._session_factory()
        try:
            award_points(db, 101, 40, 'Reward')
            with self.assertRaises(InsufficientBalanceError):
                submit_purchase(db, 101, 1)
            # Enough points but no badges for the bag.
            with self.assertRaises(InsufficientBalanceError):
                submit_purchase(db, 101, 2)

            award_badge(db, 101, 9)
            award_badge(db, 101, 9)
            purchase = submit_purchase(db, 101, 2)
            self.assertEqual(purchase.badges_spent, 2)
            self.assertEqual(student_balance(db, 101)['available_badges'], 0)
        finally:
            db.close()

    def test_item_availability_rules(self):
        db = self._session_factory()
        try:
            award_points(db, 101, 100, 'Reward')
            with self.assertRaises(ValidationFailedError):
                submit_purchase(db, 101, 3)
            with self.assertRaises(NotFoundError):
                submit_purchase(db, 101, 4)
            global_purchase = submit_purchase(db, 101, 5)
            self.assertEqual(global_purchase.points_spent, 5)

            db.query(StoreItem).filter(StoreItem.id == 2).update({StoreItem.stock_quantity: 0})
            db.commit()
            with self.assertRaises(ConflictError):
                submit_purchase(db, 101, 2)
        finally:
            db.close()

    def test_reject_refunds_points_exactly_once(self):
        db = self._session_factory()
        try:
            award_points(db, 101, 60, 'Reward')
            purchase = submit_purchase(db, 101, 1)
            rejected = reject_purchase(db, purchase.id, actor=REVIEWER, notes='Out of stock')
            self.assertEqual(rejected.status, PurchaseStatus.REJECTED.value)
            self.assertEqual(rejected.reviewed_by, 7)

            refunds = db.query(PointEntry).filter(PointEntry.source == PointSource.REFUND.value).all()
            self.assertEqual(len(refunds), 1)
            self.assertEqual(refunds[0].points, 50)
            self.assertEqual(refunds[0].reason, REFUND_REASON)
            self.assertEqual(refunds[0].purchase_id, purchase.id)

            balance = student_balance(db, 101)
            self.assertEqual(balance['available_points'], 60)
            self.assertEqual(balance['total_points'], 60)

            with self.assertRaises(ConflictError):
                reject_purchase(db, purchase.id, actor=REVIEWER)
            with self.assertRaises(ConflictError):
                deliver_purchase(db, purchase.id, actor=REVIEWER)
            self.assertEqual(db.query(PointEntry).filter(PointEntry.source == PointSource.REFUND.value).count(), 1)
        finally:
            db.close()

    def test_deliver_is_terminal_and_consumes_stock(self):
        db = self._session_factory()
        try:
            award_points(db, 101, 30, 'Reward')
            award_badge(db, 101, 9)
            award_badge(db, 101, 9)
            purchase = submit_purchase(db, 101, 2)
            delivered = deliver_purchase(db, purchase.id, actor=REVIEWER)
            self.assertEqual(delivered.status, PurchaseStatus.DELIVERED.value)
            self.assertIsNotNone(delivered.delivered_at)
            self.assertEqual(db.query(StoreItem).filter(StoreItem.id == 2).one().stock_quantity, 0)

            with self.assertRaises(ConflictError):
                reject_purchase(db, purchase.id, actor=REVIEWER)
            balance = student_balance(db, 101)
            self.assertEqual(balance['available_points'], 10)
            self.assertEqual(balance['available_badges'], 0)
        finally:
            db.close()

    def test_review_queue_is_center_scoped_and_filterable(self):
        db = self._session_factory()
        try:
            award_points(db, 101, 100, 'Reward')
            award_points(db, 102, 100, 'Reward')
            first = submit_purchase(db, 101, 1)
            submit_purchase(db, 102, 5)
            deliver_purchase(db, first.id, actor=REVIEWER)

            self.assertEqual(len(list_purchases(db, REVIEWER)), 2)
            pending = list_purchases(db, REVIEWER, status='pending')
            self.assertEqual([row.student_id for row in pending], [102])
            self.assertEqual(len(list_purchases(db, REVIEWER, search='Mushaf')), 1)

            other_center = dict(REVIEWER, center_id=2)
            self.assertEqual(list_purchases(db, other_center), [])
        finally:
            db.close()


if __name__ == '__main__':
    unittest.main()

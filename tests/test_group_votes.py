import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest import mock

from freezegun import freeze_time
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from halaqat.core.errors import AccessDeniedError, ConflictError, ValidationFailedError
from halaqat.core.time_provider import TimeProvider
from halaqat.db import Base
from halaqat.models import Center, GroupPurchaseVote, Halqa, PurchaseRequest, StoreItem, Student, StudentVote, VoteStatus
from halaqat.services import vote_service
from halaqat.services.vote_service import (
    cast_vote,
    evaluate_vote,
    get_student_vote,
    initiate_vote,
    list_halqa_votes,
    required_votes_for,
)


class FixedTimeProvider(TimeProvider):
    def __init__(self, frozen_dt: datetime):
        self._frozen_dt = frozen_dt

    def now(self) -> datetime:
        return self._frozen_dt


class GroupVoteTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_group_votes.db'
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
            rows = [
                Center(id=1, name='Center 1'),
                Halqa(id=11, center_id=1, name='Halqa A', max_students=20),
                Halqa(id=12, center_id=1, name='Halqa B', max_students=20),
                StoreItem(id=1, center_id=1, name='Group trip', item_type='halqa'),
                StoreItem(id=2, center_id=1, name='Pen', item_type='student', points_cost=3),
                Student(id=300, center_id=1, halqa_id=12, full_name='Outsider'),
                Student(id=399, center_id=1, halqa_id=11, full_name='Former', is_active=False),
            ]
            rows.extend(Student(id=100 + i, center_id=1, halqa_id=11, full_name=f'Student {i}') for i in range(10))
            db.add_all(rows)
            db.commit()
        finally:
            db.close()
        self.clock = FixedTimeProvider(datetime(2026, 10, 17, 9, 0, 0, tzinfo=timezone.utc))

    def test_required_votes_is_half_rounded_up(self):
        self.assertEqual(required_votes_for(10), 5)
        self.assertEqual(required_votes_for(7), 4)
        self.assertEqual(required_votes_for(1), 1)
        self.assertEqual(required_votes_for(0), 1)

    def test_initiation_snapshots_active_members(self):
        db = self._session_factory()
        try:
            vote = initiate_vote(db, 100, 1, time_provider=self.clock)
            self.assertEqual(vote.total_students, 10)
            self.assertEqual(vote.required_votes, 5)
            self.assertEqual(vote.status, VoteStatus.VOTING.value)
            self.assertEqual(vote.ends_at, datetime(2026, 10, 24, 9, 0, 0))

            with self.assertRaises(ConflictError):
                initiate_vote(db, 101, 1, time_provider=self.clock)
            with self.assertRaises(ValidationFailedError):
                initiate_vote(db, 101, 2, time_provider=self.clock)
        finally:
            db.close()

    def test_each_student_votes_once(self):
        db = self._session_factory()
        try:
            vote = initiate_vote(db, 100, 1, time_provider=self.clock)
            cast_vote(db, vote.id, 100, True, time_provider=self.clock)
            with self.assertRaises(ConflictError):
                cast_vote(db, vote.id, 100, False, time_provider=self.clock)

            self.assertEqual(
                db.query(StudentVote).filter(StudentVote.vote_id == vote.id, StudentVote.student_id == 100).count(),
                1,
            )
            refreshed = db.query(GroupPurchaseVote).filter(GroupPurchaseVote.id == vote.id).one()
            self.assertEqual(refreshed.votes_for, 1)
            self.assertEqual(refreshed.votes_against, 0)
            self.assertTrue(get_student_vote(db, vote.id, 100).vote)
            self.assertIsNone(get_student_vote(db, vote.id, 101))
        finally:
            db.close()

    def test_only_halqa_members_may_vote(self):
        db = self._session_factory()
        try:
            vote = initiate_vote(db, 100, 1, time_provider=self.clock)
            with self.assertRaises(AccessDeniedError):
                cast_vote(db, vote.id, 300, True, time_provider=self.clock)
        finally:
            db.close()

    def test_vote_passes_at_threshold_without_creating_a_purchase(self):
        db = self._session_factory()
        try:
            vote = initiate_vote(db, 100, 1, time_provider=self.clock)
            for student_id in range(100, 104):
                vote = cast_vote(db, vote.id, student_id, True, time_provider=self.clock)
            self.assertEqual(vote.status, VoteStatus.VOTING.value)

            vote = cast_vote(db, vote.id, 104, True, time_provider=self.clock)
            self.assertEqual(vote.votes_for, 5)
            self.assertEqual(vote.votes_for, vote.required_votes)
            self.assertEqual(vote.status, VoteStatus.PASSED.value)
            self.assertIsNotNone(vote.closed_at)
            self.assertEqual(db.query(PurchaseRequest).count(), 0)

            with self.assertRaises(ConflictError):
                cast_vote(db, vote.id, 105, True, time_provider=self.clock)
        finally:
            db.close()

    def test_vote_fails_once_threshold_is_out_of_reach(self):
        db = self._session_factory()
        try:
            vote = initiate_vote(db, 100, 1, time_provider=self.clock)
            for student_id in range(100, 106):
                vote = cast_vote(db, vote.id, student_id, False, time_provider=self.clock)
            self.assertEqual(vote.votes_against, 6)
            self.assertEqual(vote.status, VoteStatus.FAILED.value)
        finally:
            db.close()

    @freeze_time('2026-10-17 09:00:00')
    def test_vote_expires_after_window(self):
        db = self._session_factory()
        try:
            vote = initiate_vote(db, 100, 1, time_provider=self.clock)
            cast_vote(db, vote.id, 100, True, time_provider=self.clock)

            later = FixedTimeProvider(self.clock.now() + timedelta(days=8))
            with self.assertRaises(ConflictError):
                cast_vote(db, vote.id, 101, True, time_provider=later)
            vote = evaluate_vote(db, vote, time_provider=later)
            self.assertEqual(vote.status, VoteStatus.EXPIRED.value)
            self.assertEqual(list_halqa_votes(db, 11, time_provider=later), [])
            self.assertEqual(len(list_halqa_votes(db, 11, active_only=False, time_provider=later)), 1)

            # A fresh vote may be opened once the old one has closed.
            fresh = initiate_vote(db, 101, 1, time_provider=later)
            self.assertNotEqual(fresh.id, vote.id)
        finally:
            db.close()

    def test_vote_closed_mid_cast_records_nothing(self):
        db = self._session_factory()
        try:
            vote = initiate_vote(db, 100, 1, time_provider=self.clock)

            def close_elsewhere(session, stale_vote, **kwargs):
                other = self._session_factory()
                try:
                    other.query(GroupPurchaseVote).filter(GroupPurchaseVote.id == stale_vote.id).update(
                        {GroupPurchaseVote.status: VoteStatus.EXPIRED.value}
                    )
                    other.commit()
                finally:
                    other.close()
                return stale_vote

            with mock.patch.object(vote_service, 'evaluate_vote', side_effect=close_elsewhere):
                with self.assertRaises(ConflictError):
                    cast_vote(db, vote.id, 101, True, time_provider=self.clock)

            self.assertIsNone(get_student_vote(db, vote.id, 101))
            refreshed = db.query(GroupPurchaseVote).filter(GroupPurchaseVote.id == vote.id).one()
            self.assertEqual(refreshed.votes_for, 0)
            self.assertEqual(refreshed.status, VoteStatus.EXPIRED.value)
        finally:
            db.close()


if __name__ == '__main__':
    unittest.main()

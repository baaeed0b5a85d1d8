from __future__ import annotations

import logging
import math
from datetime import timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from halaqat.config import settings
from halaqat.core.errors import AccessDeniedError, ConflictError, NotFoundError, ValidationFailedError
from halaqat.core.time_provider import TimeProvider, default_time_provider
from halaqat.models import GroupPurchaseVote, ItemScope, StoreItem, Student, StudentVote, VoteStatus
from halaqat.services.halqa_service import count_active_students


logger = logging.getLogger(__name__)


def required_votes_for(total_students: int) -> int:
    return int(math.ceil(max(1, int(total_students)) / 2))


def get_vote(db: Session, vote_id: int) -> GroupPurchaseVote:
    row = db.query(GroupPurchaseVote).filter(GroupPurchaseVote.id == int(vote_id)).first()
    if not row:
        raise NotFoundError('Vote not found')
    return row


def initiate_vote(
    db: Session,
    student_id: int,
    item_id: int,
    *,
    time_provider: TimeProvider = default_time_provider,
) -> GroupPurchaseVote:
    student = db.query(Student).filter(Student.id == int(student_id)).first()
    if not student or not student.is_active:
        raise NotFoundError('Student not found')
    if not student.halqa_id:
        raise ValidationFailedError('Student is not enrolled in a halqa')
    item = db.query(StoreItem).filter(StoreItem.id == int(item_id)).first()
    if not item or not item.is_active:
        raise NotFoundError('Item not found')
    if item.center_id is not None and int(item.center_id) != int(student.center_id):
        raise NotFoundError('Item not found')
    if item.item_type != ItemScope.HALQA.value:
        raise ValidationFailedError('Only halqa items can be voted on')

    open_vote = (
        db.query(GroupPurchaseVote)
        .filter(
            GroupPurchaseVote.halqa_id == student.halqa_id,
            GroupPurchaseVote.item_id == item.id,
            GroupPurchaseVote.status == VoteStatus.VOTING.value,
            GroupPurchaseVote.ends_at > time_provider.utcnow(),
        )
        .first()
    )
    if open_vote:
        raise ConflictError('A vote for this item is already open')

    total = max(1, count_active_students(db, student.halqa_id))
    row = GroupPurchaseVote(
        halqa_id=student.halqa_id,
        item_id=item.id,
        initiated_by=student.id,
        total_students=total,
        required_votes=required_votes_for(total),
        votes_for=0,
        votes_against=0,
        status=VoteStatus.VOTING.value,
        ends_at=time_provider.utcnow() + timedelta(days=settings.vote_duration_days),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info(
        'vote_initiated vote_id=%s halqa_id=%s item_id=%s required=%s',
        row.id,
        row.halqa_id,
        item.id,
        row.required_votes,
    )
    return row


def evaluate_vote(
    db: Session,
    vote: GroupPurchaseVote,
    *,
    time_provider: TimeProvider = default_time_provider,
) -> GroupPurchaseVote:
    """Close a voting record once its outcome is decided or its window has passed."""
    if vote.status != VoteStatus.VOTING.value:
        return vote
    outcome = None
    undecided = int(vote.total_students) - int(vote.votes_for) - int(vote.votes_against)
    if int(vote.votes_for) >= int(vote.required_votes):
        outcome = VoteStatus.PASSED
    elif int(vote.votes_for) + max(0, undecided) < int(vote.required_votes):
        outcome = VoteStatus.FAILED
    elif vote.ends_at <= time_provider.utcnow():
        outcome = VoteStatus.EXPIRED
    if outcome is None:
        return vote

    updated = (
        db.query(GroupPurchaseVote)
        .filter(GroupPurchaseVote.id == vote.id, GroupPurchaseVote.status == VoteStatus.VOTING.value)
        .update(
            {GroupPurchaseVote.status: outcome.value, GroupPurchaseVote.closed_at: time_provider.utcnow()},
            synchronize_session=False,
        )
    )
    db.commit()
    db.refresh(vote)
    if updated:
        logger.info('vote_closed vote_id=%s status=%s votes_for=%s', vote.id, outcome.value, vote.votes_for)
    return vote


def cast_vote(
    db: Session,
    vote_id: int,
    student_id: int,
    value: bool,
    *,
    time_provider: TimeProvider = default_time_provider,
) -> GroupPurchaseVote:
    vote = get_vote(db, vote_id)
    student = db.query(Student).filter(Student.id == int(student_id)).first()
    if not student or not student.is_active:
        raise NotFoundError('Student not found')
    if int(student.halqa_id or 0) != int(vote.halqa_id):
        raise AccessDeniedError('Only members of the halqa can vote')

    vote = evaluate_vote(db, vote, time_provider=time_provider)
    if vote.status != VoteStatus.VOTING.value:
        raise ConflictError(f'Vote is {vote.status}')

    existing = (
        db.query(StudentVote)
        .filter(StudentVote.vote_id == vote.id, StudentVote.student_id == student.id)
        .first()
    )
    if existing:
        raise ConflictError('You have already voted')

    db.add(StudentVote(vote_id=vote.id, student_id=student.id, vote=bool(value), voted_at=time_provider.utcnow()))
    counter = GroupPurchaseVote.votes_for if value else GroupPurchaseVote.votes_against
    try:
        db.flush()
        updated = (
            db.query(GroupPurchaseVote)
            .filter(GroupPurchaseVote.id == vote.id, GroupPurchaseVote.status == VoteStatus.VOTING.value)
            .update({counter: counter + 1}, synchronize_session=False)
        )
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError('You have already voted') from exc
    if not updated:
        # The vote closed between the status check and the counter update.
        db.rollback()
        raise ConflictError('Vote is closed')
    db.commit()
    db.refresh(vote)
    logger.info('vote_cast vote_id=%s student_id=%s value=%s', vote.id, student.id, bool(value))
    return evaluate_vote(db, vote, time_provider=time_provider)


def get_student_vote(db: Session, vote_id: int, student_id: int) -> StudentVote | None:
    return (
        db.query(StudentVote)
        .filter(StudentVote.vote_id == int(vote_id), StudentVote.student_id == int(student_id))
        .first()
    )


def list_halqa_votes(
    db: Session,
    halqa_id: int,
    *,
    active_only: bool = True,
    time_provider: TimeProvider = default_time_provider,
) -> list[GroupPurchaseVote]:
    rows = (
        db.query(GroupPurchaseVote)
        .filter(GroupPurchaseVote.halqa_id == int(halqa_id))
        .order_by(GroupPurchaseVote.created_at.desc(), GroupPurchaseVote.id.desc())
        .all()
    )
    rows = [evaluate_vote(db, row, time_provider=time_provider) for row in rows]
    if active_only:
        rows = [row for row in rows if row.status == VoteStatus.VOTING.value]
    return rows

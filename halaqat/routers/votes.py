from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from halaqat.core.capabilities import Capability
from halaqat.core.router_guard import domain_errors, require_auth_user, require_capability
from halaqat.db import get_db
from halaqat.models import GroupPurchaseVote
from halaqat.schemas import VoteCastRequest, VoteCreateRequest
from halaqat.services.access_scope_service import assert_center_access, get_student_for_user
from halaqat.services.halqa_service import get_halqa
from halaqat.services.vote_service import (
    cast_vote,
    evaluate_vote,
    get_student_vote,
    get_vote,
    initiate_vote,
    list_halqa_votes,
)


router = APIRouter(prefix='/votes', tags=['Votes'])


def _serialize_vote(row: GroupPurchaseVote, *, my_vote: bool | None = None) -> dict:
    return {
        'id': row.id,
        'halqa_id': row.halqa_id,
        'item_id': row.item_id,
        'item_name': row.item.name if row.item else None,
        'initiated_by': row.initiated_by,
        'total_students': row.total_students,
        'required_votes': row.required_votes,
        'votes_for': row.votes_for,
        'votes_against': row.votes_against,
        'status': row.status,
        'ends_at': row.ends_at.isoformat() if row.ends_at else None,
        'closed_at': row.closed_at.isoformat() if row.closed_at else None,
        'my_vote': my_vote,
    }


def _my_vote(db: Session, vote_id: int, student_id: int) -> bool | None:
    row = get_student_vote(db, vote_id, student_id)
    return row.vote if row else None


@router.post('')
def create(payload: VoteCreateRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.CAST_VOTES)
    with domain_errors():
        student = get_student_for_user(db, user)
        row = initiate_vote(db, student.id, payload.item_id)
    return _serialize_vote(row)


@router.get('/active')
def active(request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.CAST_VOTES)
    with domain_errors():
        student = get_student_for_user(db, user)
    if not student.halqa_id:
        return []
    rows = list_halqa_votes(db, student.halqa_id, active_only=True)
    return [_serialize_vote(row, my_vote=_my_vote(db, row.id, student.id)) for row in rows]


@router.get('/halaqat/{halqa_id}')
def halqa_votes(halqa_id: int, request: Request, active_only: bool = False, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.VIEW_STUDENTS)
    with domain_errors():
        assert_center_access(user, get_halqa(db, halqa_id).center_id)
    return [_serialize_vote(row) for row in list_halqa_votes(db, halqa_id, active_only=active_only)]


@router.get('/{vote_id}')
def detail(vote_id: int, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    with domain_errors():
        row = get_vote(db, vote_id)
        assert_center_access(user, get_halqa(db, row.halqa_id).center_id)
        row = evaluate_vote(db, row)
    return _serialize_vote(row)


@router.post('/{vote_id}/cast')
def cast(vote_id: int, payload: VoteCastRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.CAST_VOTES)
    with domain_errors():
        student = get_student_for_user(db, user)
        row = cast_vote(db, vote_id, student.id, payload.vote)
    return _serialize_vote(row, my_vote=payload.vote)

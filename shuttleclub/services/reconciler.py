"""Keeps each participant's paid flag in line with what they owe."""
import logging

from shuttleclub.app import db
from shuttleclub.models import (
    PlaySession, SessionParticipant, ExtraExpense, CoreMember,
)
from shuttleclub.services.cost_allocator import (
    AttendanceRecord, ExpenseRecord, SessionCosts, breakdown_for,
)

logger = logging.getLogger(__name__)


def is_core_member(user_id):
    return CoreMember.query.filter_by(user_id=user_id).first() is not None


def core_member_ids():
    return {row.user_id for row in CoreMember.query.all()}


def load_session_costs(session_id):
    """Read the session's rows and freeze them into a SessionCosts snapshot."""
    session = db.session.get(PlaySession, session_id)
    if session is None:
        return None
    participants = SessionParticipant.query.filter_by(session_id=session_id).all()
    expenses = ExtraExpense.query.filter_by(session_id=session_id).all()
    return costs_from_rows(session, participants, expenses)


def costs_from_rows(session, participants, expenses):
    return SessionCosts(
        session_cost=session.session_cost or 0,
        court_count=session.court_count or 1,
        attendance=tuple(
            AttendanceRecord(p.user_id, p.slot_count or 1) for p in participants
        ),
        expenses=tuple(
            ExpenseRecord(e.user_id, e.amount or 0) for e in expenses
        ),
    )


def expected_paid_flag(costs, user_id, is_core=False):
    """Paid when the member's own expenses cover their share.

    Pure: usable from the request path, the gateway poller or a webhook.
    Returns None for members who are not in the roster.
    """
    share = breakdown_for(costs, user_id, is_core)
    if share is None:
        return None
    return share.covered_by_expenses


def _write_paid_flag(session_id, user_id, has_paid):
    updated = SessionParticipant.query.filter_by(
        session_id=session_id, user_id=user_id,
    ).update({'has_paid': bool(has_paid)}, synchronize_session='fetch')
    return updated


def reconcile_member(session_id, user_id, commit=True):
    """Recompute and store the paid flag after an expense was added or removed.

    Returns the stored flag, or None when there was nothing to update (the
    member left the session, or the session is gone).
    """
    costs = load_session_costs(session_id)
    if costs is None:
        logger.info('Skip reconcile: session %s no longer exists', session_id)
        return None

    flag = expected_paid_flag(costs, user_id, is_core_member(user_id))
    if flag is None:
        logger.info('Skip reconcile: member %s not in session %s', user_id, session_id)
        return None

    updated = _write_paid_flag(session_id, user_id, flag)
    if commit:
        db.session.commit()
    if not updated:
        logger.info('Reconcile for member %s in session %s matched no rows', user_id, session_id)
        return None
    logger.info('Reconciled member %s in session %s: has_paid=%s', user_id, session_id, flag)
    return flag


def set_paid(session_id, user_id, has_paid, commit=True):
    """Explicit override from an admin, the member, or an approved payment.

    Not checked against the allocator; the next expense change recomputes it.
    Returns False when the attendance row has disappeared.
    """
    updated = _write_paid_flag(session_id, user_id, has_paid)
    if commit:
        db.session.commit()
    if not updated:
        logger.info('Paid override for member %s in session %s matched no rows', user_id, session_id)
        return False
    logger.info('Paid override for member %s in session %s: has_paid=%s', user_id, session_id, has_paid)
    return True

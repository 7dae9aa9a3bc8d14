"""Session roster: registration, withdrawal and core-member auto-enrollment."""
import logging
from datetime import timedelta

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from shuttleclub.app import db
from shuttleclub.errors import (
    AuthorizationError, CapacityError, ConflictError, CutoffError,
    NotFoundError, ValidationError,
)
from shuttleclub.models import (
    CoreMember, CoreMemberOptOut, Member, PlaySession, SessionParticipant,
)
from shuttleclub.services.reconciler import core_member_ids, is_core_member
from shuttleclub.time_utils import now_local, session_start_at

logger = logging.getLogger(__name__)

_MAX_SLOTS_PER_REGISTRATION = 10


def _cutoff_minutes():
    raw_value = current_app.config.get('REGISTRATION_CUTOFF_MINUTES', 60)
    try:
        parsed = int(raw_value)
    except (TypeError, ValueError):
        parsed = 60
    return max(0, parsed)


def within_cutoff(session, now=None, cutoff_minutes=None):
    """True from ``cutoff_minutes`` before the start onwards."""
    if cutoff_minutes is None:
        cutoff_minutes = _cutoff_minutes()
    now = now or now_local(current_app.config.get('CLUB_TIMEZONE') or 'UTC')
    starts_at = session_start_at(session.date, session.start_time)
    return now >= starts_at - timedelta(minutes=cutoff_minutes)


def get_session_or_404(session_id):
    session = db.session.get(PlaySession, session_id)
    if not session:
        raise NotFoundError('Session not found')
    return session


def _normalize_slot_count(raw_value):
    try:
        slot_count = int(raw_value)
    except (TypeError, ValueError):
        raise ValidationError('Slot count must be a whole number')
    if slot_count < 1:
        raise ValidationError('Slot count must be at least 1')
    if slot_count > _MAX_SLOTS_PER_REGISTRATION:
        raise ValidationError(f'Slot count cannot exceed {_MAX_SLOTS_PER_REGISTRATION}')
    return slot_count


def roster_slot_total(session_id):
    total = db.session.query(
        func.coalesce(func.sum(SessionParticipant.slot_count), 0)
    ).filter(SessionParticipant.session_id == session_id).scalar()
    return int(total or 0)


def register(ctx, session, user_id, slot_count=1, now=None):
    """Add a member to the session roster.

    Clears a previous core-member opt-out for the same session.
    """
    if not ctx.can_act_for(user_id):
        raise AuthorizationError('You can only register yourself')
    slot_count = _normalize_slot_count(slot_count)

    member = db.session.get(Member, user_id)
    if not member:
        raise NotFoundError('Member not found')
    if member.is_banned:
        raise ValidationError('Member is suspended')
    if not session.is_active:
        raise ValidationError('Session has been cancelled')
    if not ctx.is_admin and within_cutoff(session, now):
        raise CutoffError(
            f'Registration closes {_cutoff_minutes()} minutes before the session starts'
        )

    existing = SessionParticipant.query.filter_by(
        session_id=session.id, user_id=user_id,
    ).first()
    if existing:
        raise ConflictError('Already registered for this session')

    current_total = roster_slot_total(session.id)
    if current_total + slot_count > session.max_members:
        raise CapacityError(
            f'Session limit of {session.max_members} players reached',
            remaining_slots=max(0, session.max_members - current_total),
        )

    participant = SessionParticipant(
        session_id=session.id, user_id=user_id,
        slot_count=slot_count, has_paid=False,
    )
    db.session.add(participant)
    CoreMemberOptOut.query.filter_by(
        session_id=session.id, user_id=user_id,
    ).delete(synchronize_session=False)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError('Already registered for this session')

    logger.info('Member %s registered for session %s with %s slot(s)', user_id, session.id, slot_count)
    return participant


def withdraw(ctx, session, user_id, now=None):
    """Remove a member from the roster, recording an opt-out for core members."""
    if not ctx.can_act_for(user_id):
        raise AuthorizationError('You can only withdraw yourself')
    if not ctx.is_admin and within_cutoff(session, now):
        raise CutoffError(
            f'You cannot leave within {_cutoff_minutes()} minutes of the session start'
        )

    participant = SessionParticipant.query.filter_by(
        session_id=session.id, user_id=user_id,
    ).first()
    if not participant:
        raise ValidationError('You are not registered for this session')
    db.session.delete(participant)

    opted_out = False
    if is_core_member(user_id):
        already = CoreMemberOptOut.query.filter_by(
            session_id=session.id, user_id=user_id,
        ).first()
        if not already:
            db.session.add(CoreMemberOptOut(session_id=session.id, user_id=user_id))
        opted_out = True

    db.session.commit()
    logger.info('Member %s withdrew from session %s (opt_out=%s)', user_id, session.id, opted_out)
    return opted_out


def auto_enroll_core_members(session):
    """Add every core member who is neither attending nor opted out.

    Safe to call repeatedly. Cancelled sessions are left alone. Capacity is
    not checked here; core members hold a standing place.
    """
    if not session.is_active:
        return []

    attending = {
        row.user_id for row in SessionParticipant.query.filter_by(session_id=session.id).all()
    }
    opted_out = {
        row.user_id for row in CoreMemberOptOut.query.filter_by(session_id=session.id).all()
    }
    banned = {
        row.id for row in Member.query.join(CoreMember, CoreMember.user_id == Member.id)
        .filter(Member.is_banned.is_(True)).all()
    }

    added = []
    for user_id in sorted(core_member_ids()):
        if user_id in attending or user_id in opted_out or user_id in banned:
            continue
        db.session.add(SessionParticipant(
            session_id=session.id, user_id=user_id, slot_count=1, has_paid=False,
        ))
        added.append(user_id)

    if not added:
        return []
    try:
        db.session.commit()
    except IntegrityError:
        # Another request enrolled some of them first; the roster already holds them.
        db.session.rollback()
        logger.info('Concurrent auto-enrollment detected for session %s', session.id)
        return []

    logger.info('Auto-enrolled core members %s into session %s', added, session.id)
    return added

"""Manual payment confirmations reviewed by an admin.

A request moves pending -> approved or pending -> rejected and never again.
Approving flips the participant's paid flag through the override path.
"""
import logging

from shuttleclub.app import db
from shuttleclub.errors import (
    AuthorizationError, ConflictError, InvalidStateTransitionError,
    NotFoundError, ValidationError,
)
from shuttleclub.models import PaymentRequest, SessionParticipant
from shuttleclub.services import reconciler
from shuttleclub.services.money import normalize_amount
from shuttleclub.time_utils import utcnow_naive

logger = logging.getLogger(__name__)

PENDING = 'pending'
APPROVED = 'approved'
REJECTED = 'rejected'


def has_pending_request(session_id, user_id):
    return PaymentRequest.query.filter_by(
        session_id=session_id, user_id=user_id, status=PENDING,
    ).first() is not None


def create_request(ctx, session, amount):
    amount = normalize_amount(amount)
    if not session.is_active:
        raise ValidationError('Session has been cancelled')
    if not session.can_pay:
        raise ValidationError('Payments are not open for this session')

    participant = SessionParticipant.query.filter_by(
        session_id=session.id, user_id=ctx.user_id,
    ).first()
    if not participant:
        raise ValidationError('You are not registered for this session')
    if participant.has_paid:
        raise ConflictError('Payment is already recorded for this session')
    if has_pending_request(session.id, ctx.user_id):
        raise ConflictError('A payment request is already pending for this session')

    payment_request = PaymentRequest(
        session_id=session.id, user_id=ctx.user_id, amount=amount, status=PENDING,
    )
    db.session.add(payment_request)
    db.session.commit()
    logger.info('Payment request %s created by member %s for session %s',
                payment_request.id, ctx.user_id, session.id)
    return payment_request


def pending_requests():
    return PaymentRequest.query.filter_by(status=PENDING).order_by(
        PaymentRequest.created_at.desc(), PaymentRequest.id.desc(),
    ).all()


def _load_pending(ctx, request_id):
    if not ctx.is_admin:
        raise AuthorizationError('Admin access required')
    payment_request = db.session.get(PaymentRequest, request_id)
    if not payment_request:
        raise NotFoundError('Payment request not found')
    if payment_request.status != PENDING:
        raise InvalidStateTransitionError(
            f'Payment request is already {payment_request.status}'
        )
    return payment_request


def approve_request(ctx, request_id):
    payment_request = _load_pending(ctx, request_id)
    payment_request.status = APPROVED
    payment_request.processed_at = utcnow_naive()
    payment_request.processed_by = ctx.user_id

    flagged = reconciler.set_paid(
        payment_request.session_id, payment_request.user_id, True, commit=False,
    )
    db.session.commit()
    if not flagged:
        logger.warning('Approved payment request %s but member %s is no longer in session %s',
                       payment_request.id, payment_request.user_id, payment_request.session_id)
    logger.info('Payment request %s approved by %s', payment_request.id, ctx.user_id)
    return payment_request


def reject_request(ctx, request_id, notes=None):
    payment_request = _load_pending(ctx, request_id)
    payment_request.status = REJECTED
    payment_request.processed_at = utcnow_naive()
    payment_request.processed_by = ctx.user_id
    cleaned = str(notes or '').strip()[:2000]
    payment_request.notes = cleaned or None
    db.session.commit()
    logger.info('Payment request %s rejected by %s', payment_request.id, ctx.user_id)
    return payment_request

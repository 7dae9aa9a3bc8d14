"""Extra expenses logged against a session."""
import logging

from shuttleclub.app import db
from shuttleclub.errors import AuthorizationError, ValidationError
from shuttleclub.models import ExtraExpense, SessionParticipant
from shuttleclub.services import reconciler
from shuttleclub.services.money import normalize_amount

logger = logging.getLogger(__name__)


def list_expenses(session_id):
    return ExtraExpense.query.filter_by(session_id=session_id).order_by(
        ExtraExpense.created_at.asc(), ExtraExpense.id.asc(),
    ).all()


def add_expense(ctx, session, amount, description=''):
    """Record an expense and re-evaluate the logger's paid flag.

    Returns ``(expense, has_paid)``; ``has_paid`` is None when the logger is
    not in the roster.
    """
    amount = normalize_amount(amount)
    description = str(description or '').strip()[:500]
    if not session.is_active:
        raise ValidationError('Session has been cancelled')

    attending = SessionParticipant.query.filter_by(
        session_id=session.id, user_id=ctx.user_id,
    ).first() is not None
    if not attending and not ctx.is_admin:
        raise ValidationError('Only participants can add expenses to this session')

    expense = ExtraExpense(
        session_id=session.id, user_id=ctx.user_id,
        amount=amount, description=description,
    )
    db.session.add(expense)
    db.session.commit()
    logger.info('Expense %s (%s) added by member %s to session %s',
                expense.id, amount, ctx.user_id, session.id)

    has_paid = reconciler.reconcile_member(session.id, ctx.user_id)
    return expense, has_paid


def delete_expense(ctx, expense_id):
    """Delete an expense owned by the caller.

    A missing expense counts as already deleted and returns None.
    """
    expense = db.session.get(ExtraExpense, expense_id)
    if not expense:
        logger.info('Expense %s already deleted', expense_id)
        return None
    if expense.user_id != ctx.user_id:
        raise AuthorizationError('You can only delete your own expenses')

    session_id = expense.session_id
    owner_id = expense.user_id
    db.session.delete(expense)
    db.session.commit()
    logger.info('Expense %s deleted by member %s', expense_id, ctx.user_id)

    has_paid = reconciler.reconcile_member(session_id, owner_id)
    return {'session_id': session_id, 'user_id': owner_id, 'has_paid': has_paid}

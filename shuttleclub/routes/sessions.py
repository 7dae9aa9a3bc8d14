"""Club sessions: monthly calendar, roster, and per-member amounts."""
from flask import Blueprint, request, jsonify
from shuttleclub.app import db
from shuttleclub.auth_utils import login_required, admin_required
from shuttleclub.errors import AuthorizationError, ValidationError
from shuttleclub.models import Member, PlaySession, SessionParticipant
from shuttleclub.routes.helpers import emit_session_update, json_payload, parse_bool
from shuttleclub.services import attendance, reconciler
from shuttleclub.services.cost_allocator import (
    amount_owed, member_period_summary, session_breakdown,
)
from shuttleclub.services.money import whole_units
from shuttleclub.services.session_generator import generate_month, month_bounds

sessions_bp = Blueprint('sessions', __name__)


def _month_sessions(year, month, active_only=False):
    first, last = month_bounds(year, month)
    query = PlaySession.query.filter(
        PlaySession.date >= first, PlaySession.date <= last,
    )
    if active_only:
        query = query.filter(PlaySession.is_active.is_(True))
    return query.order_by(PlaySession.date.asc()).all()


def _month_args():
    year = request.args.get('year', type=int)
    month = request.args.get('month', type=int)
    if not year or not month:
        raise ValidationError('year and month query parameters are required')
    return year, month


def _share_dict(share, paid_ids):
    return {
        'user_id': share.user_id,
        'slot_count': share.slot_count,
        'is_core': share.is_core,
        'court_share': whole_units(share.court_share),
        'extra_share': whole_units(share.extra_share),
        'credit': whole_units(share.credit),
        'net_owed': whole_units(share.net),
        'has_paid': share.user_id in paid_ids,
    }


@sessions_bp.route('', methods=['GET'])
@login_required
def list_sessions():
    """Sessions of one month with roster, expenses and opt-outs."""
    year, month = _month_args()
    sessions = _month_sessions(year, month)
    return jsonify({'sessions': [s.to_dict() for s in sessions]})


@sessions_bp.route('/<int:session_id>', methods=['GET'])
@login_required
def get_session(session_id):
    session = attendance.get_session_or_404(session_id)
    return jsonify({'session': session.to_dict()})


@sessions_bp.route('/generate', methods=['POST'])
@admin_required
def generate_sessions():
    data = json_payload()
    result = generate_month(
        data.get('year'), data.get('month'),
        created_by=request.club_context.user_id,
    )
    emit_session_update(reason='sessions_generated')
    return jsonify({
        'sessions': [s.to_dict() for s in result['sessions']],
        'created_ids': result['created_ids'],
        'created_count': len(result['created_ids']),
        'enrolled': {str(k): v for k, v in result['enrolled'].items()},
    }), 201


@sessions_bp.route('/<int:session_id>/cancel', methods=['POST'])
@admin_required
def cancel_session(session_id):
    """Soft cancel: the row and its roster stay, registration closes."""
    session = attendance.get_session_or_404(session_id)
    session.is_active = False
    db.session.commit()
    emit_session_update(session_id, reason='session_cancelled')
    return jsonify({'message': 'Session cancelled', 'session': session.to_dict()})


@sessions_bp.route('/<int:session_id>/restore', methods=['POST'])
@admin_required
def restore_session(session_id):
    session = attendance.get_session_or_404(session_id)
    session.is_active = True
    db.session.commit()
    emit_session_update(session_id, reason='session_restored')
    return jsonify({'message': 'Session restored', 'session': session.to_dict()})


@sessions_bp.route('/<int:session_id>/payments', methods=['POST'])
@admin_required
def toggle_payment_window(session_id):
    session = attendance.get_session_or_404(session_id)
    data = json_payload()
    session.can_pay = parse_bool(data.get('open'), 'open')
    db.session.commit()
    emit_session_update(session_id, reason='payment_window_changed')
    return jsonify({
        'message': 'Payments opened' if session.can_pay else 'Payments closed',
        'session': session.to_dict(include_roster=False),
    })


@sessions_bp.route('/<int:session_id>/register', methods=['POST'])
@login_required
def register_for_session(session_id):
    session = attendance.get_session_or_404(session_id)
    data = json_payload()
    ctx = request.club_context
    user_id = data.get('user_id') or ctx.user_id
    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        raise ValidationError('user_id must be a number')

    participant = attendance.register(ctx, session, user_id, data.get('slot_count', 1))
    emit_session_update(session_id, reason='member_registered')
    return jsonify({
        'message': 'Registered for session',
        'participant': participant.to_dict(),
    }), 201


@sessions_bp.route('/<int:session_id>/withdraw', methods=['POST'])
@login_required
def withdraw_from_session(session_id):
    session = attendance.get_session_or_404(session_id)
    data = json_payload()
    ctx = request.club_context
    user_id = data.get('user_id') or ctx.user_id
    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        raise ValidationError('user_id must be a number')

    opted_out = attendance.withdraw(ctx, session, user_id)
    emit_session_update(session_id, reason='member_withdrew')
    return jsonify({'message': 'Left session', 'opted_out': opted_out})


@sessions_bp.route('/<int:session_id>/auto-enroll', methods=['POST'])
@login_required
def auto_enroll(session_id):
    """Fill in core members missing from the roster; idempotent."""
    session = attendance.get_session_or_404(session_id)
    added = attendance.auto_enroll_core_members(session)
    if added:
        emit_session_update(session_id, reason='core_members_enrolled')
    return jsonify({'added_user_ids': added, 'session': session.to_dict()})


@sessions_bp.route('/<int:session_id>/owed', methods=['GET'])
@login_required
def get_amount_owed(session_id):
    attendance.get_session_or_404(session_id)
    ctx = request.club_context
    user_id = request.args.get('user_id', type=int) or ctx.user_id
    if not ctx.can_act_for(user_id):
        raise AuthorizationError('You can only view your own balance')

    costs = reconciler.load_session_costs(session_id)
    is_core = reconciler.is_core_member(user_id)
    participant = SessionParticipant.query.filter_by(
        session_id=session_id, user_id=user_id,
    ).first()
    return jsonify({
        'session_id': session_id,
        'user_id': user_id,
        'is_core': is_core,
        'attending': participant is not None,
        'amount_owed': whole_units(amount_owed(costs, user_id, is_core)),
        'has_paid': bool(participant.has_paid) if participant else False,
    })


@sessions_bp.route('/<int:session_id>/summary', methods=['GET'])
@login_required
def get_session_summary(session_id):
    session = attendance.get_session_or_404(session_id)
    costs = reconciler.load_session_costs(session_id)
    paid_ids = {p.user_id for p in session.participants if p.has_paid}
    breakdown = session_breakdown(costs, reconciler.core_member_ids(), paid_ids)
    return jsonify({
        'session_id': session_id,
        'total_slots': breakdown['total_slots'],
        'total_cost': whole_units(breakdown['total_cost']),
        'total_charged': whole_units(breakdown['total_charged']),
        'absorbed': whole_units(breakdown['absorbed']),
        'outstanding': whole_units(breakdown['outstanding']),
        'shares': [_share_dict(s, paid_ids) for s in breakdown['shares']],
    })


@sessions_bp.route('/summary', methods=['GET'])
@login_required
def get_month_summary():
    """Slots attended and net owed per member over a month's active sessions."""
    year, month = _month_args()
    ctx = request.club_context
    sessions = _month_sessions(year, month, active_only=True)
    snapshots = [
        reconciler.costs_from_rows(s, s.participants, s.expenses) for s in sessions
    ]
    core_ids = reconciler.core_member_ids()

    if ctx.is_admin:
        member_ids = sorted({p.user_id for s in sessions for p in s.participants})
    else:
        member_ids = [ctx.user_id]

    members = {m.id: m for m in Member.query.filter(Member.id.in_(member_ids)).all()} if member_ids else {}
    rows = []
    for user_id in member_ids:
        row = member_period_summary(snapshots, user_id, user_id in core_ids)
        row['total_owed'] = whole_units(row['total_owed'])
        member = members.get(user_id)
        row['member'] = member.to_public_dict() if member else None
        row['is_core'] = user_id in core_ids
        rows.append(row)
    return jsonify({'year': year, 'month': month, 'members': rows})

"""Paid flags, manual payment requests and wallet gateway orders."""
from flask import Blueprint, request, jsonify
from shuttleclub.auth_utils import login_required, admin_required
from shuttleclub.errors import AmountMismatchError, AuthorizationError, ValidationError
from shuttleclub.routes.helpers import (
    emit_session_update, json_payload, parse_bool, required_int,
)
from shuttleclub.services import attendance, payment_gateway, payment_requests, reconciler

payments_bp = Blueprint('payments', __name__)


@payments_bp.route('/mark', methods=['POST'])
@login_required
def mark_paid():
    """Set a paid flag directly. Members may only mark themselves."""
    data = json_payload()
    ctx = request.club_context
    session = attendance.get_session_or_404(required_int(data, 'session_id', 'Session ID'))
    user_id = data.get('user_id') or ctx.user_id
    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        raise ValidationError('user_id must be a number')
    if not ctx.can_act_for(user_id):
        raise AuthorizationError('Only admins can change payment status for other members')
    has_paid = parse_bool(data.get('paid'), 'paid')

    updated = reconciler.set_paid(session.id, user_id, has_paid)
    if not updated:
        return jsonify({'error': 'Member is not registered for this session'}), 404
    emit_session_update(session.id, reason='payment_marked')
    return jsonify({'session_id': session.id, 'user_id': user_id, 'has_paid': has_paid})


# ── Manual payment requests ───────────────────────────────────────────

@payments_bp.route('/requests', methods=['POST'])
@login_required
def create_payment_request():
    data = json_payload()
    session = attendance.get_session_or_404(required_int(data, 'session_id', 'Session ID'))
    payment_request = payment_requests.create_request(
        request.club_context, session, data.get('amount'),
    )
    return jsonify({'request': payment_request.to_dict()}), 201


@payments_bp.route('/requests', methods=['GET'])
@admin_required
def list_pending_requests():
    rows = payment_requests.pending_requests()
    return jsonify({'requests': [r.to_dict() for r in rows]})


@payments_bp.route('/requests/pending', methods=['GET'])
@login_required
def has_pending_request():
    session_id = request.args.get('session_id', type=int)
    if not session_id:
        raise ValidationError('session_id query parameter is required')
    return jsonify({
        'session_id': session_id,
        'pending': payment_requests.has_pending_request(session_id, request.club_context.user_id),
    })


@payments_bp.route('/requests/<int:request_id>/approve', methods=['POST'])
@admin_required
def approve_payment_request(request_id):
    payment_request = payment_requests.approve_request(request.club_context, request_id)
    emit_session_update(payment_request.session_id, reason='payment_request_approved')
    return jsonify({'request': payment_request.to_dict()})


@payments_bp.route('/requests/<int:request_id>/reject', methods=['POST'])
@admin_required
def reject_payment_request(request_id):
    data = json_payload()
    payment_request = payment_requests.reject_request(
        request.club_context, request_id, data.get('notes'),
    )
    return jsonify({'request': payment_request.to_dict()})


# ── Wallet gateway ────────────────────────────────────────────────────

def _owned_transaction(order_id):
    transaction = payment_gateway.get_transaction(order_id)
    if not request.club_context.can_act_for(transaction.user_id):
        raise AuthorizationError('You can only view your own payments')
    return transaction


@payments_bp.route('/gateway/initiate', methods=['POST'])
@login_required
def initiate_gateway_payment():
    data = json_payload()
    session = attendance.get_session_or_404(required_int(data, 'session_id', 'Session ID'))
    transaction = payment_gateway.initiate_payment(request.club_context, session)
    return jsonify({
        'order_id': transaction.order_id,
        'amount': transaction.amount,
        'pay_url': transaction.pay_url,
    }), 201


@payments_bp.route('/gateway/<order_id>', methods=['GET'])
@login_required
def gateway_payment_status(order_id):
    """Single re-check used by the result page."""
    _owned_transaction(order_id)
    transaction = payment_gateway.resolve_transaction(order_id)
    if transaction.status == payment_gateway.STATUS_SUCCESS:
        emit_session_update(transaction.session_id, reason='gateway_payment')
    return jsonify({
        'transaction': transaction.to_dict(),
        'completed': transaction.status == payment_gateway.STATUS_SUCCESS,
    })


@payments_bp.route('/gateway/callback', methods=['POST'])
def gateway_callback():
    """Gateway notification. The payload is only trusted for the order id."""
    data = json_payload()
    order_id = str(data.get('orderId') or data.get('order_id') or '').strip()
    if not order_id:
        raise ValidationError('Invalid gateway notification')

    transaction = payment_gateway.resolve_transaction(order_id)
    if transaction.status == payment_gateway.STATUS_AMOUNT_MISMATCH:
        raise AmountMismatchError()
    if transaction.status == payment_gateway.STATUS_SUCCESS:
        emit_session_update(transaction.session_id, reason='gateway_payment')
    return jsonify({
        'success': transaction.status == payment_gateway.STATUS_SUCCESS,
        'status': transaction.status,
    })

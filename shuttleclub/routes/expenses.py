from flask import Blueprint, request, jsonify
from shuttleclub.auth_utils import login_required
from shuttleclub.errors import ValidationError
from shuttleclub.routes.helpers import emit_session_update, json_payload, required_int
from shuttleclub.services import attendance, expenses

expenses_bp = Blueprint('expenses', __name__)


@expenses_bp.route('', methods=['GET'])
@login_required
def list_expenses():
    session_id = request.args.get('session_id', type=int)
    if not session_id:
        raise ValidationError('session_id query parameter is required')
    session = attendance.get_session_or_404(session_id)
    rows = expenses.list_expenses(session.id)
    return jsonify({
        'expenses': [e.to_dict() for e in rows],
        'total': sum(e.amount for e in rows),
    })


@expenses_bp.route('', methods=['POST'])
@login_required
def add_expense():
    """Log an expense; the logger's paid flag is re-evaluated afterwards."""
    data = json_payload()
    session = attendance.get_session_or_404(required_int(data, 'session_id', 'Session ID'))
    expense, has_paid = expenses.add_expense(
        request.club_context, session, data.get('amount'), data.get('description', ''),
    )
    emit_session_update(session.id, reason='expense_added')
    return jsonify({'expense': expense.to_dict(), 'has_paid': has_paid}), 201


@expenses_bp.route('/<int:expense_id>', methods=['DELETE'])
@login_required
def delete_expense(expense_id):
    result = expenses.delete_expense(request.club_context, expense_id)
    if result is None:
        return jsonify({'message': 'Expense already deleted'})
    emit_session_update(result['session_id'], reason='expense_deleted')
    return jsonify({'message': 'Expense deleted', 'has_paid': result['has_paid']})

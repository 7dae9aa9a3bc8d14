from flask import request
from shuttleclub.app import socketio
from shuttleclub.errors import ValidationError
from shuttleclub.time_utils import utcnow_naive


def emit_session_update(session_id=None, reason=''):
    payload = {
        'session_id': session_id,
        'reason': reason,
        'updated_at': utcnow_naive().isoformat(),
    }
    socketio.emit('session_update', payload)


def json_payload():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError('Invalid JSON payload')
    return data


def required_int(data, key, label=None):
    label = label or key
    try:
        value = int(data.get(key))
    except (TypeError, ValueError):
        raise ValidationError(f'{label} is required')
    if value <= 0:
        raise ValidationError(f'{label} is required')
    return value


def parse_bool(raw_value, label='value'):
    if isinstance(raw_value, bool):
        return raw_value
    text = str(raw_value or '').strip().lower()
    if text in {'1', 'true', 'yes', 'on'}:
        return True
    if text in {'0', 'false', 'no', 'off'}:
        return False
    raise ValidationError(f'{label} must be true or false')

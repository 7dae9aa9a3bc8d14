import re

from flask import Blueprint, request, jsonify, current_app
from werkzeug.security import generate_password_hash, check_password_hash
from shuttleclub.app import db
from shuttleclub.models import Member
from shuttleclub.auth_utils import generate_token, login_required, csrf_token_for_bearer
from shuttleclub.services.reconciler import is_core_member

auth_bp = Blueprint('auth', __name__)

_USERNAME_PATTERN = re.compile(r'^[A-Za-z0-9_.]{3,80}$')


def _configured_admin_emails():
    raw_value = current_app.config.get('ADMIN_EMAILS', '')
    return {
        item.strip().lower()
        for item in str(raw_value).split(',')
        if item and item.strip()
    }


def _is_configured_admin_email(email):
    normalized = (email or '').strip().lower()
    return normalized in _configured_admin_emails()


def _maybe_grant_admin_from_config(member):
    if not member or member.is_admin:
        return False
    if not _is_configured_admin_email(member.email):
        return False
    member.is_admin = True
    return True


def password_complexity_error(raw_password):
    password = str(raw_password or '')
    if len(password) < 8:
        return 'Password must be at least 8 characters long'
    if not re.search(r'[A-Za-z]', password) or not re.search(r'\d', password):
        return 'Password must include at least one letter and one number'
    return None


def member_payload(member):
    data = member.to_dict()
    data['is_core'] = is_core_member(member.id)
    return data


@auth_bp.route('/register', methods=['POST'])
def register():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400
    if not data.get('username') or not data.get('email') or not data.get('password'):
        return jsonify({'error': 'Username, email, and password are required'}), 400

    username = str(data['username']).strip()
    email = str(data['email']).strip().lower()
    if not _USERNAME_PATTERN.match(username):
        return jsonify({'error': 'Username may only contain letters, numbers, dots and underscores'}), 400
    password_error = password_complexity_error(data.get('password'))
    if password_error:
        return jsonify({'error': password_error}), 400

    if Member.query.filter_by(username=username).first():
        return jsonify({'error': 'Username already taken'}), 409
    if Member.query.filter_by(email=email).first():
        return jsonify({'error': 'Email already registered'}), 409

    member = Member(
        username=username,
        email=email,
        password_hash=generate_password_hash(data['password']),
        is_admin=_is_configured_admin_email(email),
        display_name=str(data.get('display_name') or '').strip()[:120],
    )
    db.session.add(member)
    db.session.commit()
    token = generate_token(member.id)
    return jsonify({'token': token, 'user': member_payload(member)}), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400
    if not data.get('email') or not data.get('password'):
        return jsonify({'error': 'Email and password are required'}), 400

    email = str(data['email']).strip().lower()
    member = Member.query.filter_by(email=email).first()
    if not member or not check_password_hash(member.password_hash, data['password']):
        return jsonify({'error': 'Invalid email or password'}), 401
    if member.is_banned:
        return jsonify({'error': 'Your account has been suspended'}), 403

    if _maybe_grant_admin_from_config(member):
        db.session.commit()

    token = generate_token(member.id)
    return jsonify({'token': token, 'user': member_payload(member)})


@auth_bp.route('/me', methods=['GET'])
@login_required
def get_me():
    return jsonify({'user': member_payload(request.current_user)})


@auth_bp.route('/me', methods=['PUT'])
@login_required
def update_me():
    """Edit display name and avatar; nothing else is self-service."""
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400

    member = request.current_user
    if 'display_name' in data:
        display_name = str(data.get('display_name') or '').strip()
        if not display_name:
            return jsonify({'error': 'Display name cannot be empty'}), 400
        member.display_name = display_name[:120]
    if 'avatar_url' in data:
        avatar_url = str(data.get('avatar_url') or '').strip()
        if avatar_url and not avatar_url.startswith(('https://', 'http://')):
            return jsonify({'error': 'Avatar must be an http(s) URL'}), 400
        member.avatar_url = avatar_url[:500]
    db.session.commit()
    return jsonify({'user': member_payload(member)})


@auth_bp.route('/csrf', methods=['GET'])
@login_required
def get_csrf_token():
    auth_header = request.headers.get('Authorization', '')
    token = csrf_token_for_bearer(auth_header)
    if not token:
        return jsonify({'error': 'Unable to generate CSRF token'}), 400
    return jsonify({'csrf_token': token})

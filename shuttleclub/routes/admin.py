"""Club administration: members, core set, settings, weekly schedule, locations."""
import logging

from flask import Blueprint, request, jsonify, current_app
from werkzeug.security import generate_password_hash

from shuttleclub.app import db
from shuttleclub.auth_utils import admin_required
from shuttleclub.errors import ConflictError, NotFoundError, ValidationError
from shuttleclub.models import ClubSettings, CoreMember, DaySetting, Location, Member
from shuttleclub.routes.auth import _USERNAME_PATTERN, password_complexity_error
from shuttleclub.routes.helpers import json_payload, parse_bool
from shuttleclub.services.money import normalize_amount
from shuttleclub.services.session_generator import current_settings
from shuttleclub.time_utils import parse_play_time

logger = logging.getLogger(__name__)

admin_bp = Blueprint('admin', __name__)

_MAX_COURTS = 20


def _member_or_404(user_id):
    member = db.session.get(Member, user_id)
    if not member:
        raise NotFoundError('Member not found')
    return member


def _member_row(member, core_ids):
    data = member.to_dict()
    data['is_core'] = member.id in core_ids
    return data


def _positive_int(raw_value, label, maximum=None):
    if isinstance(raw_value, bool):
        raise ValidationError(f'{label} must be a whole number')
    try:
        value = int(raw_value)
    except (TypeError, ValueError):
        raise ValidationError(f'{label} must be a whole number')
    if value < 1:
        raise ValidationError(f'{label} must be at least 1')
    if maximum is not None and value > maximum:
        raise ValidationError(f'{label} must be at most {maximum}')
    return value


def _location_id_or_none(raw_value):
    if raw_value in (None, '', 0):
        return None
    try:
        location_id = int(raw_value)
    except (TypeError, ValueError):
        raise ValidationError('location_id must be a number')
    if not db.session.get(Location, location_id):
        raise NotFoundError('Location not found')
    return location_id


# ── Members ───────────────────────────────────────────────────────────

@admin_bp.route('/members', methods=['GET'])
@admin_required
def list_members():
    core_ids = {row.user_id for row in CoreMember.query.all()}
    members = Member.query.order_by(Member.username.asc()).all()
    return jsonify({'members': [_member_row(m, core_ids) for m in members]})


@admin_bp.route('/members', methods=['POST'])
@admin_required
def create_member():
    """Create an account on someone's behalf, optionally in the core set."""
    data = json_payload()
    username = str(data.get('username') or '').strip()
    email = str(data.get('email') or '').strip().lower()
    password = data.get('password')
    if not username or not email or not password:
        raise ValidationError('Username, email, and password are required')
    if not _USERNAME_PATTERN.match(username):
        raise ValidationError('Username may only contain letters, numbers, dots and underscores')
    password_error = password_complexity_error(password)
    if password_error:
        raise ValidationError(password_error)
    if Member.query.filter_by(username=username).first():
        raise ConflictError('Username already taken')
    if Member.query.filter_by(email=email).first():
        raise ConflictError('Email already registered')

    member = Member(
        username=username,
        email=email,
        password_hash=generate_password_hash(password),
        display_name=str(data.get('display_name') or '').strip()[:120],
    )
    db.session.add(member)
    db.session.flush()
    is_core = parse_bool(data.get('is_core', False), 'is_core')
    if is_core:
        db.session.add(CoreMember(user_id=member.id))
    db.session.commit()
    logger.info('Member %s created by admin %s (core=%s)',
                member.id, request.club_context.user_id, is_core)
    return jsonify({'member': _member_row(member, {member.id} if is_core else set())}), 201


@admin_bp.route('/members/<int:user_id>/core', methods=['POST'])
@admin_required
def set_core_member(user_id):
    member = _member_or_404(user_id)
    data = json_payload()
    is_core = parse_bool(data.get('is_core'), 'is_core')
    existing = CoreMember.query.filter_by(user_id=user_id).first()
    if is_core and not existing:
        db.session.add(CoreMember(user_id=user_id))
    elif not is_core and existing:
        db.session.delete(existing)
    db.session.commit()
    logger.info('Member %s core=%s (admin %s)', user_id, is_core, request.club_context.user_id)
    return jsonify({'member': _member_row(member, {user_id} if is_core else set())})


@admin_bp.route('/members/<int:user_id>/admin', methods=['POST'])
@admin_required
def set_admin(user_id):
    member = _member_or_404(user_id)
    data = json_payload()
    is_admin = parse_bool(data.get('is_admin'), 'is_admin')
    if user_id == request.club_context.user_id and not is_admin:
        raise ValidationError('You cannot remove your own admin access')
    member.is_admin = is_admin
    db.session.commit()
    core_ids = {user_id} if CoreMember.query.filter_by(user_id=user_id).first() else set()
    return jsonify({'member': _member_row(member, core_ids)})


@admin_bp.route('/members/<int:user_id>/ban', methods=['POST'])
@admin_required
def set_banned(user_id):
    member = _member_or_404(user_id)
    data = json_payload()
    is_banned = parse_bool(data.get('is_banned'), 'is_banned')
    if user_id == request.club_context.user_id and is_banned:
        raise ValidationError('You cannot ban yourself')
    member.is_banned = is_banned
    db.session.commit()
    logger.info('Member %s banned=%s (admin %s)', user_id, is_banned, request.club_context.user_id)
    core_ids = {user_id} if CoreMember.query.filter_by(user_id=user_id).first() else set()
    return jsonify({'member': _member_row(member, core_ids)})


# ── Club settings ─────────────────────────────────────────────────────

@admin_bp.route('/settings', methods=['GET'])
@admin_required
def get_settings():
    session_price, max_members = current_settings()
    return jsonify({'settings': {'session_price': session_price, 'max_members': max_members}})


@admin_bp.route('/settings', methods=['PUT'])
@admin_required
def update_settings():
    """Defaults for sessions generated from now on; existing sessions keep theirs."""
    data = json_payload()
    settings = ClubSettings.query.order_by(ClubSettings.id.asc()).first()
    if not settings:
        session_price, max_members = current_settings()
        settings = ClubSettings(session_price=session_price, max_members=max_members)
        db.session.add(settings)

    if 'session_price' in data:
        settings.session_price = normalize_amount(data.get('session_price'), 'Session price')
    if 'max_members' in data:
        settings.max_members = _positive_int(data.get('max_members'), 'Max members', maximum=200)
    settings.updated_by = request.club_context.user_id
    db.session.commit()
    return jsonify({'settings': settings.to_dict()})


# ── Weekly schedule ───────────────────────────────────────────────────

@admin_bp.route('/day-settings', methods=['GET'])
@admin_required
def list_day_settings():
    rows = DaySetting.query.order_by(DaySetting.day_of_week.asc()).all()
    return jsonify({'day_settings': [row.to_dict() for row in rows]})


@admin_bp.route('/day-settings', methods=['POST'])
@admin_required
def create_day_setting():
    data = json_payload()
    try:
        day_of_week = int(data.get('day_of_week'))
    except (TypeError, ValueError):
        raise ValidationError('day_of_week must be a number between 0 and 6')
    if day_of_week < 0 or day_of_week > 6:
        raise ValidationError('day_of_week must be a number between 0 and 6')
    if DaySetting.query.filter_by(day_of_week=day_of_week).first():
        raise ConflictError('This day is already scheduled')

    play_time = parse_play_time(
        data.get('play_time') or current_app.config.get('DEFAULT_SESSION_TIME')
    )
    if not play_time:
        raise ValidationError('play_time must be HH:MM')

    setting = DaySetting(
        day_of_week=day_of_week,
        play_time=play_time,
        court_count=_positive_int(data.get('court_count', 1), 'Court count', maximum=_MAX_COURTS),
        location_id=_location_id_or_none(data.get('location_id')),
        is_active=parse_bool(data.get('is_active', True), 'is_active'),
    )
    db.session.add(setting)
    db.session.commit()
    return jsonify({'day_setting': setting.to_dict()}), 201


@admin_bp.route('/day-settings/<int:setting_id>', methods=['PUT'])
@admin_required
def update_day_setting(setting_id):
    setting = db.session.get(DaySetting, setting_id)
    if not setting:
        raise NotFoundError('Day setting not found')
    data = json_payload()

    if 'play_time' in data:
        play_time = parse_play_time(data.get('play_time'))
        if not play_time:
            raise ValidationError('play_time must be HH:MM')
        setting.play_time = play_time
    if 'court_count' in data:
        setting.court_count = _positive_int(data.get('court_count'), 'Court count', maximum=_MAX_COURTS)
    if 'location_id' in data:
        setting.location_id = _location_id_or_none(data.get('location_id'))
    if 'is_active' in data:
        setting.is_active = parse_bool(data.get('is_active'), 'is_active')
    db.session.commit()
    return jsonify({'day_setting': setting.to_dict()})


# ── Locations ─────────────────────────────────────────────────────────

@admin_bp.route('/locations', methods=['GET'])
@admin_required
def list_locations():
    rows = Location.query.order_by(Location.name.asc()).all()
    return jsonify({'locations': [row.to_dict() for row in rows]})


@admin_bp.route('/locations', methods=['POST'])
@admin_required
def create_location():
    data = json_payload()
    name = str(data.get('name') or '').strip()
    if not name:
        raise ValidationError('Location name is required')
    location = Location(
        name=name[:200],
        address=str(data.get('address') or '').strip()[:500],
        created_by=request.club_context.user_id,
    )
    db.session.add(location)
    db.session.commit()
    return jsonify({'location': location.to_dict()}), 201


@admin_bp.route('/locations/<int:location_id>', methods=['PUT'])
@admin_required
def update_location(location_id):
    location = db.session.get(Location, location_id)
    if not location:
        raise NotFoundError('Location not found')
    data = json_payload()
    if 'name' in data:
        name = str(data.get('name') or '').strip()
        if not name:
            raise ValidationError('Location name is required')
        location.name = name[:200]
    if 'address' in data:
        location.address = str(data.get('address') or '').strip()[:500]
    db.session.commit()
    return jsonify({'location': location.to_dict()})

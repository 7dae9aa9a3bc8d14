import hashlib
import hmac
from dataclasses import dataclass
from functools import wraps
from flask import request, current_app
import jwt
from shuttleclub.app import db
from shuttleclub.errors import AuthenticationError, AuthorizationError
from shuttleclub.models import Member


@dataclass(frozen=True)
class RequestContext:
    """Caller identity passed explicitly into service calls."""
    user_id: int
    is_admin: bool = False
    token: str = ''

    def can_act_for(self, user_id):
        return self.is_admin or self.user_id == user_id


def generate_token(user_id):
    """Generate a JWT token for a member."""
    from datetime import datetime, timedelta, timezone
    payload = {
        'user_id': user_id,
        'exp': datetime.now(timezone.utc) + timedelta(
            hours=current_app.config.get('JWT_EXPIRATION_HOURS', 24)
        ),
    }
    return jwt.encode(payload, current_app.config['SECRET_KEY'], algorithm='HS256')


def _normalize_bearer_token(raw_token):
    token = str(raw_token or '').strip()
    if token.startswith('Bearer '):
        token = token.split(' ', 1)[1].strip()
    return token


def _decode_member_from_token(token):
    normalized = _normalize_bearer_token(token)
    if not normalized:
        return None, 'Authentication required'
    try:
        payload = jwt.decode(
            normalized, current_app.config['SECRET_KEY'], algorithms=['HS256']
        )
        member = db.session.get(Member, payload['user_id'])
        if not member:
            return None, 'User not found'
        return member, None
    except jwt.ExpiredSignatureError:
        return None, 'Token expired'
    except jwt.InvalidTokenError:
        return None, 'Invalid token'


def csrf_token_for_bearer(token):
    """Build deterministic CSRF token tied to bearer token."""
    normalized = _normalize_bearer_token(token)
    if not normalized:
        return ''
    secret = str(current_app.config.get('SECRET_KEY') or '')
    if not secret:
        return ''
    return hmac.new(
        secret.encode('utf-8'),
        normalized.encode('utf-8'),
        hashlib.sha256,
    ).hexdigest()


def csrf_token_matches(token, candidate):
    expected = csrf_token_for_bearer(token)
    provided = str(candidate or '').strip()
    if not expected or not provided:
        return False
    return hmac.compare_digest(expected, provided)


def login_required(f):
    """Require a valid, non-banned member and attach a RequestContext."""
    @wraps(f)
    def decorated(*args, **kwargs):
        auth_header = request.headers.get('Authorization', '')
        token = _normalize_bearer_token(auth_header)
        member, error = _decode_member_from_token(token)
        if error:
            raise AuthenticationError(error)
        if member.is_banned:
            raise AuthorizationError('Your account has been suspended')
        request.current_user = member
        request.club_context = RequestContext(
            user_id=member.id, is_admin=bool(member.is_admin), token=token,
        )
        return f(*args, **kwargs)
    return decorated


def admin_required(f):
    """Require an authenticated admin member on a route."""
    @wraps(f)
    @login_required
    def decorated(*args, **kwargs):
        if not request.club_context.is_admin:
            raise AuthorizationError('Admin access required')
        return f(*args, **kwargs)
    return decorated

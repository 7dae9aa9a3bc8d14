from datetime import date, time, timedelta

import pytest
from shuttleclub.app import create_app, db

ADMIN_EMAIL = 'admin@test.com'


@pytest.fixture
def app():
    app = create_app('testing')
    app.config['ADMIN_EMAILS'] = ADMIN_EMAIL
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def register(client):
    """Register a member through the API and return (headers, user_id)."""
    def _register(username, email=None, password='password123'):
        res = client.post('/api/auth/register', json={
            'username': username,
            'email': email or f'{username}@test.com',
            'password': password,
        })
        data = res.get_json()
        return {'Authorization': f'Bearer {data["token"]}'}, data['user']['id']
    return _register


@pytest.fixture
def admin(register):
    return register('clubadmin', ADMIN_EMAIL)


@pytest.fixture
def make_session(app):
    """Insert a session a week out so the registration cutoff is not in play."""
    from shuttleclub.models import PlaySession

    def _make(days_ahead=7, **overrides):
        session_date = date.today() + timedelta(days=days_ahead)
        fields = {
            'date': session_date,
            'day_of_week': session_date.isoweekday() % 7,
            'start_time': time(19, 0),
            'session_cost': 260000,
            'court_count': 1,
            'max_members': 24,
            'is_active': True,
            'can_pay': False,
        }
        fields.update(overrides)
        session = PlaySession(**fields)
        db.session.add(session)
        db.session.commit()
        return session
    return _make


@pytest.fixture
def make_core(app):
    from shuttleclub.models import CoreMember

    def _make(user_id):
        db.session.add(CoreMember(user_id=user_id))
        db.session.commit()
    return _make

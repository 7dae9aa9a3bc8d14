"""Tests for authentication routes."""
import json


def test_register(client):
    res = client.post('/api/auth/register', json={
        'username': 'testuser', 'email': 'test@test.com',
        'password': 'password123', 'display_name': 'Test User',
    })
    assert res.status_code == 201
    data = json.loads(res.data)
    assert 'token' in data
    assert data['user']['username'] == 'testuser'
    assert data['user']['display_name'] == 'Test User'
    assert data['user']['is_core'] is False
    assert data['user']['is_admin'] is False


def test_register_missing_fields(client):
    res = client.post('/api/auth/register', json={'username': 'x'})
    assert res.status_code == 400


def test_register_rejects_non_object_payload(client):
    res = client.post('/api/auth/register', json=['not', 'an', 'object'])
    assert res.status_code == 400


def test_register_duplicate_username(client):
    client.post('/api/auth/register', json={
        'username': 'dup', 'email': 'dup@test.com', 'password': 'password123',
    })
    res = client.post('/api/auth/register', json={
        'username': 'dup', 'email': 'dup2@test.com', 'password': 'password123',
    })
    assert res.status_code == 409


def test_register_rejects_weak_password(client):
    res = client.post('/api/auth/register', json={
        'username': 'weakpw', 'email': 'weakpw@test.com', 'password': 'abcdefg',
    })
    assert res.status_code == 400
    assert 'Password must' in json.loads(res.data)['error']


def test_configured_admin_email_gets_admin(client):
    res = client.post('/api/auth/register', json={
        'username': 'boss', 'email': 'ADMIN@test.com', 'password': 'password123',
    })
    assert json.loads(res.data)['user']['is_admin'] is True


def test_login(client):
    client.post('/api/auth/register', json={
        'username': 'loginuser', 'email': 'login@test.com', 'password': 'password123',
    })
    res = client.post('/api/auth/login', json={
        'email': 'login@test.com', 'password': 'password123',
    })
    assert res.status_code == 200
    assert 'token' in json.loads(res.data)


def test_login_bad_password(client):
    client.post('/api/auth/register', json={
        'username': 'badpw', 'email': 'bad@test.com', 'password': 'password123',
    })
    res = client.post('/api/auth/login', json={
        'email': 'bad@test.com', 'password': 'wrong',
    })
    assert res.status_code == 401


def test_me_requires_token(client):
    assert client.get('/api/auth/me').status_code == 401
    res = client.get('/api/auth/me', headers={'Authorization': 'Bearer nonsense'})
    assert res.status_code == 401


def test_update_profile(client, register):
    headers, _ = register('profile')
    res = client.put('/api/auth/me', json={'display_name': 'Shuttle Ace'}, headers=headers)
    assert res.status_code == 200
    assert json.loads(res.data)['user']['display_name'] == 'Shuttle Ace'

    res = client.put('/api/auth/me', json={'avatar_url': 'javascript:alert(1)'}, headers=headers)
    assert res.status_code == 400


def test_csrf_token_required_for_cross_origin_writes(client, register, make_session):
    headers, _ = register('csrfuser')
    session = make_session()
    token = json.loads(client.get('/api/auth/csrf', headers=headers).data)['csrf_token']

    origin_headers = {**headers, 'Origin': 'https://club.example.com'}
    res = client.post(f'/api/sessions/{session.id}/register', json={}, headers=origin_headers)
    assert res.status_code == 403

    res = client.post(
        f'/api/sessions/{session.id}/register', json={},
        headers={**origin_headers, 'X-CSRF-Token': token},
    )
    assert res.status_code == 201

"""Tests for manual payment confirmations."""
from shuttleclub.models import SessionParticipant


def _paid(session_id, user_id):
    row = SessionParticipant.query.filter_by(session_id=session_id, user_id=user_id).first()
    return row.has_paid


def _open_session(client, make_session, member_headers):
    session = make_session(can_pay=True)
    client.post(f'/api/sessions/{session.id}/register', json={}, headers=member_headers)
    return session


def test_request_requires_open_payment_window(client, register, make_session):
    headers, _ = register('earlybird')
    session = make_session(can_pay=False)
    client.post(f'/api/sessions/{session.id}/register', json={}, headers=headers)
    res = client.post('/api/payments/requests', json={'session_id': session.id, 'amount': 130000}, headers=headers)
    assert res.status_code == 400
    assert 'not open' in res.get_json()['error']


def test_payment_window_toggle(client, admin, make_session):
    admin_headers, _ = admin
    session = make_session()
    res = client.post(f'/api/sessions/{session.id}/payments', json={'open': True}, headers=admin_headers)
    assert res.status_code == 200
    assert res.get_json()['session']['can_pay'] is True


def test_one_pending_request_per_session(client, register, make_session):
    headers, _ = register('requester')
    session = _open_session(client, make_session, headers)

    res = client.post('/api/payments/requests', json={'session_id': session.id, 'amount': 260000}, headers=headers)
    assert res.status_code == 201
    assert res.get_json()['request']['status'] == 'pending'

    res = client.post('/api/payments/requests', json={'session_id': session.id, 'amount': 260000}, headers=headers)
    assert res.status_code == 409

    res = client.get(f'/api/payments/requests/pending?session_id={session.id}', headers=headers)
    assert res.get_json()['pending'] is True


def test_approve_marks_paid_and_is_terminal(client, register, admin, make_session):
    headers, user_id = register('approved')
    admin_headers, admin_id = admin
    session = _open_session(client, make_session, headers)
    res = client.post('/api/payments/requests', json={'session_id': session.id, 'amount': 260000}, headers=headers)
    request_id = res.get_json()['request']['id']

    assert client.get('/api/payments/requests', headers=headers).status_code == 403
    res = client.get('/api/payments/requests', headers=admin_headers)
    assert [r['id'] for r in res.get_json()['requests']] == [request_id]

    res = client.post(f'/api/payments/requests/{request_id}/approve', headers=admin_headers)
    assert res.status_code == 200
    data = res.get_json()['request']
    assert data['status'] == 'approved'
    assert data['processed_by'] == admin_id
    assert _paid(session.id, user_id) is True

    res = client.post(f'/api/payments/requests/{request_id}/reject', json={}, headers=admin_headers)
    assert res.status_code == 409
    res = client.post(f'/api/payments/requests/{request_id}/approve', headers=admin_headers)
    assert res.status_code == 409


def test_reject_keeps_unpaid_and_allows_new_request(client, register, admin, make_session):
    headers, user_id = register('rejected')
    admin_headers, _ = admin
    session = _open_session(client, make_session, headers)
    res = client.post('/api/payments/requests', json={'session_id': session.id, 'amount': 1000}, headers=headers)
    request_id = res.get_json()['request']['id']

    res = client.post(
        f'/api/payments/requests/{request_id}/reject',
        json={'notes': 'Transfer not received'}, headers=admin_headers,
    )
    assert res.status_code == 200
    assert res.get_json()['request']['notes'] == 'Transfer not received'
    assert _paid(session.id, user_id) is False

    res = client.post('/api/payments/requests', json={'session_id': session.id, 'amount': 260000}, headers=headers)
    assert res.status_code == 201


def test_approve_unknown_request_returns_404(client, admin):
    admin_headers, _ = admin
    res = client.post('/api/payments/requests/999/approve', headers=admin_headers)
    assert res.status_code == 404

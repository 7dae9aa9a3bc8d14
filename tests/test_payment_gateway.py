"""Tests for wallet gateway orders, verification and polling."""
import pytest
import requests

from shuttleclub.auth_utils import RequestContext
from shuttleclub.errors import PaymentGatewayError, ValidationError
from shuttleclub.models import GatewayTransaction, SessionParticipant
from shuttleclub.services import payment_gateway
from shuttleclub.services.payment_gateway import GatewayClient, GatewayOrderState


class _FakeGatewayResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class _FakeClient:
    """Stands in for GatewayClient; query answers are consumed in order."""

    def __init__(self, states=(), create_error=None):
        self.states = list(states)
        self.create_error = create_error
        self.queries = 0

    def create_order(self, order_id, request_id, amount, order_info, redirect_url):
        if self.create_error:
            raise self.create_error
        return f'https://pay.example.com/{order_id}'

    def query_order(self, order_id):
        self.queries += 1
        state = self.states.pop(0) if self.states else GatewayOrderState('pending')
        if isinstance(state, Exception):
            raise state
        return state


def _paid(session_id, user_id):
    return SessionParticipant.query.filter_by(session_id=session_id, user_id=user_id).first().has_paid


def _attending_member(client, register, make_session, username='walletuser', **session_fields):
    headers, user_id = register(username)
    session = make_session(can_pay=True, **session_fields)
    client.post(f'/api/sessions/{session.id}/register', json={}, headers=headers)
    return headers, user_id, session


def test_initiate_charges_rounded_up_owed_amount(client, register, make_session):
    _, user_id, session = _attending_member(client, register, make_session, session_cost=100001)
    second_headers, _ = register('second_payer')
    client.post(f'/api/sessions/{session.id}/register', json={}, headers=second_headers)
    transaction = payment_gateway.initiate_payment(RequestContext(user_id), session, client=_FakeClient())
    assert transaction.amount == 50001
    assert transaction.status == 'pending'
    assert transaction.pay_url.endswith(transaction.order_id)


def test_initiate_rejects_when_nothing_is_owed(client, register, make_session):
    _, user_id, session = _attending_member(client, register, make_session, session_cost=0)
    with pytest.raises(ValidationError):
        payment_gateway.initiate_payment(RequestContext(user_id), session, client=_FakeClient())


def test_initiate_marks_transaction_failed_when_gateway_refuses(client, register, make_session):
    _, user_id, session = _attending_member(client, register, make_session)
    fake = _FakeClient(create_error=PaymentGatewayError('Merchant disabled'))
    with pytest.raises(PaymentGatewayError):
        payment_gateway.initiate_payment(RequestContext(user_id), session, client=fake)
    transaction = GatewayTransaction.query.filter_by(user_id=user_id).one()
    assert transaction.status == 'failed'
    assert transaction.is_processed is True


def test_successful_payment_marks_paid_once(client, register, make_session):
    _, user_id, session = _attending_member(client, register, make_session)
    transaction = payment_gateway.initiate_payment(RequestContext(user_id), session, client=_FakeClient())
    fake = _FakeClient([GatewayOrderState('paid', amount=transaction.amount, transaction_id='T-1')])

    resolved = payment_gateway.resolve_transaction(transaction.order_id, client=fake)
    assert resolved.status == 'success'
    assert resolved.is_verified is True
    assert resolved.gateway_transaction_id == 'T-1'
    assert _paid(session.id, user_id) is True

    payment_gateway.resolve_transaction(transaction.order_id, client=fake)
    assert fake.queries == 1


def test_amount_mismatch_never_marks_paid(client, register, make_session):
    _, user_id, session = _attending_member(client, register, make_session)
    transaction = payment_gateway.initiate_payment(RequestContext(user_id), session, client=_FakeClient())
    fake = _FakeClient([GatewayOrderState('paid', amount=transaction.amount - 1000)])

    resolved = payment_gateway.resolve_transaction(transaction.order_id, client=fake)
    assert resolved.status == 'amount_mismatch'
    assert resolved.is_verified is False
    assert _paid(session.id, user_id) is False


def test_failed_payment_closes_transaction(client, register, make_session):
    _, user_id, session = _attending_member(client, register, make_session)
    transaction = payment_gateway.initiate_payment(RequestContext(user_id), session, client=_FakeClient())
    resolved = payment_gateway.resolve_transaction(
        transaction.order_id, client=_FakeClient([GatewayOrderState('failed', message='Declined')]),
    )
    assert resolved.status == 'failed'
    assert _paid(session.id, user_id) is False


def test_poll_retries_gateway_errors_until_paid(client, register, make_session):
    _, user_id, session = _attending_member(client, register, make_session)
    transaction = payment_gateway.initiate_payment(RequestContext(user_id), session, client=_FakeClient())
    fake = _FakeClient([
        PaymentGatewayError('timeout'),
        GatewayOrderState('pending'),
        GatewayOrderState('paid', amount=transaction.amount),
    ])
    sleeps = []

    resolved = payment_gateway.poll_payment(
        transaction.order_id, client=fake, interval=2, max_attempts=5, sleep=sleeps.append,
    )
    assert resolved.status == 'success'
    assert fake.queries == 3
    assert sleeps == [2, 2]


def test_poll_gives_up_after_max_attempts(client, register, make_session):
    _, user_id, session = _attending_member(client, register, make_session)
    transaction = payment_gateway.initiate_payment(RequestContext(user_id), session, client=_FakeClient())
    fake = _FakeClient()
    resolved = payment_gateway.poll_payment(
        transaction.order_id, client=fake, interval=0, max_attempts=3,
    )
    assert resolved.status == 'pending'
    assert fake.queries == 3


def test_query_order_maps_result_codes(app, monkeypatch):
    answers = iter([
        _FakeGatewayResponse(200, {'resultCode': 0, 'amount': 5000, 'transId': 77}),
        _FakeGatewayResponse(200, {'resultCode': 1000}),
        _FakeGatewayResponse(200, {'resultCode': 1006, 'message': 'Cancelled'}),
    ])
    calls = []

    def fake_post(url, json=None, timeout=None):
        calls.append(url)
        return next(answers)

    monkeypatch.setattr('shuttleclub.services.payment_gateway.requests.post', fake_post)
    gateway = GatewayClient('https://gateway.test/api/', partner_code='CLUB')

    paid = gateway.query_order('A1')
    assert (paid.state, paid.amount, paid.transaction_id) == ('paid', 5000, '77')
    assert gateway.query_order('A1').state == 'pending'
    assert gateway.query_order('A1').state == 'failed'
    assert calls[0] == 'https://gateway.test/api/query'


def test_gateway_transport_errors_are_retryable(app, monkeypatch):
    def unreachable(url, json=None, timeout=None):
        raise requests.ConnectionError('refused')

    monkeypatch.setattr('shuttleclub.services.payment_gateway.requests.post', unreachable)
    with pytest.raises(PaymentGatewayError) as excinfo:
        GatewayClient('https://gateway.test').query_order('A1')
    assert excinfo.value.retryable is True

    monkeypatch.setattr(
        'shuttleclub.services.payment_gateway.requests.post',
        lambda url, json=None, timeout=None: _FakeGatewayResponse(200, ValueError('not json')),
    )
    with pytest.raises(PaymentGatewayError):
        GatewayClient('https://gateway.test').query_order('A1')


def test_non_object_gateway_body_fails_the_order(client, register, make_session, monkeypatch):
    _, user_id, session = _attending_member(client, register, make_session)
    monkeypatch.setattr(
        'shuttleclub.services.payment_gateway.requests.post',
        lambda url, json=None, timeout=None: _FakeGatewayResponse(200, []),
    )
    gateway = GatewayClient('https://gateway.test')

    with pytest.raises(PaymentGatewayError):
        payment_gateway.initiate_payment(RequestContext(user_id), session, client=gateway)
    transaction = GatewayTransaction.query.filter_by(user_id=user_id).one()
    assert transaction.status == 'failed'
    assert transaction.is_processed is True
    assert _paid(session.id, user_id) is False


def test_poll_survives_non_object_gateway_body(client, register, make_session, monkeypatch):
    _, user_id, session = _attending_member(client, register, make_session)
    transaction = payment_gateway.initiate_payment(RequestContext(user_id), session, client=_FakeClient())
    monkeypatch.setattr(
        'shuttleclub.services.payment_gateway.requests.post',
        lambda url, json=None, timeout=None: _FakeGatewayResponse(200, 'busy'),
    )
    resolved = payment_gateway.poll_payment(
        transaction.order_id, client=GatewayClient('https://gateway.test'), interval=0, max_attempts=2,
    )
    assert resolved.status == 'pending'
    assert resolved.is_processed is False


def test_gateway_routes_end_to_end(client, register, make_session, monkeypatch):
    headers, user_id, session = _attending_member(client, register, make_session)
    other_headers, _ = register('snoop')
    state = {'amount': None}

    def fake_post(url, json=None, timeout=None):
        if url.endswith('/create'):
            state['amount'] = json['amount']
            return _FakeGatewayResponse(200, {'resultCode': 0, 'payUrl': 'https://pay.test/x'})
        return _FakeGatewayResponse(200, {'resultCode': 0, 'amount': state['amount'], 'transId': 'T9'})

    monkeypatch.setattr('shuttleclub.services.payment_gateway.requests.post', fake_post)

    res = client.post('/api/payments/gateway/initiate', json={'session_id': session.id}, headers=headers)
    assert res.status_code == 201
    order_id = res.get_json()['order_id']
    assert res.get_json()['amount'] == 260000

    assert client.get(f'/api/payments/gateway/{order_id}', headers=other_headers).status_code == 403

    res = client.post('/api/payments/gateway/callback', json={'orderId': order_id})
    assert res.status_code == 200
    assert res.get_json()['success'] is True
    assert _paid(session.id, user_id) is True

    res = client.get(f'/api/payments/gateway/{order_id}', headers=headers)
    assert res.get_json()['completed'] is True
    assert client.post(f'/api/payments/gateway/{order_id}/poll', headers=headers).status_code == 404


def test_callback_reports_amount_mismatch(client, register, make_session, monkeypatch):
    headers, user_id, session = _attending_member(client, register, make_session)

    def fake_post(url, json=None, timeout=None):
        if url.endswith('/create'):
            return _FakeGatewayResponse(200, {'resultCode': 0, 'payUrl': 'https://pay.test/x'})
        return _FakeGatewayResponse(200, {'resultCode': 0, 'amount': 1})

    monkeypatch.setattr('shuttleclub.services.payment_gateway.requests.post', fake_post)
    order_id = client.post(
        '/api/payments/gateway/initiate', json={'session_id': session.id}, headers=headers,
    ).get_json()['order_id']

    res = client.post('/api/payments/gateway/callback', json={'orderId': order_id})
    assert res.status_code == 400
    assert _paid(session.id, user_id) is False
    assert client.post('/api/payments/gateway/callback', json={}).status_code == 400

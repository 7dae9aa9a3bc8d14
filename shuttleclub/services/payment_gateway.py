"""
Mobile-wallet payments.

The gateway is treated as an opaque processor: we ask it for a pay URL for an
order, then ask it what happened to that order. Signatures and the gateway's
own callback format are its business. The callback route, the result page and
the poller all go through ``resolve_transaction`` so the paid flag is decided
in one place.
"""
import logging
import secrets
import time
import uuid
from dataclasses import dataclass

import requests
from flask import current_app

from shuttleclub.app import db
from shuttleclub.errors import (
    NotFoundError, PaymentGatewayError, ValidationError,
)
from shuttleclub.models import GatewayTransaction, SessionParticipant
from shuttleclub.services import reconciler
from shuttleclub.services.cost_allocator import amount_owed
from shuttleclub.services.money import to_charge
from shuttleclub.time_utils import utcnow_naive

logger = logging.getLogger(__name__)

STATUS_PENDING = 'pending'
STATUS_SUCCESS = 'success'
STATUS_FAILED = 'failed'
STATUS_AMOUNT_MISMATCH = 'amount_mismatch'

_RESULT_PAID = 0
_RESULT_IN_PROGRESS = {1000, 7000, 7002, 9000}


@dataclass(frozen=True)
class GatewayOrderState:
    state: str  # paid, pending, failed
    amount: int = None
    transaction_id: str = None
    message: str = ''


class GatewayClient:
    """Thin HTTP client for the wallet gateway."""

    def __init__(self, base_url, partner_code='', timeout=10.0):
        self.base_url = str(base_url or '').rstrip('/')
        self.partner_code = partner_code
        self.timeout = timeout

    def _post(self, path, payload):
        try:
            response = requests.post(
                f'{self.base_url}/{path}', json=payload, timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise PaymentGatewayError(f'Payment gateway unreachable: {exc}')
        if response.status_code >= 500:
            raise PaymentGatewayError(f'Payment gateway returned {response.status_code}')
        try:
            data = response.json()
        except ValueError:
            raise PaymentGatewayError('Invalid payment gateway response')
        if not isinstance(data, dict):
            raise PaymentGatewayError('Invalid payment gateway response')
        return data

    def create_order(self, order_id, request_id, amount, order_info, redirect_url):
        data = self._post('create', {
            'partnerCode': self.partner_code,
            'orderId': order_id,
            'requestId': request_id,
            'amount': int(amount),
            'orderInfo': order_info,
            'redirectUrl': redirect_url,
        })
        if data.get('resultCode') != _RESULT_PAID or not data.get('payUrl'):
            raise PaymentGatewayError(
                data.get('message') or 'Payment gateway did not return a pay URL'
            )
        return data['payUrl']

    def query_order(self, order_id):
        data = self._post('query', {
            'partnerCode': self.partner_code,
            'orderId': order_id,
            'requestId': uuid.uuid4().hex,
        })
        try:
            result_code = int(data.get('resultCode'))
        except (TypeError, ValueError):
            raise PaymentGatewayError('Payment gateway response is missing resultCode')

        amount = data.get('amount')
        try:
            amount = int(amount) if amount is not None else None
        except (TypeError, ValueError):
            amount = None
        transaction_id = data.get('transId')

        if result_code == _RESULT_PAID:
            state = 'paid'
        elif result_code in _RESULT_IN_PROGRESS:
            state = 'pending'
        else:
            state = 'failed'
        return GatewayOrderState(
            state=state, amount=amount,
            transaction_id=str(transaction_id) if transaction_id is not None else None,
            message=str(data.get('message') or ''),
        )


def client_from_config():
    return GatewayClient(
        current_app.config.get('PAYMENT_GATEWAY_URL'),
        partner_code=current_app.config.get('PAYMENT_GATEWAY_PARTNER_CODE', ''),
        timeout=current_app.config.get('PAYMENT_GATEWAY_TIMEOUT_SECONDS', 10.0),
    )


def _new_order_id(session_id, user_id):
    return f'SC{session_id}U{user_id}{secrets.token_hex(6).upper()}'


def initiate_payment(ctx, session, client=None):
    """Create a pending transaction for the caller's owed amount."""
    client = client or client_from_config()
    if not session.is_active:
        raise ValidationError('Session has been cancelled')
    if not session.can_pay:
        raise ValidationError('Payments are not open for this session')

    participant = SessionParticipant.query.filter_by(
        session_id=session.id, user_id=ctx.user_id,
    ).first()
    if not participant:
        raise ValidationError('You are not registered for this session')
    if participant.has_paid:
        raise ValidationError('Payment is already recorded for this session')

    costs = reconciler.load_session_costs(session.id)
    owed = amount_owed(costs, ctx.user_id, reconciler.is_core_member(ctx.user_id))
    amount = to_charge(owed)
    if amount <= 0:
        raise ValidationError('Nothing to pay for this session')

    transaction = GatewayTransaction(
        order_id=_new_order_id(session.id, ctx.user_id),
        request_id=uuid.uuid4().hex,
        session_id=session.id,
        user_id=ctx.user_id,
        participant_id=participant.id,
        amount=amount,
        status=STATUS_PENDING,
    )
    db.session.add(transaction)
    db.session.commit()

    try:
        pay_url = client.create_order(
            transaction.order_id, transaction.request_id, amount,
            f'Court fee {session.date.isoformat()}',
            current_app.config.get('PAYMENT_RETURN_URL', ''),
        )
    except PaymentGatewayError:
        transaction.status = STATUS_FAILED
        transaction.is_processed = True
        transaction.processed_at = utcnow_naive()
        db.session.commit()
        logger.warning('Gateway refused order %s for member %s', transaction.order_id, ctx.user_id)
        raise

    transaction.pay_url = pay_url
    db.session.commit()
    logger.info('Order %s created for member %s, session %s, amount %s',
                transaction.order_id, ctx.user_id, session.id, amount)
    return transaction


def get_transaction(order_id):
    transaction = GatewayTransaction.query.filter_by(order_id=str(order_id or '')).first()
    if not transaction:
        raise NotFoundError('Transaction not found')
    return transaction


def resolve_transaction(order_id, client=None):
    """Ask the gateway about an order and apply the outcome once.

    Already processed orders are returned untouched. A paid order whose
    amount differs from ours is closed as ``amount_mismatch`` without
    touching the paid flag.
    """
    transaction = get_transaction(order_id)
    if transaction.is_processed:
        return transaction

    client = client or client_from_config()
    state = client.query_order(transaction.order_id)

    if state.state == 'pending':
        return transaction

    now = utcnow_naive()
    if state.state == 'failed':
        transaction.status = STATUS_FAILED
        transaction.is_processed = True
        transaction.processed_at = now
        db.session.commit()
        logger.info('Order %s failed at the gateway: %s', transaction.order_id, state.message)
        return transaction

    if state.amount is not None and state.amount != transaction.amount:
        transaction.status = STATUS_AMOUNT_MISMATCH
        transaction.is_processed = True
        transaction.is_verified = False
        transaction.processed_at = now
        db.session.commit()
        logger.error('Amount mismatch for order %s: expected %s, gateway reported %s',
                     transaction.order_id, transaction.amount, state.amount)
        return transaction

    transaction.status = STATUS_SUCCESS
    transaction.is_processed = True
    transaction.is_verified = True
    transaction.gateway_transaction_id = state.transaction_id
    transaction.processed_at = now
    reconciler.set_paid(transaction.session_id, transaction.user_id, True, commit=False)
    db.session.commit()
    logger.info('Order %s paid; member %s marked paid for session %s',
                transaction.order_id, transaction.user_id, transaction.session_id)
    return transaction


def poll_payment(order_id, client=None, interval=None, max_attempts=None, sleep=time.sleep):
    """Re-check an order at a fixed interval until it resolves or attempts run out.

    Blocks between attempts, so it belongs in scripts and workers; HTTP
    clients poll ``GET /gateway/<order_id>`` themselves.
    """
    if interval is None:
        interval = float(current_app.config.get('PAYMENT_POLL_INTERVAL_SECONDS', 2.0))
    if max_attempts is None:
        max_attempts = int(current_app.config.get('PAYMENT_POLL_MAX_ATTEMPTS', 5))
    client = client or client_from_config()

    transaction = get_transaction(order_id)
    for attempt in range(1, max(1, max_attempts) + 1):
        try:
            transaction = resolve_transaction(order_id, client=client)
        except PaymentGatewayError as exc:
            logger.warning('Polling order %s, attempt %s failed: %s', order_id, attempt, exc.message)
        if transaction.is_processed:
            return transaction
        if attempt < max_attempts and interval > 0:
            sleep(interval)
    logger.info('Order %s still pending after %s attempt(s)', order_id, max_attempts)
    return transaction

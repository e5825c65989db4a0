"""
Razorpay payment gateway client.

Talks to the gateway's REST API with ``requests`` and verifies payment and
webhook signatures. Amounts passed to the gateway are integer paise.
"""

import hashlib
import hmac
import logging
import secrets
import time
from decimal import Decimal, ROUND_HALF_UP

import requests
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

logger = logging.getLogger(__name__)


class PaymentGatewayError(Exception):
    """Raised when the gateway cannot be reached or rejects a request."""

    def __init__(self, message, status_code=None, payload=None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}


def to_paise(amount):
    """
    Convert a rupee amount to integer paise.

    Args:
        amount: Decimal, int, float or numeric string in rupees

    Returns:
        int: Amount in paise, rounded half up
    """
    value = Decimal(str(amount)) * 100
    return int(value.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def from_paise(paise):
    """Convert integer paise back to a two decimal rupee amount."""
    return (Decimal(int(paise)) / 100).quantize(Decimal('0.01'))


def generate_receipt():
    """Receipt reference in the form txn_<epoch millis>_<random>."""
    return f'txn_{int(time.time() * 1000)}_{secrets.token_hex(4)}'


def _hmac_sha256(secret, message):
    if isinstance(message, str):
        message = message.encode('utf-8')
    return hmac.new(secret.encode('utf-8'), message, hashlib.sha256).hexdigest()


def verify_payment_signature(order_id, payment_id, signature, secret=None):
    """
    Check the signature returned to the client after checkout.

    The gateway signs ``"<order_id>|<payment_id>"`` with the key secret.
    """
    secret = secret if secret is not None else settings.PAYMENT_GATEWAY.get('KEY_SECRET')
    if not secret:
        raise ImproperlyConfigured('PAYMENT_GATEWAY["KEY_SECRET"] is not set.')
    if not (order_id and payment_id and signature):
        return False
    expected = _hmac_sha256(secret, f'{order_id}|{payment_id}')
    return hmac.compare_digest(expected, str(signature))


def verify_webhook_signature(body, signature, secret=None):
    """
    Check the ``X-Razorpay-Signature`` header of a webhook call.

    Args:
        body: Raw request body (bytes)
        signature: Header value
        secret: Webhook secret, defaults to PAYMENT_GATEWAY['WEBHOOK_SECRET']

    Raises:
        ImproperlyConfigured: If no webhook secret is configured
    """
    secret = secret if secret is not None else settings.PAYMENT_GATEWAY.get('WEBHOOK_SECRET')
    if not secret:
        raise ImproperlyConfigured('PAYMENT_GATEWAY["WEBHOOK_SECRET"] is not set.')
    if not signature:
        return False
    expected = _hmac_sha256(secret, body or b'')
    return hmac.compare_digest(expected, str(signature))


class RazorpayClient:
    """
    Minimal client for the order and refund endpoints.

    Order creation is retried with exponential backoff; refunds are not
    retried because the gateway does not deduplicate them.
    """

    def __init__(self, key_id, key_secret, base_url='https://api.razorpay.com/v1',
                 timeout=10, max_retries=3, retry_backoff=1.0, currency='INR',
                 session=None):
        if not key_id or not key_secret:
            raise ImproperlyConfigured('Payment gateway credentials are not configured.')
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max(1, int(max_retries))
        self.retry_backoff = retry_backoff
        self.currency = currency
        self.session = session or requests.Session()
        self.session.auth = (key_id, key_secret)

    def _post(self, path, payload):
        url = f'{self.base_url}{path}'
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            raise PaymentGatewayError(f'Payment gateway unreachable: {exc}') from exc

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400:
            error = data.get('error', {}) if isinstance(data, dict) else {}
            description = error.get('description') or response.reason or 'Gateway request failed'
            raise PaymentGatewayError(description, status_code=response.status_code, payload=data)

        return data

    def create_order(self, amount, receipt=None, notes=None):
        """
        Create a gateway order.

        Args:
            amount: Amount in rupees
            receipt: Merchant reference, generated when omitted
            notes: Dict of string metadata stored with the order

        Returns:
            dict: Gateway order (contains ``id``, ``amount``, ``currency``)

        Raises:
            PaymentGatewayError: After the final failed attempt
        """
        payload = {
            'amount': to_paise(amount),
            'currency': self.currency,
            'receipt': receipt or generate_receipt(),
            'notes': {k: str(v) for k, v in (notes or {}).items()},
        }

        last_error = None
        for attempt in range(1, self.max_retries + 1):
            try:
                order = self._post('/orders', payload)
                logger.info(
                    f"Gateway order created. Order ID: {order.get('id')}, "
                    f"Receipt: {payload['receipt']}, Attempt: {attempt}"
                )
                return order
            except PaymentGatewayError as exc:
                last_error = exc
                # Client errors will not succeed on retry
                if exc.status_code is not None and 400 <= exc.status_code < 500:
                    break
                logger.warning(
                    f"Gateway order attempt {attempt}/{self.max_retries} failed: {exc}"
                )
                if attempt < self.max_retries and self.retry_backoff:
                    time.sleep(self.retry_backoff * (2 ** (attempt - 1)))

        logger.error(f"Gateway order creation failed after retries: {last_error}")
        raise last_error

    def refund_payment(self, payment_id, amount=None, notes=None):
        """
        Refund a captured payment.

        Args:
            payment_id: Gateway payment id
            amount: Rupee amount to refund, full refund when None
            notes: Dict of metadata

        Returns:
            dict: Gateway refund (contains ``id`` and ``amount`` in paise)
        """
        payload = {'notes': {k: str(v) for k, v in (notes or {}).items()}}
        if amount is not None:
            payload['amount'] = to_paise(amount)
        refund = self._post(f'/payments/{payment_id}/refund', payload)
        logger.info(
            f"Gateway refund created. Refund ID: {refund.get('id')}, Payment ID: {payment_id}"
        )
        return refund


def get_gateway():
    """Build a client from ``settings.PAYMENT_GATEWAY``."""
    config = settings.PAYMENT_GATEWAY
    return RazorpayClient(
        key_id=config.get('KEY_ID'),
        key_secret=config.get('KEY_SECRET'),
        base_url=config.get('BASE_URL', 'https://api.razorpay.com/v1'),
        timeout=config.get('TIMEOUT', 10),
        max_retries=config.get('MAX_RETRIES', 3),
        retry_backoff=config.get('RETRY_BACKOFF', 1.0),
        currency=config.get('CURRENCY', 'INR'),
    )

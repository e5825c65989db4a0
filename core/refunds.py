"""
Refund processing for paid transactions.

Every successful refund moves the transaction to ``refunded`` and puts the
listing back on the market in the same database transaction.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN

from django.db import transaction as db_transaction
from django.utils import timezone

from . import payments
from .models import Listing, Transaction
from .payments import PaymentGatewayError, from_paise

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')


class RefundError(Exception):
    """Raised when a refund cannot be issued."""


class RefundNotAllowed(RefundError):
    """The transaction is not (or no longer) in a refundable state."""


@dataclass
class RefundResult:
    refund_id: str
    amount: Decimal


def _to_decimal(value):
    return Decimal(str(value)).quantize(CENT)


def process_refund(txn, amount=None, reason='', final_status='refunded'):
    """
    Refund a paid transaction through the gateway.

    The transaction row is locked and re-read before the gateway is called
    and stays locked until the refund is recorded, so two callers holding
    stale copies cannot both refund it. Refunds are a single gateway call
    and are never retried.

    Args:
        txn: Transaction to refund
        amount: Rupee amount, capped at the transaction amount. Full refund
            when None.
        reason: Stored with the gateway refund
        final_status: 'refunded', or 'cancelled' when the refund is part of
            a cancellation

    Returns:
        RefundResult

    Raises:
        RefundNotAllowed: Missing payment id, or the transaction is not paid
            (already refunded or cancelled included)
        RefundError: Non-positive amount or gateway failure
    """
    with db_transaction.atomic():
        locked = Transaction.objects.select_for_update().get(pk=txn.pk)

        if not locked.gateway_payment_id:
            raise RefundNotAllowed('No payment ID found for transaction')

        if locked.status == 'refunded':
            raise RefundNotAllowed('Transaction already refunded')

        if locked.status != 'paid':
            raise RefundNotAllowed('Only paid transactions can be refunded')

        refund_amount = locked.amount if amount is None else min(_to_decimal(amount), locked.amount)
        if refund_amount <= 0:
            raise RefundError('Invalid refund amount')

        try:
            refund = payments.get_gateway().refund_payment(
                locked.gateway_payment_id,
                amount=refund_amount,
                notes={
                    'reason': reason or 'Refund',
                    'transaction_id': locked.pk,
                    'refunded_at': timezone.now().isoformat(),
                },
            )
        except PaymentGatewayError as exc:
            logger.error(f"Gateway refund failed. Transaction ID: {locked.pk}, Error: {exc}")
            raise RefundError(f'Refund failed: {exc}') from exc

        refund_id = refund.get('id', '')
        if refund.get('amount') is not None:
            refund_amount = from_paise(refund['amount'])

        locked.mark_refunded(refund_id, refund_amount, final_status=final_status)
        Listing.objects.filter(pk=locked.listing_id).update(is_active=True)

    txn.refresh_from_db()

    logger.info(
        f"Refund processed. Transaction ID: {txn.pk}, Refund ID: {refund_id}, "
        f"Amount: {refund_amount}"
    )
    return RefundResult(refund_id=refund_id, amount=refund_amount)


def process_partial_refund(txn, percentage, reason=''):
    """
    Refund a share of the transaction amount.

    Args:
        percentage: Fraction in (0, 1]
    """
    percentage = Decimal(str(percentage))
    if percentage <= 0 or percentage > 1:
        raise RefundError('Refund percentage must be between 0 and 1')

    amount = (txn.amount * percentage).quantize(CENT, rounding=ROUND_DOWN)
    return process_refund(txn, amount=amount, reason=reason or f'Partial refund ({percentage * 100:.0f}%)')


def refund_cancelled_transaction(txn):
    """Full refund issued when a paid order is cancelled."""
    return process_refund(txn, reason='Transaction cancelled', final_status='cancelled')


def refund_for_dispute(dispute, percentage=1, amount=None):
    """
    Refund the disputed transaction and close the dispute as resolved.

    Args:
        percentage: Share of the transaction amount, used when ``amount``
            is not given
        amount: Exact rupee amount, capped at the transaction amount

    Returns:
        RefundResult
    """
    reason = f'Dispute resolution: {dispute.subject}'
    with db_transaction.atomic():
        if amount is not None:
            result = process_refund(dispute.transaction, amount=amount, reason=reason)
        else:
            result = process_partial_refund(dispute.transaction, percentage, reason=reason)

        dispute.refund_amount = result.amount
        dispute.status = 'resolved'
        dispute.resolved_at = timezone.now()
        dispute.save()

    return result

"""Ledger primitives.

Every balance movement in the system goes through this module:

- apply_payin_transition: pending -> success/failed for a pay-in, crediting the
  merchant (net) and the operator (fee minus channel cost) on success
- apply_payout_transition: pending -> success/failed for a payout, refunding
  the reservation on failure
- reserve_payout_funds: the debit taken when a payout is created

The webhook engine, the manual-reference path, the auto-success simulator and
the admin workflow all call these; none of them touch Merchant.balance directly.

Concurrency: the status write is a conditional UPDATE ... WHERE status='pending'
and balance deltas are F() expressions applied in the same atomic block, only
when that UPDATE changed exactly one row. Nothing read earlier in a request is
trusted to gate a write.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F, Sum
from django.utils import timezone

from .constants import round2
from .exceptions import InvalidTransition
from .models import (
	CallbackAuditRecord, Merchant, MerchantRole, OrderStatus, PayinOrder, PayoutOrder, PayoutSource
)
from .rates import calculate_payin_fee, get_admin_cost_rate

logger = logging.getLogger(__name__)

TERMINAL = (OrderStatus.SUCCESS, OrderStatus.FAILED)


@dataclass
class Transition:
	"""
	Result of a conditional transition. applied is False when the order was
	no longer pending (a duplicate or a lost race): nothing was written.
	"""
	applied: bool
	order: object
	credited: Decimal = Decimal("0")
	admin_profit: Decimal = Decimal("0")


def credit_admin_profit(amount: Decimal, reason: str) -> Decimal:
	"""
	Apply an operator profit (or loss) to every admin row. Zero is skipped.
	"""
	amount = round2(amount)
	if amount == 0:
		return amount
	if amount < 0:
		logger.warning("negative admin profit %s (%s)", amount, reason)
	updated = Merchant.objects.filter(role=MerchantRole.ADMIN).update(balance=F("balance") + amount)
	if not updated:
		logger.warning("no admin account to receive profit %s (%s)", amount, reason)
	return amount


def apply_payin_transition(
	order_id,
	status: str,
	*,
	amount: Optional[Decimal] = None,
	reference: str = "",
	raw: Optional[dict] = None,
) -> Transition:
	"""
	Move a pending pay-in to a terminal status.

	amount is the settled amount reported by the channel; fee and net are
	recomputed from it with the rate frozen on the order. On success the
	merchant is credited the net amount and the operator
	fee - amount * admin_payin_cost.
	"""
	if status not in TERMINAL:
		raise ValueError(f"not a terminal status: {status!r}")

	with transaction.atomic():
		order = PayinOrder.objects.get(pk=order_id)
		gross = round2(amount if amount is not None else order.gross_amount)
		if status == OrderStatus.SUCCESS and gross <= 0:
			raise ValueError(f"non-positive settled amount {gross} for payin {order.external_order_id}")
		fees = calculate_payin_fee(gross, order.frozen_rate)

		updates = {
			"status": status,
			"gross_amount": gross,
			"fee": fees.fee,
			"net_amount": fees.net_amount,
			"auto_success_due_at": None,
			"updated_at": timezone.now(),
		}
		if reference:
			updates["reference"] = reference
		if raw is not None:
			updates["raw_callback_payload"] = raw

		changed = PayinOrder.objects.filter(pk=order_id, status=OrderStatus.PENDING).update(**updates)
		order.refresh_from_db()
		if changed != 1:
			logger.info("payin %s already %s, transition to %s ignored", order.external_order_id, order.status, status)
			return Transition(applied=False, order=order)

		if status != OrderStatus.SUCCESS:
			logger.info("payin %s failed", order.external_order_id)
			return Transition(applied=True, order=order)

		Merchant.objects.filter(pk=order.merchant_id).update(balance=F("balance") + fees.net_amount)
		profit = credit_admin_profit(fees.fee - gross * get_admin_cost_rate(), f"payin {order.external_order_id}")

	logger.info("payin %s success: credited %s to merchant %s", order.external_order_id, fees.net_amount, order.merchant_id)
	return Transition(applied=True, order=order, credited=fees.net_amount, admin_profit=profit)


def apply_payout_transition(
	payout_id,
	status: str,
	*,
	reference: str = "",
	message: str = "",
	raw: Optional[dict] = None,
	approved_by: str = "",
	rejection_reason: str = "",
	fee_to_admin: bool = True,
	source: Optional[str] = None,
) -> Transition:
	"""
	Move a pending payout to a terminal status.

	Funds were reserved at creation: failure refunds amount+fee once, success
	leaves the merchant alone and (unless fee_to_admin is off) books the fee as
	operator profit.

	source, when given, limits the transition to payouts of that origin.
	"""
	if status not in TERMINAL:
		raise ValueError(f"not a terminal status: {status!r}")

	now = timezone.now()
	updates = {"status": status, "updated_at": now}
	if reference:
		updates["reference"] = reference
	if message:
		updates["message"] = message[:255]
	if raw is not None:
		updates["raw_callback_payload"] = raw
	if approved_by:
		updates["approved_by"] = approved_by
		updates["approved_at"] = now
	if rejection_reason:
		updates["rejection_reason"] = rejection_reason[:255]

	with transaction.atomic():
		pending = PayoutOrder.objects.filter(pk=payout_id, status=OrderStatus.PENDING)
		if source is not None:
			pending = pending.filter(source=source)
		changed = pending.update(**updates)
		payout = PayoutOrder.objects.get(pk=payout_id)
		if changed != 1:
			logger.info("payout %s already %s, transition to %s ignored", payout.external_order_id, payout.status, status)
			return Transition(applied=False, order=payout)

		if status == OrderStatus.FAILED:
			refund = payout.total_deduction
			Merchant.objects.filter(pk=payout.merchant_id).update(balance=F("balance") + refund)
			logger.info("payout %s failed: refunded %s to merchant %s", payout.external_order_id, refund, payout.merchant_id)
			return Transition(applied=True, order=payout, credited=refund)

		profit = Decimal("0")
		if fee_to_admin:
			profit = credit_admin_profit(payout.fee, f"payout {payout.external_order_id}")

	logger.info("payout %s success", payout.external_order_id)
	return Transition(applied=True, order=payout, admin_profit=profit)


def reserve_payout_funds(merchant_id, total: Decimal) -> None:
	"""
	Debit amount+fee for a new payout. Conditional on the balance covering it.
	"""
	total = round2(total)
	updated = Merchant.objects.filter(pk=merchant_id, balance__gte=total).update(balance=F("balance") - total)
	if updated != 1:
		raise ValidationError("insufficient balance")


def approve_payout(payout_id, *, approved_by: str, reference: str = "") -> PayoutOrder:
	"""
	Admin sign-off for a held payout. Funds were reserved at creation, so no
	balance moves.
	"""
	try:
		result = apply_payout_transition(
			payout_id, OrderStatus.SUCCESS, reference=reference, approved_by=approved_by,
			fee_to_admin=False, source=PayoutSource.MANUAL,
		)
	except PayoutOrder.DoesNotExist:
		raise InvalidTransition("Payout not found or already processed")
	if not result.applied:
		raise InvalidTransition("Payout not found or already processed")
	return result.order


def reject_payout(payout_id, *, approved_by: str, reason: str = "") -> PayoutOrder:
	try:
		result = apply_payout_transition(
			payout_id, OrderStatus.FAILED, approved_by=approved_by,
			rejection_reason=reason or "Rejected by admin", message=reason or "Rejected by admin",
			source=PayoutSource.MANUAL,
		)
	except PayoutOrder.DoesNotExist:
		raise InvalidTransition("Payout not found or already processed")
	if not result.applied:
		raise InvalidTransition("Payout not found or already processed")
	return result.order


def reconstruct_balance(merchant: Merchant) -> Decimal:
	"""
	Replay the ledger: net of successful pay-ins minus amount+fee of payouts
	that are settled or still holding a reservation. Equals merchant.balance
	for any merchant whose balance only moved through this module.
	"""
	payins = PayinOrder.objects.filter(merchant=merchant, status=OrderStatus.SUCCESS).aggregate(s=Sum("net_amount"))["s"]
	payouts = PayoutOrder.objects.filter(
		merchant=merchant, status__in=(OrderStatus.SUCCESS, OrderStatus.PENDING),
	).aggregate(amount=Sum("amount"), fee=Sum("fee"))
	total = (payins or 0) - (payouts["amount"] or 0) - (payouts["fee"] or 0)
	return round2(total)


# audit log

def record_callback(kind: str, channel: str, order_ref: str, body: dict, status="") -> CallbackAuditRecord:
	return CallbackAuditRecord.objects.create(
		kind=kind,
		channel=channel,
		order_ref=(order_ref or "")[:100],
		request_body=body,
		status=str(status if status is not None else "")[:32],
	)


def mark_outcome(record: CallbackAuditRecord, outcome: str, order_ref: str = "") -> None:
	updates = {"outcome": outcome}
	if order_ref:
		updates["order_ref"] = order_ref[:100]
	CallbackAuditRecord.objects.filter(pk=record.pk).update(**updates)
	record.outcome = outcome

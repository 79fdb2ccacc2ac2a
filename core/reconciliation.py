"""Reconciliation engine.

Turns an inbound channel callback into at most one ledger transition:

	audit -> resolve order -> pick secret by the order's merchant -> verify
	-> map status -> apply the shared primitive -> build merchant notification

Whatever happens the channel gets its literal acknowledgement back; the
outcome is kept on the audit record so log review can tell an unmatched
delivery from a forged one. The engine never sends the merchant notification
itself: the caller acknowledges the upstream first, then dispatches.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from .channels import PAYIN, PAYOUT, Channel, InboundNotification, get_channel
from .exceptions import InvalidTransition, SignatureError
from .models import AuditOutcome, OrderStatus, PayinOrder, PayoutOrder
from .notifications import MerchantNotification, build_payin_notification, build_payout_notification, dispatch
from .services import apply_payin_transition, apply_payout_transition, mark_outcome, record_callback

logger = logging.getLogger(__name__)


@dataclass
class WebhookResult:
	ack: str
	outcome: str
	order: object = None
	notification: Optional[MerchantNotification] = None


class ReconciliationEngine:

	def __init__(self, channel: Channel):
		self.channel = channel

	@classmethod
	def for_channel(cls, tag: str) -> "ReconciliationEngine":
		return cls(get_channel(tag))

	def handle_payin(self, data: dict) -> WebhookResult:
		return self._handle(PAYIN, PayinOrder, data)

	def handle_payout(self, data: dict) -> WebhookResult:
		return self._handle(PAYOUT, PayoutOrder, data)

	def handle(self, kind: str, data: dict) -> WebhookResult:
		if kind == PAYIN:
			return self.handle_payin(data)
		return self.handle_payout(data)

	def _result(self, kind, outcome, order=None, notification=None, rejected=False) -> WebhookResult:
		ack = self.channel.ack_for(kind, rejected)
		return WebhookResult(ack=ack, outcome=outcome, order=order, notification=notification)

	def _resolve(self, model, notification: InboundNotification):
		lookups = [
			("platform_order_id", notification.platform_order_id),
			("external_order_id", notification.merchant_order_id),
		]
		if not self.channel.platform_id_first:
			lookups.reverse()
		for field, value in lookups:
			if not value:
				continue
			order = model.objects.select_related("merchant").filter(channel=self.channel.tag, **{field: value}).first()
			if order is not None:
				return order
		return None

	def _handle(self, kind: str, model, data: dict) -> WebhookResult:
		tag = self.channel.tag
		audit_kind = f"{tag}_{kind}"

		try:
			notification = self.channel.parse(kind, data)
		except SignatureError as e:
			record = record_callback(audit_kind, tag, "", data)
			logger.error("[%s %s] malformed callback: %s", tag, kind, e)
			mark_outcome(record, AuditOutcome.IGNORED)
			return self._result(kind, AuditOutcome.IGNORED, rejected=True)

		record = record_callback(audit_kind, tag, notification.order_ref, data, notification.raw_status)

		order = self._resolve(model, notification)
		if order is None:
			logger.warning(
				"[%s %s] no order for platform id %r / merchant id %r",
				tag, kind, notification.platform_order_id, notification.merchant_order_id,
			)
			mark_outcome(record, AuditOutcome.UNMATCHED)
			return self._result(kind, AuditOutcome.UNMATCHED)

		signer = self.channel.signer(kind)
		secret = self.channel.verification_secret(order.merchant, kind)
		if not signer.verify(notification.signed_payload, secret):
			logger.error(
				"[%s %s SECURITY] signature mismatch for order %s: expected %s, received %s",
				tag, kind, order.external_order_id,
				signer.expected(notification.signed_payload, secret), notification.signed_payload.get("sign"),
			)
			mark_outcome(record, AuditOutcome.BAD_SIGNATURE, order.external_order_id)
			return self._result(kind, AuditOutcome.BAD_SIGNATURE, order=order, rejected=True)

		if notification.status == OrderStatus.PENDING:
			logger.info("[%s %s] order %s still in progress (%s)", tag, kind, order.external_order_id, notification.raw_status)
			mark_outcome(record, AuditOutcome.IGNORED, order.external_order_id)
			return self._result(kind, AuditOutcome.IGNORED, order=order)

		amount = notification.amount
		if kind == PAYIN and amount is not None and amount <= 0:
			if notification.status == OrderStatus.SUCCESS:
				logger.error("[%s %s] order %s reported paid with amount %s, ignored", tag, kind, order.external_order_id, amount)
				mark_outcome(record, AuditOutcome.IGNORED, order.external_order_id)
				return self._result(kind, AuditOutcome.IGNORED, order=order)
			# a failure keeps the amount the order was created with
			amount = None

		if kind == PAYIN:
			transition = apply_payin_transition(
				order.pk, notification.status,
				amount=amount, reference=notification.reference, raw=data,
			)
		else:
			transition = apply_payout_transition(
				order.pk, notification.status,
				reference=notification.reference, message=notification.message, raw=data,
			)

		if not transition.applied:
			logger.info("[%s %s] order %s already %s, duplicate ignored", tag, kind, order.external_order_id, transition.order.status)
			mark_outcome(record, AuditOutcome.DUPLICATE, order.external_order_id)
			return self._result(kind, AuditOutcome.DUPLICATE, order=transition.order)

		mark_outcome(record, AuditOutcome.APPLIED, order.external_order_id)
		if kind == PAYIN:
			merchant_notification = build_payin_notification(transition.order)
		else:
			merchant_notification = build_payout_notification(transition.order)
		return self._result(kind, AuditOutcome.APPLIED, order=transition.order, notification=merchant_notification)


def submit_reference(order: PayinOrder, utr: str) -> PayinOrder:
	"""
	Manual reference compensation: pass a customer-supplied UTR to the order's
	channel and, when the channel's signed answer reports the order paid,
	settle it through the same primitive as a webhook.

	UpstreamError from the channel propagates to the caller.
	"""
	if order.status != OrderStatus.PENDING:
		raise InvalidTransition("Order already processed")

	channel = get_channel(order.channel)
	result = channel.adapter_for(order.merchant).submit_reference(order.external_order_id, utr)

	settled = result.settled and (result.amount is None or result.amount > 0)
	state = "settled" if settled else ("failed" if result.failed else "pending")
	record = record_callback(f"{channel.tag}_utr", channel.tag, order.external_order_id, result.raw, state)

	if not settled:
		logger.info("utr %s for %s submitted, channel reports %s", utr, order.external_order_id, state)
		mark_outcome(record, AuditOutcome.IGNORED)
		order.refresh_from_db()
		return order

	transition = apply_payin_transition(
		order.pk, OrderStatus.SUCCESS,
		amount=result.amount, reference=result.reference or utr, raw=result.raw,
	)
	if not transition.applied:
		mark_outcome(record, AuditOutcome.DUPLICATE)
		return transition.order

	mark_outcome(record, AuditOutcome.APPLIED)
	dispatch(build_payin_notification(transition.order))
	return transition.order

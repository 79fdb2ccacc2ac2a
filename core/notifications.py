"""Merchant notifications.

After a pay-in or payout reaches a terminal state we POST a JSON body, signed
with the merchant's own secret, to the merchant's endpoint. Delivery happens
after the upstream has been acknowledged, on a small thread pool; failures are
logged and never retried (merchants fall back to the query endpoints).
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import requests
from django.conf import settings

from .constants import js_number
from .exceptions import ForwardingError
from .models import OrderStatus, PayinOrder, PayoutOrder
from .signatures import sign_for_merchant

logger = logging.getLogger(__name__)

_executor = None


@dataclass
class MerchantNotification:
	url: str
	body: dict = field(default_factory=dict)
	order_ref: str = ""


def payin_callback_target(order: PayinOrder) -> str:
	# a URL given at creation time wins over the merchant profile
	return (order.passthrough or {}).get("c") or order.merchant.callback_url or ""


def payout_callback_target(payout: PayoutOrder) -> str:
	return payout.callback_url or payout.merchant.callback_url or ""


def build_payin_notification(order: PayinOrder):
	"""
	Signed pay-in notification for a terminal order, or None when the merchant
	gave us nowhere to send it
	"""
	url = payin_callback_target(order)
	if not url:
		logger.info("payin %s: no callback url, notification skipped", order.external_order_id)
		return None
	body = {
		"status": 1 if order.status == OrderStatus.SUCCESS else 0,
		"amount": js_number(order.net_amount),
		"orderAmount": js_number(order.gross_amount),
		"orderId": order.external_order_id,
		"id": str(order.id),
		"utr": order.reference or "",
		"param": (order.passthrough or {}).get("p") or "",
	}
	return MerchantNotification(url=url, body=sign_for_merchant(body, order.merchant.secret), order_ref=order.external_order_id)


def build_payout_notification(payout: PayoutOrder):
	url = payout_callback_target(payout)
	if not url:
		logger.info("payout %s: no callback url, notification skipped", payout.external_order_id)
		return None
	success = payout.status == OrderStatus.SUCCESS
	body = {
		"status": 1 if success else 2,
		"amount": js_number(payout.amount),
		"commission": js_number(payout.fee),
		"message": payout.message or ("success" if success else "failed"),
		"orderId": payout.external_order_id,
		"id": str(payout.id),
		"utr": payout.reference or "",
		"param": payout.param or "",
	}
	return MerchantNotification(url=url, body=sign_for_merchant(body, payout.merchant.secret), order_ref=payout.external_order_id)


def forward_to_merchant(notification: MerchantNotification) -> int:
	"""
	POST one notification; raises ForwardingError on transport or HTTP errors
	"""
	try:
		resp = requests.post(notification.url, json=notification.body, timeout=settings.MERCHANT_CALLBACK_TIMEOUT)
		resp.raise_for_status()
	except requests.RequestException as e:
		raise ForwardingError(f"{notification.url}: {e}") from e
	return resp.status_code


def _deliver(notification: MerchantNotification) -> bool:
	try:
		status = forward_to_merchant(notification)
	except ForwardingError as e:
		logger.error("merchant notification for %s failed: %s", notification.order_ref, e)
		return False
	logger.info("merchant notification for %s delivered (%s)", notification.order_ref, status)
	return True


def _get_executor() -> ThreadPoolExecutor:
	global _executor
	if _executor is None:
		_executor = ThreadPoolExecutor(max_workers=settings.MERCHANT_NOTIFY_WORKERS, thread_name_prefix="merchant-notify")
	return _executor


def dispatch(notification) -> None:
	"""
	Fire-and-forget delivery. Inline when MERCHANT_NOTIFY_ASYNC is off.
	"""
	if notification is None:
		return
	if settings.MERCHANT_NOTIFY_ASYNC:
		_get_executor().submit(_deliver, notification)
	else:
		_deliver(notification)

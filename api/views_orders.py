"""Merchant API: create pay-ins and payouts, submit a customer UTR."""

import logging

from django.core.exceptions import ValidationError

from core.constants import js_number
from core.exceptions import InvalidTransition, UpstreamCreateError, UpstreamError
from core.models import PayinOrder
from core.orders import create_payin_order, create_payout_order, get_payin_for_merchant
from core.reconciliation import submit_reference
from .auth import fail, merchant_api, ok

logger = logging.getLogger(__name__)


def _message(e: ValidationError) -> str:
	return e.messages[0] if e.messages else "Invalid request"


def _optional(data, key):
	value = data.get(key)
	return str(value) if value not in (None, "") else None


@merchant_api
def payin_create(request, data):
	"""
	POST {orderAmount, orderId?, callbackUrl?, skipUrl?, param?}
	"""
	if data.get("orderAmount") in (None, ""):
		return fail("orderAmount is required")
	try:
		receipt = create_payin_order(
			request.merchant,
			data.get("orderAmount"),
			external_order_id=_optional(data, "orderId"),
			callback_url=_optional(data, "callbackUrl"),
			skip_url=_optional(data, "skipUrl"),
			param=_optional(data, "param"),
		)
	except ValidationError as e:
		return fail(_message(e))
	except LookupError as e:
		logger.error("payin create for %s: %s", request.merchant.username, e)
		return fail("Channel not available")
	except UpstreamCreateError as e:
		return fail(str(e) or "Failed to create order upstream", status=502)
	return ok(receipt.to_dict(), msg="Order created")


@merchant_api
def payin_submit_utr(request, data):
	"""
	POST {orderId, utr}: pass a customer's bank reference to the channel. The
	order is settled right away if the channel confirms the payment.
	"""
	order_id, utr = _optional(data, "orderId"), _optional(data, "utr")
	if not order_id or not utr:
		return fail("orderId and utr are required")
	try:
		order = get_payin_for_merchant(request.merchant, order_id)
	except PayinOrder.DoesNotExist:
		return fail("Order not found", status=404)
	try:
		order = submit_reference(order, utr.strip())
	except InvalidTransition as e:
		return fail(str(e))
	except UpstreamError as e:
		return fail(str(e) or "UTR submission failed", status=502)
	return ok({"orderId": order.external_order_id, "id": str(order.id), "status": order.status, "utr": order.reference or utr})


def _payout_response(payout):
	return {
		"orderId": payout.external_order_id,
		"id": str(payout.id),
		"amount": js_number(payout.amount),
		"fee": js_number(payout.fee),
		"status": payout.status,
	}


def _create_payout(request, data, destination, msg):
	if data.get("amount") in (None, ""):
		return fail("amount is required")
	try:
		payout = create_payout_order(
			request.merchant,
			data.get("amount"),
			_optional(data, "orderId"),
			destination,
			callback_url=_optional(data, "callbackUrl"),
			param=_optional(data, "param"),
		)
	except ValidationError as e:
		return fail(_message(e))
	except LookupError as e:
		logger.error("payout for %s: %s", request.merchant.username, e)
		return fail("Channel not available")
	except UpstreamCreateError as e:
		return fail(str(e) or "Failed to create payout", status=502)
	return ok(_payout_response(payout), msg=msg)


@merchant_api
def payout_bank(request, data):
	"""
	POST {amount, orderId, account, ifsc, personName, callbackUrl?, param?}
	"""
	destination = {
		"type": "bank",
		"account_number": _optional(data, "account"),
		"ifsc_code": _optional(data, "ifsc"),
		"account_name": _optional(data, "personName"),
	}
	return _create_payout(request, data, destination, "Payout submitted")


@merchant_api
def payout_usdt(request, data):
	"""
	POST {amount, orderId, walletAddress, network, callbackUrl?, param?}; held for admin approval
	"""
	destination = {
		"type": "usdt",
		"wallet_address": _optional(data, "walletAddress"),
		"network": _optional(data, "network"),
	}
	return _create_payout(request, data, destination, "USDT payout submitted, awaiting admin approval")

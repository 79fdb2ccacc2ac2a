"""Merchant-scoped order queries."""

from core.constants import js_number
from core.orders import get_payin_for_merchant, get_payout_for_merchant
from core.models import PayinOrder, PayoutOrder
from .auth import fail, merchant_api, ok


@merchant_api
def payin_query(request, data):
	"""
	POST {orderId}: status of one of the caller's pay-ins
	"""
	order_id = data.get("orderId")
	if not order_id:
		return fail("orderId is required")
	try:
		tx = get_payin_for_merchant(request.merchant, str(order_id))
	except PayinOrder.DoesNotExist:
		return fail("Order not found", status=404)
	return ok({
		"orderId": tx.external_order_id,
		"id": str(tx.id),
		"status": tx.status,
		"amount": js_number(tx.gross_amount),
		"orderAmount": js_number(tx.gross_amount),
		"fee": js_number(tx.fee),
		"netAmount": js_number(tx.net_amount),
		"utr": tx.reference or None,
		"createdAt": tx.created_at.isoformat(),
		"updatedAt": tx.updated_at.isoformat(),
	})


@merchant_api
def payout_query(request, data):
	"""
	POST {orderId}: status of one of the caller's payouts
	"""
	order_id = data.get("orderId")
	if not order_id:
		return fail("orderId is required")
	try:
		payout = get_payout_for_merchant(request.merchant, str(order_id))
	except PayoutOrder.DoesNotExist:
		return fail("Payout not found", status=404)
	return ok({
		"orderId": payout.external_order_id,
		"id": str(payout.id),
		"type": payout.payout_type,
		"status": payout.status,
		"amount": js_number(payout.amount),
		"fee": js_number(payout.fee),
		"utr": payout.reference or None,
		"message": payout.message or None,
		"createdAt": payout.created_at.isoformat(),
	})

"""Operational endpoints: channel webhooks, admin payout actions, health."""

import logging

from django.http import Http404, HttpResponse, HttpResponseNotAllowed, JsonResponse
from django.views.decorators.csrf import csrf_exempt

from core.channels import PAYIN, PAYOUT
from core.exceptions import InvalidTransition
from core.notifications import dispatch
from core.reconciliation import ReconciliationEngine
from core.services import approve_payout, reject_payout
from .auth import fail, ok, request_data

logger = logging.getLogger(__name__)


def health(request):
	return JsonResponse({"ok": True})


@csrf_exempt
def channel_callback(request, channel: str, kind: str):
	"""
	POST (or GET, where the channel calls back that way) /api/callback/<channel>/<payin|payout>

	Always answers 200 with the channel's literal acknowledgement, whatever
	happened inside; the merchant is notified after the answer is built.
	"""
	if kind not in (PAYIN, PAYOUT):
		raise Http404("unknown callback kind")
	try:
		engine = ReconciliationEngine.for_channel(channel)
	except LookupError:
		raise Http404("unknown channel")
	if request.method not in engine.channel.callback_methods:
		return HttpResponseNotAllowed(engine.channel.callback_methods)

	if request.method == "GET":
		data = request.GET.dict()
	else:
		try:
			data = request_data(request)
		except ValueError:
			logger.error("[%s %s] undecodable body", channel, kind)
			data = {"raw": request.body.decode("utf-8", errors="replace")}
		if not data and request.GET:
			# some channels post with the fields in the query string
			data = request.GET.dict()

	try:
		result = engine.handle(kind, data)
	except Exception:
		logger.exception("[%s %s] callback processing error", channel, kind)
		return HttpResponse(engine.channel.ack_for(kind, rejected=True), content_type="text/plain")

	response = HttpResponse(result.ack, content_type="text/plain")
	dispatch(result.notification)
	return response


def _payout_summary(payout):
	return {
		"id": str(payout.id),
		"orderId": payout.external_order_id,
		"status": payout.status,
		"approvedBy": payout.approved_by,
		"utr": payout.reference,
		"rejectionReason": payout.rejection_reason,
	}


def _admin_name(request):
	# authorization happens in front of this service; it tells us who acted
	return request.headers.get("X-Admin-User") or "admin"


@csrf_exempt
def approve(request, payout_id):
	"""
	POST {utr?}: mark a held payout paid. Funds were reserved at creation.
	"""
	if request.method != "POST":
		return HttpResponseNotAllowed(["POST"])
	try:
		data = request_data(request)
	except ValueError:
		return fail("Invalid JSON")
	try:
		payout = approve_payout(payout_id, approved_by=_admin_name(request), reference=str(data.get("utr") or ""))
	except InvalidTransition as e:
		return fail(str(e), status=404)
	return ok(_payout_summary(payout), msg="Payout approved")


@csrf_exempt
def reject(request, payout_id):
	"""
	POST {reason?}: fail a held payout and refund amount+fee
	"""
	if request.method != "POST":
		return HttpResponseNotAllowed(["POST"])
	try:
		data = request_data(request)
	except ValueError:
		return fail("Invalid JSON")
	try:
		payout = reject_payout(payout_id, approved_by=_admin_name(request), reason=str(data.get("reason") or ""))
	except InvalidTransition as e:
		return fail(str(e), status=404)
	return ok(_payout_summary(payout), msg="Payout rejected and balance refunded")

"""Merchant API authentication and the {code, msg, data} response shape.

Merchants identify themselves in the body: `userId` is their public merchant
id and `sign` the merchant-facing signature over every other field, made with
their own secret.
"""
import json
import logging
from functools import wraps

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt

from core.models import Merchant, MerchantStatus
from core.signatures import MERCHANT_SIGNER

logger = logging.getLogger(__name__)


def request_data(request) -> dict:
	"""
	Body as a flat dict: JSON object or form post. ValueError on bad JSON.
	"""
	if "json" in (request.content_type or ""):
		data = json.loads(request.body or b"{}")
		if not isinstance(data, dict):
			raise ValueError("JSON body must be an object")
		return data
	return request.POST.dict()


def ok(data=None, msg="success", status=200):
	body = {"code": 1, "msg": msg}
	if data is not None:
		body["data"] = data
	return JsonResponse(body, status=status)


def fail(msg, status=400):
	return JsonResponse({"code": 0, "msg": msg}, status=status)


def merchant_api(view):
	"""
	POST-only, body-signed merchant endpoint. The view is called as
	view(request, data) with request.merchant set.
	"""
	@csrf_exempt
	@wraps(view)
	def wrapper(request, *args, **kwargs):
		if request.method != "POST":
			return fail("POST only", status=405)
		try:
			data = request_data(request)
		except ValueError:
			return fail("Invalid JSON")

		user_id, sign = data.get("userId"), data.get("sign")
		if not user_id or not sign:
			return fail("Missing userId or sign")

		merchant = Merchant.objects.filter(external_id=str(user_id), status=MerchantStatus.ACTIVE).first()
		if merchant is None:
			return fail("Invalid userId or user suspended", status=401)
		if not MERCHANT_SIGNER.verify(data, merchant.secret):
			logger.warning("merchant api: bad signature from %s on %s", merchant.username, request.path)
			return fail("Invalid signature", status=401)

		request.merchant = merchant
		return view(request, data, *args, **kwargs)
	return wrapper

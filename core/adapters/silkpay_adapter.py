"""Silkpay (default channel).

Requests are signed with md5 over fixed field concatenations:
- create pay-in / payout:  mId + mOrderId + amount + timestamp + secret
- order query:            mId + mOrderId + timestamp + secret
- UTR submission:         mId + timestamp + secret
"""

from core.constants import js_number, to_decimal
from core.exceptions import UpstreamCreateError, UpstreamError
from core.signatures import ConcatSigner
from .base import ChannelAdapter, CreatedOrder, ReferenceResult, millis


CREATE_SIGNER = ConcatSigner(("mId", "mOrderId", "amount", "timestamp"))
QUERY_SIGNER = ConcatSigner(("mId", "mOrderId", "timestamp"))
MERCHANT_SIGNER = ConcatSigner(("mId", "timestamp"))


class SilkpayAdapter(ChannelAdapter):
	name = "silkpay"

	def _ok(self, data: dict) -> bool:
		return str(data.get("status")) == "200"

	def create_payin(self, order_id, amount, notify_url, return_url) -> CreatedOrder:
		params = {
			"amount": js_number(amount),
			"mId": self.credentials.merchant_id,
			"mOrderId": order_id,
			"timestamp": millis(),
			"notifyUrl": notify_url,
			"returnUrl": return_url,
		}
		params["sign"] = CREATE_SIGNER.sign(params, self.credentials.secret)
		try:
			data = self._post("/transaction/payin/v2", params)
		except UpstreamError as e:
			raise UpstreamCreateError(str(e)) from e
		if not self._ok(data):
			raise UpstreamCreateError(data.get("message") or "Failed to create order upstream")
		body = data.get("data") or {}
		return CreatedOrder(
			platform_order_id=body.get("payOrderId") or order_id,
			payment_url=body.get("paymentUrl") or "",
			deep_links=body.get("deepLink") or {},
		)

	def create_payout(self, order_id, amount, notify_url, destination) -> str:
		params = {
			"amount": js_number(amount),
			"mId": self.credentials.merchant_id,
			"mOrderId": order_id,
			"timestamp": millis(),
			"notifyUrl": notify_url,
			"bankNo": destination.get("account_number", ""),
			"ifsc": destination.get("ifsc_code", ""),
			"name": destination.get("account_name", ""),
			"upi": "",
		}
		params["sign"] = CREATE_SIGNER.sign(params, self.credentials.secret)
		try:
			data = self._post("/transaction/payout", params)
		except UpstreamError as e:
			raise UpstreamCreateError(str(e)) from e
		if not self._ok(data):
			raise UpstreamCreateError(data.get("message") or "Failed to create payout upstream")
		return (data.get("data") or {}).get("payOrderId") or order_id

	def submit_reference(self, order_id, utr) -> ReferenceResult:
		params = {"mId": self.credentials.merchant_id, "utr": utr, "mOrderId": order_id, "timestamp": millis()}
		params["sign"] = MERCHANT_SIGNER.sign(params, self.credentials.secret)
		data = self._post("/transaction/payin/submit/utr", params)
		if not self._ok(data):
			raise UpstreamError(data.get("message") or "UTR submission failed")

		query = {"mId": self.credentials.merchant_id, "mOrderId": order_id, "timestamp": millis()}
		query["sign"] = QUERY_SIGNER.sign(query, self.credentials.secret)
		answer = self._post("/transaction/payin/query", query)
		if not self._ok(answer):
			raise UpstreamError(answer.get("message") or "Order query failed")
		body = answer.get("data") or {}
		state = str(body.get("status", ""))
		amount = body.get("amount")
		return ReferenceResult(
			settled=(state == "1"),
			failed=(state in ("2", "3")),
			amount=to_decimal(amount) if amount not in (None, "") else None,
			reference=body.get("utr") or utr,
			raw=answer,
		)

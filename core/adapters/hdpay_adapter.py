"""HDPay.

Every request is signed with the sorted-params md5 scheme, secret appended as
`&key=<secret>`, lowercase hex. Successful answers carry `code: 200`.
"""

from core.constants import round2, to_decimal
from core.exceptions import UpstreamCreateError, UpstreamError
from core.signatures import SortedParamsSigner
from .base import ChannelAdapter, CreatedOrder, ReferenceResult

SIGNER = SortedParamsSigner(secret_label="key")


class HDPayAdapter(ChannelAdapter):
	name = "hdpay"

	def _signed(self, params: dict) -> dict:
		if not self.credentials.merchant_id or not self.credentials.secret:
			raise UpstreamError("HDPAY credentials not configured")
		params = dict(params, merchantId=self.credentials.merchant_id)
		params["sign"] = SIGNER.sign(params, self.credentials.secret)
		return params

	def _ok(self, data: dict) -> bool:
		return str(data.get("code")) == "200"

	def create_payin(self, order_id, amount, notify_url, return_url) -> CreatedOrder:
		try:
			params = self._signed({
				"merchantOrderId": order_id,
				"amount": f"{round2(amount):.2f}",
				"notifyUrl": notify_url,
				"name": "Customer",
				"mobile": "9999999999",
				"email": "customer@example.com",
				"deeplink": True,
			})
			data = self._post("/api/payin/submit", params)
		except UpstreamError as e:
			raise UpstreamCreateError(str(e)) from e
		if not self._ok(data):
			raise UpstreamCreateError(data.get("msg") or "Failed to create order via HDPay")
		body = data.get("data") or {}
		# HDPay hosts its own payment page; deep links are not used
		return CreatedOrder(platform_order_id=body.get("orderId") or order_id, payment_url=body.get("payUrl") or "")

	def create_payout(self, order_id, amount, notify_url, destination) -> str:
		try:
			params = self._signed({
				"merchantPayoutId": order_id,
				"amount": f"{round2(amount):.2f}",
				"notifyUrl": notify_url,
				"name": destination.get("account_name", ""),
				"type": "0", # 0 = bank card, 1 = UPI
				"account": destination.get("account_number", ""),
				"ifsc": destination.get("ifsc_code", ""),
			})
			data = self._post("/api/payout/submit", params)
		except UpstreamError as e:
			raise UpstreamCreateError(str(e)) from e
		if not self._ok(data):
			raise UpstreamCreateError(data.get("msg") or "Payout failed")
		return (data.get("data") or {}).get("payoutId") or order_id

	def submit_reference(self, order_id, utr) -> ReferenceResult:
		data = self._post("/api/payin/utr/fix", self._signed({"merchantOrderId": order_id, "utr": utr}))
		if not self._ok(data):
			raise UpstreamError(data.get("msg") or "UTR submission failed")

		answer = self._post("/api/payin/status", self._signed({"merchantOrderId": order_id}))
		if not self._ok(answer):
			raise UpstreamError(answer.get("msg") or "Order query failed")
		body = answer.get("data") or {}
		state = str(body.get("status", ""))
		amount = body.get("payAmount") or body.get("amount")
		return ReferenceResult(
			settled=(state == "1"),
			failed=(state == "2"),
			amount=to_decimal(amount) if amount not in (None, "") else None,
			reference=body.get("utr") or utr,
			raw=answer,
		)


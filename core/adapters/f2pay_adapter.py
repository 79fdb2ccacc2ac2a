"""F2PAY, and the Yellow channel that is created through the same API.

Requests carry a JSON-encoded `bizContent` string signed with our RSA private
key (SHA256withRSA, base64). Answers and callbacks are signed the same way with
the platform's key and verified against its public key. Success is `code: "0000"`.
"""
import json
import logging
import time
import random

from core.constants import round2, to_decimal
from core.exceptions import UpstreamCreateError, UpstreamError
from core.signatures import RSASigner
from .base import ChannelAdapter, CreatedOrder, ReferenceResult

logger = logging.getLogger(__name__)

SIGNER = RSASigner()

PAID_STATES = ("Paid", "UnequalPaid")
FAILED_STATES = ("Expired", "Failed")


def trace_id(prefix: str) -> str:
	return f"{prefix}{int(time.time() * 1000)}{random.randint(0, 9999):04d}"


def parse_biz_content(value):
	if isinstance(value, str):
		return json.loads(value)
	return value or {}


def map_deep_links(account_info: dict) -> dict:
	"""
	Turn F2PAY accountInfo into app deep links
	"""
	scan = account_info.get("upiScan")
	intent = account_info.get("upiIntent")
	return {
		"upi_scan": f"upi://pay?{scan}" if scan else "",
		"upi_phonepe": account_info.get("upiPhonepe") or "",
		"upi_gpay": f"tez://upi/pay?{scan}" if scan else "",
		"upi_paytm": f"paytmmp://cash_wallet?{intent}&featuretype=money_transfer" if intent else "",
		"upi": account_info.get("upi") or "",
		"upi_intent": f"upi://pay?{scan}" if scan else "",
	}


class F2PayAdapter(ChannelAdapter):
	name = "f2pay"

	def _call(self, path: str, biz: dict, trace: str) -> dict:
		if not self.credentials.private_key:
			raise UpstreamError(f"{self.name} private key not configured")
		biz_str = json.dumps(biz, separators=(",", ":"), ensure_ascii=False)
		body = {
			"traceId": trace,
			"merchantId": self.credentials.merchant_id,
			"bizContent": biz_str,
			"signType": "RSA",
		}
		body["sign"] = SIGNER.sign(body, self.credentials.private_key)
		data = self._post(path, body)
		if data.get("code") != "0000":
			raise UpstreamError(data.get("msg") or f"{self.name} call failed")
		return data

	def _verified_biz(self, data: dict) -> dict:
		"""
		bizContent of an answer, after checking the platform signature when present
		"""
		if data.get("sign") and self.credentials.public_key:
			if not SIGNER.verify(data, self.credentials.public_key):
				raise UpstreamError(f"{self.name} answer failed signature verification")
		try:
			return parse_biz_content(data.get("bizContent"))
		except ValueError as e:
			raise UpstreamError(f"{self.name} answer has invalid bizContent") from e

	def create_payin(self, order_id, amount, notify_url, return_url) -> CreatedOrder:
		biz = {
			"amount": f"{round2(amount):.2f}",
			"customerEmail": "customer@example.com",
			"customerIpAddress": "127.0.0.1",
			"customerName": "Customer",
			"customerPhone": "9999999999",
			"mchOrderNo": order_id,
			"methodCode": "UpiMixed",
			"notifyUrl": notify_url,
			"returnUrl": return_url or notify_url,
		}
		logger.info("%s creating payin %s", self.name, order_id)
		try:
			biz_resp = self._verified_biz(self._call("/payin/inr/order/createV2", biz, order_id))
		except UpstreamError as e:
			raise UpstreamCreateError(str(e)) from e
		try:
			account_info = parse_biz_content(biz_resp.get("accountInfo"))
		except ValueError:
			logger.warning("%s payin %s: unreadable accountInfo", self.name, order_id)
			account_info = {}
		return CreatedOrder(
			platform_order_id=biz_resp.get("platNo") or order_id,
			payment_url=biz_resp.get("payUrl") or "",
			deep_links=map_deep_links(account_info),
		)

	def create_payout(self, order_id, amount, notify_url, destination) -> str:
		biz = {
			"mchOrderNo": order_id,
			"amount": f"{round2(amount):.2f}",
			"methodCode": "BANK_INR",
			"payeeName": destination.get("account_name", ""),
			"payeeAccountNo": destination.get("account_number", ""),
			"payeeIfsc": destination.get("ifsc_code", ""),
			"notifyUrl": notify_url,
		}
		try:
			biz_resp = self._verified_biz(self._call("/payout/inr/order/create", biz, order_id))
		except UpstreamError as e:
			raise UpstreamCreateError(str(e)) from e
		return biz_resp.get("platNo") or order_id

	def submit_reference(self, order_id, utr) -> ReferenceResult:
		self._call("/payin/inr/order/resubmit", {"mchOrderNo": order_id, "trxId": utr}, trace_id("UTR"))
		answer = self._call("/payin/query", {"mchOrderNo": order_id}, trace_id("Q"))
		biz = self._verified_biz(answer)
		state = biz.get("state")
		amount = biz.get("actualAmount") or biz.get("amount")
		return ReferenceResult(
			settled=state in PAID_STATES,
			failed=state in FAILED_STATES,
			amount=to_decimal(amount) if amount not in (None, "") else None,
			reference=biz.get("trxId") or utr,
			raw=answer,
		)


class YellowAdapter(F2PayAdapter):
	name = "yellow"

"""GTPAY.

Requests are form posts of {platformno, parameter, sign}: the JSON body is
AES-ECB encrypted into `parameter` and `sign` is md5 of that JSON. Pay-ins use
the pay-in key, payouts the payout key (credentials.payout_secret).
Answers are plain JSON with a `result` field.
"""
import logging
import secrets

from core.constants import round2
from core.exceptions import UpstreamCreateError, UpstreamError
from core.signatures import AESEnvelopeSigner
from .base import ChannelAdapter, CreatedOrder, ReferenceResult

logger = logging.getLogger(__name__)

SIGNER = AESEnvelopeSigner()

# IFSC prefix -> GTPAY bank code
BANK_CODES = {
	"SBIN": "SBI",
	"HDFC": "HDFCBK",
	"ICIC": "ICICI",
	"UTIB": "AXIS",
	"PUNB": "PNB",
	"CNRB": "CANARA",
	"KKBK": "KOTAK",
	"IDIB": "INDIAN",
	"JAKA": "JKBK",
	"INDB": "INDUSIND",
	"BDBL": "BANDHAN",
	"IDFB": "IDFC",
	"IOBA": "IOB",
	"CITI": "CITIBANK",
	"UCBA": "UCO",
	"MAHB": "MAHARASHTRA",
	"ANDB": "ANDHRA",
	"SYNB": "SYNDICATE",
}
DEFAULT_BANK_CODE = "SBI"


def bank_code(ifsc: str) -> str:
	return BANK_CODES.get((ifsc or "")[:4].upper(), DEFAULT_BANK_CODE)


class GTPayAdapter(ChannelAdapter):
	name = "gtpay"

	def _form(self, data: dict, key: str, platform_field: str) -> dict:
		if not self.credentials.merchant_id or not key:
			raise UpstreamError("GTPAY credentials not configured")
		return dict(SIGNER.seal(data, key), **{platform_field: self.credentials.merchant_id})

	def create_payin(self, order_id, amount, notify_url, return_url) -> CreatedOrder:
		data = {
			"payAmount": f"{round2(amount):.2f}",
			"commercialOrderNo": order_id,
			"callBackUrl": notify_url,
			# the jump page after payment, not the async notification
			"notifyUrl": return_url or notify_url,
			"userId": f"USER_{secrets.randbelow(10000)}",
			"ipCustomer": "127.0.0.1",
		}
		try:
			form = self._form(data, self.credentials.secret, "platformno")
			form["payType"] = "8"
			answer = self._post("/api/pay/apply", form, form=True)
		except UpstreamError as e:
			raise UpstreamCreateError(str(e)) from e
		if answer.get("result") != "success":
			raise UpstreamCreateError(answer.get("message") or "Failed to create order via GTPAY")
		return CreatedOrder(platform_order_id=answer.get("sysNo") or order_id, payment_url=answer.get("payUrl") or "")

	def create_payout(self, order_id, amount, notify_url, destination) -> str:
		ifsc = destination.get("ifsc_code", "")
		data = {
			"commercialPayNo": order_id,
			"totalAmount": f"{round2(amount):.2f}",
			"payeeBank": bank_code(ifsc),
			"payeeBankCode": ifsc,
			"payeeAcc": destination.get("account_number", ""),
			"payeeName": destination.get("account_name", ""),
			"payeePhone": "9999999999",
			"currency": "INR",
			"chargeType": "1",
			"notifyUrl": notify_url,
		}
		try:
			form = self._form(data, self.credentials.payout_secret, "platformNo")
			answer = self._post("/api/guest/instead/insPay", form, form=True)
		except UpstreamError as e:
			raise UpstreamCreateError(str(e)) from e
		if answer.get("result") not in ("processing", "success"):
			raise UpstreamCreateError(answer.get("msg") or "Payout Failed")
		return answer.get("outTradeNo") or order_id

	def submit_reference(self, order_id, utr) -> ReferenceResult:
		raise UpstreamError("GTPAY does not accept UTR submissions")

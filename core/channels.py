"""Channel registry.

A Channel bundles everything that differs between upstream processors:
- how its callbacks look (parse_payin / parse_payout -> InboundNotification)
- how they are signed (signer per direction, and which credential verifies them)
- the literal acknowledgement it expects back
- which HTTP methods its callbacks arrive with
- which adapter creates orders on it, with production or sandbox credentials
- its minimum pay-in and order id prefix

Credentials are chosen from the merchant an order belongs to, never from
anything in the request: the sandbox merchant always gets the sandbox set.
"""
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from django.conf import settings

from .adapters.base import ChannelAdapter, ChannelCredentials
from .adapters.f2pay_adapter import F2PayAdapter, YellowAdapter, PAID_STATES, FAILED_STATES, parse_biz_content
from .adapters.gtpay_adapter import GTPayAdapter
from .adapters.hdpay_adapter import HDPayAdapter
from .adapters.silkpay_adapter import SilkpayAdapter
from .constants import DEFAULT_ORDER_PREFIX, DEFAULT_PAYIN_MINIMUM, ORDER_PREFIXES, PAYIN_MINIMUMS, to_decimal
from .exceptions import SignatureError
from .models import Merchant, OrderStatus
from .signatures import AESEnvelopeSigner, ConcatSigner, RSASigner, Signer, SortedParamsSigner, aes_decrypt

logger = logging.getLogger(__name__)

PAYIN = "payin"
PAYOUT = "payout"


@dataclass
class InboundNotification:
	"""
	A channel callback reduced to what the reconciliation engine needs
	"""
	kind: str
	channel: str
	platform_order_id: str
	merchant_order_id: str
	status: str # OrderStatus value
	raw_status: str
	amount: Optional[Decimal] = None
	reference: str = ""
	message: str = ""
	signed_payload: dict = field(default_factory=dict)

	@property
	def order_ref(self) -> str:
		return self.merchant_order_id or self.platform_order_id


def _amount(value) -> Optional[Decimal]:
	if value in (None, ""):
		return None
	try:
		return to_decimal(value)
	except ValueError:
		raise SignatureError(f"malformed amount {value!r}")


class Channel:
	tag = ""
	ack = "success"
	adapter_class = ChannelAdapter
	payin_signer: Signer = None
	payout_signer: Signer = None
	verify_with = "secret" # credential attribute used to verify callbacks
	platform_id_first = True # lookup order for callbacks
	callback_methods = ("POST",)
	failure_ack = {} # kind -> ack for a rejected callback, when it differs

	@property
	def min_amount(self) -> Decimal:
		return PAYIN_MINIMUMS.get(self.tag, DEFAULT_PAYIN_MINIMUM)

	@property
	def order_prefix(self) -> str:
		return ORDER_PREFIXES.get(self.tag, DEFAULT_ORDER_PREFIX)

	def is_sandbox(self, merchant: Merchant) -> bool:
		return merchant.username == settings.SANDBOX_MERCHANT_USERNAME

	def credentials_for(self, merchant: Merchant) -> ChannelCredentials:
		if self.is_sandbox(merchant):
			sandbox = settings.CHANNEL_SANDBOX_CREDENTIALS.get(self.tag)
			if sandbox is None:
				logger.warning("no sandbox environment configured for channel %s", self.tag)
				return ChannelCredentials(base_url="", sandbox=True)
			return ChannelCredentials.from_dict(sandbox, sandbox=True)
		return ChannelCredentials.from_dict(settings.CHANNEL_CREDENTIALS.get(self.tag, {}))

	def adapter_for(self, merchant: Merchant) -> ChannelAdapter:
		return self.adapter_class(self.credentials_for(merchant))

	def verification_secret(self, merchant: Merchant, kind: str = PAYIN) -> str:
		return getattr(self.credentials_for(merchant), self.verify_with)

	def ack_for(self, kind: str, rejected: bool = False) -> str:
		if rejected:
			return self.failure_ack.get(kind, self.ack)
		return self.ack

	def signer(self, kind: str) -> Signer:
		return self.payin_signer if kind == PAYIN else self.payout_signer

	def notify_url(self, kind: str) -> str:
		return f"{settings.APP_URL}/api/callback/{self.tag}/{kind}"

	def parse(self, kind: str, data: dict) -> InboundNotification:
		if kind == PAYIN:
			return self.parse_payin(data)
		return self.parse_payout(data)

	def parse_payin(self, data: dict) -> InboundNotification:
		raise NotImplementedError

	def parse_payout(self, data: dict) -> InboundNotification:
		raise NotImplementedError


class SilkpayChannel(Channel):
	"""
	Pay-in status 1 = paid, anything else failed. Payout 2 = paid, 1 = still
	processing, anything else failed.
	"""
	tag = "silkpay"
	ack = "OK"
	adapter_class = SilkpayAdapter
	payin_signer = ConcatSigner(("amount", "mId", "mOrderId", "timestamp"))
	payout_signer = ConcatSigner(("mId", "mOrderId", "amount", "timestamp"))

	def parse_payin(self, data):
		raw_status = str(data.get("status", ""))
		return InboundNotification(
			kind=PAYIN,
			channel=self.tag,
			platform_order_id=str(data.get("payOrderId") or ""),
			merchant_order_id=str(data.get("mOrderId") or ""),
			status=OrderStatus.SUCCESS if raw_status == "1" else OrderStatus.FAILED,
			raw_status=raw_status,
			amount=_amount(data.get("amount")),
			reference=str(data.get("utr") or ""),
			signed_payload=data,
		)

	def parse_payout(self, data):
		raw_status = str(data.get("status", ""))
		if raw_status == "2":
			status = OrderStatus.SUCCESS
		elif raw_status == "1":
			status = OrderStatus.PENDING
		else:
			status = OrderStatus.FAILED
		return InboundNotification(
			kind=PAYOUT,
			channel=self.tag,
			platform_order_id=str(data.get("payOrderId") or ""),
			merchant_order_id=str(data.get("mOrderId") or ""),
			status=status,
			raw_status=raw_status,
			amount=_amount(data.get("amount")),
			reference=str(data.get("utr") or ""),
			message=str(data.get("message") or ""),
			signed_payload=data,
		)


class HDPayChannel(Channel):
	"""
	Status 0 = waiting, 1 = success, 2 = failed (both directions)
	"""
	tag = "hdpay"
	adapter_class = HDPayAdapter
	payin_signer = SortedParamsSigner(secret_label="key")
	payout_signer = payin_signer
	platform_id_first = False

	STATUS = {"1": OrderStatus.SUCCESS, "2": OrderStatus.FAILED}

	def parse_payin(self, data):
		raw_status = str(data.get("status", ""))
		return InboundNotification(
			kind=PAYIN,
			channel=self.tag,
			platform_order_id=str(data.get("orderId") or ""),
			merchant_order_id=str(data.get("merchantOrderId") or ""),
			status=self.STATUS.get(raw_status, OrderStatus.PENDING),
			raw_status=raw_status,
			amount=_amount(data.get("payAmount") or data.get("amount")),
			reference=str(data.get("utr") or ""),
			message=str(data.get("msg") or ""),
			signed_payload=data,
		)

	def parse_payout(self, data):
		raw_status = str(data.get("status", ""))
		return InboundNotification(
			kind=PAYOUT,
			channel=self.tag,
			platform_order_id=str(data.get("payoutId") or ""),
			merchant_order_id=str(data.get("merchantPayoutId") or ""),
			status=self.STATUS.get(raw_status, OrderStatus.PENDING),
			raw_status=raw_status,
			amount=_amount(data.get("amount")),
			reference=str(data.get("utr") or ""),
			message=str(data.get("msg") or ""),
			signed_payload=data,
		)


class F2PayChannel(Channel):
	"""
	Callback body: {code, msg, sysTime, sign, bizContent}; bizContent is a JSON
	string carrying state, amount/actualAmount, mchOrderNo, platNo, trxId (UTR).
	"""
	tag = "f2pay"
	adapter_class = F2PayAdapter
	payin_signer = RSASigner()
	payout_signer = payin_signer
	verify_with = "public_key"
	platform_id_first = False

	PAYOUT_PAID = ("Paid", "Success", "SUCCESS")
	PAYOUT_FAILED = ("Failed", "Expired", "FAIL")

	def _biz(self, data: dict) -> dict:
		try:
			biz = parse_biz_content(data.get("bizContent"))
		except ValueError:
			raise SignatureError("bizContent is not valid JSON")
		if not isinstance(biz, dict):
			raise SignatureError("bizContent is not an object")
		return biz

	def _notification(self, kind, data, paid, failed, message=""):
		biz = self._biz(data)
		state = str(biz.get("state") or "")
		if state in paid:
			status = OrderStatus.SUCCESS
		elif state in failed:
			status = OrderStatus.FAILED
		else:
			status = OrderStatus.PENDING
		return InboundNotification(
			kind=kind,
			channel=self.tag,
			platform_order_id=str(biz.get("platNo") or ""),
			merchant_order_id=str(biz.get("mchOrderNo") or ""),
			status=status,
			raw_status=state,
			amount=_amount(biz.get("actualAmount") or biz.get("amount")),
			reference=str(biz.get("trxId") or ""),
			message=message if status == OrderStatus.FAILED else "",
			signed_payload=data,
		)

	def parse_payin(self, data):
		return self._notification(PAYIN, data, PAID_STATES, FAILED_STATES)

	def parse_payout(self, data):
		return self._notification(PAYOUT, data, self.PAYOUT_PAID, self.PAYOUT_FAILED, message="Payout Failed")


class YellowChannel(F2PayChannel):
	"""
	F2PAY wire format on its own notify path. Pending orders on this channel
	are also settled by the auto-success simulator.
	"""
	tag = "yellow"
	adapter_class = YellowAdapter


class GTPayChannel(Channel):
	"""
	Callbacks carry {platformno, parameter, sign}: parameter is the AES-ECB
	encrypted JSON, sign the md5 of that JSON. Pay-ins use the pay-in key and
	arrive as GET; payouts use the payout key. A rejected pay-in callback is
	answered with the channel's literal "faild".
	"""
	tag = "gtpay"
	adapter_class = GTPayAdapter
	payin_signer = AESEnvelopeSigner()
	payout_signer = payin_signer
	platform_id_first = False
	callback_methods = ("GET", "POST")
	failure_ack = {PAYIN: "faild"}

	def _key(self, credentials: ChannelCredentials, kind: str) -> str:
		return credentials.payout_secret if kind == PAYOUT else credentials.secret

	def verification_secret(self, merchant, kind=PAYIN):
		return self._key(self.credentials_for(merchant), kind)

	def _decoded(self, kind: str, data: dict) -> dict:
		"""
		Open the envelope to find the order. Which merchant (and so which key)
		it belongs to is unknown until then, so every configured key is tried;
		the resolved merchant's key is checked again by the signer.
		"""
		configs = [settings.CHANNEL_CREDENTIALS.get(self.tag), settings.CHANNEL_SANDBOX_CREDENTIALS.get(self.tag)]
		for config in filter(None, configs):
			key = self._key(ChannelCredentials.from_dict(config), kind)
			if not key:
				continue
			try:
				decoded = json.loads(aes_decrypt(str(data.get("parameter") or ""), key))
			except ValueError:
				continue
			if isinstance(decoded, dict):
				return decoded
		raise SignatureError("parameter cannot be decrypted")

	def parse_payin(self, data):
		decoded = self._decoded(PAYIN, data)
		result = str(decoded.get("result") or "")
		return InboundNotification(
			kind=PAYIN,
			channel=self.tag,
			platform_order_id=str(decoded.get("orderNo") or ""),
			merchant_order_id=str(decoded.get("commercialOrderNo") or ""),
			status=OrderStatus.SUCCESS if result == "success" else OrderStatus.FAILED,
			raw_status=result,
			amount=_amount(decoded.get("orderAmount")),
			reference=str(decoded.get("utr") or ""),
			signed_payload=data,
		)

	def parse_payout(self, data):
		decoded = self._decoded(PAYOUT, data)
		result = str(decoded.get("result") or "")
		if result == "success":
			status = OrderStatus.SUCCESS
		elif result in ("error", "failed"):
			status = OrderStatus.FAILED
		else:
			status = OrderStatus.PENDING
		return InboundNotification(
			kind=PAYOUT,
			channel=self.tag,
			platform_order_id=str(decoded.get("tradeNo") or ""),
			merchant_order_id=str(decoded.get("outTradeNo") or ""),
			status=status,
			raw_status=result,
			amount=_amount(decoded.get("totalAmount")),
			reference=str(decoded.get("utr") or ""),
			message=str(decoded.get("msg") or ""),
			signed_payload=data,
		)


CHANNELS = {c.tag: c for c in (SilkpayChannel(), HDPayChannel(), F2PayChannel(), YellowChannel(), GTPayChannel())}


def get_channel(tag: str) -> Channel:
	try:
		return CHANNELS[tag]
	except KeyError:
		raise LookupError(f"unknown channel {tag!r}")


def channel_for_merchant(merchant: Merchant) -> Channel:
	return get_channel(merchant.channel or settings.DEFAULT_CHANNEL)

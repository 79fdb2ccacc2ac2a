"""Order creation and merchant-scoped lookups.

Pay-ins are created upstream first and persisted only once the channel has
accepted them, so a refused order leaves nothing behind. Payouts reserve
amount+fee before anything else; bank payouts then go upstream and are failed
(refunded) through the ledger primitive if the channel refuses them.
"""
import logging
import secrets
import time
from dataclasses import dataclass, field
from decimal import Decimal
from urllib.parse import parse_qs, quote, urlsplit

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction

from .channels import PAYIN, PAYOUT, channel_for_merchant
from .constants import (
	BANK_PAYOUT_MINIMUM, PAYOUT_ORDER_PREFIX, USDT_NETWORKS, USDT_PAYOUT_MINIMUM_USDT, js_number, round2, to_decimal
)
from .exceptions import UpstreamCreateError
from .models import Merchant, OrderStatus, PayinOrder, PayoutOrder, PayoutSource, PayoutType
from .rates import calculate_payin_fee, calculate_payout_fee, resolve_merchant_rates
from .services import apply_payout_transition, reserve_payout_funds
from .simulator import schedule_auto_success

logger = logging.getLogger(__name__)

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _base36(n: int) -> str:
	out = ""
	while n:
		n, r = divmod(n, 36)
		out = _BASE36[r] + out
	return out or "0"


def generate_order_id(prefix: str) -> str:
	"""
	<prefix>_<ms timestamp, base36>_<8 hex>, e.g. HDP_LXK3Q2ZA_9F1C20AB
	"""
	return f"{prefix}_{_base36(int(time.time() * 1000))}_{secrets.token_hex(4).upper()}"


def _parse_amount(value) -> Decimal:
	try:
		amount = to_decimal(value)
	except ValueError:
		raise ValidationError("Invalid amount")
	if amount <= 0:
		raise ValidationError("Invalid amount")
	return round2(amount)


def gpay_link(source: str) -> str:
	"""
	Build a Google Pay (tez://) link from any UPI-style link carrying pa and am
	"""
	if not source:
		return ""
	params = parse_qs(urlsplit(source).query)

	def first(key, default=""):
		return (params.get(key) or [default])[0]

	pa, am = first("pa"), first("am")
	if not (pa and am):
		return ""
	return "tez://upi/pay?pa=%s&pn=%s&tn=%s&am=%s&cu=%s" % (
		pa, quote(first("pn"), safe=""), quote(first("tn"), safe=""), am, first("cu", "INR"),
	)


def normalize_deep_links(links: dict, payment_url: str = "") -> dict:
	links = links or {}
	normalized = {
		"upi_phonepe": links.get("upi_phonepe") or links.get("phonepe") or "",
		"upi_paytm": links.get("upi_paytm") or links.get("paytm") or "",
		"upi_scan": links.get("upi_scan") or links.get("upi") or "",
	}
	normalized["upi_gpay"] = links.get("upi_gpay") or links.get("gpay") or gpay_link(
		normalized["upi_scan"] or normalized["upi_phonepe"] or links.get("upi_intent") or payment_url
	)
	return normalized


@dataclass
class PayinReceipt:
	order: PayinOrder
	payment_url: str
	deep_links: dict = field(default_factory=dict)

	def to_dict(self) -> dict:
		return {
			"orderId": self.order.external_order_id,
			"id": str(self.order.id),
			"amount": js_number(self.order.gross_amount),
			"fee": js_number(self.order.fee),
			"paymentUrl": self.payment_url,
			"deepLinks": self.deep_links,
		}


def create_payin_order(
	merchant: Merchant,
	amount,
	external_order_id: str = None,
	callback_url: str = None,
	skip_url: str = None,
	param: str = None,
) -> PayinReceipt:
	channel = channel_for_merchant(merchant)
	amount = _parse_amount(amount)
	if amount < channel.min_amount:
		raise ValidationError(f"Minimum deposit amount is ₹{js_number(channel.min_amount)} for this channel")

	order_id = external_order_id or generate_order_id(channel.order_prefix)
	if PayinOrder.objects.filter(external_order_id=order_id).exists():
		raise ValidationError("Order ID already exists")

	rate = resolve_merchant_rates(merchant).payin_rate
	fees = calculate_payin_fee(amount, rate)

	notify_url = channel.notify_url(PAYIN)
	return_url = skip_url or f"{settings.APP_URL}/payment/complete"
	logger.info("creating payin %s for %s via %s", order_id, merchant.username, channel.tag)

	# UpstreamCreateError propagates; nothing is written before this point
	created = channel.adapter_for(merchant).create_payin(order_id, amount, notify_url, return_url)

	try:
		order = PayinOrder.objects.create(
			external_order_id=order_id,
			platform_order_id=created.platform_order_id or order_id,
			merchant=merchant,
			channel=channel.tag,
			gross_amount=amount,
			fee=fees.fee,
			net_amount=fees.net_amount,
			frozen_rate=rate,
			payment_url=created.payment_url or "",
			passthrough={
				"c": callback_url or "",
				"sc": notify_url,
				"p": param or "",
				"s": skip_url or "",
				"deepLinks": created.deep_links or {},
				"channel": channel.tag,
			},
		)
	except IntegrityError:
		# same id inserted concurrently
		raise ValidationError("Order ID already exists")

	if channel.tag == "yellow":
		schedule_auto_success(order)

	# yellow pages are keyed by our id, the others by the channel's
	page_id = order.external_order_id if channel.tag == "yellow" else order.platform_order_id
	return PayinReceipt(
		order=order,
		payment_url=f"{settings.APP_URL}/pay/{page_id}",
		deep_links=normalize_deep_links(created.deep_links, created.payment_url),
	)


def _validate_destination(payout_type: str, amount: Decimal, destination: dict) -> dict:
	if payout_type == PayoutType.BANK:
		fields = {
			"account_number": (destination.get("account_number") or "").strip(),
			"ifsc_code": (destination.get("ifsc_code") or "").strip().upper(),
			"account_name": (destination.get("account_name") or "").strip(),
		}
		if not all(fields.values()):
			raise ValidationError("account, ifsc and personName are required")
		if amount < BANK_PAYOUT_MINIMUM:
			raise ValidationError(f"Minimum bank withdrawal is ₹{js_number(BANK_PAYOUT_MINIMUM)}")
		return fields

	if payout_type == PayoutType.USDT:
		fields = {
			"wallet_address": (destination.get("wallet_address") or "").strip(),
			"network": (destination.get("network") or "").strip().upper(),
		}
		if not all(fields.values()):
			raise ValidationError("walletAddress and network are required")
		minimum = round2(USDT_PAYOUT_MINIMUM_USDT * settings.USDT_RATE)
		if amount < minimum:
			raise ValidationError(f"Minimum USDT withdrawal is {js_number(USDT_PAYOUT_MINIMUM_USDT)} USDT (₹{js_number(minimum)})")
		if fields["network"] not in USDT_NETWORKS:
			raise ValidationError("Invalid network. Use TRC20, ERC20, or BEP20")
		return fields

	raise ValidationError(f"Unknown payout type {payout_type!r}")


def create_payout_order(
	merchant: Merchant,
	amount,
	external_order_id: str,
	destination: dict,
	callback_url: str = None,
	param: str = None,
) -> PayoutOrder:
	"""
	destination: {"type": "bank"|"usdt", account_number, ifsc_code, account_name}
	or {"type": "usdt", wallet_address, network}.

	Bank payouts are submitted to the merchant's channel; USDT payouts wait for
	an admin. Raises ValidationError (nothing reserved) or UpstreamCreateError
	(reservation already refunded).
	"""
	payout_type = destination.get("type") or PayoutType.BANK
	amount = _parse_amount(amount)
	fields = _validate_destination(payout_type, amount, destination)

	order_id = external_order_id or generate_order_id(PAYOUT_ORDER_PREFIX)
	if PayoutOrder.objects.filter(external_order_id=order_id).exists():
		raise ValidationError("Order ID already exists")

	rates = resolve_merchant_rates(merchant)
	fees = calculate_payout_fee(amount, rates.payout_rate, rates.payout_fixed_fee)
	channel = channel_for_merchant(merchant) if payout_type == PayoutType.BANK else None

	try:
		with transaction.atomic():
			reserve_payout_funds(merchant.pk, fees.total_deduction)
			payout = PayoutOrder.objects.create(
				external_order_id=order_id,
				merchant=merchant,
				channel=channel.tag if channel else "",
				payout_type=payout_type,
				source=PayoutSource.API if channel else PayoutSource.MANUAL,
				amount=amount,
				fee=fees.fee,
				callback_url=callback_url or "",
				param=param or "",
				**fields,
			)
	except IntegrityError:
		raise ValidationError("Order ID already exists")

	logger.info("payout %s (%s) reserved %s from %s", order_id, payout_type, fees.total_deduction, merchant.username)
	if channel is None:
		return payout

	try:
		platform_id = channel.adapter_for(merchant).create_payout(order_id, amount, channel.notify_url(PAYOUT), fields)
	except UpstreamCreateError as e:
		logger.error("payout %s refused by %s: %s", order_id, channel.tag, e)
		apply_payout_transition(payout.pk, OrderStatus.FAILED, message=str(e) or "Upstream error")
		raise

	PayoutOrder.objects.filter(pk=payout.pk).update(platform_order_id=platform_id or order_id)
	payout.platform_order_id = platform_id or order_id
	return payout


def get_payin_for_merchant(merchant: Merchant, external_order_id: str) -> PayinOrder:
	"""
	Raises PayinOrder.DoesNotExist for other merchants' orders too
	"""
	return PayinOrder.objects.get(merchant=merchant, external_order_id=external_order_id)


def get_payout_for_merchant(merchant: Merchant, external_order_id: str) -> PayoutOrder:
	return PayoutOrder.objects.get(merchant=merchant, external_order_id=external_order_id)

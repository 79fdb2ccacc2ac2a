"""Fee calculation and rate resolution.

Pay-in: fee = round2(amount * rate), net = round2(amount - fee).
Payout: fee = round2(amount * rate) + fixed, total deduction = amount + fee.

Global rates live in GatewaySetting rows (editable at runtime) and fall back to
the DEFAULT_* values in settings. A merchant's own rate wins over the global one.
"""
from dataclasses import dataclass
from decimal import Decimal

from django.conf import settings

from .constants import round2, to_decimal
from .models import GatewaySetting, Merchant

PAYIN_RATE = "payin_rate"
PAYOUT_RATE = "payout_rate"
PAYOUT_FIXED_FEE = "payout_fixed_fee"
ADMIN_PAYIN_COST = "admin_payin_cost"


@dataclass(frozen=True)
class PayinFee:
	fee: Decimal
	net_amount: Decimal


@dataclass(frozen=True)
class PayoutFee:
	fee: Decimal
	percentage_fee: Decimal
	fixed_fee: Decimal
	amount: Decimal
	total_deduction: Decimal


@dataclass(frozen=True)
class Rates:
	payin_rate: Decimal
	payout_rate: Decimal
	payout_fixed_fee: Decimal


def calculate_payin_fee(amount, rate) -> PayinFee:
	amount = to_decimal(amount)
	fee = round2(amount * to_decimal(rate))
	return PayinFee(fee=fee, net_amount=round2(amount - fee))


def calculate_payout_fee(amount, rate, fixed_fee) -> PayoutFee:
	amount = round2(amount)
	percentage_fee = round2(amount * to_decimal(rate))
	fixed_fee = round2(fixed_fee)
	fee = round2(percentage_fee + fixed_fee)
	return PayoutFee(
		fee=fee,
		percentage_fee=percentage_fee,
		fixed_fee=fixed_fee,
		amount=amount,
		total_deduction=round2(amount + fee),
	)


def _setting(key: str, default) -> Decimal:
	row = GatewaySetting.objects.filter(key=key).first()
	if row is None:
		return to_decimal(default)
	return to_decimal(row.value)


def get_global_rates() -> Rates:
	return Rates(
		payin_rate=_setting(PAYIN_RATE, settings.DEFAULT_PAYIN_RATE),
		payout_rate=_setting(PAYOUT_RATE, settings.DEFAULT_PAYOUT_RATE),
		payout_fixed_fee=_setting(PAYOUT_FIXED_FEE, settings.DEFAULT_PAYOUT_FIXED_FEE),
	)


def resolve_merchant_rates(merchant: Merchant) -> Rates:
	"""
	Effective rates for a merchant: its own override where set, global otherwise
	"""
	rates = get_global_rates()
	return Rates(
		payin_rate=merchant.payin_rate if merchant.payin_rate is not None else rates.payin_rate,
		payout_rate=merchant.payout_rate if merchant.payout_rate is not None else rates.payout_rate,
		payout_fixed_fee=rates.payout_fixed_fee,
	)


def get_admin_cost_rate() -> Decimal:
	"""
	What the channel charges the operator per pay-in, as a fraction of gross
	"""
	return _setting(ADMIN_PAYIN_COST, settings.DEFAULT_ADMIN_PAYIN_COST)


def set_global_rate(key: str, value) -> None:
	GatewaySetting.objects.update_or_create(key=key, defaults={"value": str(to_decimal(value))})

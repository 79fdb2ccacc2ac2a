"""Money helpers and channel-wide constants.


- round2 quantizes to paise with half-up rounding; every fee/net goes through it.
- to_decimal accepts str/int/float/Decimal from JSON bodies and form posts.
- js_number renders amounts the way merchants' JavaScript SDKs print numbers,
  which matters for signature strings and notification bodies.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")

# Minimum pay-in per channel (INR)
PAYIN_MINIMUMS = {
	"silkpay": Decimal("100"),
	"hdpay": Decimal("100"),
	"f2pay": Decimal("200"),
	"yellow": Decimal("200"),
}
DEFAULT_PAYIN_MINIMUM = Decimal("100")

# Minimum bank payout (INR) and USDT payout (USDT, converted with settings.USDT_RATE)
BANK_PAYOUT_MINIMUM = Decimal("100")
USDT_PAYOUT_MINIMUM_USDT = Decimal("500")
USDT_NETWORKS = ("TRC20", "ERC20", "BEP20")

# Order id prefix per channel
ORDER_PREFIXES = {
	"yellow": "YELLOW",
	"f2pay": "PI",
}
DEFAULT_ORDER_PREFIX = "HDP"
PAYOUT_ORDER_PREFIX = "HDO"


def to_decimal(value) -> Decimal:
	"""
	Convert a request value into Decimal; raises ValueError for garbage
	"""
	if isinstance(value, Decimal):
		return value
	if value is None or isinstance(value, bool):
		raise ValueError(f"not a number: {value!r}")
	try:
		# str() first so floats keep their printed value (0.1 -> "0.1")
		d = Decimal(str(value).strip())
	except InvalidOperation:
		raise ValueError(f"not a number: {value!r}")
	if not d.is_finite():
		raise ValueError(f"not a number: {value!r}")
	return d


def round2(value) -> Decimal:
	return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def js_number(value):
	"""
	Decimal -> int when integral, float otherwise (95.00 -> 95, 94.50 -> 94.5)
	"""
	d = to_decimal(value)
	if d == d.to_integral_value():
		return int(d)
	return float(d)

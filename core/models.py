"""Database models for the gateway ledger.


Tables:
- Merchant: API identity, signing secret and the balance ledger (admin rows hold operator profit)
- GatewaySetting: runtime-editable global rates
- OrderStatus
- PayinOrder: collection orders, created pending and settled exactly once
- PayoutOrder: disbursements, reserved at creation and refunded once on failure
- CallbackAuditRecord: append-only log of every inbound webhook, matched or not
"""

import uuid
from django.db import models


def gen_merchant_external_id():
	return str(uuid.uuid4())


def gen_merchant_secret():
	# Named function = migration-friendly
	return "MK_" + uuid.uuid4().hex[:24].upper()


class MerchantRole(models.TextChoices):
	MERCHANT = "merchant", "Merchant"
	ADMIN = "admin", "Admin"


class MerchantStatus(models.TextChoices):
	ACTIVE = "active", "Active"
	SUSPENDED = "suspended", "Suspended"


class Merchant(models.Model):
	"""
	A merchant account. The balance column is the ledger: it only moves through
	the primitives in core.services, always as an F() delta.
	"""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	external_id = models.CharField(max_length=64, unique=True, default=gen_merchant_external_id)
	username = models.CharField(max_length=150, unique=True)
	name = models.CharField(max_length=200, blank=True, default="")
	secret = models.CharField(max_length=64, unique=True, default=gen_merchant_secret)
	role = models.CharField(max_length=16, choices=MerchantRole.choices, default=MerchantRole.MERCHANT)
	status = models.CharField(max_length=16, choices=MerchantStatus.choices, default=MerchantStatus.ACTIVE)
	balance = models.DecimalField(max_digits=18, decimal_places=2, default=0)
	callback_url = models.URLField(max_length=500, blank=True, default="")
	channel = models.CharField(max_length=32, blank=True, default="") # empty => settings.DEFAULT_CHANNEL
	payin_rate = models.DecimalField(max_digits=6, decimal_places=4, null=True, blank=True)
	payout_rate = models.DecimalField(max_digits=6, decimal_places=4, null=True, blank=True)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	def __str__(self):
		return self.username


class GatewaySetting(models.Model):
	"""
	Key/value overrides for global rates: payin_rate, payout_rate,
	payout_fixed_fee, admin_payin_cost.
	"""
	key = models.CharField(max_length=64, primary_key=True)
	value = models.CharField(max_length=64)
	updated_at = models.DateTimeField(auto_now=True)


class OrderStatus(models.TextChoices):
	PENDING = "pending", "Pending"
	SUCCESS = "success", "Success"
	FAILED = "failed", "Failed"


class PayinOrder(models.Model):
	"""
	A collection order. external_order_id is the merchant's id (globally unique),
	platform_order_id the upstream channel's.

	frozen_rate is captured at creation so later global-rate changes never touch
	settled orders. passthrough keeps exactly what was promised at creation time
	(callback override, opaque param, return URL, deep links).
	"""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	external_order_id = models.CharField(max_length=100, unique=True)
	platform_order_id = models.CharField(max_length=100, blank=True, default="", db_index=True)
	merchant = models.ForeignKey(Merchant, on_delete=models.PROTECT, related_name="payins")
	channel = models.CharField(max_length=32)
	gross_amount = models.DecimalField(max_digits=18, decimal_places=2)
	fee = models.DecimalField(max_digits=18, decimal_places=2, default=0)
	net_amount = models.DecimalField(max_digits=18, decimal_places=2, default=0)
	frozen_rate = models.DecimalField(max_digits=6, decimal_places=4)
	status = models.CharField(max_length=16, choices=OrderStatus.choices, default=OrderStatus.PENDING, db_index=True)
	reference = models.CharField(max_length=100, blank=True, default="") # UTR
	payment_url = models.URLField(max_length=1000, blank=True, default="")
	passthrough = models.JSONField(default=dict, blank=True)
	raw_callback_payload = models.JSONField(null=True, blank=True)
	auto_success_due_at = models.DateTimeField(null=True, blank=True, db_index=True)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	@property
	def is_terminal(self):
		return self.status != OrderStatus.PENDING


class PayoutType(models.TextChoices):
	BANK = "bank", "Bank"
	USDT = "usdt", "USDT"


class PayoutSource(models.TextChoices):
	API = "api", "API"
	MANUAL = "manual", "Manual"


class PayoutOrder(models.Model):
	"""
	A disbursement. amount+fee is debited from the merchant when the row is
	created; success leaves the balance alone, failure refunds it once.
	"""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	external_order_id = models.CharField(max_length=100, unique=True)
	platform_order_id = models.CharField(max_length=100, blank=True, default="", db_index=True)
	merchant = models.ForeignKey(Merchant, on_delete=models.PROTECT, related_name="payouts")
	channel = models.CharField(max_length=32, blank=True, default="")
	payout_type = models.CharField(max_length=8, choices=PayoutType.choices)
	source = models.CharField(max_length=8, choices=PayoutSource.choices, default=PayoutSource.API)
	amount = models.DecimalField(max_digits=18, decimal_places=2)
	fee = models.DecimalField(max_digits=18, decimal_places=2, default=0)
	status = models.CharField(max_length=16, choices=OrderStatus.choices, default=OrderStatus.PENDING, db_index=True)
	# destination
	account_number = models.CharField(max_length=64, blank=True, default="")
	ifsc_code = models.CharField(max_length=32, blank=True, default="")
	account_name = models.CharField(max_length=200, blank=True, default="")
	wallet_address = models.CharField(max_length=128, blank=True, default="")
	network = models.CharField(max_length=16, blank=True, default="")
	# notification
	callback_url = models.URLField(max_length=500, blank=True, default="")
	param = models.TextField(blank=True, default="")
	# settlement / approval
	reference = models.CharField(max_length=100, blank=True, default="")
	message = models.CharField(max_length=255, blank=True, default="")
	raw_callback_payload = models.JSONField(null=True, blank=True)
	approved_by = models.CharField(max_length=150, blank=True, default="")
	approved_at = models.DateTimeField(null=True, blank=True)
	rejection_reason = models.CharField(max_length=255, blank=True, default="")
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	@property
	def total_deduction(self):
		return self.amount + self.fee


class AuditOutcome(models.TextChoices):
	RECEIVED = "received", "Received"
	UNMATCHED = "unmatched", "Unmatched"
	BAD_SIGNATURE = "bad_signature", "Bad signature"
	APPLIED = "applied", "Applied"
	DUPLICATE = "duplicate", "Duplicate"
	IGNORED = "ignored", "Ignored"
	ERROR = "error", "Error"


class CallbackAuditRecord(models.Model):
	"""
	Immutable log of inbound callbacks. Written before any lookup so that
	unmatched and forged deliveries are kept too; outcome is the only field
	updated afterwards.
	"""
	id = models.BigAutoField(primary_key=True)
	kind = models.CharField(max_length=40) # 'silkpay_payin', 'yellow_auto_success', ...
	channel = models.CharField(max_length=32)
	order_ref = models.CharField(max_length=100, blank=True, default="")
	request_body = models.JSONField(default=dict)
	status = models.CharField(max_length=32, blank=True, default="") # upstream status code as received
	outcome = models.CharField(max_length=16, choices=AuditOutcome.choices, default=AuditOutcome.RECEIVED)
	created_at = models.DateTimeField(auto_now_add=True)

	class Meta:
		indexes = [
			models.Index(fields=["order_ref"], name="core_callback_order_ref_idx"),
		]

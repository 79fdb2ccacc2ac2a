import uuid

import django.db.models.deletion
from django.db import migrations, models

import core.models


class Migration(migrations.Migration):

	initial = True

	dependencies = []

	operations = [
		migrations.CreateModel(
			name="Merchant",
			fields=[
				("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
				("external_id", models.CharField(default=core.models.gen_merchant_external_id, max_length=64, unique=True)),
				("username", models.CharField(max_length=150, unique=True)),
				("name", models.CharField(blank=True, default="", max_length=200)),
				("secret", models.CharField(default=core.models.gen_merchant_secret, max_length=64, unique=True)),
				("role", models.CharField(choices=[("merchant", "Merchant"), ("admin", "Admin")], default="merchant", max_length=16)),
				("status", models.CharField(choices=[("active", "Active"), ("suspended", "Suspended")], default="active", max_length=16)),
				("balance", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
				("callback_url", models.URLField(blank=True, default="", max_length=500)),
				("channel", models.CharField(blank=True, default="", max_length=32)),
				("payin_rate", models.DecimalField(blank=True, decimal_places=4, max_digits=6, null=True)),
				("payout_rate", models.DecimalField(blank=True, decimal_places=4, max_digits=6, null=True)),
				("created_at", models.DateTimeField(auto_now_add=True)),
				("updated_at", models.DateTimeField(auto_now=True)),
			],
		),
		migrations.CreateModel(
			name="GatewaySetting",
			fields=[
				("key", models.CharField(max_length=64, primary_key=True, serialize=False)),
				("value", models.CharField(max_length=64)),
				("updated_at", models.DateTimeField(auto_now=True)),
			],
		),
		migrations.CreateModel(
			name="CallbackAuditRecord",
			fields=[
				("id", models.BigAutoField(primary_key=True, serialize=False)),
				("kind", models.CharField(max_length=40)),
				("channel", models.CharField(max_length=32)),
				("order_ref", models.CharField(blank=True, default="", max_length=100)),
				("request_body", models.JSONField(default=dict)),
				("status", models.CharField(blank=True, default="", max_length=32)),
				("outcome", models.CharField(
					choices=[
						("received", "Received"), ("unmatched", "Unmatched"), ("bad_signature", "Bad signature"),
						("applied", "Applied"), ("duplicate", "Duplicate"), ("ignored", "Ignored"), ("error", "Error"),
					],
					default="received", max_length=16,
				)),
				("created_at", models.DateTimeField(auto_now_add=True)),
			],
			options={
				"indexes": [models.Index(fields=["order_ref"], name="core_callback_order_ref_idx")],
			},
		),
		migrations.CreateModel(
			name="PayinOrder",
			fields=[
				("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
				("external_order_id", models.CharField(max_length=100, unique=True)),
				("platform_order_id", models.CharField(blank=True, db_index=True, default="", max_length=100)),
				("channel", models.CharField(max_length=32)),
				("gross_amount", models.DecimalField(decimal_places=2, max_digits=18)),
				("fee", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
				("net_amount", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
				("frozen_rate", models.DecimalField(decimal_places=4, max_digits=6)),
				("status", models.CharField(choices=[("pending", "Pending"), ("success", "Success"), ("failed", "Failed")], db_index=True, default="pending", max_length=16)),
				("reference", models.CharField(blank=True, default="", max_length=100)),
				("payment_url", models.URLField(blank=True, default="", max_length=1000)),
				("passthrough", models.JSONField(blank=True, default=dict)),
				("raw_callback_payload", models.JSONField(blank=True, null=True)),
				("auto_success_due_at", models.DateTimeField(blank=True, db_index=True, null=True)),
				("created_at", models.DateTimeField(auto_now_add=True)),
				("updated_at", models.DateTimeField(auto_now=True)),
				("merchant", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="payins", to="core.merchant")),
			],
		),
		migrations.CreateModel(
			name="PayoutOrder",
			fields=[
				("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
				("external_order_id", models.CharField(max_length=100, unique=True)),
				("platform_order_id", models.CharField(blank=True, db_index=True, default="", max_length=100)),
				("channel", models.CharField(blank=True, default="", max_length=32)),
				("payout_type", models.CharField(choices=[("bank", "Bank"), ("usdt", "USDT")], max_length=8)),
				("source", models.CharField(choices=[("api", "API"), ("manual", "Manual")], default="api", max_length=8)),
				("amount", models.DecimalField(decimal_places=2, max_digits=18)),
				("fee", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
				("status", models.CharField(choices=[("pending", "Pending"), ("success", "Success"), ("failed", "Failed")], db_index=True, default="pending", max_length=16)),
				("account_number", models.CharField(blank=True, default="", max_length=64)),
				("ifsc_code", models.CharField(blank=True, default="", max_length=32)),
				("account_name", models.CharField(blank=True, default="", max_length=200)),
				("wallet_address", models.CharField(blank=True, default="", max_length=128)),
				("network", models.CharField(blank=True, default="", max_length=16)),
				("callback_url", models.URLField(blank=True, default="", max_length=500)),
				("param", models.TextField(blank=True, default="")),
				("reference", models.CharField(blank=True, default="", max_length=100)),
				("message", models.CharField(blank=True, default="", max_length=255)),
				("raw_callback_payload", models.JSONField(blank=True, null=True)),
				("approved_by", models.CharField(blank=True, default="", max_length=150)),
				("approved_at", models.DateTimeField(blank=True, null=True)),
				("rejection_reason", models.CharField(blank=True, default="", max_length=255)),
				("created_at", models.DateTimeField(auto_now_add=True)),
				("updated_at", models.DateTimeField(auto_now=True)),
				("merchant", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="payouts", to="core.merchant")),
			],
		),
	]

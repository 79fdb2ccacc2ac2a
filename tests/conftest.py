from decimal import Decimal
from unittest import mock

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from core.models import Merchant, MerchantRole, OrderStatus, PayinOrder, PayoutOrder, PayoutType, PayoutSource
from helpers import GTPAY_PAYIN_KEY, GTPAY_PAYOUT_KEY, HDPAY_SECRET, MERCHANT_CALLBACK, SANDBOX_SECRET, SILKPAY_SECRET, fake_response


@pytest.fixture(scope="session")
def rsa_keys():
	key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
	private_pem = key.private_bytes(
		serialization.Encoding.PEM, serialization.PrivateFormat.PKCS8, serialization.NoEncryption(),
	).decode()
	public_pem = key.public_key().public_bytes(
		serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo,
	).decode()
	return {"private": private_pem, "public": public_pem}


@pytest.fixture(autouse=True)
def gateway_settings(settings, rsa_keys):
	settings.APP_URL = "https://gw.test"
	settings.MERCHANT_NOTIFY_ASYNC = False
	settings.DEFAULT_CHANNEL = "silkpay"
	settings.DEFAULT_PAYIN_RATE = Decimal("0.05")
	settings.DEFAULT_PAYOUT_RATE = Decimal("0.03")
	settings.DEFAULT_PAYOUT_FIXED_FEE = Decimal("6")
	settings.DEFAULT_ADMIN_PAYIN_COST = Decimal("0.03")
	settings.YELLOW_AUTO_SUCCESS_RATE = 30
	settings.AUTO_SUCCESS_DELAY_SECONDS = 60
	f2pay = {
		"base_url": "https://f2pay.test",
		"merchant_id": "F2",
		"public_key": rsa_keys["public"],
		"private_key": rsa_keys["private"],
	}
	settings.CHANNEL_CREDENTIALS = {
		"silkpay": {"base_url": "https://silkpay.test", "merchant_id": "M1", "secret": SILKPAY_SECRET},
		"hdpay": {"base_url": "https://hdpay.test", "merchant_id": "H1", "secret": HDPAY_SECRET},
		"f2pay": f2pay,
		"yellow": dict(f2pay),
		"gtpay": {
			"base_url": "https://gtpay.test",
			"merchant_id": "GT1",
			"secret": GTPAY_PAYIN_KEY,
			"payout_secret": GTPAY_PAYOUT_KEY,
		},
	}
	settings.SANDBOX_MERCHANT_USERNAME = "demo"
	settings.CHANNEL_SANDBOX_CREDENTIALS = {
		"silkpay": {"base_url": "https://sandbox.silkpay.test", "merchant_id": "TEST", "secret": SANDBOX_SECRET},
	}
	return settings


@pytest.fixture(autouse=True)
def http():
	"""
	Every outbound POST (channels and merchant notifications) goes through requests.post
	"""
	with mock.patch("requests.post") as post:
		post.return_value = fake_response({})
		yield post


@pytest.fixture
def admin(db):
	return Merchant.objects.create(username="operator", role=MerchantRole.ADMIN, balance=Decimal("0"))


@pytest.fixture
def merchant(db, admin):
	return Merchant.objects.create(
		username="acme",
		name="Acme Ltd",
		secret="MK_ACMETESTSECRET0000000",
		callback_url=MERCHANT_CALLBACK,
		channel="silkpay",
		balance=Decimal("0"),
	)


@pytest.fixture
def demo_merchant(db, admin):
	return Merchant.objects.create(username="demo", secret="MK_DEMO00000000000000000", callback_url=MERCHANT_CALLBACK)


@pytest.fixture
def make_payin():
	def _make(merchant, amount="100", channel="silkpay", rate="0.05", order_id="ORD-1", platform_id="SP-1", **extra):
		return PayinOrder.objects.create(
			external_order_id=order_id,
			platform_order_id=platform_id,
			merchant=merchant,
			channel=channel,
			gross_amount=Decimal(amount),
			fee=Decimal("0"),
			net_amount=Decimal("0"),
			frozen_rate=Decimal(rate),
			passthrough=extra.pop("passthrough", {}),
			**extra,
		)
	return _make


@pytest.fixture
def make_payout():
	"""
	A pending payout. The merchant balance is left alone, as if the
	reservation had been taken before the fixture ran.
	"""
	def _make(merchant, amount="1000", fee="36", order_id="PO-1", platform_id="SPO-1", channel="silkpay", **extra):
		payout = PayoutOrder.objects.create(
			external_order_id=order_id,
			platform_order_id=platform_id,
			merchant=merchant,
			channel=channel,
			payout_type=extra.pop("payout_type", PayoutType.BANK),
			source=extra.pop("source", PayoutSource.API),
			amount=Decimal(amount),
			fee=Decimal(fee),
			status=OrderStatus.PENDING,
			**extra,
		)
		return payout
	return _make

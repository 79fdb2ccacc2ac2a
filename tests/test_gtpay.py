import hashlib
import json
from decimal import Decimal

import pytest

from core.exceptions import UpstreamCreateError
from core.models import AuditOutcome, CallbackAuditRecord, Merchant, OrderStatus, PayinOrder
from core.orders import create_payin_order, create_payout_order
from core.reconciliation import ReconciliationEngine
from core.signatures import AESEnvelopeSigner, aes_decrypt, aes_encrypt
from helpers import GTPAY_PAYIN_KEY, GTPAY_PAYOUT_KEY, MERCHANT_CALLBACK, fake_response, gtpay_body

pytestmark = pytest.mark.django_db

BANK = {"type": "bank", "account_number": "1234567890", "ifsc_code": "HDFC0001234", "account_name": "R Kumar"}


@pytest.fixture
def gt_merchant(merchant):
	Merchant.objects.filter(pk=merchant.pk).update(channel="gtpay")
	merchant.refresh_from_db()
	return merchant


def payin_data(order, result="success", amount="100.00"):
	return {
		"commercialOrderNo": order.external_order_id,
		"orderNo": order.platform_order_id,
		"orderAmount": amount,
		"result": result,
	}


def sent_form(http):
	return http.call_args.kwargs["data"]


class TestEnvelope:

	def test_seal_then_verify(self):
		signer = AESEnvelopeSigner()
		body = signer.seal({"commercialOrderNo": "HDP_1", "orderAmount": "100.00"}, GTPAY_PAYIN_KEY)

		assert signer.verify(body, GTPAY_PAYIN_KEY)
		assert json.loads(signer.open(body, GTPAY_PAYIN_KEY)) == {"commercialOrderNo": "HDP_1", "orderAmount": "100.00"}
		assert not signer.verify(body, GTPAY_PAYOUT_KEY)
		assert not signer.verify(dict(body, sign="0" * 32), GTPAY_PAYIN_KEY)
		assert not signer.verify({"sign": body["sign"]}, GTPAY_PAYIN_KEY)

	def test_sign_is_md5_of_the_plaintext(self):
		body = AESEnvelopeSigner().seal({"a": 1}, GTPAY_PAYIN_KEY)

		assert body["sign"] == hashlib.md5(b"{\"a\":1}").hexdigest()

	def test_hex_key_is_aes_128(self):
		key = "00112233445566778899aabbccddeeff"
		sealed = aes_encrypt("hello", key)
		assert aes_decrypt(sealed, key) == "hello"
		with pytest.raises(ValueError):
			aes_decrypt(sealed, GTPAY_PAYIN_KEY)


class TestAdapter:

	def test_create_payin_posts_sealed_form(self, gt_merchant, http):
		http.return_value = fake_response({"result": "success", "sysNo": "GTS-1", "payUrl": "https://pay.gtpay.test/GTS-1"})
		create_payin_order(gt_merchant, "100", external_order_id="SHOP-1")

		order = PayinOrder.objects.get(external_order_id="SHOP-1")
		assert order.channel == "gtpay"
		assert order.platform_order_id == "GTS-1"
		assert order.payment_url == "https://pay.gtpay.test/GTS-1"

		assert http.call_args.args[0] == "https://gtpay.test/api/pay/apply"
		form = sent_form(http)
		assert form["platformno"] == "GT1"
		assert form["payType"] == "8"
		data = json.loads(aes_decrypt(form["parameter"], GTPAY_PAYIN_KEY))
		assert data["commercialOrderNo"] == "SHOP-1"
		assert data["payAmount"] == "100.00"
		assert data["callBackUrl"] == "https://gw.test/api/callback/gtpay/payin"
		assert AESEnvelopeSigner().verify(form, GTPAY_PAYIN_KEY)

	def test_create_payin_refused(self, gt_merchant, http):
		http.return_value = fake_response({"result": "fail", "message": "channel closed"})
		with pytest.raises(UpstreamCreateError, match="channel closed"):
			create_payin_order(gt_merchant, "100", external_order_id="SHOP-1")
		assert not PayinOrder.objects.filter(external_order_id="SHOP-1").exists()

	def test_create_payout_uses_payout_key(self, gt_merchant, http):
		Merchant.objects.filter(pk=gt_merchant.pk).update(balance=Decimal("5000"))
		http.return_value = fake_response({"result": "processing", "outTradeNo": "GTO-1"})
		payout = create_payout_order(gt_merchant, "1000", "WD-1", BANK)

		assert payout.channel == "gtpay"
		assert payout.platform_order_id == "GTO-1"
		assert http.call_args.args[0] == "https://gtpay.test/api/guest/instead/insPay"
		form = sent_form(http)
		assert form["platformNo"] == "GT1"
		data = json.loads(aes_decrypt(form["parameter"], GTPAY_PAYOUT_KEY))
		assert data["commercialPayNo"] == "WD-1"
		assert data["totalAmount"] == "1000.00"
		assert data["payeeBank"] == "HDFCBK"
		assert data["payeeBankCode"] == "HDFC0001234"
		assert data["notifyUrl"] == "https://gw.test/api/callback/gtpay/payout"

	def test_create_payout_refused_refunds(self, gt_merchant, http):
		Merchant.objects.filter(pk=gt_merchant.pk).update(balance=Decimal("5000"))
		http.return_value = fake_response({"result": "error", "msg": "account blocked"})
		with pytest.raises(UpstreamCreateError, match="account blocked"):
			create_payout_order(gt_merchant, "1000", "WD-1", BANK)
		assert Merchant.objects.get(pk=gt_merchant.pk).balance == Decimal("5000.00")


class TestCallbacks:

	def test_payin_arrives_as_get(self, client, gt_merchant, admin, make_payin, http):
		order = make_payin(gt_merchant, channel="gtpay", order_id="HDP_1", platform_id="GTS-1")
		resp = client.get("/api/callback/gtpay/payin", data=gtpay_body(payin_data(order)))

		assert resp.status_code == 200
		assert resp.content == b"success"
		order.refresh_from_db()
		assert order.status == OrderStatus.SUCCESS
		assert order.net_amount == Decimal("95.00")
		gt_merchant.refresh_from_db()
		assert gt_merchant.balance == Decimal("95.00")
		assert [c.args[0] for c in http.call_args_list] == [MERCHANT_CALLBACK]

		again = client.get("/api/callback/gtpay/payin", data=gtpay_body(payin_data(order)))
		assert again.content == b"success"
		gt_merchant.refresh_from_db()
		assert gt_merchant.balance == Decimal("95.00")
		outcomes = list(CallbackAuditRecord.objects.order_by("id").values_list("outcome", flat=True))
		assert outcomes == [AuditOutcome.APPLIED, AuditOutcome.DUPLICATE]

	def test_payin_failure_result(self, client, gt_merchant, make_payin):
		order = make_payin(gt_merchant, channel="gtpay", order_id="HDP_1", platform_id="GTS-1")
		resp = client.get("/api/callback/gtpay/payin", data=gtpay_body(payin_data(order, result="fail")))

		assert resp.content == b"success"
		order.refresh_from_db()
		assert order.status == OrderStatus.FAILED

	def test_forged_payin_is_answered_faild(self, client, gt_merchant, make_payin):
		order = make_payin(gt_merchant, channel="gtpay", order_id="HDP_1", platform_id="GTS-1")
		body = gtpay_body(payin_data(order))
		body["sign"] = "0" * 32
		resp = client.get("/api/callback/gtpay/payin", data=body)

		assert resp.content == b"faild"
		order.refresh_from_db()
		assert order.status == OrderStatus.PENDING
		assert CallbackAuditRecord.objects.get().outcome == AuditOutcome.BAD_SIGNATURE

	def test_payin_under_the_wrong_key_is_answered_faild(self, client, gt_merchant, make_payin):
		order = make_payin(gt_merchant, channel="gtpay", order_id="HDP_1", platform_id="GTS-1")
		resp = client.get("/api/callback/gtpay/payin", data=gtpay_body(payin_data(order), key="someone-elses-k1"))

		assert resp.content == b"faild"
		order.refresh_from_db()
		assert order.status == OrderStatus.PENDING
		assert CallbackAuditRecord.objects.get().outcome == AuditOutcome.IGNORED

	def test_payout_failure_refunds_once(self, client, gt_merchant, make_payout):
		Merchant.objects.filter(pk=gt_merchant.pk).update(balance=Decimal("3964"))
		payout = make_payout(gt_merchant, channel="gtpay", order_id="WD-1", platform_id="GTO-1")
		data = {"outTradeNo": "WD-1", "tradeNo": "GTO-1", "totalAmount": "1000.00", "result": "failed", "msg": "IFSC invalid"}

		first = client.post("/api/callback/gtpay/payout", data=gtpay_body(data, key=GTPAY_PAYOUT_KEY))
		second = client.post("/api/callback/gtpay/payout", data=gtpay_body(data, key=GTPAY_PAYOUT_KEY))

		assert first.content == b"success"
		assert second.content == b"success"
		payout.refresh_from_db()
		assert payout.status == OrderStatus.FAILED
		assert payout.message == "IFSC invalid"
		assert Merchant.objects.get(pk=gt_merchant.pk).balance == Decimal("5000.00")

	def test_payout_success(self, client, gt_merchant, admin, make_payout):
		payout = make_payout(gt_merchant, channel="gtpay", order_id="WD-1", platform_id="GTO-1")
		data = {"outTradeNo": "WD-1", "tradeNo": "GTO-1", "totalAmount": "1000.00", "result": "success", "utr": "801115000444"}
		resp = client.post("/api/callback/gtpay/payout", data=gtpay_body(data, key=GTPAY_PAYOUT_KEY))

		assert resp.content == b"success"
		payout.refresh_from_db()
		assert payout.status == OrderStatus.SUCCESS
		assert payout.reference == "801115000444"
		admin.refresh_from_db()
		assert admin.balance == Decimal("36.00")

	def test_payout_signed_with_payin_key_is_rejected(self, client, gt_merchant, make_payout):
		payout = make_payout(gt_merchant, channel="gtpay", order_id="WD-1", platform_id="GTO-1")
		data = {"outTradeNo": "WD-1", "tradeNo": "GTO-1", "result": "success"}
		resp = client.post("/api/callback/gtpay/payout", data=gtpay_body(data, key=GTPAY_PAYIN_KEY))

		# payout rejections keep the plain acknowledgement
		assert resp.content == b"success"
		payout.refresh_from_db()
		assert payout.status == OrderStatus.PENDING

	def test_other_channels_stay_post_only(self, client):
		assert client.get("/api/callback/silkpay/payin").status_code == 405
		assert client.put("/api/callback/gtpay/payin").status_code == 405

	def test_unexpected_error_is_answered_faild(self, client, monkeypatch):
		def boom(*args, **kwargs):
			raise RuntimeError("db gone")
		monkeypatch.setattr(ReconciliationEngine, "handle", boom)

		assert client.get("/api/callback/gtpay/payin", data={"parameter": "x"}).content == b"faild"
		assert client.post("/api/callback/gtpay/payout", data={"parameter": "x"}).content == b"success"

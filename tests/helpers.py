"""Shared constants and signed-callback builders for the test suite."""
import json
from unittest import mock

from core.signatures import AESEnvelopeSigner, ConcatSigner, RSASigner, SortedParamsSigner

SILKPAY_SECRET = "silk-secret"
SANDBOX_SECRET = "SIb3DQEBAQ"
HDPAY_SECRET = "hd-key"
GTPAY_PAYIN_KEY = "gtpay-payin-key1"
GTPAY_PAYOUT_KEY = "gtpay-payoutkey1"
MERCHANT_CALLBACK = "https://merchant.test/notify"
TIMESTAMP = "1700000000000"


def fake_response(payload=None, status=200):
	resp = mock.Mock()
	resp.status_code = status
	resp.json.return_value = payload if payload is not None else {}
	resp.raise_for_status.return_value = None
	return resp


def silkpay_payin_body(order, status="1", amount="100", secret=SILKPAY_SECRET, utr="331115123456"):
	body = {
		"status": status,
		"amount": amount,
		"payOrderId": order.platform_order_id,
		"mId": "M1",
		"mOrderId": order.external_order_id,
		"utr": utr,
		"timestamp": TIMESTAMP,
	}
	body["sign"] = ConcatSigner(("amount", "mId", "mOrderId", "timestamp")).sign(body, secret)
	return body


def silkpay_payout_body(payout, status="2", secret=SILKPAY_SECRET, utr="041115654321", message=""):
	body = {
		"status": status,
		"amount": str(payout.amount),
		"payOrderId": payout.platform_order_id,
		"mId": "M1",
		"mOrderId": payout.external_order_id,
		"utr": utr,
		"timestamp": TIMESTAMP,
		"message": message,
	}
	body["sign"] = ConcatSigner(("mId", "mOrderId", "amount", "timestamp")).sign(body, secret)
	return body


def hdpay_payin_body(order, status="1", amount="100.00", secret=HDPAY_SECRET):
	body = {
		"merchantId": "H1",
		"merchantOrderId": order.external_order_id,
		"orderId": order.platform_order_id,
		"amount": amount,
		"payAmount": amount,
		"status": status,
		"msg": "",
		"utr": "501115000111",
	}
	body["sign"] = SortedParamsSigner(secret_label="key").sign(body, secret)
	return body


def f2pay_body(private_key, biz):
	body = {
		"code": "0000",
		"msg": "SUCCESS",
		"sysTime": TIMESTAMP,
		"bizContent": json.dumps(biz, separators=(",", ":")),
	}
	body["sign"] = RSASigner().sign(body, private_key)
	return body


def hdpay_payout_body(payout, status="1", secret=HDPAY_SECRET, msg=""):
	body = {
		"merchantId": "H1",
		"merchantPayoutId": payout.external_order_id,
		"payoutId": payout.platform_order_id,
		"amount": f"{payout.amount:.2f}",
		"status": status,
		"msg": msg,
		"utr": "601115000222",
	}
	body["sign"] = SortedParamsSigner(secret_label="key").sign(body, secret)
	return body


def gtpay_body(data, key=GTPAY_PAYIN_KEY):
	body = AESEnvelopeSigner().seal(data, key)
	body["platformno"] = "GT1"
	return body

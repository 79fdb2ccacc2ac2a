import uuid
from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError

from core.exceptions import InvalidTransition, UpstreamCreateError
from core.models import AuditOutcome, Merchant, OrderStatus, PayoutOrder, PayoutSource
from core.orders import create_payout_order
from core.reconciliation import ReconciliationEngine
from core.services import approve_payout, reconstruct_balance, reject_payout, reserve_payout_funds
from core.signatures import MERCHANT_SIGNER
from helpers import (
	MERCHANT_CALLBACK, f2pay_body, fake_response, hdpay_payout_body, silkpay_payin_body, silkpay_payout_body,
)

pytestmark = pytest.mark.django_db

BANK = {"type": "bank", "account_number": "1234567890", "ifsc_code": "hdfc0001234", "account_name": "R Kumar"}
USDT = {"type": "usdt", "wallet_address": "TXa1b2c3", "network": "trc20"}


@pytest.fixture
def funded(merchant):
	Merchant.objects.filter(pk=merchant.pk).update(balance=Decimal("5000"))
	merchant.refresh_from_db()
	return merchant


def balance(merchant):
	return Merchant.objects.get(pk=merchant.pk).balance


def test_bank_payout_reserves_and_goes_upstream(funded, http):
	http.return_value = fake_response({"status": 200, "data": {"payOrderId": "SPO-9"}})
	payout = create_payout_order(funded, "1000", "WD-1", BANK, callback_url="https://shop.test/payouts", param="w1")

	assert payout.status == OrderStatus.PENDING
	assert payout.fee == Decimal("36.00")
	assert payout.total_deduction == Decimal("1036.00")
	assert payout.platform_order_id == "SPO-9"
	assert payout.ifsc_code == "HDFC0001234"
	assert payout.source == PayoutSource.API
	assert balance(funded) == Decimal("3964.00")

	assert http.call_args.args[0] == "https://silkpay.test/transaction/payout"
	sent = http.call_args.kwargs["json"]
	assert sent["mOrderId"] == "WD-1"
	assert sent["notifyUrl"] == "https://gw.test/api/callback/silkpay/payout"
	assert sent["bankNo"] == "1234567890"


def test_insufficient_balance_reserves_nothing(merchant, http):
	with pytest.raises(ValidationError) as exc:
		create_payout_order(merchant, "1000", "WD-1", BANK)
	assert exc.value.messages == ["insufficient balance"]
	assert not PayoutOrder.objects.exists()
	assert balance(merchant) == Decimal("0")
	assert not http.called


def test_reserve_is_conditional(funded):
	reserve_payout_funds(funded.pk, Decimal("5000"))
	assert balance(funded) == Decimal("0")
	with pytest.raises(ValidationError):
		reserve_payout_funds(funded.pk, Decimal("0.01"))


def test_upstream_refusal_refunds(funded, http):
	http.return_value = fake_response({"status": 500, "message": "bank offline"})
	with pytest.raises(UpstreamCreateError):
		create_payout_order(funded, "1000", "WD-1", BANK)

	payout = PayoutOrder.objects.get(external_order_id="WD-1")
	assert payout.status == OrderStatus.FAILED
	assert payout.message == "bank offline"
	assert balance(funded) == Decimal("5000.00")


def test_bank_destination_is_required(funded):
	with pytest.raises(ValidationError):
		create_payout_order(funded, "1000", "WD-1", dict(BANK, ifsc_code=""))
	with pytest.raises(ValidationError):
		create_payout_order(funded, "50", "WD-1", BANK)
	assert balance(funded) == Decimal("5000")


def test_failure_webhook_refunds_once(funded, make_payout):
	Merchant.objects.filter(pk=funded.pk).update(balance=Decimal("3964"))
	payout = make_payout(funded)
	engine = ReconciliationEngine.for_channel("silkpay")

	first = engine.handle_payout(silkpay_payout_body(payout, status="3", message="Account closed"))
	second = engine.handle_payout(silkpay_payout_body(payout, status="3", message="Account closed"))

	assert first.outcome == AuditOutcome.APPLIED
	assert second.outcome == AuditOutcome.DUPLICATE
	assert balance(funded) == Decimal("5000.00")
	payout.refresh_from_db()
	assert payout.status == OrderStatus.FAILED
	assert payout.message == "Account closed"

	body = first.notification.body
	assert first.notification.url == MERCHANT_CALLBACK
	assert body["status"] == 2
	assert body["amount"] == 1000
	assert body["commission"] == 36
	assert body["message"] == "Account closed"
	assert MERCHANT_SIGNER.verify(body, funded.secret)


def test_success_webhook_books_fee_as_profit(funded, admin, make_payout):
	payout = make_payout(funded, callback_url="https://shop.test/payouts", param="w1")
	result = ReconciliationEngine.for_channel("silkpay").handle_payout(silkpay_payout_body(payout, status="2"))

	assert result.outcome == AuditOutcome.APPLIED
	assert balance(funded) == Decimal("5000")
	admin.refresh_from_db()
	assert admin.balance == Decimal("36.00")
	payout.refresh_from_db()
	assert payout.reference == "041115654321"
	assert result.notification.url == "https://shop.test/payouts"
	assert result.notification.body["status"] == 1
	assert result.notification.body["param"] == "w1"


def test_processing_webhook_is_ignored(funded, make_payout):
	payout = make_payout(funded)
	result = ReconciliationEngine.for_channel("silkpay").handle_payout(silkpay_payout_body(payout, status="1"))
	assert result.outcome == AuditOutcome.IGNORED
	payout.refresh_from_db()
	assert payout.status == OrderStatus.PENDING


def test_approve_payout(funded, admin, make_payout):
	payout = make_payout(funded, payout_type="usdt", source=PayoutSource.MANUAL, channel="")
	approved = approve_payout(payout.pk, approved_by="ops-1", reference="0xabc")

	assert approved.status == OrderStatus.SUCCESS
	assert approved.approved_by == "ops-1"
	assert approved.approved_at is not None
	assert approved.reference == "0xabc"
	assert balance(funded) == Decimal("5000")
	admin.refresh_from_db()
	assert admin.balance == Decimal("0")

	with pytest.raises(InvalidTransition):
		approve_payout(payout.pk, approved_by="ops-2")
	with pytest.raises(InvalidTransition):
		reject_payout(payout.pk, approved_by="ops-2")


def test_reject_payout_refunds(funded, make_payout):
	payout = make_payout(funded, payout_type="usdt", source=PayoutSource.MANUAL, channel="")
	rejected = reject_payout(payout.pk, approved_by="ops-1", reason="suspicious")

	assert rejected.status == OrderStatus.FAILED
	assert rejected.rejection_reason == "suspicious"
	assert balance(funded) == Decimal("6036.00")


def test_admin_cannot_settle_channel_payout(funded, admin, make_payout):
	Merchant.objects.filter(pk=funded.pk).update(balance=Decimal("3964"))
	payout = make_payout(funded)

	with pytest.raises(InvalidTransition, match="Payout not found or already processed"):
		reject_payout(payout.pk, approved_by="ops-1", reason="looks stuck")
	with pytest.raises(InvalidTransition):
		approve_payout(payout.pk, approved_by="ops-1")

	payout.refresh_from_db()
	assert payout.status == OrderStatus.PENDING
	assert payout.approved_by == ""
	assert balance(funded) == Decimal("3964.00")

	# the channel still owns the outcome: its later success is not a double pay
	result = ReconciliationEngine.for_channel("silkpay").handle_payout(silkpay_payout_body(payout, status="2"))
	assert result.outcome == AuditOutcome.APPLIED
	assert balance(funded) == Decimal("3964.00")
	admin.refresh_from_db()
	assert admin.balance == Decimal("36.00")


def test_approve_unknown_payout():
	with pytest.raises(InvalidTransition, match="Payout not found or already processed"):
		approve_payout(uuid.uuid4(), approved_by="ops-1")


def test_usdt_payout_waits_for_admin(funded, http):
	Merchant.objects.filter(pk=funded.pk).update(balance=Decimal("100000"))
	payout = create_payout_order(funded, "51500", None, USDT)

	assert payout.external_order_id.startswith("HDO_")
	assert payout.source == PayoutSource.MANUAL
	assert payout.channel == ""
	assert payout.network == "TRC20"
	assert payout.fee == Decimal("1551.00")
	assert balance(funded) == Decimal("46949.00")
	assert not http.called


def test_usdt_validation(funded):
	Merchant.objects.filter(pk=funded.pk).update(balance=Decimal("100000"))
	with pytest.raises(ValidationError, match="Minimum USDT withdrawal"):
		create_payout_order(funded, "51499", "WD-1", USDT)
	with pytest.raises(ValidationError, match="Invalid network"):
		create_payout_order(funded, "60000", "WD-1", dict(USDT, network="SOL"))
	with pytest.raises(ValidationError):
		create_payout_order(funded, "60000", "WD-1", dict(USDT, wallet_address=""))


def test_balance_matches_ledger_replay(merchant, make_payin, http):
	engine = ReconciliationEngine.for_channel("silkpay")
	for i, amount in enumerate(("1000", "2500", "700")):
		order = make_payin(merchant, amount=amount, order_id=f"ORD-{i}", platform_id=f"SP-{i}")
		engine.handle_payin(silkpay_payin_body(order, amount=amount))
	merchant.refresh_from_db()
	assert merchant.balance == Decimal("3990.00")

	http.return_value = fake_response({"status": 200, "data": {"payOrderId": "SPO-A"}})
	kept = create_payout_order(merchant, "1000", "WD-A", BANK)
	http.return_value = fake_response({"status": 200, "data": {"payOrderId": "SPO-B"}})
	failed = create_payout_order(merchant, "500", "WD-B", BANK)
	http.return_value = fake_response({"status": 500, "message": "down"})
	with pytest.raises(UpstreamCreateError):
		create_payout_order(merchant, "200", "WD-C", BANK)

	engine.handle_payout(silkpay_payout_body(kept, status="2"))
	engine.handle_payout(silkpay_payout_body(failed, status="3"))

	merchant.refresh_from_db()
	assert merchant.balance == Decimal("2954.00")
	assert reconstruct_balance(merchant) == merchant.balance


def test_hdpay_payout_success(funded, admin, make_payout):
	payout = make_payout(funded, channel="hdpay", order_id="HDO_1", platform_id="HP-1")
	engine = ReconciliationEngine.for_channel("hdpay")

	result = engine.handle_payout(hdpay_payout_body(payout, status="1"))
	again = engine.handle_payout(hdpay_payout_body(payout, status="1"))

	assert result.ack == "success"
	assert result.outcome == AuditOutcome.APPLIED
	assert again.outcome == AuditOutcome.DUPLICATE
	payout.refresh_from_db()
	assert payout.status == OrderStatus.SUCCESS
	assert payout.reference == "601115000222"
	assert balance(funded) == Decimal("5000")
	admin.refresh_from_db()
	assert admin.balance == Decimal("36.00")
	assert result.notification.body["status"] == 1


def test_hdpay_payout_failure_refunds_once(funded, admin, make_payout):
	Merchant.objects.filter(pk=funded.pk).update(balance=Decimal("3964"))
	payout = make_payout(funded, channel="hdpay", order_id="HDO_1", platform_id="HP-1")
	engine = ReconciliationEngine.for_channel("hdpay")

	body = hdpay_payout_body(payout, status="2", msg="Beneficiary bank down")
	first = engine.handle_payout(body)
	second = engine.handle_payout(body)

	assert first.outcome == AuditOutcome.APPLIED
	assert second.outcome == AuditOutcome.DUPLICATE
	assert second.notification is None
	payout.refresh_from_db()
	assert payout.status == OrderStatus.FAILED
	assert payout.message == "Beneficiary bank down"
	assert balance(funded) == Decimal("5000.00")
	admin.refresh_from_db()
	assert admin.balance == Decimal("0")


def test_hdpay_payout_forged_signature(funded, make_payout):
	payout = make_payout(funded, channel="hdpay", order_id="HDO_1", platform_id="HP-1")
	result = ReconciliationEngine.for_channel("hdpay").handle_payout(hdpay_payout_body(payout, status="2", secret="forged"))

	assert result.outcome == AuditOutcome.BAD_SIGNATURE
	payout.refresh_from_db()
	assert payout.status == OrderStatus.PENDING
	assert balance(funded) == Decimal("5000")


def test_f2pay_payout_paid(funded, admin, make_payout, rsa_keys):
	payout = make_payout(funded, channel="f2pay", order_id="PO-F2", platform_id="F2P-1")
	biz = {"mchOrderNo": "PO-F2", "platNo": "F2P-1", "state": "Paid", "amount": "1000.00", "trxId": "701115000333"}
	engine = ReconciliationEngine.for_channel("f2pay")

	result = engine.handle_payout(f2pay_body(rsa_keys["private"], biz))
	again = engine.handle_payout(f2pay_body(rsa_keys["private"], biz))

	assert result.outcome == AuditOutcome.APPLIED
	assert again.outcome == AuditOutcome.DUPLICATE
	payout.refresh_from_db()
	assert payout.status == OrderStatus.SUCCESS
	assert payout.reference == "701115000333"
	assert balance(funded) == Decimal("5000")
	admin.refresh_from_db()
	assert admin.balance == Decimal("36.00")


def test_f2pay_payout_failed_refunds_once(funded, make_payout, rsa_keys):
	Merchant.objects.filter(pk=funded.pk).update(balance=Decimal("3964"))
	payout = make_payout(funded, channel="f2pay", order_id="PO-F2", platform_id="F2P-1")
	body = f2pay_body(rsa_keys["private"], {"mchOrderNo": "PO-F2", "platNo": "F2P-1", "state": "Failed", "amount": "1000.00"})
	engine = ReconciliationEngine.for_channel("f2pay")

	first = engine.handle_payout(body)
	second = engine.handle_payout(body)

	assert first.outcome == AuditOutcome.APPLIED
	assert second.outcome == AuditOutcome.DUPLICATE
	payout.refresh_from_db()
	assert payout.status == OrderStatus.FAILED
	assert payout.message == "Payout Failed"
	assert balance(funded) == Decimal("5000.00")
	assert first.notification.body["status"] == 2


def test_callback_on_another_channel_does_not_match(funded, make_payout):
	payout = make_payout(funded, channel="silkpay", order_id="HDO_1", platform_id="HP-1")
	result = ReconciliationEngine.for_channel("hdpay").handle_payout(hdpay_payout_body(payout, status="2"))

	assert result.outcome == AuditOutcome.UNMATCHED
	payout.refresh_from_db()
	assert payout.status == OrderStatus.PENDING
	assert balance(funded) == Decimal("5000")

"""Auto-success for the yellow channel.

A configurable share of yellow pay-ins is marked paid about a minute after
creation, as if the channel had called back. Scheduling is a due-at timestamp
on the order; `manage.py run_auto_success` polls for due orders, so a restart
never loses a check and several pollers can run side by side (each order is
claimed by a conditional update before it is looked at).

Settlement goes through services.apply_payin_transition, the same primitive
the webhook path uses.
"""
import logging
import random
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from .models import AuditOutcome, OrderStatus, PayinOrder
from .notifications import build_payin_notification, dispatch
from .services import apply_payin_transition, mark_outcome, record_callback

logger = logging.getLogger(__name__)

CHANNEL = "yellow"

# leading digits of UTRs issued by common Indian banks
BANK_PREFIXES = ("03", "04", "05", "10", "11", "12", "33", "41", "50")


def success_rate() -> int:
	"""
	Percent of yellow orders to settle, clamped to 0..100
	"""
	try:
		rate = int(settings.YELLOW_AUTO_SUCCESS_RATE)
	except (TypeError, ValueError):
		return 30
	return max(0, min(100, rate))


def generate_realistic_utr(now=None, rng=None) -> str:
	"""
	12 digits: bank prefix + YYMMDD + 4 random digits
	"""
	rng = rng or random
	now = timezone.localtime(now or timezone.now())
	return f"{rng.choice(BANK_PREFIXES)}{now:%y%m%d}{rng.randint(0, 9999):04d}"


def schedule_auto_success(order: PayinOrder, now=None) -> bool:
	"""
	Persist the due time for one check. Rate 0 disables scheduling entirely.
	"""
	if success_rate() == 0:
		return False
	due = (now or timezone.now()) + timedelta(seconds=settings.AUTO_SUCCESS_DELAY_SECONDS)
	PayinOrder.objects.filter(pk=order.pk, status=OrderStatus.PENDING).update(auto_success_due_at=due)
	order.auto_success_due_at = due
	logger.info("auto-success check for %s due at %s (rate %s%%)", order.external_order_id, due.isoformat(), success_rate())
	return True


def _claim(order_id, now) -> bool:
	return PayinOrder.objects.filter(
		pk=order_id, auto_success_due_at__isnull=False, auto_success_due_at__lte=now,
	).update(auto_success_due_at=None) == 1


def check_order(order_id, now=None, rng=None) -> bool:
	"""
	Run one claimed check; True when the order was settled
	"""
	rng = rng or random
	order = PayinOrder.objects.filter(pk=order_id).first()
	if order is None or order.status != OrderStatus.PENDING or order.channel != CHANNEL:
		return False

	rate = success_rate()
	roll = rng.random() * 100
	if roll >= rate:
		logger.info("auto-success skipped for %s (roll %.1f, rate %s%%)", order.external_order_id, roll, rate)
		return False

	utr = generate_realistic_utr(now, rng)
	raw = {"autoSuccess": True, "rate": rate}
	transition = apply_payin_transition(order.pk, OrderStatus.SUCCESS, amount=order.gross_amount, reference=utr, raw=raw)
	if not transition.applied:
		return False

	record = record_callback("yellow_auto_success", CHANNEL, order.external_order_id, dict(raw, utr=utr), "success")
	mark_outcome(record, AuditOutcome.APPLIED)
	logger.info("auto-success: %s settled with utr %s", order.external_order_id, utr)
	dispatch(build_payin_notification(transition.order))
	return True


def run_due_checks(now=None, rng=None) -> int:
	"""
	Claim and run every due check; returns how many orders were settled
	"""
	now = now or timezone.now()
	due = PayinOrder.objects.filter(
		channel=CHANNEL, status=OrderStatus.PENDING, auto_success_due_at__lte=now,
	).values_list("pk", flat=True)

	settled = 0
	for order_id in list(due):
		if not _claim(order_id, now):
			continue # another poller got it
		try:
			if check_order(order_id, now, rng):
				settled += 1
		except Exception:
			logger.exception("auto-success check failed for %s", order_id)
	return settled

"""Public API surface.

- /callback/<channel>/<payin|payout>: upstream channel webhooks
- /payin/*, /payout/*: signed merchant API
- /admin/payouts/<id>/*: payout approval (authorized upstream of this service)
"""

from django.urls import path
from .views_ops import health, channel_callback, approve, reject
from .views_orders import payin_create, payin_submit_utr, payout_bank, payout_usdt
from .views_read import payin_query, payout_query


urlpatterns = [
	path("health", health),
	path("callback/<str:channel>/<str:kind>", channel_callback, name="channel_callback"),
	path("payin/create", payin_create),
	path("payin/query", payin_query),
	path("payin/submit-utr", payin_submit_utr),
	path("payout/bank", payout_bank),
	path("payout/usdt", payout_usdt),
	path("payout/query", payout_query),
	path("admin/payouts/<uuid:payout_id>/approve", approve, name="payout_approve"),
	path("admin/payouts/<uuid:payout_id>/reject", reject, name="payout_reject"),
]

"""URL routing for the gateway.


Everything lives under /api/: merchant API, channel webhooks and the admin
payout actions. Dashboard screens are served elsewhere.
"""

from django.urls import path, include


urlpatterns = [
	path("api/", include("api.urls")),
]

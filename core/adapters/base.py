"""Common plumbing for upstream channel adapters.

An adapter is bound to one set of credentials (production or sandbox) and
speaks one channel's create / payout / UTR-compensation API over HTTPS with a
bounded timeout. Callback parsing lives in core.channels, not here.
"""
import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

import requests
from django.conf import settings

from core.exceptions import UpstreamError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChannelCredentials:
	base_url: str
	merchant_id: str = ""
	secret: str = ""
	public_key: str = ""
	private_key: str = ""
	payout_secret: str = "" # channels that sign payouts with a separate key
	sandbox: bool = False

	@classmethod
	def from_dict(cls, data: dict, sandbox: bool = False) -> "ChannelCredentials":
		return cls(
			base_url=(data.get("base_url") or "").rstrip("/"),
			merchant_id=data.get("merchant_id", ""),
			secret=data.get("secret", ""),
			public_key=data.get("public_key", ""),
			private_key=data.get("private_key", ""),
			payout_secret=data.get("payout_secret", ""),
			sandbox=sandbox,
		)


@dataclass
class CreatedOrder:
	platform_order_id: str
	payment_url: str = ""
	deep_links: dict = field(default_factory=dict)


@dataclass
class ReferenceResult:
	"""
	What the channel says about an order after a UTR was submitted for it
	"""
	settled: bool
	failed: bool = False
	amount: Optional[Decimal] = None
	reference: str = ""
	raw: dict = field(default_factory=dict)


class ChannelAdapter:
	name = "base"

	def __init__(self, credentials: ChannelCredentials):
		self.credentials = credentials

	def _post(self, path: str, body: dict, form: bool = False) -> dict:
		"""
		POST JSON (or a urlencoded form), return the decoded JSON answer. Transport errors and non-JSON
		answers become UpstreamError; business-level codes are the caller's job.
		"""
		url = f"{self.credentials.base_url}{path}"
		started = time.monotonic()
		try:
			if form:
				resp = requests.post(url, data=body, timeout=settings.UPSTREAM_TIMEOUT)
			else:
				resp = requests.post(url, json=body, timeout=settings.UPSTREAM_TIMEOUT)
			resp.raise_for_status()
			data = resp.json()
		except requests.RequestException as e:
			logger.error("%s %s failed: %s", self.name, path, e)
			raise UpstreamError(f"{self.name} request failed: {e}") from e
		except ValueError as e:
			logger.error("%s %s returned non-JSON", self.name, path)
			raise UpstreamError(f"{self.name} returned an invalid response") from e
		logger.info("%s %s (%dms)", self.name, path, int((time.monotonic() - started) * 1000))
		if not isinstance(data, dict):
			raise UpstreamError(f"{self.name} returned an invalid response")
		return data

	def create_payin(self, order_id: str, amount: Decimal, notify_url: str, return_url: str) -> CreatedOrder:
		raise NotImplementedError

	def create_payout(self, order_id: str, amount: Decimal, notify_url: str, destination: dict) -> str:
		raise NotImplementedError

	def submit_reference(self, order_id: str, utr: str) -> ReferenceResult:
		raise NotImplementedError


def millis() -> str:
	return str(int(time.time() * 1000))

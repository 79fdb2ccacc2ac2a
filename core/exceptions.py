"""Gateway-specific errors.

Input validation uses django.core.exceptions.ValidationError; these cover the
upstream and downstream boundaries.
"""


class GatewayError(Exception):
	"""Base class for gateway errors."""


class UpstreamError(GatewayError):
	"""An upstream channel call failed or returned a non-success answer."""


class UpstreamCreateError(UpstreamError):
	"""The channel refused (or never answered) an order-create request."""


class SignatureError(GatewayError):
	"""A signed payload is malformed or its signature cannot be checked."""


class ForwardingError(GatewayError):
	"""A merchant callback endpoint was unreachable or answered with an error."""


class InvalidTransition(GatewayError):
	"""The order is not in a state that allows the requested transition."""

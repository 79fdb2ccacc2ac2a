"""Signature schemes used by channels and by our own merchant API.

Every scheme exposes the same two calls:

	sign(payload, secret) -> str
	verify(payload, secret) -> bool

Four families are in use:

- ConcatSigner: md5 over a fixed, ordered list of field values followed by the
  secret (Silkpay).
- SortedParamsSigner: drop `sign` and empty values, sort keys ascending, join as
  key=value&..., append &<label>=<secret>, md5 (HDPay, Yellow, and the signature we
  put on merchant notifications / expect on merchant API calls).
- RSASigner: SHA256withRSA over the `bizContent` string, base64 (F2PAY). The
  "secret" is a PEM (or bare base64) key: private to sign, public to verify.
- AESEnvelopeSigner: the JSON body travels AES-ECB encrypted in `parameter`
  and `sign` is md5 of the plaintext JSON (GTPAY). The secret is the AES key.

These canonicalisation rules are external contracts; the tests pin them.
"""
import base64
import hashlib
import hmac
import json
import logging
import re
from decimal import Decimal

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives import padding as sym_padding
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .constants import js_number

logger = logging.getLogger(__name__)


def _is_empty(value) -> bool:
	return value is None or value == ""


def render_value(value) -> str:
	"""
	String form of a value inside a signature string (JavaScript template semantics)
	"""
	if isinstance(value, bool):
		return "true" if value else "false"
	if isinstance(value, (int, float, Decimal)):
		return str(js_number(value))
	if isinstance(value, (dict, list)):
		return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
	return str(value)


def _md5(text: str) -> str:
	return hashlib.md5(text.encode("utf-8")).hexdigest()


def _same_hex(expected: str, received) -> bool:
	if not isinstance(received, str) or not received:
		return False
	return hmac.compare_digest(expected.lower(), received.strip().lower())


class Signer:
	"""
	Interface for a signature scheme
	"""
	name = "base"

	def sign(self, payload: dict, secret: str) -> str:
		raise NotImplementedError

	def verify(self, payload: dict, secret: str) -> bool:
		raise NotImplementedError

	def expected(self, payload: dict, secret: str) -> str:
		"""
		The signature we would have produced; used for mismatch diagnostics.
		"""
		try:
			return self.sign(payload, secret)
		except (KeyError, ValueError):
			return ""


class ConcatSigner(Signer):
	"""
	md5(field1 + field2 + ... + secret), lowercase hex
	"""
	name = "concat-md5"

	def __init__(self, fields):
		self.fields = tuple(fields)

	def sign(self, payload: dict, secret: str) -> str:
		missing = [f for f in self.fields if _is_empty(payload.get(f))]
		if missing:
			raise KeyError(f"missing signed fields: {', '.join(missing)}")
		text = "".join(render_value(payload[f]) for f in self.fields) + (secret or "")
		return _md5(text)

	def verify(self, payload: dict, secret: str) -> bool:
		if not secret:
			return False
		try:
			expected = self.sign(payload, secret)
		except KeyError:
			return False
		return _same_hex(expected, payload.get("sign"))


class SortedParamsSigner(Signer):
	"""
	md5("k1=v1&k2=v2...&<label>=<secret>") over non-empty params sorted by key
	"""
	name = "sorted-md5"

	def __init__(self, secret_label: str = "key", uppercase: bool = False):
		self.secret_label = secret_label
		self.uppercase = uppercase

	def canonical(self, payload: dict, secret: str) -> str:
		parts = [
			f"{key}={render_value(payload[key])}"
			for key in sorted(payload)
			if key != "sign" and not _is_empty(payload[key])
		]
		parts.append(f"{self.secret_label}={secret}")
		return "&".join(parts)

	def sign(self, payload: dict, secret: str) -> str:
		digest = _md5(self.canonical(payload, secret))
		return digest.upper() if self.uppercase else digest

	def verify(self, payload: dict, secret: str) -> bool:
		if not secret or _is_empty(payload.get("sign")):
			return False
		return _same_hex(self.sign(payload, secret), payload.get("sign"))


def format_pem(key: str, kind: str) -> bytes:
	"""
	Wrap a bare base64 key into PEM with 64-char lines; PEM input passes through
	"""
	if "-----BEGIN" in key:
		return key.encode("utf-8")
	body = re.sub(r"\s+", "", key)
	lines = [body[i:i + 64] for i in range(0, len(body), 64)]
	return ("-----BEGIN %s KEY-----\n%s\n-----END %s KEY-----\n" % (kind, "\n".join(lines), kind)).encode("utf-8")


def biz_content_string(payload: dict) -> str:
	"""
	bizContent exactly as signed: the raw string when the channel sent a string
	"""
	biz = payload.get("bizContent")
	if isinstance(biz, str):
		return biz
	if biz is None:
		raise KeyError("bizContent")
	return json.dumps(biz, separators=(",", ":"), ensure_ascii=False)


class RSASigner(Signer):
	"""
	SHA256withRSA (PKCS#1 v1.5) detached signature over bizContent, base64
	"""
	name = "rsa-sha256"

	def sign(self, payload: dict, secret: str) -> str:
		private_key = serialization.load_pem_private_key(format_pem(secret, "PRIVATE"), password=None)
		data = biz_content_string(payload).encode("utf-8")
		signature = private_key.sign(data, padding.PKCS1v15(), hashes.SHA256())
		return base64.b64encode(signature).decode("ascii")

	def verify(self, payload: dict, secret: str) -> bool:
		sign = payload.get("sign")
		if not secret or _is_empty(sign) or _is_empty(payload.get("bizContent")):
			return False
		try:
			public_key = serialization.load_pem_public_key(format_pem(secret, "PUBLIC"))
			signature = base64.b64decode(sign, validate=False)
			public_key.verify(signature, biz_content_string(payload).encode("utf-8"), padding.PKCS1v15(), hashes.SHA256())
			return True
		except InvalidSignature:
			return False
		except (ValueError, TypeError) as e:
			# unusable key or undecodable signature
			logger.error("rsa verify error: %s", e)
			return False

	def expected(self, payload: dict, secret: str) -> str:
		# no shared secret to recompute with
		return "<rsa:public-key>"


def aes_key(key: str) -> bytes:
	"""
	32 hex chars are a hex-encoded AES-128 key; anything else is used as raw
	utf-8 bytes (16, 24 or 32 of them)
	"""
	if len(key) == 32 and re.fullmatch(r"[0-9a-fA-F]+", key):
		return bytes.fromhex(key)
	return key.encode("utf-8")


def aes_encrypt(text: str, key: str) -> str:
	padder = sym_padding.PKCS7(128).padder()
	data = padder.update(text.encode("utf-8")) + padder.finalize()
	encryptor = Cipher(algorithms.AES(aes_key(key)), modes.ECB()).encryptor()
	return base64.b64encode(encryptor.update(data) + encryptor.finalize()).decode("ascii")


def aes_decrypt(text: str, key: str) -> str:
	"""
	Raises ValueError for a wrong key, bad padding or undecodable input
	"""
	decryptor = Cipher(algorithms.AES(aes_key(key)), modes.ECB()).decryptor()
	data = decryptor.update(base64.b64decode(text)) + decryptor.finalize()
	unpadder = sym_padding.PKCS7(128).unpadder()
	return (unpadder.update(data) + unpadder.finalize()).decode("utf-8")


class AESEnvelopeSigner(Signer):
	"""
	md5 (lowercase hex) over the plaintext JSON carried AES-ECB encrypted in `parameter`
	"""
	name = "aes-md5"

	def open(self, payload: dict, secret: str) -> str:
		parameter = payload.get("parameter")
		if _is_empty(parameter):
			raise KeyError("parameter")
		return aes_decrypt(str(parameter), secret)

	def seal(self, data: dict, secret: str) -> dict:
		"""
		{parameter, sign} for an outgoing request body
		"""
		text = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
		return {"parameter": aes_encrypt(text, secret), "sign": _md5(text)}

	def sign(self, payload: dict, secret: str) -> str:
		return _md5(self.open(payload, secret))

	def verify(self, payload: dict, secret: str) -> bool:
		if not secret or _is_empty(payload.get("sign")):
			return False
		try:
			expected = self.sign(payload, secret)
		except KeyError:
			return False
		except ValueError as e:
			logger.error("aes envelope cannot be opened: %s", e)
			return False
		return _same_hex(expected, payload.get("sign"))


# Signature on merchant notifications and on merchant API requests
MERCHANT_SIGNER = SortedParamsSigner(secret_label="secret", uppercase=True)


def sign_for_merchant(payload: dict, merchant_secret: str) -> dict:
	"""
	Return a copy of payload with `sign` set using the merchant's own secret
	"""
	body = dict(payload)
	body.pop("sign", None)
	body["sign"] = MERCHANT_SIGNER.sign(body, merchant_secret)
	return body

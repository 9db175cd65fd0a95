"""Adapters over the external settlement provider (bill payments, bank payouts).

HttpProviderClient talks to the real provider over HTTP; StubProviderClient calls
the provider_stub ORM directly for repeatable, deterministic runs. Both reduce
every answer to one of three outcomes: SUCCESS, FAILED or AMBIGUOUS. Anything
that is not a definitive answer (timeouts, dropped connections, 5xx, "pending"
codes, unreadable bodies) is AMBIGUOUS, never FAILED.
"""

import enum
import logging
from dataclasses import dataclass, field

import requests
from django.conf import settings

from provider_stub.models import ProviderStubPayment, payment_payload, submit_payment

logger = logging.getLogger(__name__)

SUCCESS_CODES = frozenset({"00", "success", "successful"})
PENDING_CODES = frozenset({"09", "pending", "processing"})
FAILED_CODES = frozenset({"failed", "rejected"})
# Transient statuses: the provider may still complete the request
RETRYABLE_HTTP = frozenset({408, 429})


class ProviderOutcome(enum.Enum):
	SUCCESS = "success"
	FAILED = "failed"
	AMBIGUOUS = "ambiguous"


@dataclass(frozen=True)
class ProviderResult:
	outcome: ProviderOutcome
	payload: dict | None = field(default=None)


def classify_response(status_code: int, body) -> ProviderResult:
	"""
	Map an HTTP status + decoded body of a purchase/payout request to an outcome.
	"""
	payload = body if isinstance(body, dict) else {"raw": body}
	code = str(payload.get("code", "")).lower()
	status = str(payload.get("status", "")).lower()

	if 200 <= status_code < 300:
		if code in SUCCESS_CODES or status in SUCCESS_CODES:
			return ProviderResult(ProviderOutcome.SUCCESS, payload)
		if status in FAILED_CODES:
			return ProviderResult(ProviderOutcome.FAILED, payload)
		# 2xx with a pending or unknown code: accepted but not confirmed
		return ProviderResult(ProviderOutcome.AMBIGUOUS, payload)

	if 400 <= status_code < 500 and status_code not in RETRYABLE_HTTP:
		return ProviderResult(ProviderOutcome.FAILED, payload)

	return ProviderResult(ProviderOutcome.AMBIGUOUS, payload)


def classify_status_response(status_code: int, body) -> ProviderResult:
	"""
	Map the answer to a status lookup. Only a 2xx body can settle a reference:
	an error on the lookup itself (bad credentials, unknown route or reference,
	outage) says nothing about the original request.
	"""
	if 200 <= status_code < 300:
		return classify_response(status_code, body)
	payload = body if isinstance(body, dict) else {"raw": body}
	return ProviderResult(ProviderOutcome.AMBIGUOUS, {**payload, "http_status": status_code})


class HttpProviderClient:
	"""
	requests-based client. Every call is bounded by PROVIDER_TIMEOUT_SECONDS.
	"""

	def __init__(self, base_url: str | None = None, account_id: str | None = None,
			api_token: str | None = None, timeout: float | None = None, session=None):
		self.base_url = (base_url or getattr(settings, "PROVIDER_BASE_URL", "")).rstrip("/")
		self.account_id = account_id if account_id is not None else getattr(settings, "PROVIDER_ACCOUNT_ID", "")
		self.api_token = api_token if api_token is not None else getattr(settings, "PROVIDER_API_TOKEN", "")
		self.timeout = timeout or getattr(settings, "PROVIDER_TIMEOUT_SECONDS", 15)
		self.session = session or requests.Session()

	def _headers(self) -> dict:
		headers = {"Content-Type": "application/json", "accountId": self.account_id}
		if self.api_token:
			headers["Authorization"] = f"Bearer {self.api_token}"
		return headers

	def _send(self, method: str, path: str, body: dict | None = None, classify=classify_response) -> ProviderResult:
		url = f"{self.base_url}/{path.lstrip('/')}"
		try:
			resp = self.session.request(method, url, json=body, headers=self._headers(), timeout=self.timeout)
		except requests.Timeout as e:
			logger.warning("provider %s %s timed out: %s", method, url, e)
			return ProviderResult(ProviderOutcome.AMBIGUOUS, {"error": "timeout", "detail": str(e)})
		except requests.RequestException as e:
			logger.warning("provider %s %s unreachable: %s", method, url, e)
			return ProviderResult(ProviderOutcome.AMBIGUOUS, {"error": "transport", "detail": str(e)})

		try:
			body = resp.json()
		except ValueError:
			body = resp.text
		result = classify(resp.status_code, body)
		logger.info("provider %s %s -> %s (%s)", method, url, resp.status_code, result.outcome.value)
		return result

	def buy_airtime(self, *, amount_minor: int, reference: str, phone_number: str, network: str,
			sender_name: str = "Zidwell User") -> ProviderResult:
		return self._send("POST", "bill/airtime", {
			"amountMinor": amount_minor,
			"merchantTxRef": reference,
			"phoneNumber": phone_number,
			"network": network,
			"senderName": sender_name,
		})

	def buy_data(self, *, amount_minor: int, reference: str, phone_number: str, network: str,
			sender_name: str = "Zidwell User") -> ProviderResult:
		return self._send("POST", "bill/data", {
			"amountMinor": amount_minor,
			"merchantTxRef": reference,
			"phoneNumber": phone_number,
			"network": network,
			"senderName": sender_name,
		})

	def buy_electricity(self, *, amount_minor: int, reference: str, meter_number: str, disco: str,
			meter_type: str = "prepaid") -> ProviderResult:
		return self._send("POST", "bill/electricity", {
			"amountMinor": amount_minor,
			"merchantTxRef": reference,
			"meterNumber": meter_number,
			"disco": disco,
			"meterType": meter_type,
		})

	def transfer_to_bank(self, *, amount_minor: int, reference: str, account_number: str, account_name: str,
			bank_code: str, narration: str = "Withdrawal") -> ProviderResult:
		return self._send("POST", "transfers/bank", {
			"amountMinor": amount_minor,
			"merchantTxRef": reference,
			"accountNumber": account_number,
			"accountName": account_name,
			"bankCode": bank_code,
			"narration": narration,
		})

	def query_status(self, reference: str) -> ProviderResult:
		"""
		Ask the provider for a definitive answer on a reference. Anything but a 2xx
		answer (including 404 for a reference it does not know) stays AMBIGUOUS;
		only operators close those.
		"""
		return self._send("GET", f"transactions/{reference}", classify=classify_status_response)


class StubProviderClient:
	"""
	Same surface as HttpProviderClient over provider_stub rows (no network).
	"""

	@staticmethod
	def _result(payment: ProviderStubPayment, answered: bool) -> ProviderResult:
		if not answered:
			return ProviderResult(ProviderOutcome.AMBIGUOUS, {"error": "timeout"})
		outcome = {
			"success": ProviderOutcome.SUCCESS,
			"failed": ProviderOutcome.FAILED,
		}.get(payment.status, ProviderOutcome.AMBIGUOUS)
		return ProviderResult(outcome, payment_payload(payment))

	def buy_airtime(self, *, amount_minor: int, reference: str, phone_number: str, network: str,
			sender_name: str = "Zidwell User") -> ProviderResult:
		payment, answered = submit_payment("airtime", reference, phone_number, amount_minor)
		return self._result(payment, answered)

	def buy_data(self, *, amount_minor: int, reference: str, phone_number: str, network: str,
			sender_name: str = "Zidwell User") -> ProviderResult:
		payment, answered = submit_payment("data", reference, phone_number, amount_minor)
		return self._result(payment, answered)

	def buy_electricity(self, *, amount_minor: int, reference: str, meter_number: str, disco: str,
			meter_type: str = "prepaid") -> ProviderResult:
		payment, answered = submit_payment("electricity", reference, meter_number, amount_minor)
		return self._result(payment, answered)

	def transfer_to_bank(self, *, amount_minor: int, reference: str, account_number: str, account_name: str,
			bank_code: str, narration: str = "Withdrawal") -> ProviderResult:
		payment, answered = submit_payment("bank_transfer", reference, account_number, amount_minor)
		return self._result(payment, answered)

	def query_status(self, reference: str) -> ProviderResult:
		payment = ProviderStubPayment.objects.filter(merchant_reference=reference).first()
		if payment is None:
			return ProviderResult(ProviderOutcome.AMBIGUOUS, {"code": "404"})
		# A status lookup always gets an answer, even for TIMEOUT destinations
		return self._result(payment, True)


def get_provider():
	"""
	Provider client selected by settings.PROVIDER_BACKEND ("stub" | "http").
	"""
	backend = getattr(settings, "PROVIDER_BACKEND", "stub")
	if backend == "http":
		return HttpProviderClient()
	if backend == "stub":
		return StubProviderClient()
	raise ValueError(f"unknown PROVIDER_BACKEND {backend!r}")

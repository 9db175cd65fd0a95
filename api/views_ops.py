"""Operational endpoints that move money (purchases, transfers, invoices, webhooks, admin)."""

import base64, functools, hashlib, hmac, json, logging, time
from django.http import JsonResponse, HttpResponseBadRequest, HttpResponseForbidden
from django.views.decorators.csrf import csrf_exempt
from django.conf import settings
from django.core.exceptions import ValidationError
from django.middleware.csrf import get_token
from core.adapters.provider_adapter import ProviderOutcome
from core.constants import format_naira, naira_to_minor
from core.exceptions import (
	DuplicateReference, InsufficientBalance, InvalidAmount, InvalidPin, InvalidTransfer, InvalidTransition,
	InvoiceAlreadyPaid, InvoiceNotFound, LedgerUnavailable, RefundPending, SettlementError, TransactionNotFound, UserNotFound,
)
from core.models import TransactionStatus, User
from core.services import (
	PaymentServices, WalletServices, reconcile_processing, resolve_processing, retry_refund, run_ledger_reconciliation,
)

logger = logging.getLogger(__name__)


def health(request):
	return JsonResponse({"ok": True})


def csrf(request):
	# Forces creation/rotation of the CSRF token AND sets 'csrftoken' cookie
	return JsonResponse({"csrftoken": get_token(request)})


# --- Helpers -----------------------------------------------------------------

ERROR_STATUS = [
	(InvalidAmount, 400),
	(InsufficientBalance, 400),
	(InvalidTransfer, 400),
	(InvalidPin, 401),
	(UserNotFound, 404),
	(InvoiceNotFound, 404),
	(TransactionNotFound, 404),
	(DuplicateReference, 409),
	(InvoiceAlreadyPaid, 409),
	(InvalidTransition, 409),
	(RefundPending, 500),
	(LedgerUnavailable, 503),
]

SETTLEMENT_STATUS = {
	TransactionStatus.SUCCESS.value: 200,
	TransactionStatus.PROCESSING.value: 202,
	TransactionStatus.PENDING.value: 202,
	TransactionStatus.FAILED_REFUNDED.value: 502,
}


def record_json(record) -> dict:
	return {
		"id": str(record.id),
		"reference": record.reference,
		"kind": record.kind,
		"direction": record.direction,
		"status": record.status,
		"amount": format_naira(record.amount_minor),
		"fee": format_naira(record.fee_minor),
		"description": record.description,
		"destination": record.destination,
		"created_at": record.created_at.isoformat(),
		"updated_at": record.updated_at.isoformat(),
	}


def error_response(e: SettlementError) -> JsonResponse:
	status = next((code for cls, code in ERROR_STATUS if isinstance(e, cls)), 400)
	body = {"error": e.code, "message": str(e)}
	if e.record is not None:
		body["transaction"] = record_json(e.record)
	return JsonResponse(body, status=status)


def settlement_response(result) -> JsonResponse:
	record = result.record
	body = {
		"transaction": record_json(record),
		"replayed": result.replayed,
		"provider": result.provider_payload,
	}
	if result.balance_minor is not None:
		body["balance"] = format_naira(result.balance_minor)
	if record.status == TransactionStatus.PROCESSING:
		body["message"] = "Transaction is processing, check back for the final status"
	elif record.status == TransactionStatus.FAILED_REFUNDED:
		body["message"] = "Transaction failed, your wallet has been refunded"
	return JsonResponse(body, status=SETTLEMENT_STATUS.get(str(record.status), 200))


def json_endpoint(view):
	"""
	POST-only JSON view: parses the body, maps domain errors to responses and
	never leaks internals for anything unexpected.
	"""
	@functools.wraps(view)
	def wrapper(request, *args, **kwargs):
		if request.method != "POST":
			return HttpResponseBadRequest("POST only")
		try:
			body = json.loads(request.body or b"{}")
		except ValueError:
			return HttpResponseBadRequest("Invalid JSON")
		if not isinstance(body, dict):
			return HttpResponseBadRequest("Invalid JSON")
		try:
			return view(request, body, *args, **kwargs)
		except SettlementError as e:
			return error_response(e)
		except (KeyError, ValueError) as e:
			return JsonResponse({"error": "bad_request", "message": str(e)}, status=400)
		except Exception:
			logger.exception("unhandled error in %s", view.__name__)
			return JsonResponse({"error": "server_error", "message": "Processing error"}, status=500)
	return wrapper


def _require(body: dict, *fields):
	missing = [f for f in fields if body.get(f) in (None, "", [])]
	if missing:
		raise ValueError(f"missing required fields: {', '.join(missing)}")


def _amount_minor(raw) -> int:
	try:
		return naira_to_minor(raw)
	except ValueError as e:
		raise InvalidAmount(str(e))


def _load_user(user_id) -> User:
	try:
		return User.objects.get(pk=user_id)
	except (User.DoesNotExist, ValidationError):
		raise UserNotFound(f"user {user_id} not found")


def _authorized_user(body: dict) -> User:
	user = _load_user(body["user_id"])
	WalletServices.verify_pin(user, body["pin"])
	return user


def _admin_allowed(request) -> bool:
	token = getattr(settings, "ADMIN_API_TOKEN", "")
	if not token:
		return True
	return hmac.compare_digest(request.headers.get("X-Admin-Token") or "", token)


# --- Settlements ---------------------------------------------------------------

@json_endpoint
def buy_airtime(request, body):
	"""
	POST: Buy airtime from the wallet
	{"user_id", "pin", "amount", "reference", "phone_number", "network"}
	"""
	_require(body, "user_id", "pin", "amount", "reference", "phone_number", "network")
	user = _authorized_user(body)
	result = PaymentServices.purchase_airtime(
		user,
		amount_minor=_amount_minor(body["amount"]),
		reference=str(body["reference"]),
		phone_number=str(body["phone_number"]),
		network=str(body["network"]),
	)
	return settlement_response(result)


@json_endpoint
def buy_data(request, body):
	"""
	POST: Buy a data bundle from the wallet
	{"user_id", "pin", "amount", "reference", "phone_number", "network"}
	"""
	_require(body, "user_id", "pin", "amount", "reference", "phone_number", "network")
	user = _authorized_user(body)
	result = PaymentServices.purchase_data(
		user,
		amount_minor=_amount_minor(body["amount"]),
		reference=str(body["reference"]),
		phone_number=str(body["phone_number"]),
		network=str(body["network"]),
	)
	return settlement_response(result)


@json_endpoint
def buy_electricity(request, body):
	"""
	POST: Buy electricity units from the wallet
	{"user_id", "pin", "amount", "reference", "meter_number", "disco", "meter_type"?}
	"""
	_require(body, "user_id", "pin", "amount", "reference", "meter_number", "disco")
	user = _authorized_user(body)
	result = PaymentServices.purchase_electricity(
		user,
		amount_minor=_amount_minor(body["amount"]),
		reference=str(body["reference"]),
		meter_number=str(body["meter_number"]),
		disco=str(body["disco"]),
		meter_type=str(body.get("meter_type") or "prepaid"),
	)
	return settlement_response(result)


@json_endpoint
def withdraw_to_bank(request, body):
	"""
	POST: Withdraw to a bank account (amount + fee is debited)
	{"user_id", "pin", "amount", "reference", "account_number", "account_name", "bank_code"}
	"""
	_require(body, "user_id", "pin", "amount", "reference", "account_number", "account_name", "bank_code")
	user = _authorized_user(body)
	result = PaymentServices.withdraw_to_bank(
		user,
		amount_minor=_amount_minor(body["amount"]),
		reference=str(body["reference"]),
		account_number=str(body["account_number"]),
		account_name=str(body["account_name"]),
		bank_code=str(body["bank_code"]),
	)
	return settlement_response(result)


@json_endpoint
def p2p_transfer(request, body):
	"""
	POST: Send money to another Zidwell wallet
	{"user_id", "pin", "amount", "reference", "receiver_wallet_id", "narration"?}
	"""
	_require(body, "user_id", "pin", "amount", "reference", "receiver_wallet_id")
	user = _authorized_user(body)
	result = PaymentServices.p2p_transfer(
		user,
		receiver_wallet_id=str(body["receiver_wallet_id"]),
		amount_minor=_amount_minor(body["amount"]),
		reference=str(body["reference"]),
		narration=str(body.get("narration") or ""),
	)
	return settlement_response(result)


@json_endpoint
def pay_invoice(request, body, invoice_id: str):
	"""
	POST: Pay an invoice from the wallet {"user_id", "pin", "reference"}
	"""
	_require(body, "user_id", "pin", "reference")
	user = _authorized_user(body)
	result = PaymentServices.pay_invoice(user, invoice_id=invoice_id, reference=str(body["reference"]))
	return settlement_response(result)


# --- Webhooks ----------------------------------------------------------------

def _webhook_message(payload: dict, timestamp: str) -> str:
	data = payload.get("data") or {}
	return ":".join([
		str(payload.get("event_type", "")),
		str(payload.get("request_id", "")),
		str(data.get("merchant_reference", "")),
		str(data.get("status", "")),
		timestamp,
	])


def sign_webhook(payload: dict, timestamp: str, secret: str) -> str:
	mac = hmac.new(key=secret.encode("utf-8"), msg=_webhook_message(payload, timestamp).encode("utf-8"), digestmod=hashlib.sha256)
	return base64.b64encode(mac.digest()).decode("ascii")


def _webhook_outcome(payload: dict) -> ProviderOutcome:
	event_type = str(payload.get("event_type", "")).lower()
	status = str((payload.get("data") or {}).get("status", "")).lower()
	if status == "success" or event_type.endswith("_success"):
		return ProviderOutcome.SUCCESS
	if status == "failed" or event_type.endswith("_failed"):
		return ProviderOutcome.FAILED
	return ProviderOutcome.AMBIGUOUS


@csrf_exempt
def provider_webhook(request):
	"""
	Provider status callback. Validates the HMAC signature, then resolves the
	processing transaction it refers to.
	Body format (example):
	{
	  "event_type": "bill_success",          // or "bill_failed", "payout_success", ...
	  "request_id": "evt-123",
	  "data": {"merchant_reference": "DATA-abc", "status": "success"}
	}
	Headers: X-Provider-Timestamp (epoch seconds, at most PROVIDER_WEBHOOK_TOLERANCE_SECONDS off),
	X-Provider-Signature (base64 HMAC-SHA256)
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST required")

	secret = getattr(settings, "PROVIDER_WEBHOOK_SECRET", None)
	signature = request.headers.get("X-Provider-Signature") or ""
	timestamp = request.headers.get("X-Provider-Timestamp") or ""
	try:
		payload = json.loads((request.body or b"{}").decode("utf-8"))
	except ValueError:
		return HttpResponseBadRequest("Invalid JSON")
	if not isinstance(payload, dict):
		return HttpResponseBadRequest("Invalid JSON")

	if not secret or not timestamp or not signature:
		logger.warning("provider webhook without signature headers")
		return HttpResponseForbidden("Missing signature")
	tolerance = getattr(settings, "PROVIDER_WEBHOOK_TOLERANCE_SECONDS", 300)
	try:
		sent_at = int(timestamp)
	except ValueError:
		sent_at = None
	if sent_at is None or abs(time.time() - sent_at) > tolerance:
		logger.warning("provider webhook with stale timestamp %r", timestamp)
		return HttpResponseForbidden("Stale timestamp")
	if not hmac.compare_digest(sign_webhook(payload, timestamp, secret), signature):
		logger.warning("provider webhook with bad signature for %s", (payload.get("data") or {}).get("merchant_reference"))
		return HttpResponseForbidden("Bad signature")

	reference = (payload.get("data") or {}).get("merchant_reference")
	if not reference:
		return HttpResponseBadRequest("Missing field: data.merchant_reference")

	outcome = _webhook_outcome(payload)
	if outcome is ProviderOutcome.AMBIGUOUS:
		return JsonResponse({"ok": True, "ignored": True})

	try:
		record = resolve_processing(str(reference), outcome, payload)
	except TransactionNotFound:
		# Not ours (or not a wallet settlement); acknowledge so the provider stops retrying
		return JsonResponse({"ok": True, "ignored": True})
	except RefundPending:
		return JsonResponse({"ok": False, "status": TransactionStatus.REFUND_PENDING.value, "reference": reference}, status=500)
	except LedgerUnavailable:
		return JsonResponse({"ok": False, "error": "ledger_unavailable"}, status=503)

	return JsonResponse({"ok": True, "reference": record.reference, "status": record.status})


# --- Admin -------------------------------------------------------------------

@csrf_exempt
@json_endpoint
def admin_reconcile(request, body):
	"""
	POST: Run the processing sweep and a ledger consistency snapshot
	{"older_than_minutes"?: int}
	"""
	if not _admin_allowed(request):
		return HttpResponseForbidden("Admin token required")
	older_than = body.get("older_than_minutes")
	counts = reconcile_processing(older_than_minutes=int(older_than) if older_than is not None else None)
	run = run_ledger_reconciliation()
	return JsonResponse({
		"sweep": counts,
		"ledger": {
			"ok": run.ok,
			"total_wallet_balance": format_naira(run.total_wallet_balance_minor),
			"total_ledger_delta": format_naira(run.total_ledger_delta_minor),
			"processing_liability": format_naira(run.processing_liability_minor),
			"refund_pending_liability": format_naira(run.refund_pending_liability_minor),
			"mismatched_users": run.mismatched_users,
			"notes": run.notes,
		},
	})


@csrf_exempt
@json_endpoint
def admin_retry_refund(request, body, reference: str):
	"""
	POST: Re-attempt the refund of a refund_pending transaction
	"""
	if not _admin_allowed(request):
		return HttpResponseForbidden("Admin token required")
	record = retry_refund(reference)
	return JsonResponse({"transaction": record_json(record)})


@csrf_exempt
@json_endpoint
def admin_adjust_wallet(request, body, user_id):
	"""
	POST: Operator credit/debit {"amount", "reference", "direction": "credit"|"debit", "description"?}
	"""
	if not _admin_allowed(request):
		return HttpResponseForbidden("Admin token required")
	_require(body, "amount", "reference", "direction")
	user = _load_user(user_id)
	record = WalletServices.manual_adjustment(
		user,
		_amount_minor(body["amount"]),
		str(body["reference"]),
		str(body["direction"]).lower(),
		str(body.get("description") or "Manual adjustment"),
	)
	return JsonResponse({"transaction": record_json(record)}, status=201)

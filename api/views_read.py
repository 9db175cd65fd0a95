"""Read-only endpoints to inspect wallets and transactions."""

from django.http import JsonResponse, HttpResponseForbidden
from core.constants import format_naira
from core.exceptions import UserNotFound
from core.models import ReconciliationRun
from core.services import WalletServices
from core.store import TransactionRecordStore
from .views_ops import record_json, _admin_allowed


def balance(request, user_id):
	"""
	GET: Wallet balance (cached, at most WALLET_CACHE_TTL_SECONDS stale)
	"""
	try:
		balance_minor = WalletServices.cached_balance(user_id)
	except UserNotFound as e:
		return JsonResponse({"error": e.code, "message": str(e)}, status=404)
	return JsonResponse({
		"user_id": str(user_id),
		"balance": format_naira(balance_minor),
		"balance_minor": balance_minor,
	})


def transactions(request, user_id):
	"""
	GET: Most recent transactions for a wallet (?limit=, default 50, max 200)
	"""
	try:
		limit = min(int(request.GET.get("limit", 50)), 200)
	except ValueError:
		limit = 50
	rows = TransactionRecordStore.list_for_user(user_id, limit=limit)
	return JsonResponse([record_json(r) for r in rows], safe=False)


def transaction_detail(request, reference: str):
	"""
	GET: One transaction by reference, including the provider's raw response
	"""
	record = TransactionRecordStore.find_by_reference(reference)
	if record is None:
		return JsonResponse({"error": "transaction_not_found"}, status=404)
	data = record_json(record)
	data["external_response"] = record.external_response
	return JsonResponse(data)


def reconciliation_runs(request):
	"""
	GET: Latest ledger reconciliation snapshots
	"""
	if not _admin_allowed(request):
		return HttpResponseForbidden("Admin token required")
	rows = ReconciliationRun.objects.order_by("-created_at")[:20]
	data = [
		{
			"id": r.id,
			"ok": r.ok,
			"total_wallet_balance": format_naira(r.total_wallet_balance_minor),
			"total_ledger_delta": format_naira(r.total_ledger_delta_minor),
			"processing_liability": format_naira(r.processing_liability_minor),
			"refund_pending_liability": format_naira(r.refund_pending_liability_minor),
			"mismatched_users": r.mismatched_users,
			"notes": r.notes,
			"created_at": r.created_at.isoformat(),
		}
		for r in rows
	]
	return JsonResponse(data, safe=False)

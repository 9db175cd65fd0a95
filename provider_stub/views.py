"""HTTP endpoints for the provider stub.

The stub client uses ORM access for determinism; these endpoints mirror what the
real provider exposes (airtime, data, electricity, bank payouts, status lookup)
so the HTTP client can be pointed at them.
"""

import json
from django.http import JsonResponse, HttpResponseBadRequest
from django.views.decorators.csrf import csrf_exempt
from .models import ProviderStubPayment, payment_payload, submit_payment


def _purchase(request, service: str, destination_field: str):
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	try:
		body = json.loads(request.body or b"{}")
	except ValueError:
		return HttpResponseBadRequest("Invalid JSON")
	reference = body.get("merchantTxRef")
	destination = body.get(destination_field)
	amount_minor = body.get("amountMinor")
	if not reference or not destination or not amount_minor:
		return HttpResponseBadRequest(f"merchantTxRef, {destination_field}, amountMinor required")
	payment, answered = submit_payment(service, reference, str(destination), int(amount_minor))
	if not answered:
		# Completed on our side, but the caller never hears about it
		return JsonResponse({"code": "504", "description": "gateway timeout"}, status=504)
	data = payment_payload(payment)
	if payment.status == "failed":
		return JsonResponse(data, status=400)
	return JsonResponse(data, status=201 if payment.status == "success" else 202)


@csrf_exempt
def buy_airtime(request):
	"""
	POST: Airtime top-up for phoneNumber
	"""
	return _purchase(request, "airtime", "phoneNumber")


@csrf_exempt
def buy_data(request):
	"""
	POST: Data bundle purchase for phoneNumber
	"""
	return _purchase(request, "data", "phoneNumber")


@csrf_exempt
def buy_electricity(request):
	"""
	POST: Prepaid/postpaid electricity purchase for meterNumber
	"""
	return _purchase(request, "electricity", "meterNumber")


@csrf_exempt
def transfer_to_bank(request):
	"""
	POST: Bank payout to accountNumber
	"""
	return _purchase(request, "bank_transfer", "accountNumber")


def transaction_status(request, reference: str):
	"""
	GET: Provider's view of a merchant reference
	"""
	payment = ProviderStubPayment.objects.filter(merchant_reference=reference).first()
	if payment is None:
		return JsonResponse({"code": "404", "description": "not found"}, status=404)
	return JsonResponse(payment_payload(payment))

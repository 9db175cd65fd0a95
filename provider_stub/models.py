"""Deterministic in-process bill-payment provider.

Stores one row per purchase or payout request keyed by the merchant reference. Used to
simulate successful, rejected and unanswered provider calls without network access.
"""

import uuid
from django.db import models
from django.utils.timezone import now


def gen_provider_tx_id():
	# Named function = migration-friendly
	return f"PRV-{uuid.uuid4().hex[:10]}"


class ProviderStubPayment(models.Model):
	"""
	Provider-side view of a purchase, unique per merchant reference
	"""
	STATUS_CHOICES = (("success", "Success"), ("failed", "Failed"), ("pending", "Pending"))

	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	provider_tx_id = models.CharField(max_length=100, unique=True, default=gen_provider_tx_id)
	merchant_reference = models.CharField(max_length=128, unique=True)
	service = models.CharField(max_length=20) # 'airtime' | 'data' | 'electricity' | 'bank_transfer'
	destination = models.CharField(max_length=64)
	amount_minor = models.BigIntegerField()
	status = models.CharField(max_length=10, choices=STATUS_CHOICES)
	token = models.CharField(max_length=64, blank=True, default="") # electricity token
	occurred_at = models.DateTimeField(default=now)


def payment_payload(payment: ProviderStubPayment) -> dict:
	"""
	Provider-shaped body so client parsing looks like real-world parsing
	"""
	codes = {"success": "00", "failed": "E51", "pending": "09"}
	return {
		"code": codes[payment.status],
		"status": payment.status,
		"provider_tx_id": payment.provider_tx_id,
		"merchant_reference": payment.merchant_reference,
		"service": payment.service,
		"destination": payment.destination,
		"amount_minor": payment.amount_minor,
		"token": payment.token,
	}


def submit_payment(service: str, merchant_reference: str, destination: str, amount_minor: int):
	"""
	Record a purchase and decide its outcome from the destination:
	FAIL* is rejected, PENDING* stays pending, TIMEOUT* completes but the answer is
	"lost" (answered=False), anything else succeeds. Replays return the stored row.

	Returns (payment, answered).
	"""
	existing = ProviderStubPayment.objects.filter(merchant_reference=merchant_reference).first()
	if existing:
		return existing, not existing.destination.upper().startswith("TIMEOUT")

	dest = destination.upper()
	if dest.startswith("FAIL"):
		status = "failed"
	elif dest.startswith("PENDING"):
		status = "pending"
	else:
		status = "success"

	payment = ProviderStubPayment.objects.create(
		merchant_reference=merchant_reference,
		service=service,
		destination=destination,
		amount_minor=amount_minor,
		status=status,
		token=uuid.uuid4().hex[:20] if service == "electricity" and status == "success" else "",
	)
	return payment, not dest.startswith("TIMEOUT")

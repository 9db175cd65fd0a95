"""Database models for the wallet settlement service.


Tables:
- User: wallet holder identity (email, public wallet number, hashed transaction PIN)
- Wallet: authoritative spendable balance in kobo, mutated only by the ledger adapter
- TransactionKind / TransactionStatus / TransactionDirection
- TransactionRecord: one row per attempted money movement, unique reference
- LedgerAdjustment: append-only audit row for every balance change
- InvoiceStatus
- Invoice: payable from a payer's wallet through the orchestrator
- ReconciliationRun: snapshot of wallet balances vs ledger sums and open liabilities
"""

import uuid
from django.db import models


class User(models.Model):
	"""
	Wallet holder. wallet_id is the public number other users transfer to.
	"""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	email = models.EmailField(unique=True)
	display_name = models.CharField(max_length=200)
	wallet_id = models.CharField(max_length=20, unique=True)
	transaction_pin = models.CharField(max_length=128, blank=True, default="") # django password hash
	created_at = models.DateTimeField(auto_now_add=True)

	def __str__(self):
		return self.email


class Wallet(models.Model):
	"""
	One user's spendable balance. Never written directly; see core.adapters.ledger_adapter
	"""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	user = models.OneToOneField(User, on_delete=models.PROTECT, related_name="wallet")
	balance_minor = models.BigIntegerField(default=0)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)


class TransactionKind(models.TextChoices):
	PURCHASE_AIRTIME = "purchase_airtime", "Airtime purchase"
	PURCHASE_DATA = "purchase_data", "Data purchase"
	PURCHASE_ELECTRICITY = "purchase_electricity", "Electricity purchase"
	P2P_TRANSFER = "p2p_transfer", "P2P transfer"
	INVOICE_PAYMENT = "invoice_payment", "Invoice payment"
	MANUAL_ADJUSTMENT = "manual_adjustment", "Manual adjustment"
	WALLET_FUNDING = "wallet_funding", "Wallet funding"
	BANK_WITHDRAWAL = "bank_withdrawal", "Bank withdrawal"
	WITHDRAWAL_FEE = "withdrawal_fee", "Withdrawal fee"


class TransactionStatus(models.TextChoices):
	PENDING = "pending", "Pending"
	SUCCESS = "success", "Success"
	REJECTED = "rejected", "Rejected"
	PROCESSING = "processing", "Processing"
	FAILED_REFUNDED = "failed_refunded", "Failed (Refunded)"
	REFUND_PENDING = "refund_pending", "Failed (Refund pending)"


# Plain string values so lookups work for both raw column values and enum members (str(member) == value)
TERMINAL_STATUSES = frozenset({
	TransactionStatus.SUCCESS.value,
	TransactionStatus.REJECTED.value,
	TransactionStatus.FAILED_REFUNDED.value,
	TransactionStatus.REFUND_PENDING.value,
})

# processing is only ever left through an out-of-band step (webhook, sweep, operator)
ALLOWED_TRANSITIONS = {
	TransactionStatus.PENDING.value: frozenset({
		TransactionStatus.SUCCESS.value,
		TransactionStatus.REJECTED.value,
		TransactionStatus.PROCESSING.value,
		TransactionStatus.FAILED_REFUNDED.value,
		TransactionStatus.REFUND_PENDING.value,
	}),
	TransactionStatus.PROCESSING.value: frozenset({
		TransactionStatus.SUCCESS.value,
		TransactionStatus.FAILED_REFUNDED.value,
		TransactionStatus.REFUND_PENDING.value,
	}),
	TransactionStatus.REFUND_PENDING.value: frozenset({TransactionStatus.FAILED_REFUNDED.value}),
	TransactionStatus.SUCCESS.value: frozenset(),
	TransactionStatus.REJECTED.value: frozenset(),
	TransactionStatus.FAILED_REFUNDED.value: frozenset(),
}


def can_transition(current, new) -> bool:
	return str(new) in ALLOWED_TRANSITIONS.get(str(current), frozenset())


class TransactionDirection(models.TextChoices):
	DEBIT = "debit", "Debit"
	CREDIT = "credit", "Credit"


class TransactionRecord(models.Model):
	"""
	Append-only record of a money movement tied to an external action.

	reference is unique so a retried request can never debit twice
	"""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	user = models.ForeignKey(User, on_delete=models.PROTECT, related_name="transactions")
	kind = models.CharField(max_length=24, choices=TransactionKind.choices)
	direction = models.CharField(max_length=10, choices=TransactionDirection.choices, default=TransactionDirection.DEBIT)
	amount_minor = models.BigIntegerField()
	fee_minor = models.BigIntegerField(default=0) # part of amount_minor charged as a fee
	reference = models.CharField(max_length=128, unique=True)
	status = models.CharField(max_length=20, choices=TransactionStatus.choices, default=TransactionStatus.PENDING)
	description = models.CharField(max_length=255, blank=True, default="")
	destination = models.CharField(max_length=64, blank=True, default="") # phone / meter / wallet / bank account number
	external_response = models.JSONField(null=True, blank=True)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	class Meta:
		indexes = [
			models.Index(fields=["status", "updated_at"]),
			models.Index(fields=["user", "created_at"]),
		]

	@property
	def is_terminal(self) -> bool:
		return str(self.status) in TERMINAL_STATUSES

	def __str__(self):
		return f"{self.reference} ({self.status})"


class LedgerAdjustment(models.Model):
	"""
	One row per balance change. For every user the deltas sum to the wallet balance.
	"""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	user = models.ForeignKey(User, on_delete=models.PROTECT, related_name="ledger_adjustments")
	delta_minor = models.BigIntegerField() # signed
	resulting_balance_minor = models.BigIntegerField()
	related_transaction = models.ForeignKey(
		TransactionRecord, null=True, blank=True, on_delete=models.PROTECT, related_name="adjustments"
	)
	created_at = models.DateTimeField(auto_now_add=True)


class InvoiceStatus(models.TextChoices):
	UNPAID = "unpaid", "Unpaid"
	PAID = "paid", "Paid"


class Invoice(models.Model):
	"""
	Invoice issued by one user and payable from another user's wallet.
	"""
	id = models.BigAutoField(primary_key=True)
	invoice_id = models.CharField(max_length=64, unique=True)
	issuer = models.ForeignKey(User, on_delete=models.PROTECT, related_name="issued_invoices")
	amount_minor = models.BigIntegerField()
	status = models.CharField(max_length=10, choices=InvoiceStatus.choices, default=InvoiceStatus.UNPAID)
	paid_reference = models.CharField(max_length=128, blank=True, default="")
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)


class ReconciliationRun(models.Model):
	"""
	Snapshot of wallet balances vs ledger sums, plus open liabilities.
	"""
	id = models.BigAutoField(primary_key=True)
	total_wallet_balance_minor = models.BigIntegerField()
	total_ledger_delta_minor = models.BigIntegerField()
	processing_liability_minor = models.BigIntegerField(default=0)
	refund_pending_liability_minor = models.BigIntegerField(default=0)
	mismatched_users = models.IntegerField(default=0)
	ok = models.BooleanField(default=True)
	notes = models.TextField(blank=True, default="")
	created_at = models.DateTimeField(auto_now_add=True)

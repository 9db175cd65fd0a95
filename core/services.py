"""Business orchestration for wallet settlements.

This module coordinates: reserve -> external action -> finalize or refund, the
out-of-band resolution of processing records (provider webhook, reconciliation
sweep, operator refund retry), and the wallet operations built on top of settle().

The external action always runs outside any database transaction so no wallet
row lock is held while the provider is being called.
"""
import logging
import uuid
from dataclasses import dataclass

from django.conf import settings
from django.contrib.auth.hashers import check_password, make_password
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Sum

from .adapters.ledger_adapter import LedgerAdapter
from .adapters.provider_adapter import ProviderOutcome, ProviderResult, get_provider
from .cache import WalletBalanceCache
from .exceptions import (
	DuplicateReference, ExternalActionAmbiguous, ExternalActionFailed, InsufficientBalance, InvalidAmount,
	InvalidPin, InvalidTransfer, InvalidTransition, InvoiceAlreadyPaid, InvoiceNotFound, LedgerUnavailable,
	RefundPending, SettlementError, TransactionNotFound, UserNotFound,
)
from .models import (
	Invoice, InvoiceStatus, LedgerAdjustment, ReconciliationRun, TransactionDirection, TransactionKind,
	TransactionRecord, TransactionStatus, User, Wallet,
)
from .store import TransactionRecordStore as store

logger = logging.getLogger(__name__)

# Kinds whose "external" action is an internal wallet credit, committed atomically
INTERNAL_CREDIT_KINDS = frozenset({TransactionKind.P2P_TRANSFER.value, TransactionKind.INVOICE_PAYMENT.value})
PROVIDER_KINDS = frozenset({
	TransactionKind.PURCHASE_AIRTIME.value,
	TransactionKind.PURCHASE_DATA.value,
	TransactionKind.PURCHASE_ELECTRICITY.value,
	TransactionKind.BANK_WITHDRAWAL.value,
})
MAX_REFERENCE_LENGTH = 100
# Derived records live at "<reference><suffix>"; callers may not use these
CREDIT_SUFFIX = ":credit"
FEE_SUFFIX = ":fee"


@dataclass(frozen=True)
class SettlementResult:
	record: TransactionRecord
	provider_payload: dict | None = None
	balance_minor: int | None = None
	replayed: bool = False


def _require_user(user_id) -> None:
	try:
		found = User.objects.filter(pk=user_id).exists()
	except ValidationError:
		found = False
	if not found:
		raise UserNotFound(f"user {user_id} not found")


def _check_reference(reference: str) -> None:
	if not reference or len(reference) > MAX_REFERENCE_LENGTH:
		raise ValueError(f"reference is required and at most {MAX_REFERENCE_LENGTH} characters")
	if CREDIT_SUFFIX in reference or FEE_SUFFIX in reference:
		raise ValueError(f"reference may not contain {CREDIT_SUFFIX!r} or {FEE_SUFFIX!r}")


def _same_request(record: TransactionRecord, user_id, amount_minor: int, kind: str, direction: str) -> bool:
	return (
		str(record.user_id) == str(user_id)
		and record.amount_minor == amount_minor
		and str(record.kind) == str(kind)
		and str(record.direction) == str(direction)
	)


def _replay(record: TransactionRecord, user_id, amount_minor: int, kind: str) -> SettlementResult:
	"""
	Return a previously seen reference without re-executing anything. A reference
	owned by another user or request is a conflict, never a replay.
	"""
	if not _same_request(record, user_id, amount_minor, kind, TransactionDirection.DEBIT):
		logger.warning("reference %s reused for a different request by user %s", record.reference, user_id)
		raise DuplicateReference(f"reference {record.reference!r} is already used by another transaction")
	if record.status == TransactionStatus.REJECTED:
		raise InsufficientBalance(f"{record.reference} was rejected for insufficient balance", record=record)
	logger.info("replay of %s (%s), nothing re-executed", record.reference, record.status)
	return SettlementResult(
		record=record,
		provider_payload=record.external_response,
		balance_minor=LedgerAdapter.balance(record.user_id),
		replayed=True,
	)


def _run_action(external_action, amount_minor: int, reference: str) -> ProviderResult:
	"""
	Invoke the injected action and reduce whatever happens to a ProviderResult.
	"""
	try:
		result = external_action(amount_minor, reference)
	except ExternalActionFailed as e:
		return ProviderResult(ProviderOutcome.FAILED, e.payload or {"error": str(e)})
	except ExternalActionAmbiguous as e:
		return ProviderResult(ProviderOutcome.AMBIGUOUS, e.payload or {"error": str(e)})
	except Exception as e:
		# No definitive answer: the provider may still have completed the action
		logger.exception("external action for %s raised, treating outcome as ambiguous", reference)
		return ProviderResult(ProviderOutcome.AMBIGUOUS, {"error": type(e).__name__, "detail": str(e)})

	if not isinstance(result, ProviderResult):
		logger.warning("external action for %s returned %r, treating outcome as ambiguous", reference, result)
		return ProviderResult(ProviderOutcome.AMBIGUOUS, {"raw": repr(result)})
	return result


def _finalize(record: TransactionRecord, status: str, payload=None) -> TransactionRecord:
	try:
		return store.update_status(record.pk, status, payload)
	except InvalidTransition as e:
		# Resolved elsewhere (webhook / sweep) while the provider call was in flight
		logger.info("%s already resolved to %s, keeping it", record.reference, e.record.status)
		return e.record


def _compensate(record: TransactionRecord, payload=None) -> TransactionRecord:
	"""
	Credit the reservation back and close the record as failed_refunded, in one
	transaction. When the credit cannot be applied the record is flagged
	refund_pending and RefundPending is raised.
	"""
	try:
		with transaction.atomic():
			refunded = store.update_status(record.pk, TransactionStatus.FAILED_REFUNDED, payload)
			LedgerAdapter.release(record.user_id, record.amount_minor, refunded)
	except InvalidTransition as e:
		logger.info("%s already resolved to %s, no refund issued", record.reference, e.record.status)
		return e.record
	except LedgerUnavailable as e:
		logger.error("refund of %s for %s failed, flagging refund_pending: %s", record.amount_minor, record.reference, e)
		try:
			flagged = store.update_status(record.pk, TransactionStatus.REFUND_PENDING, payload)
		except SettlementError:
			logger.exception("could not flag %s as refund_pending", record.reference)
			flagged = record
		raise RefundPending(f"refund for {record.reference} could not be applied", record=flagged) from e

	logger.info("refunded %s to user %s for %s", record.amount_minor, record.user_id, record.reference)
	return refunded


def _expected_recipient(debit: TransactionRecord):
	"""
	User id the counterpart credit of an internal debit must belong to: the
	receiving wallet of a P2P transfer, the issuer of a paid invoice.
	"""
	if str(debit.kind) == TransactionKind.P2P_TRANSFER.value:
		return User.objects.filter(wallet_id=debit.destination).values_list("pk", flat=True).first()
	return Invoice.objects.filter(invoice_id=debit.destination).values_list("issuer_id", flat=True).first()


def _is_counterpart(credit: TransactionRecord, debit: TransactionRecord) -> bool:
	return (
		str(credit.direction) == TransactionDirection.CREDIT.value
		and str(credit.kind) == str(debit.kind)
		and credit.amount_minor == debit.amount_minor
		and credit.user_id != debit.user_id
		and credit.user_id == _expected_recipient(debit)
	)


def _itemize_fee(record: TransactionRecord) -> TransactionRecord | None:
	"""
	Write the fee part of a successful debit as its own "<reference>:fee" record.
	It has no ledger adjustment: the fee was reserved together with the debit.
	"""
	if not record.fee_minor or record.status != TransactionStatus.SUCCESS:
		return None
	reference = f"{record.reference}{FEE_SUFFIX}"
	existing = store.find_by_reference(reference)
	if existing is not None:
		return existing
	try:
		return store.create(
			user_id=record.user_id,
			kind=TransactionKind.WITHDRAWAL_FEE,
			direction=TransactionDirection.DEBIT,
			amount_minor=record.fee_minor,
			reference=reference,
			status=TransactionStatus.SUCCESS,
			description=f"Fee included in {record.reference}",
		)
	except DuplicateReference:
		return store.find_by_reference(reference)


def settle(*, user_id, amount_minor: int, reference: str, kind: str, external_action,
		description: str = "", destination: str = "", fee_minor: int = 0) -> SettlementResult:
	"""
	Drive one money movement through reserve -> external action -> finalize/refund.

	external_action(amount_minor, reference) returns a ProviderResult, or raises
	ExternalActionFailed / ExternalActionAmbiguous. Any other exception counts as
	ambiguous. Ambiguous outcomes leave the record processing with the debit in
	place; only a webhook or the reconciliation sweep may resolve it.

	fee_minor is the part of amount_minor charged as a fee; it is itemized as a
	"<reference>:fee" record once the settlement succeeds.

	Raises InsufficientBalance, UserNotFound, InvalidAmount, LedgerUnavailable and
	RefundPending. A repeated reference returns the stored record (replayed=True);
	the same reference from another user or for another amount or kind raises
	DuplicateReference.
	"""
	LedgerAdapter.check_amount(amount_minor)
	_check_reference(reference)
	if fee_minor < 0 or fee_minor >= amount_minor:
		raise InvalidAmount(f"fee {fee_minor} must be below the amount {amount_minor}")

	# 1. Idempotency
	existing = store.find_by_reference(reference)
	if existing is not None:
		return _replay(existing, user_id, amount_minor, kind)

	_require_user(user_id)

	# 2. Reserve: record + debit commit together
	insufficient = None
	try:
		with transaction.atomic():
			record = store.create(
				user_id=user_id,
				kind=kind,
				direction=TransactionDirection.DEBIT,
				amount_minor=amount_minor,
				fee_minor=fee_minor,
				reference=reference,
				description=description,
				destination=destination,
			)
			try:
				LedgerAdapter.reserve(user_id, amount_minor, record)
			except InsufficientBalance as e:
				insufficient = e
				record = store.update_status(record.pk, TransactionStatus.REJECTED, {"error": e.code})
	except DuplicateReference:
		# Lost the race to a concurrent request with the same reference
		winner = store.find_by_reference(reference)
		if winner is None:
			raise LedgerUnavailable(f"reference {reference} collided but could not be read back")
		return _replay(winner, user_id, amount_minor, kind)

	if insufficient is not None:
		logger.info("rejected %s: insufficient balance for %s", reference, amount_minor)
		raise InsufficientBalance(str(insufficient), record=record)

	logger.info("reserved %s from user %s for %s (%s)", amount_minor, user_id, reference, kind)

	# 3. External action
	result = _run_action(external_action, amount_minor, reference)

	if result.outcome is ProviderOutcome.SUCCESS:
		record = _finalize(record, TransactionStatus.SUCCESS, result.payload)
		_itemize_fee(record)
	elif result.outcome is ProviderOutcome.FAILED:
		logger.info("provider rejected %s, refunding", reference)
		record = _compensate(record, result.payload)
	else:
		logger.warning("no definitive answer for %s, leaving it processing", reference)
		record = _finalize(record, TransactionStatus.PROCESSING, result.payload)

	# 4. Report
	return SettlementResult(
		record=record,
		provider_payload=result.payload,
		balance_minor=LedgerAdapter.balance(user_id),
	)


def resolve_processing(reference: str, outcome: ProviderOutcome, payload=None) -> TransactionRecord:
	"""
	Apply a definitive provider answer to an in-flight record. Terminal records and
	ambiguous answers leave it unchanged, so webhook replays are harmless.
	"""
	record = store.find_by_reference(reference)
	if record is None:
		raise TransactionNotFound(f"no transaction with reference {reference}")
	if record.is_terminal or record.direction != TransactionDirection.DEBIT:
		return record

	if outcome is ProviderOutcome.SUCCESS:
		record = _finalize(record, TransactionStatus.SUCCESS, payload)
		_itemize_fee(record)
		return record
	if outcome is ProviderOutcome.FAILED:
		return _compensate(record, payload)
	return record


def retry_refund(reference: str) -> TransactionRecord:
	"""
	Re-attempt the compensating credit of a refund_pending record.
	"""
	record = store.find_by_reference(reference)
	if record is None:
		raise TransactionNotFound(f"no transaction with reference {reference}")
	if record.status != TransactionStatus.REFUND_PENDING:
		raise InvalidTransition(f"{reference} is {record.status}, not refund_pending", record=record)

	try:
		with transaction.atomic():
			refunded = store.update_status(record.pk, TransactionStatus.FAILED_REFUNDED)
			LedgerAdapter.release(record.user_id, record.amount_minor, refunded)
	except LedgerUnavailable as e:
		raise RefundPending(f"refund for {reference} still cannot be applied", record=record) from e

	logger.info("refund retry for %s applied", reference)
	return refunded


def _query_outcome(record: TransactionRecord, provider) -> ProviderResult:
	if record.kind in INTERNAL_CREDIT_KINDS:
		# The counterpart credit is atomic: it either exists or never happened
		credit = store.find_by_reference(f"{record.reference}{CREDIT_SUFFIX}")
		if credit is None:
			return ProviderResult(ProviderOutcome.FAILED, {"error": "counterpart credit missing"})
		if not _is_counterpart(credit, record):
			logger.warning("%s does not match %s, leaving it for an operator", credit.reference, record.reference)
			return ProviderResult(ProviderOutcome.AMBIGUOUS, {"error": "counterpart credit mismatch"})
		return ProviderResult(ProviderOutcome.SUCCESS, {"credit_reference": credit.reference})
	if record.kind in PROVIDER_KINDS:
		return provider.query_status(record.reference)
	# Operator debits have nothing to ask; leave them for a human
	return ProviderResult(ProviderOutcome.AMBIGUOUS, None)


def reconcile_processing(older_than_minutes: int | None = None, provider=None) -> dict:
	"""
	Sweep in-flight records older than the threshold, ask for a definitive outcome
	and resolve the ones that have one.
	"""
	if older_than_minutes is None:
		older_than_minutes = getattr(settings, "RECONCILE_PROCESSING_AFTER_MINUTES", 10)
	provider = provider or get_provider()

	counts = {"checked": 0, "succeeded": 0, "refunded": 0, "refund_pending": 0, "still_processing": 0}
	for record in store.stale_in_flight(older_than_minutes):
		counts["checked"] += 1
		result = _query_outcome(record, provider)
		try:
			resolved = resolve_processing(record.reference, result.outcome, result.payload)
		except RefundPending:
			counts["refund_pending"] += 1
			continue

		if resolved.status == TransactionStatus.SUCCESS:
			counts["succeeded"] += 1
		elif resolved.status == TransactionStatus.FAILED_REFUNDED:
			counts["refunded"] += 1
		elif resolved.status == TransactionStatus.REFUND_PENDING:
			counts["refund_pending"] += 1
		else:
			counts["still_processing"] += 1

	logger.info("reconciliation sweep: %s", counts)
	return counts


def run_ledger_reconciliation() -> ReconciliationRun:
	"""
	Compare every wallet balance with the sum of its ledger adjustments and total
	the liabilities still open (processing, refund_pending).
	"""
	per_user = dict(
		LedgerAdjustment.objects.values("user_id").annotate(s=Sum("delta_minor")).values_list("user_id", "s")
	)
	wallet_total = 0
	mismatched = []
	for user_id, balance in Wallet.objects.values_list("user_id", "balance_minor"):
		wallet_total += balance
		if per_user.get(user_id, 0) != balance:
			mismatched.append(str(user_id))
	ledger_total = sum(per_user.values())

	processing = TransactionRecord.objects.filter(status=TransactionStatus.PROCESSING).aggregate(s=Sum("amount_minor"))["s"] or 0
	refund_pending = TransactionRecord.objects.filter(status=TransactionStatus.REFUND_PENDING).aggregate(s=Sum("amount_minor"))["s"] or 0

	ok = not mismatched and wallet_total == ledger_total
	notes = "" if ok else f"ledger mismatch for users: {', '.join(mismatched)}"
	if not ok:
		logger.error("ledger reconciliation failed: %s", notes)

	return ReconciliationRun.objects.create(
		total_wallet_balance_minor=wallet_total,
		total_ledger_delta_minor=ledger_total,
		processing_liability_minor=processing,
		refund_pending_liability_minor=refund_pending,
		mismatched_users=len(mismatched),
		ok=ok,
		notes=notes,
	)


def _credit_wallet(user: User, amount_minor: int, reference: str, kind: str, description: str = "") -> TransactionRecord:
	"""
	Idempotent deposit: a success credit record and its ledger adjustment, together.
	Raises DuplicateReference when the reference belongs to a different record.
	"""
	existing = store.find_by_reference(reference)
	if existing is not None:
		return _existing_credit(existing, user, amount_minor, kind)
	try:
		with transaction.atomic():
			record = store.create(
				user_id=user.pk,
				kind=kind,
				direction=TransactionDirection.CREDIT,
				amount_minor=amount_minor,
				reference=reference,
				status=TransactionStatus.SUCCESS,
				description=description,
			)
			LedgerAdapter.credit(user.pk, amount_minor, record)
	except DuplicateReference:
		winner = store.find_by_reference(reference)
		if winner is None:
			raise LedgerUnavailable(f"reference {reference} collided but could not be read back")
		return _existing_credit(winner, user, amount_minor, kind)
	return record


def _existing_credit(record: TransactionRecord, user: User, amount_minor: int, kind: str) -> TransactionRecord:
	if not _same_request(record, user.pk, amount_minor, kind, TransactionDirection.CREDIT):
		logger.warning("credit reference %s already used by another transaction", record.reference)
		raise DuplicateReference(f"reference {record.reference!r} is already used by another transaction")
	return record


class WalletServices:

	@staticmethod
	@transaction.atomic
	def open_account(email: str, display_name: str, *, pin: str | None = None,
			wallet_id: str | None = None, opening_balance_minor: int = 0):
		"""
		Create (or fetch) the user and their wallet
		"""
		user, created = User.objects.get_or_create(
			email=email.strip().lower(),
			defaults={
				"display_name": display_name,
				"wallet_id": wallet_id or f"{uuid.uuid4().int % 10**10:010d}",
			},
		)
		if created and pin:
			WalletServices.set_pin(user, pin)
		wallet = LedgerAdapter.open_wallet(user, opening_balance_minor)
		return user, wallet

	@staticmethod
	def set_pin(user: User, pin: str) -> None:
		user.transaction_pin = make_password(str(pin))
		user.save(update_fields=["transaction_pin"])

	@staticmethod
	def verify_pin(user: User, pin) -> None:
		"""
		Raise InvalidPin unless pin matches. Keypad clients send the PIN as a list of digits.
		"""
		plain = "".join(str(p) for p in pin) if isinstance(pin, (list, tuple)) else str(pin or "")
		if not user.transaction_pin:
			raise InvalidPin("transaction PIN not set")
		if not plain or not check_password(plain, user.transaction_pin):
			raise InvalidPin("invalid transaction PIN")

	@staticmethod
	def cached_balance(user_id) -> int:
		return WalletBalanceCache.get(user_id, LedgerAdapter.balance)

	@staticmethod
	def fund_wallet(user: User, amount_minor: int, reference: str, description: str = "Wallet funding") -> TransactionRecord:
		LedgerAdapter.check_amount(amount_minor)
		_check_reference(reference)
		return _credit_wallet(user, amount_minor, reference, TransactionKind.WALLET_FUNDING, description)

	@staticmethod
	def manual_adjustment(user: User, amount_minor: int, reference: str, direction: str, description: str = ""):
		"""
		Operator credit or debit. Debits go through settle() so they obey the same
		balance check and idempotency as any other settlement.
		"""
		if direction == TransactionDirection.CREDIT:
			LedgerAdapter.check_amount(amount_minor)
			_check_reference(reference)
			return _credit_wallet(user, amount_minor, reference, TransactionKind.MANUAL_ADJUSTMENT, description)
		if direction == TransactionDirection.DEBIT:
			return settle(
				user_id=user.pk,
				amount_minor=amount_minor,
				reference=reference,
				kind=TransactionKind.MANUAL_ADJUSTMENT,
				external_action=lambda amount, ref: ProviderResult(ProviderOutcome.SUCCESS, {"operator": True}),
				description=description,
			).record
		raise ValueError(f"unknown direction {direction!r}")


class PaymentServices:

	@staticmethod
	def _check_minimum(amount_minor: int) -> None:
		minimum = getattr(settings, "MIN_PURCHASE_MINOR", 10000)
		LedgerAdapter.check_amount(amount_minor)
		if amount_minor < minimum:
			raise InvalidAmount(f"amount must be at least {minimum} minor units")

	@staticmethod
	def withdrawal_fee(amount_minor: int) -> int:
		"""
		Bank payout fee in kobo, WITHDRAWAL_FEE_BPS basis points rounded up.
		"""
		bps = int(getattr(settings, "WITHDRAWAL_FEE_BPS", 75))
		return -(-amount_minor * bps // 10000)

	@staticmethod
	def purchase_airtime(user: User, *, amount_minor: int, reference: str, phone_number: str, network: str,
			provider=None) -> SettlementResult:
		PaymentServices._check_minimum(amount_minor)
		provider = provider or get_provider()

		def action(amount, ref):
			return provider.buy_airtime(amount_minor=amount, reference=ref, phone_number=phone_number, network=network)

		return settle(
			user_id=user.pk,
			amount_minor=amount_minor,
			reference=reference,
			kind=TransactionKind.PURCHASE_AIRTIME,
			external_action=action,
			description=f"Airtime on {network} for {phone_number}",
			destination=phone_number,
		)

	@staticmethod
	def purchase_data(user: User, *, amount_minor: int, reference: str, phone_number: str, network: str,
			provider=None) -> SettlementResult:
		PaymentServices._check_minimum(amount_minor)
		provider = provider or get_provider()

		def action(amount, ref):
			return provider.buy_data(amount_minor=amount, reference=ref, phone_number=phone_number, network=network)

		return settle(
			user_id=user.pk,
			amount_minor=amount_minor,
			reference=reference,
			kind=TransactionKind.PURCHASE_DATA,
			external_action=action,
			description=f"Data purchase on {network} for {phone_number}",
			destination=phone_number,
		)

	@staticmethod
	def purchase_electricity(user: User, *, amount_minor: int, reference: str, meter_number: str, disco: str,
			meter_type: str = "prepaid", provider=None) -> SettlementResult:
		PaymentServices._check_minimum(amount_minor)
		provider = provider or get_provider()

		def action(amount, ref):
			return provider.buy_electricity(
				amount_minor=amount, reference=ref, meter_number=meter_number, disco=disco, meter_type=meter_type
			)

		return settle(
			user_id=user.pk,
			amount_minor=amount_minor,
			reference=reference,
			kind=TransactionKind.PURCHASE_ELECTRICITY,
			external_action=action,
			description=f"Electricity ({meter_type}) on {disco} for meter {meter_number}",
			destination=meter_number,
		)

	@staticmethod
	def withdraw_to_bank(user: User, *, amount_minor: int, reference: str, account_number: str, account_name: str,
			bank_code: str, narration: str = "Withdrawal", provider=None) -> SettlementResult:
		"""
		Pay out to a bank account. The wallet is debited amount + fee in one
		reservation; the provider is asked to pay out the amount only. On success
		the fee is itemized as "<reference>:fee".
		"""
		LedgerAdapter.check_amount(amount_minor)
		fee_minor = PaymentServices.withdrawal_fee(amount_minor)
		provider = provider or get_provider()

		def action(total, ref):
			return provider.transfer_to_bank(
				amount_minor=amount_minor, reference=ref, account_number=account_number,
				account_name=account_name, bank_code=bank_code, narration=narration,
			)

		return settle(
			user_id=user.pk,
			amount_minor=amount_minor + fee_minor,
			fee_minor=fee_minor,
			reference=reference,
			kind=TransactionKind.BANK_WITHDRAWAL,
			external_action=action,
			description=f"Withdrawal to {account_name} ({account_number})",
			destination=account_number,
		)

	@staticmethod
	def p2p_transfer(sender: User, *, receiver_wallet_id: str, amount_minor: int, reference: str,
			narration: str = "") -> SettlementResult:
		"""
		Move funds to another wallet. The receiving side is a credit record
		"<reference>:credit" written in one transaction with its ledger adjustment.
		"""
		receiver = User.objects.filter(wallet_id=receiver_wallet_id).first()
		if receiver is None:
			raise UserNotFound(f"no wallet {receiver_wallet_id}")
		if receiver.pk == sender.pk:
			raise InvalidTransfer("cannot transfer to your own wallet")

		def action(amount, ref):
			try:
				credit = _credit_wallet(
					receiver, amount, f"{ref}{CREDIT_SUFFIX}", TransactionKind.P2P_TRANSFER,
					narration or f"Received from {sender.display_name}",
				)
			except SettlementError as e:
				raise ExternalActionFailed(str(e), payload={"error": e.code}) from e
			return ProviderResult(ProviderOutcome.SUCCESS, {
				"receiver_wallet_id": receiver.wallet_id,
				"credit_reference": credit.reference,
			})

		return settle(
			user_id=sender.pk,
			amount_minor=amount_minor,
			reference=reference,
			kind=TransactionKind.P2P_TRANSFER,
			external_action=action,
			description=f"P2P transfer to {receiver.display_name}",
			destination=receiver.wallet_id,
		)

	@staticmethod
	def pay_invoice(payer: User, *, invoice_id: str, reference: str) -> SettlementResult:
		"""
		Pay an invoice from the payer's wallet and credit the issuer.
		"""
		invoice = Invoice.objects.filter(invoice_id=invoice_id).first()
		if invoice is None:
			raise InvoiceNotFound(f"no invoice {invoice_id}")
		if invoice.status == InvoiceStatus.PAID and invoice.paid_reference != reference:
			raise InvoiceAlreadyPaid(f"invoice {invoice_id} already paid")
		if invoice.issuer_id == payer.pk:
			raise InvalidTransfer("cannot pay your own invoice")

		def action(amount, ref):
			try:
				with transaction.atomic():
					locked = Invoice.objects.select_for_update().get(pk=invoice.pk)
					if locked.status == InvoiceStatus.PAID:
						raise InvoiceAlreadyPaid(f"invoice {invoice_id} already paid")
					credit = _credit_wallet(
						locked.issuer, amount, f"{ref}{CREDIT_SUFFIX}", TransactionKind.INVOICE_PAYMENT,
						f"Payment for invoice {invoice_id}",
					)
					locked.status = InvoiceStatus.PAID
					locked.paid_reference = ref
					locked.save(update_fields=["status", "paid_reference", "updated_at"])
			except SettlementError as e:
				raise ExternalActionFailed(str(e), payload={"error": e.code}) from e
			return ProviderResult(ProviderOutcome.SUCCESS, {
				"invoice_id": invoice_id,
				"credit_reference": credit.reference,
			})

		return settle(
			user_id=payer.pk,
			amount_minor=invoice.amount_minor,
			reference=reference,
			kind=TransactionKind.INVOICE_PAYMENT,
			external_action=action,
			description=f"Invoice {invoice_id}",
			destination=invoice_id,
		)

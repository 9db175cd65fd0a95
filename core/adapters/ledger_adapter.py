"""Adapter over the wallet balance ledger.

This is the only code that writes Wallet.balance_minor. Each mutation locks the
wallet row (select_for_update inside transaction.atomic), applies the delta and
appends a LedgerAdjustment, so concurrent settlements for one user serialize in
the database instead of in process memory.
"""

import logging
from dataclasses import dataclass

from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction

from core.cache import WalletBalanceCache
from core.exceptions import InsufficientBalance, InvalidAmount, LedgerUnavailable, UserNotFound
from core.models import LedgerAdjustment, Wallet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerResult:
	ok: bool
	new_balance_minor: int


class LedgerAdapter:
	"""
	Atomic reserve/release/credit over Wallet rows, one LedgerAdjustment per change.
	"""

	@staticmethod
	def check_amount(amount_minor) -> None:
		# bool is an int subclass; True must not pass for 1 kobo
		if isinstance(amount_minor, bool) or not isinstance(amount_minor, int) or amount_minor <= 0:
			raise InvalidAmount(f"amount must be a positive integer of minor units, got {amount_minor!r}")

	@staticmethod
	def _apply(user_id, delta_minor: int, record=None, require_funds: bool = False) -> LedgerResult:
		try:
			with transaction.atomic():
				try:
					wallet = Wallet.objects.select_for_update().get(user_id=user_id)
				except (Wallet.DoesNotExist, ValidationError):
					raise UserNotFound(f"no wallet for user {user_id}")

				new_balance = wallet.balance_minor + delta_minor
				if require_funds and new_balance < 0:
					raise InsufficientBalance(
						f"balance {wallet.balance_minor} cannot cover {-delta_minor}", record=record
					)

				wallet.balance_minor = new_balance
				wallet.save(update_fields=["balance_minor", "updated_at"])
				LedgerAdjustment.objects.create(
					user_id=user_id,
					delta_minor=delta_minor,
					resulting_balance_minor=new_balance,
					related_transaction=record,
				)
				# Runs once the outermost transaction commits; dropped on rollback
				transaction.on_commit(lambda: WalletBalanceCache.invalidate(user_id))
		except DatabaseError as e:
			logger.error("ledger unavailable applying %s for user %s: %s", delta_minor, user_id, e)
			raise LedgerUnavailable(str(e), record=record) from e

		return LedgerResult(ok=True, new_balance_minor=new_balance)

	@staticmethod
	def reserve(user_id, amount_minor: int, record=None) -> LedgerResult:
		"""
		Compare-and-decrement. Raises InsufficientBalance without writing anything
		when the balance is short.
		"""
		LedgerAdapter.check_amount(amount_minor)
		return LedgerAdapter._apply(user_id, -amount_minor, record, require_funds=True)

	@staticmethod
	def release(user_id, amount_minor: int, record=None) -> LedgerResult:
		"""
		Compensating credit for a reservation whose external action failed.
		"""
		LedgerAdapter.check_amount(amount_minor)
		return LedgerAdapter._apply(user_id, amount_minor, record)

	@staticmethod
	def credit(user_id, amount_minor: int, record=None) -> LedgerResult:
		"""
		Deposit into the wallet (funding, P2P receipt, invoice proceeds).
		"""
		LedgerAdapter.check_amount(amount_minor)
		return LedgerAdapter._apply(user_id, amount_minor, record)

	@staticmethod
	def balance(user_id) -> int:
		try:
			return Wallet.objects.values_list("balance_minor", flat=True).get(user_id=user_id)
		except (Wallet.DoesNotExist, ValidationError):
			raise UserNotFound(f"no wallet for user {user_id}")
		except DatabaseError as e:
			raise LedgerUnavailable(str(e)) from e

	@staticmethod
	@transaction.atomic
	def open_wallet(user, opening_balance_minor: int = 0) -> Wallet:
		"""
		Create (or fetch) the user's wallet. A non-zero opening balance gets its own
		adjustment so ledger sums match the balance from the first row.
		"""
		wallet, created = Wallet.objects.get_or_create(user=user, defaults={"balance_minor": opening_balance_minor})
		if created and opening_balance_minor:
			LedgerAdjustment.objects.create(
				user=user,
				delta_minor=opening_balance_minor,
				resulting_balance_minor=opening_balance_minor,
			)
		return wallet

"""Settlement domain specific exceptions.

InsufficientBalance, UserNotFound, LedgerUnavailable, RefundPending and
DuplicateReference (a reference reused for a different request) reach callers of
settle(); the rest are classified internally.
"""


class SettlementError(Exception):
	"""Base class for wallet settlement errors."""

	code = "settlement_error"

	def __init__(self, message: str = "", *, record=None):
		super().__init__(message or self.code)
		self.record = record


class InvalidAmount(SettlementError):
	"""Raised when an amount is not a positive number of minor units."""

	code = "invalid_amount"


class InsufficientBalance(SettlementError):
	"""Raised when the wallet cannot cover the reservation. Nothing was debited."""

	code = "insufficient_balance"


class UserNotFound(SettlementError):
	"""Raised when the user (or their wallet) does not exist."""

	code = "user_not_found"


class DuplicateReference(SettlementError):
	"""Raised when a reference is already taken, by a concurrent insert or by an earlier
	request for a different user, amount or kind."""

	code = "duplicate_reference"


class InvalidTransition(SettlementError):
	"""Raised when a status change is not allowed by the record state machine."""

	code = "invalid_transition"


class LedgerUnavailable(SettlementError):
	"""Raised when the backing store could not be reached; retry with the same reference."""

	code = "ledger_unavailable"


class RefundPending(SettlementError):
	"""Raised when the provider rejected the action and the compensating credit failed."""

	code = "refund_pending"


class ExternalActionFailed(SettlementError):
	"""Raised by an external action when the provider definitively rejected it."""

	code = "external_action_failed"

	def __init__(self, message: str = "", *, payload=None, record=None):
		super().__init__(message, record=record)
		self.payload = payload


class ExternalActionAmbiguous(SettlementError):
	"""Raised by an external action when no definitive answer was received."""

	code = "external_action_ambiguous"

	def __init__(self, message: str = "", *, payload=None, record=None):
		super().__init__(message, record=record)
		self.payload = payload


class InvalidPin(SettlementError):
	code = "invalid_pin"


class InvalidTransfer(SettlementError):
	code = "invalid_transfer"


class InvoiceNotFound(SettlementError):
	code = "invoice_not_found"


class InvoiceAlreadyPaid(SettlementError):
	code = "invoice_already_paid"


class TransactionNotFound(SettlementError):
	code = "transaction_not_found"

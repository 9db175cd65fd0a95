"""Transaction record store: durable, append-mostly log of settlement attempts.

Queryable by reference (idempotency) and by user (history). The unique constraint
on reference is the backstop for the check-then-create race in settle().
"""

import logging
from datetime import timedelta

from django.core.exceptions import ValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from core.exceptions import DuplicateReference, InvalidTransition, LedgerUnavailable
from core.models import TransactionDirection, TransactionRecord, TransactionStatus, can_transition

logger = logging.getLogger(__name__)


class TransactionRecordStore:

	@staticmethod
	def find_by_reference(reference: str) -> TransactionRecord | None:
		try:
			return TransactionRecord.objects.filter(reference=reference).first()
		except DatabaseError as e:
			raise LedgerUnavailable(str(e)) from e

	@staticmethod
	def create(**fields) -> TransactionRecord:
		"""
		Insert a new record (pending unless a status is given).
		Raises DuplicateReference when another request already owns the reference.
		"""
		try:
			# Savepoint so the IntegrityError doesn't poison an enclosing transaction
			with transaction.atomic():
				return TransactionRecord.objects.create(**fields)
		except IntegrityError:
			raise DuplicateReference(f"reference {fields.get('reference')!r} already exists")
		except DatabaseError as e:
			raise LedgerUnavailable(str(e)) from e

	@staticmethod
	def update_status(record_id, status: str, external_response=None) -> TransactionRecord:
		"""
		Move a record along the state machine under a row lock.
		Raises InvalidTransition for any change the state machine does not allow.
		"""
		try:
			with transaction.atomic():
				record = TransactionRecord.objects.select_for_update().get(pk=record_id)
				if not can_transition(record.status, status):
					raise InvalidTransition(
						f"{record.reference}: {record.status} -> {status} not allowed", record=record
					)
				previous = record.status
				record.status = status
				fields = ["status", "updated_at"]
				if external_response is not None:
					record.external_response = external_response
					fields.append("external_response")
				record.save(update_fields=fields)
		except DatabaseError as e:
			raise LedgerUnavailable(str(e)) from e

		logger.info("transaction %s: %s -> %s", record.reference, previous, status)
		return record

	@staticmethod
	def list_for_user(user_id, limit: int = 50):
		try:
			return list(TransactionRecord.objects.filter(user_id=user_id).order_by("-created_at")[:limit])
		except ValidationError:
			return []

	@staticmethod
	def stale_in_flight(older_than_minutes: int):
		"""
		processing records (and pending ones whose request died before finalizing)
		untouched for at least older_than_minutes.
		"""
		cutoff = timezone.now() - timedelta(minutes=older_than_minutes)
		return list(
			TransactionRecord.objects
			.filter(
				status__in=[TransactionStatus.PROCESSING, TransactionStatus.PENDING],
				direction=TransactionDirection.DEBIT,
				updated_at__lte=cutoff,
			)
			.order_by("updated_at")
		)

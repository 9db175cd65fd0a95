from unittest import mock

import pytest
from django.db import DatabaseError

from core.adapters.ledger_adapter import LedgerAdapter
from core.exceptions import InsufficientBalance, InvalidAmount, LedgerUnavailable, UserNotFound
from core.models import LedgerAdjustment, Wallet
from core.services import WalletServices

pytestmark = pytest.mark.django_db


def test_open_wallet_writes_opening_adjustment(user, ledger_sum):
	assert LedgerAdapter.balance(user.pk) == 5000
	assert ledger_sum(user) == 5000
	assert LedgerAdjustment.objects.filter(user=user).count() == 1


def test_open_wallet_is_idempotent(user):
	wallet = LedgerAdapter.open_wallet(user, 99999)
	assert wallet.balance_minor == 5000
	assert Wallet.objects.filter(user=user).count() == 1


def test_empty_wallet_has_no_adjustment(make_user):
	user = make_user(0)
	assert LedgerAdapter.balance(user.pk) == 0
	assert not LedgerAdjustment.objects.filter(user=user).exists()


def test_reserve_release_credit(user, ledger_sum):
	assert LedgerAdapter.reserve(user.pk, 2000).new_balance_minor == 3000
	assert LedgerAdapter.release(user.pk, 500).new_balance_minor == 3500
	assert LedgerAdapter.credit(user.pk, 1500).new_balance_minor == 5000
	assert ledger_sum(user) == LedgerAdapter.balance(user.pk) == 5000

	rows = set(LedgerAdjustment.objects.filter(user=user).values_list("delta_minor", "resulting_balance_minor"))
	assert rows == {(5000, 5000), (-2000, 3000), (500, 3500), (1500, 5000)}


def test_reserve_exact_balance_leaves_zero(user):
	assert LedgerAdapter.reserve(user.pk, 5000).new_balance_minor == 0


def test_reserve_short_balance_writes_nothing(user):
	with pytest.raises(InsufficientBalance):
		LedgerAdapter.reserve(user.pk, 5001)
	assert LedgerAdapter.balance(user.pk) == 5000
	assert LedgerAdjustment.objects.filter(user=user).count() == 1


@pytest.mark.parametrize("amount", [0, -1, 10.5, "100", True, None])
def test_invalid_amounts_rejected(user, amount):
	with pytest.raises(InvalidAmount):
		LedgerAdapter.reserve(user.pk, amount)
	with pytest.raises(InvalidAmount):
		LedgerAdapter.credit(user.pk, amount)


def test_unknown_user():
	with pytest.raises(UserNotFound):
		LedgerAdapter.balance("00000000-0000-0000-0000-000000000000")
	with pytest.raises(UserNotFound):
		LedgerAdapter.reserve("not-a-uuid", 100)


def test_database_error_is_ledger_unavailable(user):
	with mock.patch.object(Wallet, "save", side_effect=DatabaseError("connection lost")):
		with pytest.raises(LedgerUnavailable):
			LedgerAdapter.reserve(user.pk, 100)
	assert LedgerAdapter.balance(user.pk) == 5000


def test_mutation_invalidates_cached_balance(user, django_capture_on_commit_callbacks):
	assert WalletServices.cached_balance(user.pk) == 5000
	with django_capture_on_commit_callbacks(execute=True) as callbacks:
		LedgerAdapter.reserve(user.pk, 1000)
	assert len(callbacks) == 1
	assert WalletServices.cached_balance(user.pk) == 4000


def test_cache_survives_until_commit(user, django_capture_on_commit_callbacks):
	assert WalletServices.cached_balance(user.pk) == 5000
	with django_capture_on_commit_callbacks() as callbacks:
		LedgerAdapter.reserve(user.pk, 1000)
		# Not committed yet: readers still see the last committed balance
		assert WalletServices.cached_balance(user.pk) == 5000
	callbacks[0]()
	assert WalletServices.cached_balance(user.pk) == 4000


def test_rolled_back_mutation_keeps_cache(user, django_capture_on_commit_callbacks):
	assert WalletServices.cached_balance(user.pk) == 5000
	with django_capture_on_commit_callbacks(execute=True) as callbacks:
		with pytest.raises(InsufficientBalance):
			LedgerAdapter.reserve(user.pk, 9000)
	assert callbacks == []
	assert WalletServices.cached_balance(user.pk) == 5000


def test_cached_balance_serves_from_cache(user):
	assert WalletServices.cached_balance(user.pk) == 5000
	# Bypass the adapter: the cache has no way to notice
	Wallet.objects.filter(user=user).update(balance_minor=1)
	assert WalletServices.cached_balance(user.pk) == 5000

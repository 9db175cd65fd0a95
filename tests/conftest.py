import itertools

import pytest
from django.core.cache import cache

from core.adapters.provider_adapter import ProviderOutcome, ProviderResult
from core.models import LedgerAdjustment
from core.services import WalletServices


@pytest.fixture(autouse=True)
def fast_settings(settings):
	settings.PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]
	settings.PROVIDER_BACKEND = "stub"
	settings.PROVIDER_WEBHOOK_SECRET = "test-secret"
	settings.ADMIN_API_TOKEN = ""
	settings.MIN_PURCHASE_MINOR = 100
	cache.clear()


@pytest.fixture
def make_user(db):
	"""
	make_user(balance_minor) -> User with a funded wallet and PIN "1234"
	"""
	counter = itertools.count(1)

	def _make(balance_minor: int = 0, pin: str = "1234", name: str | None = None):
		n = next(counter)
		user, _ = WalletServices.open_account(
			f"user{n}@zidwell.test",
			name or f"User {n}",
			pin=pin,
			wallet_id=f"{n:010d}",
			opening_balance_minor=balance_minor,
		)
		return user

	return _make


@pytest.fixture
def user(make_user):
	return make_user(5000)


class RecordingAction:
	"""
	External action double that returns a fixed ProviderResult (or raises) and
	counts its calls.
	"""

	def __init__(self, outcome=ProviderOutcome.SUCCESS, payload=None, raises=None):
		self.result = ProviderResult(outcome, payload if payload is not None else {"code": "00"})
		self.raises = raises
		self.calls = []

	def __call__(self, amount_minor, reference):
		self.calls.append((amount_minor, reference))
		if self.raises is not None:
			raise self.raises
		return self.result


@pytest.fixture
def succeeds():
	return RecordingAction(ProviderOutcome.SUCCESS, {"code": "00", "status": "success"})


@pytest.fixture
def fails():
	return RecordingAction(ProviderOutcome.FAILED, {"code": "E51", "status": "failed"})


@pytest.fixture
def times_out():
	return RecordingAction(ProviderOutcome.AMBIGUOUS, {"error": "timeout"})


@pytest.fixture
def ledger_sum():
	def _sum(user) -> int:
		return sum(LedgerAdjustment.objects.filter(user=user).values_list("delta_minor", flat=True))
	return _sum

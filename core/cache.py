"""Read-through cache for wallet balances shown on read endpoints.

Entries live at most WALLET_CACHE_TTL_SECONDS and are invalidated by every ledger
mutation. Settlement decisions never read from here; the ledger locks the row.
"""

from django.conf import settings
from django.core.cache import cache


class WalletBalanceCache:

	prefix = "wallet-balance"

	@staticmethod
	def _key(user_id) -> str:
		return f"{WalletBalanceCache.prefix}:{user_id}"

	@staticmethod
	def ttl() -> int:
		return int(getattr(settings, "WALLET_CACHE_TTL_SECONDS", 120))

	@staticmethod
	def get(user_id, loader):
		"""
		Return the cached balance for user_id, calling loader(user_id) on a miss.
		"""
		key = WalletBalanceCache._key(user_id)
		value = cache.get(key)
		if value is None:
			value = loader(user_id)
			cache.set(key, value, WalletBalanceCache.ttl())
		return value

	@staticmethod
	def invalidate(user_id) -> None:
		cache.delete(WalletBalanceCache._key(user_id))

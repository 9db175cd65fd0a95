"""Public API surface for the wallet service.

- /bills/*, /withdrawals/bank, /transfers/p2p, /invoices/<id>/pay: settlements (reserve -> provider -> finalize/refund)
- /webhooks/provider: signed provider status callbacks resolving processing transactions
- /wallets/*, /transactions/*: read-only views for verification
- /admin/*: reconciliation sweep, refund retry, manual adjustments
- /demo/*: convenience helpers to seed and fund a wallet
"""

from django.urls import path
from .views_demo import seed, fund
from .views_ops import (
	health, csrf, buy_airtime, buy_data, buy_electricity, withdraw_to_bank, p2p_transfer, pay_invoice, provider_webhook,
	admin_reconcile, admin_retry_refund, admin_adjust_wallet,
)
from .views_read import balance, transactions, transaction_detail, reconciliation_runs


urlpatterns = [
	path("health", health),
	path("csrf", csrf),
	path("demo/seed", seed),
	path("demo/fund", fund),
	path("bills/airtime", buy_airtime),
	path("bills/data", buy_data),
	path("bills/electricity", buy_electricity),
	path("withdrawals/bank", withdraw_to_bank),
	path("transfers/p2p", p2p_transfer),
	path("invoices/<str:invoice_id>/pay", pay_invoice),
	path("wallets/<uuid:user_id>/balance", balance),
	path("wallets/<uuid:user_id>/transactions", transactions),
	path("transactions/<str:reference>", transaction_detail),
	path("webhooks/provider", provider_webhook, name="provider_webhook"),
	path("admin/reconcile", admin_reconcile),
	path("admin/reconciliation-runs", reconciliation_runs),
	path("admin/transactions/<str:reference>/retry-refund", admin_retry_refund),
	path("admin/wallets/<uuid:user_id>/adjust", admin_adjust_wallet),
]

"""Demo helpers: seed a wallet holder and fund their wallet."""

import uuid
from django.conf import settings
from django.http import JsonResponse
from core.constants import format_naira
from core.exceptions import UserNotFound
from core.models import User
from core.services import WalletServices
from .views_ops import json_endpoint, record_json, _amount_minor, _load_user


@json_endpoint
def seed(request, body):
	"""
	POST: Create/fetch a wallet holder {"email"?, "display_name"?, "pin"?}
	"""
	user, wallet = WalletServices.open_account(
		body.get("email") or settings.DEMO_USER_EMAIL,
		body.get("display_name") or "Demo User",
		pin=str(body.get("pin") or "1234"),
	)
	return JsonResponse({
		"user_id": str(user.id),
		"wallet_id": user.wallet_id,
		"balance": format_naira(wallet.balance_minor),
	})


@json_endpoint
def fund(request, body):
	"""
	POST: Simulate a deposit into a wallet {"user_id"?, "amount", "reference"?}
	"""
	if body.get("user_id"):
		user = _load_user(body["user_id"])
	else:
		user = User.objects.filter(email=settings.DEMO_USER_EMAIL).first()
		if user is None:
			raise UserNotFound("demo user not seeded, POST /api/demo/seed first")
	record = WalletServices.fund_wallet(
		user,
		_amount_minor(body["amount"]),
		str(body.get("reference") or f"FUND-{uuid.uuid4().hex[:12]}"),
		body.get("memo") or "Demo funding",
	)
	return JsonResponse({"transaction": record_json(record)}, status=201)

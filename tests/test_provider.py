from unittest import mock

import pytest
import requests

from core.adapters.provider_adapter import (
	HttpProviderClient, ProviderOutcome, StubProviderClient, classify_response, classify_status_response, get_provider,
)
from provider_stub.models import ProviderStubPayment


@pytest.mark.parametrize("status_code,body,outcome", [
	(200, {"code": "00", "status": "success"}, ProviderOutcome.SUCCESS),
	(201, {"status": "Successful"}, ProviderOutcome.SUCCESS),
	(200, {"code": "E51", "status": "failed"}, ProviderOutcome.FAILED),
	(200, {"status": "rejected"}, ProviderOutcome.FAILED),
	(202, {"code": "09", "status": "pending"}, ProviderOutcome.AMBIGUOUS),
	(200, {}, ProviderOutcome.AMBIGUOUS),
	(200, "<html>ok</html>", ProviderOutcome.AMBIGUOUS),
	(400, {"code": "E51", "status": "failed"}, ProviderOutcome.FAILED),
	(422, {"message": "invalid meter"}, ProviderOutcome.FAILED),
	(408, {}, ProviderOutcome.AMBIGUOUS),
	(429, {}, ProviderOutcome.AMBIGUOUS),
	(500, {"code": "00"}, ProviderOutcome.AMBIGUOUS),
	(504, {"code": "504"}, ProviderOutcome.AMBIGUOUS),
])
def test_classify_response(status_code, body, outcome):
	assert classify_response(status_code, body).outcome is outcome


@pytest.mark.parametrize("status_code,body,outcome", [
	(200, {"code": "00", "status": "success"}, ProviderOutcome.SUCCESS),
	(200, {"code": "E51", "status": "failed"}, ProviderOutcome.FAILED),
	(200, {"code": "09", "status": "pending"}, ProviderOutcome.AMBIGUOUS),
	(400, {"code": "E51", "status": "failed"}, ProviderOutcome.AMBIGUOUS),
	(401, {"message": "invalid token"}, ProviderOutcome.AMBIGUOUS),
	(404, "<html>Not Found</html>", ProviderOutcome.AMBIGUOUS),
	(422, {"message": "unknown reference"}, ProviderOutcome.AMBIGUOUS),
	(503, {}, ProviderOutcome.AMBIGUOUS),
])
def test_classify_status_response(status_code, body, outcome):
	assert classify_status_response(status_code, body).outcome is outcome


def test_classify_status_response_keeps_http_status():
	result = classify_status_response(404, "<html>Not Found</html>")
	assert result.payload == {"raw": "<html>Not Found</html>", "http_status": 404}


def _response(status_code, body):
	resp = mock.Mock(status_code=status_code)
	resp.json.return_value = body
	return resp


def _client(session):
	return HttpProviderClient(
		base_url="https://provider.test/api/", account_id="acct-1", api_token="tok", timeout=3, session=session,
	)


def test_http_buy_data_request_shape():
	session = mock.Mock()
	session.request.return_value = _response(201, {"code": "00", "status": "success"})

	result = _client(session).buy_data(amount_minor=150000, reference="DATA-1", phone_number="08030000000", network="mtn")

	assert result.outcome is ProviderOutcome.SUCCESS
	args, kwargs = session.request.call_args
	assert args == ("POST", "https://provider.test/api/bill/data")
	assert kwargs["timeout"] == 3
	assert kwargs["headers"]["Authorization"] == "Bearer tok"
	assert kwargs["headers"]["accountId"] == "acct-1"
	assert kwargs["json"] == {
		"amountMinor": 150000,
		"merchantTxRef": "DATA-1",
		"phoneNumber": "08030000000",
		"network": "mtn",
		"senderName": "Zidwell User",
	}


def test_http_buy_electricity_failure():
	session = mock.Mock()
	session.request.return_value = _response(400, {"code": "E51", "status": "failed"})

	result = _client(session).buy_electricity(amount_minor=500000, reference="ELEC-1", meter_number="4512", disco="ikedc")

	assert result.outcome is ProviderOutcome.FAILED
	assert session.request.call_args.kwargs["json"]["meterType"] == "prepaid"


@pytest.mark.parametrize("error", [
	requests.Timeout("read timed out"),
	requests.ConnectionError("connection reset"),
])
def test_http_transport_errors_are_ambiguous(error):
	session = mock.Mock()
	session.request.side_effect = error

	result = _client(session).buy_data(amount_minor=100, reference="DATA-2", phone_number="0803", network="mtn")

	assert result.outcome is ProviderOutcome.AMBIGUOUS
	assert result.payload["error"] in ("timeout", "transport")


def test_http_unreadable_body_is_ambiguous():
	session = mock.Mock()
	resp = mock.Mock(status_code=200, text="<html>upstream</html>")
	resp.json.side_effect = ValueError("no json")
	session.request.return_value = resp

	result = _client(session).buy_data(amount_minor=100, reference="DATA-3", phone_number="0803", network="mtn")
	assert result.outcome is ProviderOutcome.AMBIGUOUS
	assert result.payload == {"raw": "<html>upstream</html>"}


def test_http_query_status_unknown_reference_stays_ambiguous():
	session = mock.Mock()
	session.request.return_value = _response(404, {"code": "404", "description": "not found"})

	result = _client(session).query_status("DATA-4")

	assert result.outcome is ProviderOutcome.AMBIGUOUS
	assert session.request.call_args.args == ("GET", "https://provider.test/api/transactions/DATA-4")


def test_http_query_status_success():
	session = mock.Mock()
	session.request.return_value = _response(200, {"code": "00", "status": "success"})
	assert _client(session).query_status("DATA-5").outcome is ProviderOutcome.SUCCESS


def test_http_query_status_unauthorized_is_ambiguous():
	session = mock.Mock()
	session.request.return_value = _response(401, {"message": "invalid token"})

	result = _client(session).query_status("DATA-6")

	assert result.outcome is ProviderOutcome.AMBIGUOUS
	assert result.payload["http_status"] == 401


def test_http_query_status_html_not_found_is_ambiguous():
	session = mock.Mock()
	resp = mock.Mock(status_code=404, text="<html>Not Found</html>")
	resp.json.side_effect = ValueError("no json")
	session.request.return_value = resp

	result = _client(session).query_status("DATA-7")

	assert result.outcome is ProviderOutcome.AMBIGUOUS
	assert result.payload == {"raw": "<html>Not Found</html>", "http_status": 404}


def test_http_query_status_explicit_failure():
	session = mock.Mock()
	session.request.return_value = _response(200, {"code": "E51", "status": "failed"})
	assert _client(session).query_status("DATA-8").outcome is ProviderOutcome.FAILED


def test_http_buy_airtime_request_shape():
	session = mock.Mock()
	session.request.return_value = _response(200, {"code": "00", "status": "success"})

	result = _client(session).buy_airtime(amount_minor=20000, reference="AIR-1", phone_number="08120000000", network="airtel")

	assert result.outcome is ProviderOutcome.SUCCESS
	assert session.request.call_args.args == ("POST", "https://provider.test/api/bill/airtime")
	assert session.request.call_args.kwargs["json"] == {
		"amountMinor": 20000,
		"merchantTxRef": "AIR-1",
		"phoneNumber": "08120000000",
		"network": "airtel",
		"senderName": "Zidwell User",
	}


def test_http_transfer_to_bank_request_shape():
	session = mock.Mock()
	session.request.return_value = _response(202, {"code": "09", "status": "processing"})

	result = _client(session).transfer_to_bank(
		amount_minor=100000, reference="WD-1", account_number="0123456789", account_name="Ada Obi", bank_code="058",
	)

	assert result.outcome is ProviderOutcome.AMBIGUOUS
	assert session.request.call_args.args == ("POST", "https://provider.test/api/transfers/bank")
	assert session.request.call_args.kwargs["json"] == {
		"amountMinor": 100000,
		"merchantTxRef": "WD-1",
		"accountNumber": "0123456789",
		"accountName": "Ada Obi",
		"bankCode": "058",
		"narration": "Withdrawal",
	}


@pytest.mark.django_db
@pytest.mark.parametrize("destination,outcome,status", [
	("08030000000", ProviderOutcome.SUCCESS, "success"),
	("FAIL-0803", ProviderOutcome.FAILED, "failed"),
	("PENDING-0803", ProviderOutcome.AMBIGUOUS, "pending"),
	("TIMEOUT-0803", ProviderOutcome.AMBIGUOUS, "success"),
])
def test_stub_client(destination, outcome, status):
	client = StubProviderClient()
	result = client.buy_data(amount_minor=1000, reference="STUB-1", phone_number=destination, network="glo")

	assert result.outcome is outcome
	assert ProviderStubPayment.objects.get(merchant_reference="STUB-1").status == status
	# Repeating the reference does not create a second purchase
	client.buy_data(amount_minor=1000, reference="STUB-1", phone_number=destination, network="glo")
	assert ProviderStubPayment.objects.filter(merchant_reference="STUB-1").count() == 1


@pytest.mark.django_db
def test_stub_client_electricity_token_and_status():
	client = StubProviderClient()
	result = client.buy_electricity(amount_minor=5000, reference="STUB-E", meter_number="4512", disco="ekedc")

	assert result.outcome is ProviderOutcome.SUCCESS
	assert result.payload["token"]
	assert client.query_status("STUB-E").outcome is ProviderOutcome.SUCCESS
	assert client.query_status("unknown").outcome is ProviderOutcome.AMBIGUOUS


@pytest.mark.django_db
def test_stub_client_airtime_and_bank_transfer():
	client = StubProviderClient()

	airtime = client.buy_airtime(amount_minor=20000, reference="STUB-A", phone_number="0812", network="airtel")
	payout = client.transfer_to_bank(
		amount_minor=100000, reference="STUB-W", account_number="FAIL-0123", account_name="Ada Obi", bank_code="058",
	)

	assert airtime.outcome is ProviderOutcome.SUCCESS
	assert airtime.payload["service"] == "airtime"
	assert payout.outcome is ProviderOutcome.FAILED
	assert payout.payload["service"] == "bank_transfer"
	assert payout.payload["destination"] == "FAIL-0123"


@pytest.mark.django_db
def test_stub_http_endpoints(client):
	resp = client.post(
		"/stub/provider/bill/data",
		{"merchantTxRef": "HTTP-1", "phoneNumber": "0803", "amountMinor": 1000, "network": "mtn"},
		content_type="application/json",
	)
	assert resp.status_code == 201
	assert resp.json()["code"] == "00"

	resp = client.post(
		"/stub/provider/bill/electricity",
		{"merchantTxRef": "HTTP-2", "meterNumber": "TIMEOUT-1", "amountMinor": 1000},
		content_type="application/json",
	)
	assert resp.status_code == 504

	assert client.get("/stub/provider/transactions/HTTP-2").json()["status"] == "success"
	assert client.get("/stub/provider/transactions/missing").status_code == 404

	resp = client.post(
		"/stub/provider/bill/airtime",
		{"merchantTxRef": "HTTP-3", "phoneNumber": "0812", "amountMinor": 500, "network": "glo"},
		content_type="application/json",
	)
	assert resp.status_code == 201
	assert resp.json()["service"] == "airtime"

	resp = client.post(
		"/stub/provider/transfers/bank",
		{"merchantTxRef": "HTTP-4", "accountNumber": "0123456789", "amountMinor": 100000},
		content_type="application/json",
	)
	assert resp.status_code == 201
	assert resp.json()["service"] == "bank_transfer"


def test_get_provider(settings):
	settings.PROVIDER_BACKEND = "http"
	assert isinstance(get_provider(), HttpProviderClient)
	settings.PROVIDER_BACKEND = "stub"
	assert isinstance(get_provider(), StubProviderClient)
	settings.PROVIDER_BACKEND = "carrier-pigeon"
	with pytest.raises(ValueError):
		get_provider()

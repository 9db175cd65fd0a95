from django.urls import path
from .views import buy_airtime, buy_data, buy_electricity, transaction_status, transfer_to_bank


urlpatterns = [
	path("bill/airtime", buy_airtime),
	path("bill/data", buy_data),
	path("bill/electricity", buy_electricity),
	path("transfers/bank", transfer_to_bank),
	path("transactions/<str:reference>", transaction_status),
]

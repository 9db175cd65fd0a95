"""URL routing for the wallet API + the local provider stub.


The /api/ namespace exposes settlement, read and admin operations; /stub/provider/
exposes the deterministic provider the stub client mirrors. In production the stub
is replaced by the real bill-payment provider.
"""

from django.contrib import admin
from django.urls import path, include


urlpatterns = [
	path("admin/", admin.site.urls),
	path("api/", include("api.urls")),
	path("stub/provider/", include("provider_stub.urls")),
]

"""
PROJECT URLS

All ledger routes live under /api/:
- /api/customers/...  customer CRUD, payments, export
- /api/health/        liveness probe
"""

from django.urls import include, path

urlpatterns = [
    path("api/", include("ledger.urls")),
]

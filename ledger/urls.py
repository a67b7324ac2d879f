from django.urls import path
from .views import (
    CustomerListView,
    CustomerDetailView,
    CustomerPaymentView,
    CustomerExportView,
    health_check,
)

urlpatterns = [
    path('health/', health_check, name='health'),
    path('customers/', CustomerListView.as_view(), name='customer-list'),
    # must precede the detail route, which would otherwise capture "export"
    path('customers/export/', CustomerExportView.as_view(), name='customer-export'),
    path('customers/<str:customer_id>/', CustomerDetailView.as_view(), name='customer-detail'),
    path('customers/<str:customer_id>/payments/', CustomerPaymentView.as_view(), name='customer-payments'),
]

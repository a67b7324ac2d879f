import logging
from datetime import date
from io import BytesIO

from django.http import HttpResponse
from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response
from rest_framework.views import APIView

from .serializers import CustomerSerializer, CustomerWriteSerializer, PaymentSerializer
from .services import get_customer_service
from .tasks import write_customer_workbook
from .utils import format_inr, summarize

logger = logging.getLogger(__name__)

XLSX_CONTENT_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


def customer_not_found(action, customer_id):
    logger.error(f"{action} failed: Customer {customer_id} not found.")
    return Response({'error': 'Customer not found'}, status=status.HTTP_404_NOT_FOUND)


class CustomerListView(APIView):
    """API endpoint to list customers (optionally searched with ?q=) and create new ones."""
    def get(self, request):
        query = request.query_params.get('q', '')
        customers = get_customer_service().list_customers(query)
        totals = summarize(customers)
        logger.info(f"Listed {len(customers)} customers (query={query!r}), due {format_inr(totals['due'])}.")
        return Response({
            'items': CustomerSerializer(customers, many=True).data,
            'totals': totals,
        }, status=status.HTTP_200_OK)

    def post(self, request):
        serializer = CustomerWriteSerializer(data=request.data)
        if not serializer.is_valid():
            logger.warning(f"Customer creation failed: {serializer.errors}")
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        customer = get_customer_service().create_customer(**serializer.validated_data)
        return Response(CustomerSerializer(customer).data, status=status.HTTP_201_CREATED)


class CustomerDetailView(APIView):
    """API endpoint to view, replace, partially update or delete one customer."""
    def get(self, request, customer_id):
        customer = get_customer_service().get_customer(customer_id)
        if customer is None:
            return customer_not_found('View customer', customer_id)
        return Response({'item': CustomerSerializer(customer).data}, status=status.HTTP_200_OK)

    def put(self, request, customer_id):
        service = get_customer_service()
        if service.get_customer(customer_id) is None:
            return customer_not_found('Replace customer', customer_id)
        serializer = CustomerWriteSerializer(data=request.data)
        if not serializer.is_valid():
            logger.warning(f"Replace customer {customer_id} failed: {serializer.errors}")
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        customer = service.replace_customer(customer_id, **serializer.validated_data)
        if customer is None:
            return customer_not_found('Replace customer', customer_id)
        return Response(CustomerSerializer(customer).data, status=status.HTTP_200_OK)

    def patch(self, request, customer_id):
        service = get_customer_service()
        if service.get_customer(customer_id) is None:
            return customer_not_found('Update customer', customer_id)
        serializer = CustomerWriteSerializer(data=request.data, partial=True)
        if not serializer.is_valid():
            logger.warning(f"Update customer {customer_id} failed: {serializer.errors}")
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        customer = service.update_customer(customer_id, serializer.validated_data)
        if customer is None:
            return customer_not_found('Update customer', customer_id)
        return Response(CustomerSerializer(customer).data, status=status.HTTP_200_OK)

    def delete(self, request, customer_id):
        if not get_customer_service().delete_customer(customer_id):
            return customer_not_found('Delete customer', customer_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class CustomerPaymentView(APIView):
    """API endpoint to record a payment against a customer."""
    def post(self, request, customer_id):
        service = get_customer_service()
        if service.get_customer(customer_id) is None:
            return customer_not_found('Add payment', customer_id)
        serializer = PaymentSerializer(data=request.data)
        if not serializer.is_valid():
            logger.warning(f"Add payment for customer {customer_id} failed: {serializer.errors}")
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        customer = service.add_payment(
            customer_id,
            serializer.validated_data['date'],
            serializer.validated_data['amount'],
        )
        if customer is None:
            return customer_not_found('Add payment', customer_id)
        return Response(CustomerSerializer(customer).data, status=status.HTTP_201_CREATED)


class CustomerExportView(APIView):
    """API endpoint to download the customer ledger as an Excel workbook."""
    def get(self, request):
        query = request.query_params.get('q', '')
        customers = get_customer_service().list_customers(query)
        buffer = BytesIO()
        write_customer_workbook(customers, buffer)
        filename = f"customers-{date.today():%Y%m%d}.xlsx"
        logger.info(f"Exported {len(customers)} customers as {filename}.")
        response = HttpResponse(buffer.getvalue(), content_type=XLSX_CONTENT_TYPE)
        response['Content-Disposition'] = f'attachment; filename="{filename}"'
        return response


@api_view(['GET'])
def health_check(request):
    """Liveness probe; also reports how many customers the store holds."""
    return Response({'status': 'ok', 'customers': get_customer_service().store.count()})

import logging
from celery import shared_task
import pandas as pd
from django.apps import apps

from .models import Customer, Payment
from .services import get_customer_service
from .utils import format_inr, summarize, to_decimal

logger = logging.getLogger(__name__)

CUSTOMER_COLUMNS = ['ID', 'Name', 'Village', 'Phone', 'Total', 'Paid', 'Due']
PAYMENT_COLUMNS = ['Customer ID', 'Customer', 'Date', 'Amount']
SUMMARY_COLUMNS = ['Metric', 'Amount', 'Formatted']


def write_customer_workbook(customers, target):
    """Write Customers, Payments and Summary sheets to a path or file-like object."""
    customer_rows = []
    payment_rows = []
    for customer in customers:
        customer_rows.append({
            'ID': customer.id,
            'Name': customer.name,
            'Village': customer.village,
            'Phone': customer.phone,
            'Total': float(customer.total_amount),
            'Paid': float(customer.paid),
            'Due': float(customer.due),
        })
        for payment in customer.payments:
            payment_rows.append({
                'Customer ID': customer.id,
                'Customer': customer.name,
                'Date': payment.date,
                'Amount': float(payment.amount),
            })
    totals = summarize(customers)
    summary_rows = [
        {'Metric': label, 'Amount': float(totals[key]), 'Formatted': format_inr(totals[key])}
        for key, label in (('total', 'Total'), ('paid', 'Paid'), ('due', 'Due'))
    ]
    summary_rows.append({'Metric': 'Customers', 'Amount': len(customer_rows), 'Formatted': str(len(customer_rows))})

    with pd.ExcelWriter(target, engine='openpyxl') as writer:
        pd.DataFrame(customer_rows, columns=CUSTOMER_COLUMNS).to_excel(writer, sheet_name='Customers', index=False)
        pd.DataFrame(payment_rows, columns=PAYMENT_COLUMNS).to_excel(writer, sheet_name='Payments', index=False)
        pd.DataFrame(summary_rows, columns=SUMMARY_COLUMNS).to_excel(writer, sheet_name='Summary', index=False)
    return totals


def read_customer_workbook(file_path):
    """
    Build customers from a workbook laid out like the export.
    Customers get fresh identifiers; the ID column only links payment rows to their customer.
    """
    with pd.ExcelFile(file_path) as workbook:
        customers_df = workbook.parse('Customers', dtype={'ID': str, 'Phone': str})
        if 'Payments' in workbook.sheet_names:
            payments_df = workbook.parse('Payments', dtype={'Customer ID': str})
        else:
            payments_df = pd.DataFrame(columns=PAYMENT_COLUMNS)

    customers = []
    by_source_id = {}
    for _, row in customers_df.iterrows():
        total = row.get('Total')
        customer = Customer(
            name=_text(row.get('Name')),
            village=_text(row.get('Village')),
            phone=_text(row.get('Phone')),
            total_amount=to_decimal(total if pd.notna(total) else 0),
        )
        customers.append(customer)
        source_id = _text(row.get('ID'))
        if source_id:
            by_source_id[source_id] = customer

    missing_customers = 0
    invalid_rows = 0
    for _, row in payments_df.iterrows():
        customer = by_source_id.get(_text(row.get('Customer ID')))
        if customer is None:
            logger.warning(f"Customer with ID {row.get('Customer ID')} not found for payment ingestion.")
            missing_customers += 1
            continue
        payment_date = pd.to_datetime(row.get('Date'), errors='coerce')
        amount = pd.to_numeric(row.get('Amount'), errors='coerce')
        if pd.isna(payment_date) or pd.isna(amount) or amount <= 0:
            logger.warning(
                f"Skipping payment for customer {row.get('Customer ID')}: "
                f"invalid date {row.get('Date')!r} or amount {row.get('Amount')!r}."
            )
            invalid_rows += 1
            continue
        customer.payments.append(Payment(date=payment_date.date(), amount=to_decimal(amount)))
    for customer in customers:
        customer.payments.sort(key=lambda payment: payment.date, reverse=True)
    if missing_customers or invalid_rows:
        logger.info(
            f"{missing_customers} payments skipped due to missing customers and "
            f"{invalid_rows} due to invalid date or amount in {file_path}."
        )
    return customers


def _text(value):
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ''
    return str(value).strip()


@shared_task
def export_customer_data(file_path, query=None):
    """Export the customer ledger (optionally filtered by a search query) to an Excel file."""
    customers = get_customer_service().list_customers(query)
    totals = write_customer_workbook(customers, file_path)
    logger.info(f"Exported {len(customers)} customers to {file_path}; due {format_inr(totals['due'])}.")
    return {
        'customers': len(customers),
        'total': format_inr(totals['total']),
        'paid': format_inr(totals['paid']),
        'due': format_inr(totals['due']),
    }


@shared_task
def ingest_customer_data(file_path):
    """Load customers and their payments from an Excel file into the ledger store."""
    customers = read_customer_workbook(file_path)
    count = apps.get_app_config('ledger').store.load(customers)
    logger.info(f"Ingested {count} customers from {file_path}.")
    return count

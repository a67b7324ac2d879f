import logging
from datetime import date
from operator import attrgetter

from django.apps import apps

from .models import Customer, Payment
from .utils import format_inr, to_decimal

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ('name', 'village', 'phone', 'total_amount')


def get_customer_service():
    """Access layer bound to the store owned by the ledger app."""
    return CustomerService(apps.get_app_config('ledger').store)


class CustomerService:
    """
    Customer and payment operations over a LedgerStore.

    Lookups that miss return None (or False for delete) instead of raising.
    Input is assumed to have been validated by the caller.
    """

    def __init__(self, store):
        self.store = store

    def list_customers(self, query=None):
        with self.store.records() as customers:
            if not query:
                return list(customers)
            return [customer for customer in customers if customer.matches(query)]

    def get_customer(self, customer_id):
        with self.store.records() as customers:
            return _find(customers, customer_id)

    def create_customer(self, name, village, phone, total_amount):
        customer = Customer(
            name=name,
            village=village,
            phone=phone,
            total_amount=to_decimal(total_amount),
        )
        with self.store.records() as customers:
            customers.insert(0, customer)
        logger.info(f"Created customer {customer.id} - {customer.name} owing {format_inr(customer.total_amount)}")
        return customer

    def update_customer(self, customer_id, changes):
        """Overwrite only the fields present in ``changes``."""
        with self.store.records() as customers:
            customer = _find(customers, customer_id)
            if customer is None:
                return None
            for key in UPDATABLE_FIELDS:
                if key not in changes:
                    continue
                value = changes[key]
                if key == 'total_amount':
                    value = to_decimal(value)
                setattr(customer, key, value)
        logger.info(f"Updated customer {customer_id}: {', '.join(k for k in UPDATABLE_FIELDS if k in changes) or 'no changes'}")
        return customer

    def replace_customer(self, customer_id, name, village, phone, total_amount):
        return self.update_customer(
            customer_id,
            {'name': name, 'village': village, 'phone': phone, 'total_amount': total_amount},
        )

    def delete_customer(self, customer_id):
        with self.store.records() as customers:
            for index, customer in enumerate(customers):
                if customer.id == customer_id:
                    del customers[index]
                    logger.info(f"Deleted customer {customer_id} with {len(customer.payments)} payments.")
                    return True
        return False

    def add_payment(self, customer_id, payment_date, amount):
        if isinstance(payment_date, str):
            payment_date = date.fromisoformat(payment_date)
        with self.store.records() as customers:
            customer = _find(customers, customer_id)
            if customer is None:
                return None
            payment = Payment(date=payment_date, amount=to_decimal(amount))
            customer.payments.append(payment)
            # newest first; equal dates keep insertion order
            customer.payments.sort(key=attrgetter('date'), reverse=True)
        logger.info(
            f"Recorded payment {payment.id} of {format_inr(payment.amount)} on {payment.date} "
            f"for customer {customer_id}; due now {format_inr(customer.due)}"
        )
        return customer


def _find(customers, customer_id):
    for customer in customers:
        if customer.id == customer_id:
            return customer
    return None

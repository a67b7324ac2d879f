import logging
import threading
from contextlib import contextmanager
from datetime import date
from decimal import Decimal

from .models import Customer, Payment

logger = logging.getLogger(__name__)


def sample_customers():
    """Sample ledger shown on a fresh start."""
    today = date.today()
    return [
        Customer(
            name='Ravi Kumar',
            village='Lakshmipur',
            phone='9876543210',
            total_amount=Decimal('12000'),
            payments=[
                Payment(date=today, amount=Decimal('4000')),
                Payment(date=today, amount=Decimal('1500')),
            ],
        ),
        Customer(
            name='Sita Devi',
            village='Bhargavpur',
            phone='9876501234',
            total_amount=Decimal('8000'),
            payments=[Payment(date=today, amount=Decimal('3000'))],
        ),
    ]


class LedgerStore:
    """
    In-memory holder of the customer records for the lifetime of the process.

    The store is seeded lazily: ``seed`` is called the first time the records
    are accessed and whatever it returns becomes the initial collection. A
    seed that raises is logged and retried on the next access.
    Every access happens under one re-entrant lock.
    """

    def __init__(self, seed=None):
        self._seed = seed
        self._customers = []
        self._seeded = False
        self._lock = threading.RLock()

    @contextmanager
    def records(self):
        with self._lock:
            if not self._seeded:
                if self._seed is not None:
                    try:
                        seeded = list(self._seed())
                    except Exception:
                        # left unseeded so the next access tries again
                        logger.exception('Seeding the ledger store failed.')
                        raise
                    self._customers.extend(seeded)
                    logger.info(f"Seeded ledger store with {len(seeded)} customers.")
                self._seeded = True
            yield self._customers

    def load(self, customers):
        """Append already-built customers (e.g. read from a workbook)."""
        with self.records() as records:
            records.extend(customers)
            return len(customers)

    def count(self):
        with self.records() as records:
            return len(records)

    def reset(self):
        """Drop every record and seed again on the next access."""
        with self._lock:
            self._customers = []
            self._seeded = False

import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

# Records live in process memory (see store.py), not in the database.


def new_id():
    return uuid.uuid4().hex


@dataclass
class Payment:
    date: date
    amount: Decimal
    id: str = field(default_factory=new_id)


@dataclass
class Customer:
    name: str
    village: str
    phone: str
    total_amount: Decimal
    payments: list = field(default_factory=list)
    id: str = field(default_factory=new_id)

    @property
    def paid(self):
        return sum((payment.amount for payment in self.payments), Decimal('0'))

    @property
    def due(self):
        """Outstanding balance, recomputed from the payment list on every read."""
        return self.total_amount - self.paid

    def matches(self, query):
        s = query.lower()
        return s in self.name.lower() or s in self.village.lower() or s in self.phone.lower()

    def __str__(self):
        return f"{self.name} ({self.village})"

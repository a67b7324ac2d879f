from django.apps import AppConfig
from django.conf import settings


class LedgerConfig(AppConfig):
    name = 'ledger'
    verbose_name = 'Customer Ledger'

    def ready(self):
        from .store import LedgerStore

        # one store per process, shared by every request
        self.store = LedgerStore(seed=self.seed_customers)

    def seed_customers(self):
        """Initial records: a workbook when LEDGER_SEED_FILE is set, else the sample customers."""
        from .store import sample_customers
        from .tasks import read_customer_workbook

        seed_file = getattr(settings, 'LEDGER_SEED_FILE', '')
        if seed_file:
            return read_customer_workbook(seed_file)
        if getattr(settings, 'LEDGER_SEED_SAMPLE', True):
            return sample_customers()
        return []

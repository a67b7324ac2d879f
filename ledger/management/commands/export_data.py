from django.core.management.base import BaseCommand
from ledger.tasks import export_customer_data

class Command(BaseCommand):
    help = 'Export the customer ledger to an Excel file'

    def add_arguments(self, parser):
        parser.add_argument('path', nargs='?', default='customer_data.xlsx')
        parser.add_argument('--query', default='', help='Only export customers matching this search text')

    def handle(self, *args, **options):
        # Call the export function directly (not as a Celery task) so it reads this process's store
        summary = export_customer_data(options['path'], options['query'])
        self.stdout.write(
            f"Total {summary['total']} | Paid {summary['paid']} | Due {summary['due']}"
        )
        self.stdout.write(self.style.SUCCESS(
            f"Exported {summary['customers']} customers to {options['path']}."
        ))

import os
import tempfile
import threading
from datetime import date
from decimal import Decimal
from io import BytesIO, StringIO

import pandas as pd
from django.apps import apps
from django.core.management import call_command
from django.test import SimpleTestCase, override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APISimpleTestCase

from .models import Customer, Payment
from .services import CustomerService
from .store import LedgerStore, sample_customers
from .tasks import export_customer_data, ingest_customer_data, read_customer_workbook, write_customer_workbook
from .utils import format_inr, summarize

# Create your tests here.

class CustomerServiceTest(SimpleTestCase):
    def setUp(self):
        self.service = CustomerService(LedgerStore())
        self.ravi = self.service.create_customer("Ravi Kumar", "Lakshmipur", "9876543210", 12000)

    def test_create_then_get(self):
        customer = self.service.get_customer(self.ravi.id)
        self.assertEqual(customer.name, "Ravi Kumar")
        self.assertEqual(customer.village, "Lakshmipur")
        self.assertEqual(customer.phone, "9876543210")
        self.assertEqual(customer.total_amount, Decimal("12000"))
        self.assertEqual(customer.payments, [])
        self.assertEqual(customer.due, Decimal("12000"))

    def test_create_inserts_at_front(self):
        sita = self.service.create_customer("Sita Devi", "Bhargavpur", "9876501234", 8000)
        self.assertEqual([c.id for c in self.service.list_customers()], [sita.id, self.ravi.id])

    def test_identifiers_are_unique(self):
        other = self.service.create_customer("Ravi Kumar", "Lakshmipur", "9876543210", 12000)
        self.assertNotEqual(other.id, self.ravi.id)

    def test_payments_sorted_newest_first(self):
        self.service.add_payment(self.ravi.id, "2024-01-10", 4000)
        customer = self.service.add_payment(self.ravi.id, "2024-01-05", 1500)
        self.assertEqual(
            [(p.date, p.amount) for p in customer.payments],
            [(date(2024, 1, 10), Decimal("4000")), (date(2024, 1, 5), Decimal("1500"))],
        )
        self.assertEqual(customer.paid, Decimal("5500"))
        self.assertEqual(customer.due, Decimal("6500"))

    def test_later_payment_moves_to_top(self):
        self.service.add_payment(self.ravi.id, date(2024, 1, 5), 1500)
        customer = self.service.add_payment(self.ravi.id, date(2024, 2, 1), 500)
        self.assertEqual(customer.payments[0].date, date(2024, 2, 1))

    def test_add_payment_moves_paid_and_due_by_amount(self):
        before_paid, before_due = self.ravi.paid, self.ravi.due
        customer = self.service.add_payment(self.ravi.id, date(2024, 3, 1), Decimal("250.50"))
        self.assertEqual(customer.paid - before_paid, Decimal("250.50"))
        self.assertEqual(before_due - customer.due, Decimal("250.50"))

    def test_add_payment_unknown_customer(self):
        self.assertIsNone(self.service.add_payment("missing", date(2024, 1, 1), 100))

    def test_update_only_supplied_fields(self):
        self.service.add_payment(self.ravi.id, date(2024, 1, 1), 3000)
        customer = self.service.update_customer(self.ravi.id, {"total_amount": 9000})
        self.assertEqual(customer.due, Decimal("6000"))
        self.assertEqual(customer.name, "Ravi Kumar")
        self.assertEqual(len(customer.payments), 1)

    def test_update_unknown_customer(self):
        self.assertIsNone(self.service.update_customer("missing", {"name": "X"}))

    def test_replace_keeps_payments(self):
        self.service.add_payment(self.ravi.id, date(2024, 1, 1), 1000)
        customer = self.service.replace_customer(self.ravi.id, "Ravi K", "Rampur", "9000000000", 5000)
        self.assertEqual((customer.name, customer.village, customer.phone), ("Ravi K", "Rampur", "9000000000"))
        self.assertEqual(customer.due, Decimal("4000"))

    def test_delete(self):
        self.assertTrue(self.service.delete_customer(self.ravi.id))
        self.assertIsNone(self.service.get_customer(self.ravi.id))
        self.assertNotIn(self.ravi.id, [c.id for c in self.service.list_customers()])

    def test_delete_unknown_leaves_others(self):
        self.assertFalse(self.service.delete_customer("missing"))
        self.assertEqual([c.id for c in self.service.list_customers()], [self.ravi.id])

    def test_list_without_query_returns_live_customers(self):
        sita = self.service.create_customer("Sita Devi", "Bhargavpur", "9876501234", 8000)
        gone = self.service.create_customer("Gone", "Nowhere", "1111111111", 10)
        self.service.delete_customer(gone.id)
        self.assertEqual({c.id for c in self.service.list_customers()}, {sita.id, self.ravi.id})
        self.assertEqual(len(self.service.list_customers("")), 2)

    def test_list_query_matches_name_village_phone_case_insensitively(self):
        sita = self.service.create_customer("Sita Devi", "Bhargavpur", "9876501234", 8000)
        self.assertEqual([c.id for c in self.service.list_customers("RAVI")], [self.ravi.id])
        self.assertEqual([c.id for c in self.service.list_customers("bhargav")], [sita.id])
        self.assertEqual([c.id for c in self.service.list_customers("98765")], [sita.id, self.ravi.id])
        self.assertEqual(self.service.list_customers("nobody"), [])
        self.assertEqual(
            [c.id for c in self.service.list_customers("devi")],
            [c.id for c in self.service.list_customers("devi")],
        )

    def test_due_invariant_holds_for_every_customer(self):
        sita = self.service.create_customer("Sita Devi", "Bhargavpur", "9876501234", 8000)
        self.service.add_payment(sita.id, date(2024, 1, 1), 3000)
        self.service.add_payment(self.ravi.id, date(2024, 1, 2), 100)
        for customer in self.service.list_customers():
            self.assertEqual(customer.due, customer.total_amount - sum(p.amount for p in customer.payments))

    def test_concurrent_payments_are_all_recorded(self):
        def pay():
            self.service.add_payment(self.ravi.id, date(2024, 1, 1), 10)

        threads = [threading.Thread(target=pay) for _ in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        self.assertEqual(len(self.ravi.payments), 20)
        self.assertEqual(self.ravi.paid, Decimal("200"))


class LedgerStoreTest(SimpleTestCase):
    def test_seeds_once_on_first_access(self):
        calls = []

        def seed():
            calls.append(1)
            return sample_customers()

        store = LedgerStore(seed=seed)
        self.assertEqual(calls, [])
        self.assertEqual(store.count(), 2)
        self.assertEqual(store.count(), 2)
        self.assertEqual(calls, [1])

    def test_sample_customers(self):
        ravi, sita = sample_customers()
        self.assertEqual((ravi.name, ravi.paid, ravi.due), ("Ravi Kumar", Decimal("5500"), Decimal("6500")))
        self.assertEqual((sita.name, sita.paid, sita.due), ("Sita Devi", Decimal("3000"), Decimal("5000")))

    def test_failed_seed_is_retried(self):
        calls = []

        def seed():
            calls.append(1)
            if len(calls) == 1:
                raise FileNotFoundError('seed.xlsx')
            return sample_customers()

        store = LedgerStore(seed=seed)
        with self.assertLogs('ledger.store', level='ERROR'):
            with self.assertRaises(FileNotFoundError):
                store.count()
        self.assertEqual(store.count(), 2)
        self.assertEqual(len(calls), 2)

    def test_reset_rearms_seeding(self):
        store = LedgerStore(seed=sample_customers)
        CustomerService(store).create_customer("Extra", "Village", "1", 1)
        self.assertEqual(store.count(), 3)
        store.reset()
        self.assertEqual(store.count(), 2)

    @override_settings(LEDGER_SEED_SAMPLE=False, LEDGER_SEED_FILE='')
    def test_app_seed_can_be_disabled(self):
        self.assertEqual(apps.get_app_config('ledger').seed_customers(), [])


class FormattingTest(SimpleTestCase):
    def test_format_inr_uses_lakh_grouping(self):
        self.assertEqual(format_inr(999), "₹999.00")
        self.assertEqual(format_inr(1000), "₹1,000.00")
        self.assertEqual(format_inr(100000), "₹1,00,000.00")
        self.assertEqual(format_inr(1234567), "₹12,34,567.00")
        self.assertEqual(format_inr(10000000), "₹1,00,00,000.00")

    def test_format_inr_fraction_and_sign(self):
        self.assertEqual(format_inr(Decimal("12.345")), "₹12.35")
        self.assertEqual(format_inr(-500), "-₹500.00")
        self.assertEqual(format_inr(0), "₹0.00")

    def test_summarize(self):
        customers = sample_customers()
        self.assertEqual(summarize(customers), {
            "total": Decimal("20000"),
            "paid": Decimal("8500"),
            "due": Decimal("11500"),
        })
        self.assertEqual(summarize([]), {"total": 0, "paid": 0, "due": 0})


class WorkbookTest(SimpleTestCase):
    def setUp(self):
        self.customer = Customer(name="Ravi Kumar", village="Lakshmipur", phone="9876543210", total_amount=Decimal("12000"))
        self.customer.payments = [
            Payment(date=date(2024, 1, 10), amount=Decimal("4000")),
            Payment(date=date(2024, 1, 5), amount=Decimal("1500")),
        ]

    def test_workbook_sheets(self):
        buffer = BytesIO()
        write_customer_workbook([self.customer], buffer)
        with pd.ExcelFile(BytesIO(buffer.getvalue())) as workbook:
            self.assertEqual(workbook.sheet_names, ['Customers', 'Payments', 'Summary'])
            sheets = {
                'Customers': workbook.parse('Customers', dtype={'Phone': str}),
                'Payments': workbook.parse('Payments'),
                'Summary': workbook.parse('Summary'),
            }
        row = sheets['Customers'].iloc[0]
        self.assertEqual(row['Name'], "Ravi Kumar")
        self.assertEqual(row['Phone'], "9876543210")
        self.assertEqual(row['Paid'], 5500)
        self.assertEqual(row['Due'], 6500)
        self.assertEqual(len(sheets['Payments']), 2)
        summary = sheets['Summary'].set_index('Metric')
        self.assertEqual(summary.loc['Due', 'Formatted'], "₹6,500.00")

    def test_read_workbook_assigns_fresh_ids(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'ledger.xlsx')
            write_customer_workbook([self.customer], path)
            customers = read_customer_workbook(path)
        self.assertEqual(len(customers), 1)
        loaded = customers[0]
        self.assertNotEqual(loaded.id, self.customer.id)
        self.assertEqual((loaded.name, loaded.village, loaded.phone), ("Ravi Kumar", "Lakshmipur", "9876543210"))
        self.assertEqual([p.date for p in loaded.payments], [date(2024, 1, 10), date(2024, 1, 5)])
        self.assertEqual(loaded.due, Decimal("6500"))

    def test_read_workbook_skips_orphan_and_incomplete_payments(self):
        customers = pd.DataFrame([{
            'ID': 'c1', 'Name': "Ravi Kumar", 'Village': "Lakshmipur", 'Phone': "9876543210", 'Total': 1000,
        }])
        payments = pd.DataFrame([
            {'Customer ID': 'c1', 'Customer': "Ravi Kumar", 'Date': date(2024, 1, 10), 'Amount': 100},
            {'Customer ID': 'ghost', 'Customer': "Nobody", 'Date': date(2024, 1, 11), 'Amount': 50},
            {'Customer ID': 'c1', 'Customer': "Ravi Kumar", 'Date': None, 'Amount': 20},
            {'Customer ID': 'c1', 'Customer': "Ravi Kumar", 'Date': date(2024, 1, 12), 'Amount': None},
        ])
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'partial.xlsx')
            with pd.ExcelWriter(path, engine='openpyxl') as writer:
                customers.to_excel(writer, sheet_name='Customers', index=False)
                payments.to_excel(writer, sheet_name='Payments', index=False)
            with self.assertLogs('ledger.tasks', level='WARNING') as logs:
                loaded = read_customer_workbook(path)
        warnings = [record for record in logs.records if record.levelname == 'WARNING']
        self.assertEqual(len(warnings), 3)
        ravi = loaded[0]
        self.assertEqual([(p.date, p.amount) for p in ravi.payments], [(date(2024, 1, 10), Decimal('100'))])
        self.assertEqual(ravi.paid, Decimal('100'))
        self.assertEqual(ravi.due, Decimal('900'))

    @override_settings(LEDGER_SEED_SAMPLE=False)
    def test_app_seeds_from_workbook(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'seed.xlsx')
            write_customer_workbook([self.customer], path)
            with override_settings(LEDGER_SEED_FILE=path):
                customers = apps.get_app_config('ledger').seed_customers()
        self.assertEqual([c.name for c in customers], ["Ravi Kumar"])


@override_settings(LEDGER_SEED_SAMPLE=False, LEDGER_SEED_FILE='')
class LedgerTaskTest(SimpleTestCase):
    def setUp(self):
        self.store = apps.get_app_config('ledger').store
        self.store.reset()
        service = CustomerService(self.store)
        ravi = service.create_customer("Ravi Kumar", "Lakshmipur", "9876543210", 12000)
        service.add_payment(ravi.id, date(2024, 1, 10), 4000)
        service.create_customer("Sita Devi", "Bhargavpur", "9876501234", 8000)

    def tearDown(self):
        self.store.reset()

    def test_export_then_ingest(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'export.xlsx')
            summary = export_customer_data(path, 'ravi')
            self.assertEqual(summary, {'customers': 1, 'total': "₹12,000.00", 'paid': "₹4,000.00", 'due': "₹8,000.00"})
            self.assertEqual(ingest_customer_data(path), 1)
        self.assertEqual(self.store.count(), 3)

    def test_export_data_command(self):
        out = StringIO()
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'cmd.xlsx')
            call_command('export_data', path, stdout=out)
            self.assertTrue(os.path.exists(path))
        self.assertIn("Exported 2 customers", out.getvalue())
        self.assertIn("Due ₹16,000.00", out.getvalue())


@override_settings(LEDGER_SEED_SAMPLE=False, LEDGER_SEED_FILE='')
class CustomerAPITest(APISimpleTestCase):
    def setUp(self):
        self.store = apps.get_app_config('ledger').store
        self.store.reset()

    def tearDown(self):
        self.store.reset()

    def create_customer(self, **overrides):
        data = {
            "name": "Ravi Kumar",
            "village": "Lakshmipur",
            "phone": "9876543210",
            "total_amount": 12000,
        }
        data.update(overrides)
        response = self.client.post(reverse('customer-list'), data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        return response.data

    def test_create_customer(self):
        data = self.create_customer()
        self.assertIn('id', data)
        self.assertEqual(data['name'], "Ravi Kumar")
        self.assertEqual(data['total_amount'], 12000)
        self.assertEqual(data['totalAmount'], 12000)
        self.assertEqual(data['paid'], 0)
        self.assertEqual(data['due'], 12000)
        self.assertEqual(data['payments'], [])

    def test_create_accepts_camel_case_total(self):
        response = self.client.post(reverse('customer-list'), {
            "name": "Sita Devi", "village": "Bhargavpur", "phone": "9876501234", "totalAmount": 500,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['total_amount'], 500)

    def test_create_requires_all_fields(self):
        url = reverse('customer-list')
        response = self.client.post(url, {"name": "", "village": "X", "phone": "1"}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('name', response.data)
        self.assertIn('total_amount', response.data)

    def test_create_rejects_negative_total(self):
        response = self.client.post(reverse('customer-list'), {
            "name": "A", "village": "B", "phone": "1", "total_amount": -1,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_and_search(self):
        ravi = self.create_customer()
        sita = self.create_customer(name="Sita Devi", village="Bhargavpur", phone="9876501234", total_amount=8000)
        response = self.client.get(reverse('customer-list'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([item['id'] for item in response.data['items']], [sita['id'], ravi['id']])
        self.assertEqual(response.data['totals'], {'total': 20000, 'paid': 0, 'due': 20000})

        response = self.client.get(reverse('customer-list'), {'q': 'LAKSHMI'})
        self.assertEqual([item['id'] for item in response.data['items']], [ravi['id']])
        self.assertEqual(response.data['totals']['total'], 12000)

    def test_get_customer(self):
        ravi = self.create_customer()
        response = self.client.get(reverse('customer-detail', args=[ravi['id']]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['item']['id'], ravi['id'])

    def test_get_unknown_customer(self):
        response = self.client.get(reverse('customer-detail', args=['missing']))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data, {'error': 'Customer not found'})

    def test_payment_scenario(self):
        ravi = self.create_customer()
        url = reverse('customer-payments', args=[ravi['id']])
        response = self.client.post(url, {"date": "2024-01-10", "amount": 4000}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.client.post(url, {"date": "2024-01-05", "amount": 1500}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        payments = [(p['date'], p['amount']) for p in response.data['payments']]
        self.assertEqual(payments, [("2024-01-10", 4000), ("2024-01-05", 1500)])
        self.assertEqual(response.data['paid'], 5500)
        self.assertEqual(response.data['due'], 6500)

    def test_payment_validation(self):
        ravi = self.create_customer()
        url = reverse('customer-payments', args=[ravi['id']])
        for body in (
            {"date": "2024-01-10", "amount": 0},
            {"date": "2024-01-10", "amount": -20},
            {"date": "10/01/2024", "amount": 100},
            {"amount": 100},
        ):
            response = self.client.post(url, body, format='json')
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, body)
        detail = self.client.get(reverse('customer-detail', args=[ravi['id']]))
        self.assertEqual(detail.data['item']['payments'], [])

    def test_largest_payments_keep_listing_working(self):
        ravi = self.create_customer(total_amount="999999999999.99")
        url = reverse('customer-payments', args=[ravi['id']])
        for _ in range(2):
            response = self.client.post(url, {"date": "2024-01-10", "amount": "999999999999.99"}, format='json')
            self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['paid'], Decimal('1999999999999.98'))
        self.assertEqual(response.data['due'], Decimal('-999999999999.99'))

        listing = self.client.get(reverse('customer-list'))
        self.assertEqual(listing.status_code, status.HTTP_200_OK)
        self.assertEqual(listing.data['items'][0]['paid'], Decimal('1999999999999.98'))
        detail = self.client.get(reverse('customer-detail', args=[ravi['id']]))
        self.assertEqual(detail.status_code, status.HTTP_200_OK)

    def test_payment_unknown_customer(self):
        url = reverse('customer-payments', args=['missing'])
        response = self.client.post(url, {"date": "2024-01-10", "amount": 10}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_patch_total_recomputes_due(self):
        ravi = self.create_customer()
        self.client.post(reverse('customer-payments', args=[ravi['id']]), {"date": "2024-01-10", "amount": 3000}, format='json')
        response = self.client.patch(reverse('customer-detail', args=[ravi['id']]), {"totalAmount": 9000}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_amount'], 9000)
        self.assertEqual(response.data['due'], 6000)
        self.assertEqual(response.data['name'], "Ravi Kumar")

    def test_patch_rejects_malformed_fields(self):
        ravi = self.create_customer()
        url = reverse('customer-detail', args=[ravi['id']])
        for body in ({"name": ["not", "a", "string"]}, {"name": 123}, {"phone": 9876543210},
                     {"totalAmount": "lots"}, {"village": ""}, {}):
            response = self.client.patch(url, body, format='json')
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, body)
        detail = self.client.get(url)
        self.assertEqual(detail.data['item']['name'], "Ravi Kumar")
        self.assertEqual(detail.data['item']['village'], "Lakshmipur")

    def test_patch_unknown_customer(self):
        response = self.client.patch(reverse('customer-detail', args=['missing']), {"name": "X"}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_put_replaces_fields(self):
        ravi = self.create_customer()
        url = reverse('customer-detail', args=[ravi['id']])
        response = self.client.put(url, {
            "name": "Ravi K", "village": "Rampur", "phone": "9000000000", "total_amount": 15000,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['village'], "Rampur")
        self.assertEqual(response.data['due'], 15000)

        response = self.client.put(url, {"name": "Only name"}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_customer(self):
        ravi = self.create_customer()
        sita = self.create_customer(name="Sita Devi")
        response = self.client.delete(reverse('customer-detail', args=[ravi['id']]))
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        response = self.client.get(reverse('customer-detail', args=[ravi['id']]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        listing = self.client.get(reverse('customer-list'))
        self.assertEqual([item['id'] for item in listing.data['items']], [sita['id']])

    def test_delete_unknown_customer(self):
        ravi = self.create_customer()
        response = self.client.delete(reverse('customer-detail', args=['missing']))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        listing = self.client.get(reverse('customer-list'))
        self.assertEqual([item['id'] for item in listing.data['items']], [ravi['id']])

    def test_export(self):
        ravi = self.create_customer()
        self.client.post(reverse('customer-payments', args=[ravi['id']]), {"date": "2024-01-10", "amount": 4000}, format='json')
        response = self.client.get(reverse('customer-export'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response['Content-Type'].startswith('application/vnd.openxmlformats'))
        self.assertIn('attachment; filename="customers-', response['Content-Disposition'])
        customers = pd.read_excel(BytesIO(response.content), sheet_name='Customers')
        self.assertEqual(list(customers['Name']), ["Ravi Kumar"])
        self.assertEqual(list(customers['Due']), [8000])

    def test_health(self):
        self.create_customer()
        response = self.client.get(reverse('health'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {'status': 'ok', 'customers': 1})


@override_settings(LEDGER_SEED_SAMPLE=True, LEDGER_SEED_FILE='')
class SeededAPITest(APISimpleTestCase):
    def setUp(self):
        self.store = apps.get_app_config('ledger').store
        self.store.reset()

    def tearDown(self):
        self.store.reset()

    def test_fresh_store_lists_sample_customers(self):
        response = self.client.get(reverse('customer-list'))
        names = [item['name'] for item in response.data['items']]
        self.assertEqual(names, ["Ravi Kumar", "Sita Devi"])
        today = date.today().isoformat()
        self.assertEqual([p['date'] for p in response.data['items'][0]['payments']], [today, today])
        self.assertEqual(response.data['totals'], {'total': 20000, 'paid': 8500, 'due': 11500})

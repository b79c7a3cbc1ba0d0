"""
Test suite for the inventory module
Tests: search filters, CRUD, purchase/restock stock rules, role gating, and the end-to-end shop scenario
"""
import threading
from decimal import Decimal

from django.db import connection, connections
from django.test import TestCase, TransactionTestCase
from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.test import APIClient

from sweetshop.core.exceptions import InsufficientStock, InvalidQuantity, SweetNotFound
from sweetshop.core.models import AuditLog, User
from sweetshop.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from sweetshop.inventory import services
from sweetshop.inventory.models import MAX_QUANTITY, Sweet


class SweetModelTests(TestCase):
    def test_str(self):
        sweet = TestDataFactory.create_sweet(name='Chocolate Frog')
        self.assertEqual(str(sweet), 'Chocolate Frog')

    def test_in_stock(self):
        self.assertTrue(TestDataFactory.create_sweet(quantity=1).in_stock)
        self.assertFalse(TestDataFactory.create_sweet(quantity=0).in_stock)

    def test_store_order_is_creation_order(self):
        first = TestDataFactory.create_sweet(name='Zebra Gum')
        second = TestDataFactory.create_sweet(name='Apple Drops')
        self.assertEqual(list(Sweet.objects.all()), [first, second])


class ListSweetsTests(TestCase):
    """Test the search filters"""

    def setUp(self):
        self.lollipop = TestDataFactory.create_sweet(name='Rainbow Lollipop', category='Hard Candy', price=Decimal('2.50'))
        self.frog = TestDataFactory.create_sweet(name='Chocolate Frog', category='Chocolate', price=Decimal('4.00'))
        self.worms = TestDataFactory.create_sweet(name='Sour Worms', category='Gummy', price=Decimal('1.50'))
        self.bar = TestDataFactory.create_sweet(name='Chocolate Bar', category='Chocolate', price=Decimal('1.00'))

    def test_no_filters_returns_everything_in_store_order(self):
        self.assertEqual(list(services.list_sweets()), [self.lollipop, self.frog, self.worms, self.bar])

    def test_name_substring_is_case_insensitive(self):
        self.assertEqual(list(services.list_sweets({'name': 'choc'})), [self.frog, self.bar])

    def test_category_is_exact(self):
        self.assertEqual(list(services.list_sweets({'category': 'Chocolate'})), [self.frog, self.bar])
        self.assertEqual(list(services.list_sweets({'category': 'Choc'})), [])

    def test_price_range_is_inclusive(self):
        result = services.list_sweets({'minPrice': '1.50', 'maxPrice': '2.50'})
        self.assertEqual(list(result), [self.lollipop, self.worms])

    def test_combined_filters_intersect(self):
        by_name = set(services.list_sweets({'name': 'o'}))
        by_category = set(services.list_sweets({'category': 'Chocolate'}))
        combined = set(services.list_sweets({'name': 'o', 'category': 'Chocolate'}))
        self.assertEqual(combined, by_name & by_category)
        self.assertEqual(set(services.list_sweets({'name': 'Frog', 'maxPrice': '3'})), set())

    def test_blank_filters_are_ignored(self):
        self.assertEqual(services.list_sweets({'name': '', 'category': ''}).count(), 4)

    def test_empty_result_is_valid(self):
        self.assertEqual(list(services.list_sweets({'name': 'licorice'})), [])

    def test_bad_price_bound_rejected(self):
        with self.assertRaises(ValidationError):
            services.list_sweets({'minPrice': 'cheap'})


class PurchaseServiceTests(TestCase):
    """Test stock rules for purchases"""

    def setUp(self):
        self.sweet = TestDataFactory.create_sweet(quantity=10)

    def test_purchase_decrements(self):
        sweet = services.purchase_sweet(self.sweet.id, 3)
        self.assertEqual(sweet.quantity, 7)

    def test_purchase_defaults_to_one(self):
        self.assertEqual(services.purchase_sweet(self.sweet.id, None).quantity, 9)

    def test_purchase_entire_stock(self):
        self.assertEqual(services.purchase_sweet(self.sweet.id, 10).quantity, 0)

    def test_insufficient_stock_leaves_quantity_unchanged(self):
        with self.assertRaises(InsufficientStock):
            services.purchase_sweet(self.sweet.id, 11)
        self.sweet.refresh_from_db()
        self.assertEqual(self.sweet.quantity, 10)

    def test_purchase_unknown_sweet(self):
        with self.assertRaises(SweetNotFound):
            services.purchase_sweet(self.sweet.id + 1000, 1)

    def test_purchase_rejects_non_positive_quantity(self):
        for bad in (0, -2, 'many', 1.5, True):
            with self.assertRaises(InvalidQuantity):
                services.purchase_sweet(self.sweet.id, bad)
        self.sweet.refresh_from_db()
        self.assertEqual(self.sweet.quantity, 10)

    def test_purchase_sequence_never_goes_negative(self):
        requests = [3, 4, 5, 2, 1, 1, 6, 1]
        sold = 0
        for quantity in requests:
            try:
                sweet = services.purchase_sweet(self.sweet.id, quantity)
            except InsufficientStock:
                continue
            sold += quantity
            self.assertGreaterEqual(sweet.quantity, 0)
        self.sweet.refresh_from_db()
        self.assertEqual(self.sweet.quantity, 0)
        self.assertEqual(sold, 10)

    def test_purchase_sees_committed_decrements(self):
        stale = Sweet.objects.get(pk=self.sweet.id)
        services.purchase_sweet(self.sweet.id, 8)
        # The stale instance still reports 10 units, the store only has 2
        self.assertEqual(stale.quantity, 10)
        with self.assertRaises(InsufficientStock):
            services.purchase_sweet(stale.id, 5)

    def test_purchase_touches_updated_at(self):
        before = self.sweet.updated_at
        sweet = services.purchase_sweet(self.sweet.id, 1)
        self.assertGreaterEqual(sweet.updated_at, before)


class RestockServiceTests(TestCase):
    def setUp(self):
        self.sweet = TestDataFactory.create_sweet(quantity=8)

    def test_restock_adds_exactly_quantity(self):
        self.assertEqual(services.restock_sweet(self.sweet.id, 10).quantity, 18)

    def test_restock_accepts_numeric_strings(self):
        self.assertEqual(services.restock_sweet(self.sweet.id, '2').quantity, 10)

    def test_restock_rejects_non_positive(self):
        for bad in (0, -5, None, ''):
            with self.assertRaises(InvalidQuantity):
                services.restock_sweet(self.sweet.id, bad)
        self.sweet.refresh_from_db()
        self.assertEqual(self.sweet.quantity, 8)

    def test_restock_unknown_sweet(self):
        with self.assertRaises(SweetNotFound):
            services.restock_sweet(self.sweet.id + 1000, 5)


class SweetCrudServiceTests(TestCase):
    def test_create_requires_fields(self):
        with self.assertRaises(ValidationError) as ctx:
            services.create_sweet({'name': 'Nameless'})
        self.assertEqual(set(ctx.exception.detail), {'category', 'price', 'quantity'})

    def test_create_rejects_negative_values(self):
        with self.assertRaises(ValidationError):
            services.create_sweet({'name': 'X', 'category': 'Y', 'price': -1, 'quantity': 1})
        with self.assertRaises(ValidationError):
            services.create_sweet({'name': 'X', 'category': 'Y', 'price': 1, 'quantity': -1})

    def test_update_is_partial(self):
        sweet = TestDataFactory.create_sweet(name='Fizzy Pop', quantity=10)
        updated = services.update_sweet(sweet.id, {'price': '2.00'})
        self.assertEqual(updated.price, Decimal('2.00'))
        self.assertEqual(updated.name, 'Fizzy Pop')
        self.assertEqual(updated.quantity, 10)

    def test_update_unknown_sweet(self):
        with self.assertRaises(SweetNotFound):
            services.update_sweet(999, {'name': 'Ghost'})

    def test_delete(self):
        sweet = TestDataFactory.create_sweet()
        services.delete_sweet(sweet.id)
        self.assertFalse(Sweet.objects.filter(pk=sweet.id).exists())

    def test_delete_unknown_sweet(self):
        with self.assertRaises(SweetNotFound):
            services.delete_sweet(999)


class PublicSweetAPITests(TestCase):
    """Read routes are open to everyone"""

    def setUp(self):
        self.client = APIClient()
        self.fizzy = TestDataFactory.create_sweet(name='Super Fizzy Pop', category='Hard Candy', price=Decimal('2.00'))
        self.frog = TestDataFactory.create_sweet(name='Chocolate Frog', category='Chocolate', price=Decimal('4.00'))

    def test_list_without_token(self):
        response = self.client.get('/api/sweets')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([item['id'] for item in response.data], [self.fizzy.id, self.frog.id])

    def test_list_wire_format(self):
        item = self.client.get('/api/sweets').data[0]
        self.assertEqual(
            set(item),
            {'id', 'name', 'category', 'price', 'quantity', 'imageUrl', 'createdAt', 'updatedAt'},
        )
        self.assertEqual(item['price'], Decimal('2.00'))

    def test_list_ignores_stale_token(self):
        self.client.credentials(HTTP_AUTHORIZATION='Bearer expired.or.garbage')
        response = self.client.get('/api/sweets')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_search_by_name(self):
        response = self.client.get('/api/sweets/search?name=Fizzy')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertIn('Fizzy', response.data[0]['name'])

    def test_search_by_category_and_price(self):
        response = self.client.get('/api/sweets/search?category=Chocolate&minPrice=3&maxPrice=5')
        self.assertEqual([item['id'] for item in response.data], [self.frog.id])

    def test_search_bad_price(self):
        response = self.client.get('/api/sweets/search?maxPrice=lots')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('maxPrice', response.data['errors'])

    def test_retrieve(self):
        response = self.client.get(f'/api/sweets/{self.frog.id}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['name'], 'Chocolate Frog')

    def test_retrieve_unknown(self):
        response = self.client.get('/api/sweets/9999')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data, {'message': 'Sweet not found'})


class AdminSweetAPITests(TestCase):
    """Mutations require the ADMIN role"""

    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.sweet = TestDataFactory.create_sweet(name='Fizzy Pop', category='Hard Candy', price=Decimal('1.50'), quantity=10)

    def test_admin_creates_sweet_with_image(self):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/sweets', {
            'name': 'Fizzy Pop 2',
            'category': 'Hard Candy',
            'price': 1.50,
            'quantity': 10,
            'imageUrl': 'http://test.com/image.png',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['imageUrl'], 'http://test.com/image.png')
        self.assertTrue(Sweet.objects.filter(pk=response.data['id']).exists())
        self.assertTrue(AuditLog.objects.filter(action='create', object_id=str(response.data['id'])).exists())

    def test_create_missing_fields(self):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/sweets', {'name': 'Half a sweet'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('category', response.data['errors'])

    def test_standard_user_cannot_create(self):
        self.client.authenticate_user(self.user)
        response = self.client.post('/api/sweets', {'name': 'Hacked', 'category': 'Bad', 'price': 0, 'quantity': 10}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['message'], 'Admins only')

    def test_anonymous_cannot_create(self):
        response = APIClient().post('/api/sweets', {'name': 'Hacked', 'category': 'Bad', 'price': 0, 'quantity': 10}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_admin_updates_sweet(self):
        self.client.authenticate_user(self.admin)
        response = self.client.put(f'/api/sweets/{self.sweet.id}', {'price': 2.00, 'name': 'Super Fizzy Pop'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['price'], Decimal('2.00'))
        self.assertEqual(response.data['name'], 'Super Fizzy Pop')
        self.assertEqual(response.data['quantity'], 10)

    def test_update_unknown_sweet(self):
        self.client.authenticate_user(self.admin)
        response = self.client.put('/api/sweets/9999', {'name': 'Ghost'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_standard_user_cannot_update(self):
        self.client.authenticate_user(self.user)
        response = self.client.patch(f'/api/sweets/{self.sweet.id}', {'price': 0}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_admin_deletes_sweet(self):
        self.client.authenticate_user(self.admin)
        response = self.client.delete(f'/api/sweets/{self.sweet.id}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {'message': 'Deleted'})
        self.assertFalse(Sweet.objects.filter(pk=self.sweet.id).exists())

    def test_delete_unknown_sweet(self):
        self.client.authenticate_user(self.admin)
        response = self.client.delete('/api/sweets/9999')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_standard_user_cannot_delete(self):
        self.client.authenticate_user(self.user)
        response = self.client.delete(f'/api/sweets/{self.sweet.id}')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertTrue(Sweet.objects.filter(pk=self.sweet.id).exists())

    def test_standard_user_cannot_restock(self):
        self.client.authenticate_user(self.user)
        response = self.client.post(f'/api/sweets/{self.sweet.id}/restock', {'quantity': 10}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.sweet.refresh_from_db()
        self.assertEqual(self.sweet.quantity, 10)

    def test_restock_invalid_quantity(self):
        self.client.authenticate_user(self.admin)
        for body in ({'quantity': 0}, {'quantity': -3}, {}):
            response = self.client.post(f'/api/sweets/{self.sweet.id}/restock', body, format='json')
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
            self.assertEqual(response.data['message'], 'Invalid quantity')

    def test_restock_unknown_sweet(self):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/sweets/9999/restock', {'quantity': 1}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class PurchaseAPITests(TestCase):
    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.sweet = TestDataFactory.create_sweet(quantity=10)

    def test_purchase_requires_login(self):
        response = APIClient().post(f'/api/sweets/{self.sweet.id}/purchase', {'quantity': 1}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_purchase_rejects_bad_token(self):
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION='Bearer garbage')
        response = client.post(f'/api/sweets/{self.sweet.id}/purchase', {'quantity': 1}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_purchase_without_body_buys_one(self):
        response = self.client.post(f'/api/sweets/{self.sweet.id}/purchase', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['quantity'], 9)

    def test_purchase_unknown_sweet(self):
        response = self.client.post('/api/sweets/9999/purchase', {'quantity': 1}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['message'], 'Sweet not found')

    def test_purchase_negative_quantity(self):
        response = self.client.post(f'/api/sweets/{self.sweet.id}/purchase', {'quantity': -5}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.sweet.refresh_from_db()
        self.assertEqual(self.sweet.quantity, 10)

    def test_purchase_writes_audit_log(self):
        self.client.post(f'/api/sweets/{self.sweet.id}/purchase', {'quantity': 4}, format='json')
        log = AuditLog.objects.get(action='stock_purchase')
        self.assertEqual(log.user, self.user)
        self.assertEqual(log.changes, {'quantity': 4, 'new_stock_quantity': 6})


class ShopScenarioTests(TestCase):
    """Register, stock, sell and restock through the public API"""

    def test_full_scenario(self):
        client = APIClient()

        admin = client.post('/api/auth/register', {'email': 'a@x.com', 'password': 'password123', 'name': 'A'}, format='json')
        self.assertEqual(admin.data['user']['role'], 'ADMIN')
        shopper = client.post('/api/auth/register', {'email': 'b@x.com', 'password': 'password123', 'name': 'B'}, format='json')
        self.assertEqual(shopper.data['user']['role'], 'USER')
        admin_auth = f"Bearer {admin.data['token']}"
        shopper_auth = f"Bearer {shopper.data['token']}"

        created = client.post(
            '/api/sweets',
            {'name': 'Fizzy Pop', 'category': 'Hard Candy', 'price': 1.5, 'quantity': 10},
            format='json', HTTP_AUTHORIZATION=admin_auth,
        )
        self.assertEqual(created.status_code, status.HTTP_201_CREATED)
        sweet_id = created.data['id']

        bought = client.post(f'/api/sweets/{sweet_id}/purchase', {'quantity': 2}, format='json', HTTP_AUTHORIZATION=shopper_auth)
        self.assertEqual(bought.status_code, status.HTTP_200_OK)
        self.assertEqual(bought.data['quantity'], 8)

        too_many = client.post(f'/api/sweets/{sweet_id}/purchase', {'quantity': 100}, format='json', HTTP_AUTHORIZATION=shopper_auth)
        self.assertEqual(too_many.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertRegex(too_many.data['message'], r'(?i)insufficient stock')

        denied = client.post(f'/api/sweets/{sweet_id}/restock', {'quantity': 10}, format='json', HTTP_AUTHORIZATION=shopper_auth)
        self.assertEqual(denied.status_code, status.HTTP_403_FORBIDDEN)

        restocked = client.post(f'/api/sweets/{sweet_id}/restock', {'quantity': 10}, format='json', HTTP_AUTHORIZATION=admin_auth)
        self.assertEqual(restocked.status_code, status.HTTP_200_OK)
        self.assertEqual(restocked.data['quantity'], 18)


class QuantityLimitTests(TestCase):
    """Quantities beyond the stock column's range are rejected, never a server error"""

    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)
        self.sweet = TestDataFactory.create_sweet(quantity=10)

    def test_service_rejects_huge_quantities(self):
        for bad in (10 ** 30, MAX_QUANTITY + 1, float('inf')):
            with self.assertRaises(InvalidQuantity):
                services.restock_sweet(self.sweet.id, bad)
            with self.assertRaises(InvalidQuantity):
                services.purchase_sweet(self.sweet.id, bad)
        self.sweet.refresh_from_db()
        self.assertEqual(self.sweet.quantity, 10)

    def test_restock_that_would_overflow_is_rejected(self):
        Sweet.objects.filter(pk=self.sweet.id).update(quantity=MAX_QUANTITY - 1)
        with self.assertRaises(InvalidQuantity):
            services.restock_sweet(self.sweet.id, 5)
        self.sweet.refresh_from_db()
        self.assertEqual(self.sweet.quantity, MAX_QUANTITY - 1)
        self.assertEqual(services.restock_sweet(self.sweet.id, 1).quantity, MAX_QUANTITY)

    def test_api_restock_huge_quantity(self):
        response = self.client.post(f'/api/sweets/{self.sweet.id}/restock', {'quantity': 10 ** 30}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'Invalid quantity')

    def test_api_update_huge_quantity(self):
        response = self.client.put(f'/api/sweets/{self.sweet.id}', {'quantity': 10 ** 30}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('quantity', response.data['errors'])
        self.sweet.refresh_from_db()
        self.assertEqual(self.sweet.quantity, 10)

    def test_api_create_huge_quantity(self):
        response = self.client.post('/api/sweets', {
            'name': 'Everlasting Gobstopper', 'category': 'Hard Candy', 'price': 1, 'quantity': 10 ** 30,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(Sweet.objects.filter(name='Everlasting Gobstopper').exists())


class SweetAdminSiteTests(TestCase):
    def test_changelist_shows_stock_flag(self):
        owner = User.objects.create_superuser(email='owner@test.com', password='testpass123')
        TestDataFactory.create_sweet(name='Chocolate Frog', quantity=0)
        self.client.force_login(owner)
        response = self.client.get('/admin/inventory/sweet/')
        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'In stock')
        self.assertContains(response, 'Chocolate Frog')


class ConcurrentPurchaseTests(TransactionTestCase):
    """Parallel purchases against one sweet must serialize"""

    def setUp(self):
        if connection.vendor == 'sqlite' and connection.is_in_memory_db():
            self.skipTest('threads need a file-backed test database')

    def run_in_parallel(self, target, count):
        outcomes = []
        lock = threading.Lock()
        barrier = threading.Barrier(count)

        def worker(index):
            barrier.wait()
            try:
                result = target(index)
            except Exception as e:
                result = e
            finally:
                connections.close_all()
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=worker, args=(index,)) for index in range(count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return outcomes

    def test_parallel_purchases_never_oversell(self):
        sweet = TestDataFactory.create_sweet(quantity=10)

        outcomes = self.run_in_parallel(lambda index: services.purchase_sweet(sweet.id, 3), 8)

        sold = [o for o in outcomes if isinstance(o, Sweet)]
        refused = [o for o in outcomes if isinstance(o, InsufficientStock)]
        self.assertEqual(len(sold) + len(refused), 8, outcomes)
        self.assertEqual(len(sold), 3)
        # Each winner saw the decrements committed before it
        self.assertEqual(sorted(s.quantity for s in sold), [1, 4, 7])
        sweet.refresh_from_db()
        self.assertEqual(sweet.quantity, 1)

    def test_parallel_purchase_and_restock(self):
        sweet = TestDataFactory.create_sweet(quantity=5)

        def move(index):
            if index % 2:
                return services.restock_sweet(sweet.id, 2)
            return services.purchase_sweet(sweet.id, 1)

        outcomes = self.run_in_parallel(move, 6)

        self.assertFalse([o for o in outcomes if isinstance(o, Exception)], outcomes)
        sweet.refresh_from_db()
        self.assertEqual(sweet.quantity, 5 + 3 * 2 - 3)

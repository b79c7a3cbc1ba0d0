"""
Test suite for the storefront client
Tests: remote data source error mapping, demo shop stock rules, session lifecycle, offline fallback, live end-to-end
"""
import json
import shutil
import tempfile
from decimal import Decimal
from pathlib import Path
from unittest import mock

import requests
from django.test import LiveServerTestCase, SimpleTestCase

from sweetshop.client import (
    ApiError, BackendUnavailable, InMemoryDataSource, RemoteDataSource, Session, SessionStore, Storefront,
)


def make_response(status_code, body=None):
    response = requests.Response()
    response.status_code = status_code
    response._content = json.dumps(body).encode() if body is not None else b''
    response.encoding = 'utf-8'
    return response


class RemoteDataSourceTests(SimpleTestCase):
    def setUp(self):
        self.http = mock.Mock()
        self.source = RemoteDataSource(base_url='http://shop.test/api/', http=self.http)

    def test_list_sends_only_given_filters(self):
        self.http.request.return_value = make_response(200, [])
        self.source.list_sweets(name='Frog', category='', max_price=5)
        self.http.request.assert_called_once_with(
            'GET', 'http://shop.test/api/sweets/search',
            headers={}, timeout=10, params={'name': 'Frog', 'maxPrice': 5},
        )

    def test_prices_are_decimals(self):
        self.http.request.return_value = make_response(200, [{'id': 1, 'price': 2.5}])
        self.assertEqual(self.source.list_sweets()[0]['price'], Decimal('2.5'))

    def test_token_sent_as_bearer(self):
        self.http.request.return_value = make_response(200, {'id': 1, 'quantity': 9})
        self.source.purchase(1, 1, token='abc')
        _, kwargs = self.http.request.call_args
        self.assertEqual(kwargs['headers'], {'Authorization': 'Bearer abc'})
        self.assertEqual(kwargs['json'], {'quantity': 1})

    def test_decimal_payload_is_serializable(self):
        self.http.request.return_value = make_response(201, {'id': 5})
        self.source.create_sweet({'name': 'Fudge', 'price': Decimal('1.20')}, token='abc')
        _, kwargs = self.http.request.call_args
        self.assertEqual(kwargs['json'], {'name': 'Fudge', 'price': '1.20'})

    def test_error_response_raises_api_error_with_server_message(self):
        self.http.request.return_value = make_response(400, {'message': 'Insufficient stock'})
        with self.assertRaises(ApiError) as ctx:
            self.source.purchase(1, 100, token='abc')
        self.assertEqual(ctx.exception.message, 'Insufficient stock')
        self.assertEqual(ctx.exception.status, 400)

    def test_error_without_json_body(self):
        self.http.request.return_value = make_response(502)
        with self.assertRaises(ApiError) as ctx:
            self.source.list_sweets()
        self.assertEqual(ctx.exception.status, 502)

    def test_connection_error_is_backend_unavailable(self):
        self.http.request.side_effect = requests.exceptions.ConnectionError('refused')
        with self.assertRaises(BackendUnavailable):
            self.source.list_sweets()

    def test_timeout_is_backend_unavailable(self):
        self.http.request.side_effect = requests.exceptions.Timeout('slow')
        with self.assertRaises(BackendUnavailable):
            self.source.login('a@x.com', 'password123')

    def test_other_transport_errors_are_backend_unavailable(self):
        for error in (requests.exceptions.ChunkedEncodingError('cut'), requests.exceptions.ContentDecodingError('gzip')):
            self.http.request.side_effect = error
            with self.assertRaises(BackendUnavailable):
                self.source.list_sweets()


class InMemoryDataSourceTests(SimpleTestCase):
    def setUp(self):
        self.source = InMemoryDataSource()
        self.admin_token = self.source.login('admin@test.com', 'whatever')['token']
        self.user_token = self.source.login('shopper@test.com', 'whatever')['token']

    def test_demo_catalogue(self):
        names = [sweet['name'] for sweet in self.source.list_sweets()]
        self.assertEqual(names, ['Rainbow Lollipop', 'Chocolate Frog', 'Sour Worms', 'Licorice Wands'])

    def test_demo_roles_follow_email(self):
        self.assertEqual(self.source.register('admin@shop.com', 'x')['user']['role'], 'ADMIN')
        self.assertEqual(self.source.register('jo@shop.com', 'x', 'Jo')['user']['name'], 'Jo')
        self.assertEqual(self.source.login('jo@shop.com', 'y')['user']['role'], 'USER')

    def test_filters(self):
        self.assertEqual([s['id'] for s in self.source.list_sweets(name='o')], [1, 2, 3, 4])
        self.assertEqual([s['id'] for s in self.source.list_sweets(category='Hard Candy')], [1, 4])
        self.assertEqual([s['id'] for s in self.source.list_sweets(name='lic', category='Hard Candy')], [4])
        self.assertEqual([s['id'] for s in self.source.list_sweets(min_price='2.5', max_price='3')], [1, 4])

    def test_bad_price_bound(self):
        with self.assertRaises(ApiError):
            self.source.list_sweets(min_price='cheap')

    def test_non_finite_price_bounds(self):
        for bound in ('NaN', 'sNaN', 'Infinity'):
            with self.assertRaises(ApiError) as ctx:
                self.source.list_sweets(min_price=bound)
            self.assertEqual(ctx.exception.status, 400)
            with self.assertRaises(ApiError):
                self.source.list_sweets(max_price=bound)

    def test_non_finite_price_rejected(self):
        for price in ('NaN', '-Infinity', '1e40'):
            with self.assertRaises(ApiError) as ctx:
                self.source.create_sweet(
                    {'name': 'Fudge', 'category': 'Chocolate', 'price': price, 'quantity': 5}, token=self.admin_token,
                )
            self.assertEqual(ctx.exception.status, 400)
        with self.assertRaises(ApiError):
            self.source.update_sweet(1, {'price': 'NaN'}, token=self.admin_token)
        self.assertEqual(self.source.list_sweets()[0]['price'], Decimal('2.50'))

    def test_huge_quantities_rejected(self):
        with self.assertRaises(ApiError):
            self.source.restock(1, 10 ** 30, token=self.admin_token)
        with self.assertRaises(ApiError):
            self.source.update_sweet(1, {'quantity': 10 ** 30}, token=self.admin_token)
        self.source.update_sweet(1, {'quantity': 2147483647}, token=self.admin_token)
        with self.assertRaises(ApiError) as ctx:
            self.source.restock(1, 1, token=self.admin_token)
        self.assertEqual(ctx.exception.message, 'Invalid quantity')

    def test_returned_sweets_are_copies(self):
        self.source.list_sweets()[0]['quantity'] = 0
        self.assertEqual(self.source.list_sweets()[0]['quantity'], 50)

    def test_purchase_decrements_and_defaults_to_one(self):
        self.assertEqual(self.source.purchase(2, 3, token=self.user_token)['quantity'], 17)
        self.assertEqual(self.source.purchase(2, None, token=self.user_token)['quantity'], 16)

    def test_purchase_sold_out_sweet(self):
        with self.assertRaises(ApiError) as ctx:
            self.source.purchase(4, 1, token=self.user_token)
        self.assertEqual(ctx.exception.message, 'Insufficient stock')
        self.assertEqual(self.source.list_sweets(name='Licorice')[0]['quantity'], 0)

    def test_purchase_needs_token(self):
        with self.assertRaises(ApiError) as ctx:
            self.source.purchase(1, 1)
        self.assertEqual(ctx.exception.status, 401)

    def test_purchase_unknown_sweet(self):
        with self.assertRaises(ApiError) as ctx:
            self.source.purchase(99, 1, token=self.user_token)
        self.assertEqual(ctx.exception.status, 404)

    def test_restock(self):
        self.assertEqual(self.source.restock(4, 10, token=self.admin_token)['quantity'], 10)
        for bad in (0, -1, None):
            with self.assertRaises(ApiError) as ctx:
                self.source.restock(4, bad, token=self.admin_token)
            self.assertEqual(ctx.exception.message, 'Invalid quantity')

    def test_catalogue_changes_need_admin(self):
        with self.assertRaises(ApiError) as ctx:
            self.source.restock(1, 5, token=self.user_token)
        self.assertEqual(ctx.exception.status, 403)
        with self.assertRaises(ApiError):
            self.source.delete_sweet(1, token=self.user_token)

    def test_create_update_delete(self):
        created = self.source.create_sweet(
            {'name': 'Fudge', 'category': 'Chocolate', 'price': '1.2', 'quantity': 5}, token=self.admin_token,
        )
        self.assertEqual(created['id'], 5)
        self.assertEqual(created['price'], Decimal('1.20'))

        updated = self.source.update_sweet(5, {'price': 2}, token=self.admin_token)
        self.assertEqual(updated['price'], Decimal('2.00'))
        self.assertEqual(updated['name'], 'Fudge')

        self.assertEqual(self.source.delete_sweet(5, token=self.admin_token), {'message': 'Deleted'})
        with self.assertRaises(ApiError):
            self.source.delete_sweet(5, token=self.admin_token)

    def test_create_validates(self):
        with self.assertRaises(ApiError) as ctx:
            self.source.create_sweet({'name': 'Fudge'}, token=self.admin_token)
        self.assertEqual(ctx.exception.status, 400)
        with self.assertRaises(ApiError):
            self.source.create_sweet(
                {'name': 'Fudge', 'category': 'Chocolate', 'price': -1, 'quantity': 5}, token=self.admin_token,
            )


class SessionStoreTests(SimpleTestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.tmpdir)
        self.store = SessionStore(Path(self.tmpdir) / 'nested' / 'session.json')

    def test_load_without_file(self):
        self.assertIsNone(self.store.load())

    def test_store_load_clear(self):
        session = Session(token='t0k3n', user={'id': 1, 'email': 'a@x.com', 'role': 'ADMIN'})
        self.store.store(session)
        loaded = self.store.load()
        self.assertEqual(loaded, session)
        self.assertTrue(loaded.is_admin)

        self.store.clear()
        self.assertIsNone(self.store.load())
        self.store.clear()

    def test_corrupt_file_is_ignored(self):
        self.store.path.parent.mkdir(parents=True)
        self.store.path.write_text('{not json')
        self.assertIsNone(self.store.load())


class StorefrontTests(SimpleTestCase):
    def setUp(self):
        self.remote = mock.Mock()
        self.remote.list_sweets.return_value = [{'id': 7, 'name': 'Fudge', 'category': 'Chocolate'}]
        self.store = mock.Mock()
        self.store.load.return_value = None
        self.front = Storefront(source=self.remote, session_store=self.store)

    def test_refresh_marks_backend_connected(self):
        self.assertEqual(self.front.refresh()[0]['name'], 'Fudge')
        self.assertEqual(self.front.backend_status, 'connected')
        self.assertFalse(self.front.offline)

    def test_filters_are_sent(self):
        self.front.set_filters(search='fud', category='Chocolate')
        self.remote.list_sweets.assert_called_with(name='fud', category='Chocolate')

    def test_network_failure_switches_to_demo_for_good(self):
        self.remote.list_sweets.side_effect = BackendUnavailable('down')
        sweets = self.front.refresh()
        self.assertTrue(self.front.offline)
        self.assertEqual(self.front.backend_status, 'disconnected')
        self.assertIsInstance(self.front.source, InMemoryDataSource)
        self.assertEqual(len(sweets), 4)

        self.remote.list_sweets.side_effect = None
        self.front.refresh()
        self.assertIsInstance(self.front.source, InMemoryDataSource)
        self.assertEqual(self.remote.list_sweets.call_count, 1)

    def test_domain_error_does_not_go_offline(self):
        self.front.session = Session(token='abc', user={'role': 'USER'})
        self.remote.purchase.side_effect = ApiError('Insufficient stock', 400)
        self.assertIsNone(self.front.purchase(7, 100))
        self.assertEqual(self.front.last_error, 'Insufficient stock')
        self.assertFalse(self.front.offline)
        self.assertIs(self.front.source, self.remote)

    def test_purchase_without_session_goes_to_login(self):
        self.assertIsNone(self.front.purchase(7))
        self.assertEqual(self.front.screen, 'login')
        self.remote.purchase.assert_not_called()

    def test_purchase_passes_token_and_refreshes(self):
        self.front.session = Session(token='abc', user={'role': 'USER'})
        self.remote.purchase.return_value = {'id': 7, 'quantity': 4}
        self.front.purchase(7, 2)
        self.remote.purchase.assert_called_once_with(7, 2, token='abc')
        self.remote.list_sweets.assert_called()

    def test_login_stores_session(self):
        self.remote.login.return_value = {'token': 'abc', 'user': {'id': 1, 'email': 'a@x.com', 'role': 'ADMIN'}}
        self.front.screen = 'login'
        session = self.front.login('a@x.com', 'password123')
        self.assertTrue(session.is_admin)
        self.assertEqual(self.front.screen, 'home')
        self.store.store.assert_called_once_with(session)

    def test_failed_login_keeps_screen(self):
        self.remote.login.side_effect = ApiError('Invalid email or password', 400)
        self.front.screen = 'login'
        self.assertIsNone(self.front.login('a@x.com', 'bad'))
        self.assertEqual(self.front.screen, 'login')
        self.assertEqual(self.front.last_error, 'Invalid email or password')
        self.store.store.assert_not_called()

    def test_logout_clears_session(self):
        self.front.session = Session(token='abc', user={'role': 'ADMIN'})
        self.front.screen = 'admin'
        self.front.logout()
        self.assertIsNone(self.front.session)
        self.assertEqual(self.front.screen, 'home')
        self.store.clear.assert_called_once_with()

    def test_admin_screen_needs_admin_session(self):
        self.front.session = Session(token='abc', user={'role': 'USER'})
        self.assertEqual(self.front.navigate('admin'), 'home')
        self.assertEqual(self.front.last_error, 'Admins only')
        self.front.session = Session(token='abc', user={'role': 'ADMIN'})
        self.assertEqual(self.front.navigate('admin'), 'admin')

    def test_offline_demo_purchase(self):
        self.remote.list_sweets.side_effect = BackendUnavailable('down')
        self.front.refresh()
        self.front.login('admin@test.com', 'anything')
        self.assertTrue(self.front.session.is_admin)
        self.assertEqual(self.front.purchase(1, 2)['quantity'], 48)
        self.assertEqual(self.front.restock(4, 5)['quantity'], 5)


class RemoteEndToEndTests(LiveServerTestCase):
    """Drive a live shop through RemoteDataSource"""

    def setUp(self):
        self.source = RemoteDataSource(base_url=f'{self.live_server_url}/api')

    def test_shop_scenario(self):
        admin = self.source.register('a@x.com', 'password123', 'A')
        shopper = self.source.register('b@x.com', 'password123', 'B')
        self.assertEqual(admin['user']['role'], 'ADMIN')
        self.assertEqual(shopper['user']['role'], 'USER')

        sweet = self.source.create_sweet(
            {'name': 'Fizzy Pop', 'category': 'Hard Candy', 'price': Decimal('1.50'), 'quantity': 10},
            token=admin['token'],
        )
        self.assertEqual(sweet['price'], Decimal('1.5'))
        self.assertEqual(self.source.purchase(sweet['id'], 2, token=shopper['token'])['quantity'], 8)

        with self.assertRaises(ApiError) as ctx:
            self.source.purchase(sweet['id'], 100, token=shopper['token'])
        self.assertEqual(ctx.exception.message, 'Insufficient stock')

        with self.assertRaises(ApiError) as ctx:
            self.source.restock(sweet['id'], 10, token=shopper['token'])
        self.assertEqual(ctx.exception.status, 403)

        self.assertEqual(self.source.restock(sweet['id'], 10, token=admin['token'])['quantity'], 18)
        self.assertEqual([s['name'] for s in self.source.list_sweets(name='fizzy')], ['Fizzy Pop'])

    def test_storefront_stays_online_against_live_shop(self):
        front = Storefront(source=self.source)
        self.assertEqual(front.refresh(), [])
        self.assertEqual(front.backend_status, 'connected')
        self.assertIsNone(front.login('ghost@x.com', 'password123'))
        self.assertEqual(front.last_error, 'Invalid email or password')
        self.assertFalse(front.offline)

"""
Data sources behind the storefront.

A data source answers the same calls whether it talks to a running shop over
HTTP (RemoteDataSource) or keeps a demo catalogue in memory
(InMemoryDataSource). Sweets travel as plain dicts in the API wire format:
id, name, category, price, quantity, imageUrl, createdAt, updatedAt. Prices
are Decimals on both sources.
"""
import copy
import logging
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

import requests

from .exceptions import ApiError, BackendUnavailable

logger = logging.getLogger(__name__)

DEFAULT_API_URL = 'http://localhost:8000/api'

ADMIN = 'ADMIN'
USER = 'USER'

# Same ceiling as the server's quantity column
MAX_QUANTITY = 2147483647


class SweetDataSource(ABC):
    """Operations the storefront needs from a shop"""

    @abstractmethod
    def list_sweets(self, name='', category='', min_price=None, max_price=None):
        """Return sweets matching the filters, in store order"""

    @abstractmethod
    def create_sweet(self, data, token=None):
        pass

    @abstractmethod
    def update_sweet(self, sweet_id, data, token=None):
        pass

    @abstractmethod
    def delete_sweet(self, sweet_id, token=None):
        pass

    @abstractmethod
    def purchase(self, sweet_id, quantity=1, token=None):
        """Buy quantity units and return the updated sweet"""

    @abstractmethod
    def restock(self, sweet_id, quantity, token=None):
        """Add quantity units and return the updated sweet"""

    @abstractmethod
    def register(self, email, password, name=''):
        """Create an account and return ``{'token': ..., 'user': {...}}``"""

    @abstractmethod
    def login(self, email, password):
        """Return ``{'token': ..., 'user': {...}}`` for valid credentials"""


class RemoteDataSource(SweetDataSource):
    """Talks to the shop's REST API"""

    def __init__(self, base_url=None, timeout=10, http=None):
        self.base_url = (base_url or os.getenv('SWEETSHOP_API_URL', DEFAULT_API_URL)).rstrip('/')
        self.timeout = timeout
        self.http = http or requests.Session()

    def _request(self, method, path, token=None, **kwargs):
        headers = {}
        if token:
            headers['Authorization'] = f'Bearer {token}'
        url = f"{self.base_url}{path}"

        try:
            response = self.http.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            logger.warning(f"Shop unreachable at {url}: {e}")
            raise BackendUnavailable(str(e)) from e

        try:
            data = response.json(parse_float=Decimal)
        except ValueError:
            data = None

        if not response.ok:
            message = data.get('message') if isinstance(data, dict) else None
            raise ApiError(message or f"Request failed with status {response.status_code}", response.status_code)
        return data

    def list_sweets(self, name='', category='', min_price=None, max_price=None):
        params = {
            'name': name,
            'category': category,
            'minPrice': min_price,
            'maxPrice': max_price,
        }
        params = {key: value for key, value in params.items() if value not in (None, '')}
        return self._request('GET', '/sweets/search', params=params)

    def create_sweet(self, data, token=None):
        return self._request('POST', '/sweets', token=token, json=_jsonable(data))

    def update_sweet(self, sweet_id, data, token=None):
        return self._request('PUT', f'/sweets/{sweet_id}', token=token, json=_jsonable(data))

    def delete_sweet(self, sweet_id, token=None):
        return self._request('DELETE', f'/sweets/{sweet_id}', token=token)

    def purchase(self, sweet_id, quantity=1, token=None):
        return self._request('POST', f'/sweets/{sweet_id}/purchase', token=token, json={'quantity': quantity})

    def restock(self, sweet_id, quantity, token=None):
        return self._request('POST', f'/sweets/{sweet_id}/restock', token=token, json={'quantity': quantity})

    def register(self, email, password, name=''):
        return self._request('POST', '/auth/register', json={'email': email, 'password': password, 'name': name})

    def login(self, email, password):
        return self._request('POST', '/auth/login', json={'email': email, 'password': password})


def _jsonable(data):
    # requests' JSON encoder cannot serialize Decimal
    return {key: str(value) if isinstance(value, Decimal) else value for key, value in data.items()}


DEMO_SWEETS = [
    {
        'id': 1,
        'name': 'Rainbow Lollipop',
        'category': 'Hard Candy',
        'price': Decimal('2.50'),
        'quantity': 50,
        'imageUrl': 'https://images.unsplash.com/photo-1575224300306-1b8da36134ec?auto=format&fit=crop&q=80&w=400',
    },
    {'id': 2, 'name': 'Chocolate Frog', 'category': 'Chocolate', 'price': Decimal('4.00'), 'quantity': 20, 'imageUrl': None},
    {'id': 3, 'name': 'Sour Worms', 'category': 'Gummy', 'price': Decimal('1.50'), 'quantity': 100, 'imageUrl': None},
    {'id': 4, 'name': 'Licorice Wands', 'category': 'Hard Candy', 'price': Decimal('3.00'), 'quantity': 0, 'imageUrl': None},
]

REQUIRED_FIELDS = ('name', 'category', 'price', 'quantity')


def _now():
    return datetime.now(timezone.utc).isoformat()


def _positive_quantity(value, default=None):
    if value is None or value == '':
        value = default
    if value is None or isinstance(value, bool):
        raise ApiError('Invalid quantity', 400)
    try:
        quantity = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ApiError('Invalid quantity', 400)
    if isinstance(value, float) and value != quantity:
        raise ApiError('Invalid quantity', 400)
    if quantity <= 0 or quantity > MAX_QUANTITY:
        raise ApiError('Invalid quantity', 400)
    return quantity


def _price_bound(field, value):
    if value in (None, ''):
        return None
    try:
        bound = Decimal(str(value))
    except InvalidOperation:
        raise ApiError(f"{field}: Enter a number.", 400)
    if not bound.is_finite():
        raise ApiError(f"{field}: Enter a number.", 400)
    return bound


def _clean_fields(data):
    """Validate the editable fields present in data, server style"""
    cleaned = {}
    for key, value in data.items():
        if key in ('name', 'category'):
            if not isinstance(value, str) or not value.strip():
                raise ApiError(f"{key}: This field may not be blank.", 400)
            cleaned[key] = value
        elif key == 'price':
            try:
                price = Decimal(str(value))
                if not price.is_finite():
                    raise ValueError(value)
                price = price.quantize(Decimal('0.01'))
            except (InvalidOperation, ValueError):
                raise ApiError('price: A valid number is required.', 400)
            if price < 0:
                raise ApiError('price: Ensure this value is greater than or equal to 0.00.', 400)
            cleaned[key] = price
        elif key == 'quantity':
            if isinstance(value, bool):
                raise ApiError('quantity: A valid integer is required.', 400)
            try:
                quantity = int(value)
            except (TypeError, ValueError, OverflowError):
                raise ApiError('quantity: A valid integer is required.', 400)
            if quantity < 0:
                raise ApiError('quantity: Ensure this value is greater than or equal to 0.', 400)
            if quantity > MAX_QUANTITY:
                raise ApiError(f"quantity: Ensure this value is less than or equal to {MAX_QUANTITY}.", 400)
            cleaned[key] = quantity
        elif key == 'imageUrl':
            cleaned[key] = value or None
    return cleaned


class InMemoryDataSource(SweetDataSource):
    """
    Demo shop kept in process memory.

    Stock rules match the server: purchases never take a sweet below zero,
    restocks must be positive, unknown ids are 404s and catalogue changes
    need an admin. Any email/password pair signs in; emails containing
    "admin" get the ADMIN role.
    """

    def __init__(self, sweets=None):
        now = _now()
        source = DEMO_SWEETS if sweets is None else sweets
        self._sweets = []
        for sweet in copy.deepcopy(source):
            sweet.setdefault('imageUrl', None)
            sweet.setdefault('createdAt', now)
            sweet.setdefault('updatedAt', now)
            self._sweets.append(sweet)
        self._next_id = max((sweet['id'] for sweet in self._sweets), default=0) + 1
        self._accounts = {}
        self._tokens = {}
        self._lock = threading.Lock()

    def _find(self, sweet_id):
        for sweet in self._sweets:
            if sweet['id'] == sweet_id:
                return sweet
        raise ApiError('Sweet not found', 404)

    def _identity(self, token):
        if not token:
            raise ApiError('Authentication credentials were not provided.', 401)
        # Tokens issued elsewhere (before going offline) count as standard shoppers
        return self._tokens.get(token, {'role': USER})

    def _require_admin(self, token):
        if self._identity(token).get('role') != ADMIN:
            raise ApiError('Admins only', 403)

    def list_sweets(self, name='', category='', min_price=None, max_price=None):
        low = _price_bound('minPrice', min_price)
        high = _price_bound('maxPrice', max_price)
        with self._lock:
            sweets = copy.deepcopy(self._sweets)
        if name:
            sweets = [s for s in sweets if name.lower() in s['name'].lower()]
        if category:
            sweets = [s for s in sweets if s['category'] == category]
        if low is not None:
            sweets = [s for s in sweets if s['price'] >= low]
        if high is not None:
            sweets = [s for s in sweets if s['price'] <= high]
        return sweets

    def create_sweet(self, data, token=None):
        self._require_admin(token)
        for field in REQUIRED_FIELDS:
            if data.get(field) in (None, ''):
                raise ApiError(f"{field}: This field is required.", 400)
        fields = _clean_fields(data)
        now = _now()
        with self._lock:
            sweet = {'id': self._next_id, 'imageUrl': None, **fields, 'createdAt': now, 'updatedAt': now}
            self._next_id += 1
            self._sweets.append(sweet)
        return dict(sweet)

    def update_sweet(self, sweet_id, data, token=None):
        self._require_admin(token)
        fields = _clean_fields(data)
        with self._lock:
            sweet = self._find(sweet_id)
            sweet.update(fields)
            sweet['updatedAt'] = _now()
            return dict(sweet)

    def delete_sweet(self, sweet_id, token=None):
        self._require_admin(token)
        with self._lock:
            self._sweets.remove(self._find(sweet_id))
        return {'message': 'Deleted'}

    def purchase(self, sweet_id, quantity=1, token=None):
        self._identity(token)
        quantity = _positive_quantity(quantity, default=1)
        with self._lock:
            sweet = self._find(sweet_id)
            if sweet['quantity'] < quantity:
                raise ApiError('Insufficient stock', 400)
            sweet['quantity'] -= quantity
            sweet['updatedAt'] = _now()
            return dict(sweet)

    def restock(self, sweet_id, quantity, token=None):
        self._require_admin(token)
        quantity = _positive_quantity(quantity)
        with self._lock:
            sweet = self._find(sweet_id)
            if sweet['quantity'] > MAX_QUANTITY - quantity:
                raise ApiError('Invalid quantity', 400)
            sweet['quantity'] += quantity
            sweet['updatedAt'] = _now()
            return dict(sweet)

    def _sign_in(self, email, name=''):
        with self._lock:
            user = self._accounts.get(email.lower())
            if user is None:
                user = {
                    'id': len(self._accounts) + 1,
                    'email': email,
                    'role': ADMIN if 'admin' in email.lower() else USER,
                    'name': name or email.split('@')[0],
                }
                self._accounts[email.lower()] = user
            token = f"demo-token-{user['id']}-{len(self._tokens) + 1}"
            self._tokens[token] = user
        return {'token': token, 'user': dict(user)}

    def register(self, email, password, name=''):
        return self._sign_in(email, name)

    def login(self, email, password):
        return self._sign_in(email)

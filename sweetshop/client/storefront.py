"""
Storefront view state.

Holds what a shop front-end shows (current screen, search and category
filters, listed sweets, backend status, last error) and turns user actions
into data source calls. When the shop cannot be reached the storefront swaps
its data source for the in-memory demo shop and stays offline from then on;
errors the shop answers with are only recorded in ``last_error``.
"""
import logging

from .datasource import InMemoryDataSource, RemoteDataSource
from .exceptions import ApiError, BackendUnavailable
from .session import Session

logger = logging.getLogger(__name__)

SCREENS = ('home', 'login', 'register', 'admin')


class Storefront:
    def __init__(self, source=None, session_store=None, demo_source_factory=InMemoryDataSource):
        self.source = source or RemoteDataSource()
        self.session_store = session_store
        self.session = session_store.load() if session_store else None
        self.demo_source_factory = demo_source_factory

        self.screen = 'home'
        self.search = ''
        self.category = ''
        self.sweets = []
        self.backend_status = 'unknown'
        self.offline = False
        self.last_error = None

    @property
    def user(self):
        return self.session.user if self.session else None

    def go_offline(self):
        """Switch to the demo shop for the rest of this storefront's life"""
        if self.offline:
            return
        logger.warning("Shop unreachable; switching to demo mode")
        self.offline = True
        self.backend_status = 'disconnected'
        self.source = self.demo_source_factory()

    def _call(self, operation, *args, **kwargs):
        """Run a data source call; returns None and sets last_error on failure"""
        self.last_error = None
        try:
            result = getattr(self.source, operation)(*args, **kwargs)
        except BackendUnavailable:
            self.go_offline()
            try:
                result = getattr(self.source, operation)(*args, **kwargs)
            except ApiError as e:
                self.last_error = e.message
                return None
        except ApiError as e:
            self.last_error = e.message
            return None

        if not self.offline:
            self.backend_status = 'connected'
        return result

    def _token(self):
        return self.session.token if self.session else None

    def navigate(self, screen):
        if screen not in SCREENS:
            raise ValueError(f"Unknown screen: {screen}")
        if screen == 'admin' and not (self.session and self.session.is_admin):
            self.last_error = 'Admins only'
            return self.screen
        self.screen = screen
        if screen in ('home', 'admin'):
            self.refresh()
        return self.screen

    def refresh(self):
        """Reload the sweet list with the current filters"""
        sweets = self._call('list_sweets', name=self.search, category=self.category)
        if sweets is not None:
            self.sweets = sweets
        return self.sweets

    def set_filters(self, search=None, category=None):
        if search is not None:
            self.search = search
        if category is not None:
            self.category = category
        return self.refresh()

    def categories(self):
        return sorted({sweet['category'] for sweet in self.sweets})

    def _signed_in(self, data):
        if data is None:
            return None
        self.session = Session.from_auth_response(data)
        if self.session_store:
            self.session_store.store(self.session)
        self.screen = 'home'
        self.refresh()
        return self.session

    def login(self, email, password):
        return self._signed_in(self._call('login', email, password))

    def register(self, email, password, name=''):
        return self._signed_in(self._call('register', email, password, name))

    def logout(self):
        self.session = None
        if self.session_store:
            self.session_store.clear()
        if self.screen == 'admin':
            self.screen = 'home'

    def purchase(self, sweet_id, quantity=1):
        """Buy a sweet; without a session the storefront moves to the login screen"""
        if self.session is None:
            self.screen = 'login'
            return None
        sweet = self._call('purchase', sweet_id, quantity, token=self._token())
        if sweet is not None:
            self.refresh()
        return sweet

    def _admin_action(self, operation, *args):
        result = self._call(operation, *args, token=self._token())
        if result is not None:
            self.refresh()
        return result

    def add_sweet(self, data):
        return self._admin_action('create_sweet', data)

    def edit_sweet(self, sweet_id, data):
        return self._admin_action('update_sweet', sweet_id, data)

    def remove_sweet(self, sweet_id):
        return self._admin_action('delete_sweet', sweet_id)

    def restock(self, sweet_id, quantity):
        return self._admin_action('restock', sweet_id, quantity)

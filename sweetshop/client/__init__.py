"""
Storefront client: data sources, the session object and the storefront view state.

Nothing in this package imports Django, so it runs against a remote shop
from any Python process.
"""
from .datasource import SweetDataSource, RemoteDataSource, InMemoryDataSource
from .exceptions import ApiError, BackendUnavailable
from .session import Session, SessionStore
from .storefront import Storefront

__all__ = [
    'SweetDataSource',
    'RemoteDataSource',
    'InMemoryDataSource',
    'ApiError',
    'BackendUnavailable',
    'Session',
    'SessionStore',
    'Storefront',
]

"""
Test utilities and factories for creating test data
"""
from decimal import Decimal
import random
import string

from rest_framework.test import APIClient

from sweetshop.core.auth import issue_token
from sweetshop.core.models import Role, User
from sweetshop.inventory.models import Sweet


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(email=None, password='testpass123', name=None, role=Role.USER):
        """Create a test account"""
        if not email:
            email = f'user_{TestDataFactory.random_string(6).lower()}@test.com'
        return User.objects.create_user(
            email=email,
            password=password,
            name=name or email.split('@')[0],
            role=role,
        )

    @staticmethod
    def create_admin(email=None, password='testpass123', name=None):
        """Create a test account with the ADMIN role"""
        if not email:
            email = f'admin_{TestDataFactory.random_string(6).lower()}@test.com'
        return TestDataFactory.create_user(email=email, password=password, name=name, role=Role.ADMIN)

    @staticmethod
    def create_sweet(name=None, category='Chocolate', price=None, quantity=10, image_url=None):
        """Create a test sweet"""
        if not name:
            name = f'Sweet_{TestDataFactory.random_string(6)}'
        if price is None:
            price = Decimal('2.50')
        return Sweet.objects.create(
            name=name,
            category=category,
            price=price,
            quantity=quantity,
            image_url=image_url,
        )


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {issue_token(user)}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()

"""
Test suite for accounts and auth
Tests: registration roles, login, token verification, role checks, audit log, management commands
"""
import base64
import json
from datetime import timedelta
from io import StringIO

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import AccessToken

from sweetshop.core.auth import (
    Identity, register_account, authenticate_account, issue_token, verify_token, require_role,
)
from sweetshop.core.exceptions import EmailAlreadyExists, Forbidden, InvalidCredentials, Unauthorized
from sweetshop.core.models import AuditLog, Role, User
from sweetshop.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from sweetshop.inventory.models import Sweet


def forge_role(token, role):
    """Rewrite the role claim of a signed token without re-signing it"""
    header, payload, signature = token.split('.')
    padded = payload + '=' * (-len(payload) % 4)
    claims = json.loads(base64.urlsafe_b64decode(padded))
    claims['role'] = role
    forged = base64.urlsafe_b64encode(json.dumps(claims).encode()).decode().rstrip('=')
    return f'{header}.{forged}.{signature}'


class RegisterAccountTests(TestCase):
    """Test the account store rules behind registration"""

    def test_first_account_is_admin(self):
        user = register_account('a@x.com', 'password123', 'Alice')
        self.assertEqual(user.role, Role.ADMIN)

    def test_later_accounts_are_standard(self):
        register_account('a@x.com', 'password123', 'Alice')
        bob = register_account('b@x.com', 'password123', 'Bob')
        carol = register_account('c@x.com', 'password123')
        self.assertEqual(bob.role, Role.USER)
        self.assertEqual(carol.role, Role.USER)
        self.assertEqual(User.objects.filter(role=Role.ADMIN).count(), 1)

    @override_settings(SWEETSHOP_FIRST_USER_IS_ADMIN=False)
    def test_bootstrap_admin_can_be_switched_off(self):
        user = register_account('a@x.com', 'password123')
        self.assertEqual(user.role, Role.USER)

    def test_password_is_hashed(self):
        user = register_account('a@x.com', 'password123')
        self.assertNotEqual(user.password, 'password123')
        self.assertNotIn('password123', user.password)
        self.assertTrue(user.check_password('password123'))

    def test_duplicate_email_conflicts(self):
        register_account('a@x.com', 'password123')
        with self.assertRaises(EmailAlreadyExists):
            register_account('A@X.com', 'otherpass456')
        self.assertEqual(User.objects.count(), 1)


class AuthenticateAccountTests(TestCase):
    def setUp(self):
        self.user = TestDataFactory.create_user(email='shopper@test.com', password='password123')

    def test_valid_credentials(self):
        self.assertEqual(authenticate_account('shopper@test.com', 'password123'), self.user)

    def test_unknown_email(self):
        with self.assertRaises(InvalidCredentials):
            authenticate_account('nobody@test.com', 'password123')

    def test_wrong_password(self):
        with self.assertRaises(InvalidCredentials):
            authenticate_account('shopper@test.com', 'wrongpass')

    def test_inactive_account(self):
        self.user.is_active = False
        self.user.save()
        with self.assertRaises(InvalidCredentials):
            authenticate_account('shopper@test.com', 'password123')


class TokenTests(TestCase):
    """Test issuing and verifying bearer tokens"""

    def setUp(self):
        self.user = TestDataFactory.create_admin(email='boss@test.com')

    def test_token_round_trip_carries_identity_and_role(self):
        identity = verify_token(issue_token(self.user))
        self.assertEqual(identity, Identity(id=self.user.id, email='boss@test.com', role=Role.ADMIN))

    def test_token_expires_after_one_hour(self):
        token = AccessToken(issue_token(self.user))
        lifetime = token['exp'] - token['iat']
        self.assertEqual(lifetime, int(timedelta(hours=1).total_seconds()))

    def test_malformed_token_rejected(self):
        with self.assertRaises(Unauthorized):
            verify_token('not-a-token')

    def test_empty_token_rejected(self):
        with self.assertRaises(Unauthorized):
            verify_token('')

    def test_expired_token_rejected(self):
        token = AccessToken.for_user(self.user)
        token['email'] = self.user.email
        token['role'] = self.user.role
        token.set_exp(lifetime=timedelta(seconds=-1))
        with self.assertRaises(Unauthorized):
            verify_token(str(token))

    def test_tampered_token_rejected(self):
        user = TestDataFactory.create_user()
        forged = forge_role(issue_token(user), Role.ADMIN)
        with self.assertRaises(Unauthorized):
            verify_token(forged)


class RequireRoleTests(TestCase):
    def test_matching_role_passes(self):
        identity = Identity(id=1, email='a@x.com', role=Role.ADMIN)
        self.assertIs(require_role(identity, Role.ADMIN), identity)

    def test_mismatched_role_forbidden(self):
        identity = Identity(id=2, email='b@x.com', role=Role.USER)
        with self.assertRaises(Forbidden):
            require_role(identity, Role.ADMIN)

    def test_accepts_user_objects(self):
        user = TestDataFactory.create_user()
        with self.assertRaises(Forbidden):
            require_role(user, Role.ADMIN)


class AuthAPITests(TestCase):
    """Test the /api/auth endpoints"""

    def setUp(self):
        self.client = APIClient()

    def register(self, email, password='password123', name='Tester'):
        return self.client.post('/api/auth/register', {'email': email, 'password': password, 'name': name}, format='json')

    def test_register_returns_token_and_user(self):
        response = self.register('admin@test.com', name='Admin')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('token', response.data)
        self.assertEqual(set(response.data['user']), {'id', 'email', 'role', 'name'})
        self.assertEqual(response.data['user']['role'], 'ADMIN')
        self.assertEqual(response.data['user']['name'], 'Admin')

    def test_second_registration_is_standard_user(self):
        self.register('admin@test.com')
        response = self.register('user@test.com')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['user']['role'], 'USER')

    def test_register_duplicate_email(self):
        self.register('admin@test.com')
        response = self.register('admin@test.com')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'Email already exists')

    def test_register_missing_fields(self):
        response = self.client.post('/api/auth/register', {'email': 'x@test.com'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('password', response.data['errors'])
        self.assertTrue(response.data['message'].startswith('password'))

    def test_register_invalid_email(self):
        response = self.register('not-an-email')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('email', response.data['errors'])

    def test_register_writes_audit_log(self):
        response = self.register('admin@test.com')
        log = AuditLog.objects.get(action='register')
        self.assertEqual(log.object_id, str(response.data['user']['id']))
        self.assertEqual(log.changes, {'role': 'ADMIN'})

    def test_login(self):
        self.register('user@test.com')
        response = self.client.post('/api/auth/login', {'email': 'user@test.com', 'password': 'password123'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['user']['email'], 'user@test.com')
        identity = verify_token(response.data['token'])
        self.assertEqual(identity.email, 'user@test.com')

    def test_login_wrong_password(self):
        self.register('user@test.com')
        response = self.client.post('/api/auth/login', {'email': 'user@test.com', 'password': 'nope123'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'Invalid email or password')

    def test_login_unknown_email(self):
        response = self.client.post('/api/auth/login', {'email': 'ghost@test.com', 'password': 'password123'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'Invalid email or password')

    def test_me_requires_token(self):
        response = self.client.get('/api/auth/me')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertIn('message', response.data)

    def test_me_with_token(self):
        token = self.register('user@test.com').data['token']
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
        response = self.client.get('/api/auth/me')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['email'], 'user@test.com')

    def test_me_with_invalid_token(self):
        self.client.credentials(HTTP_AUTHORIZATION='Bearer garbage')
        response = self.client.get('/api/auth/me')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['message'], 'Invalid token')
        self.assertEqual(response['WWW-Authenticate'], 'Bearer realm="api"')

    def test_health(self):
        response = self.client.get('/api/health')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {'ok': True})


class AuditLogAPITests(TestCase):
    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()

    def test_admin_can_list_audit_logs(self):
        sweet = TestDataFactory.create_sweet(quantity=5)
        self.client.authenticate_user(self.user)
        self.client.post(f'/api/sweets/{sweet.id}/purchase', {'quantity': 2}, format='json')

        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/audit-logs?action=stock_purchase')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['user']['id'], self.user.id)
        self.assertEqual(response.data[0]['changes'], {'quantity': 2, 'new_stock_quantity': 3})

    def test_standard_user_cannot_list_audit_logs(self):
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/audit-logs')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['message'], 'Admins only')


class ManagementCommandTests(TestCase):
    def test_seed_sweets_creates_owner_and_demo_data(self):
        call_command('seed_sweets', stdout=StringIO())
        owner = User.objects.get(email='admin@sweetshop.com')
        self.assertEqual(owner.role, Role.ADMIN)
        self.assertTrue(owner.check_password('admin123'))
        self.assertEqual(Sweet.objects.count(), 3)

    def test_seed_sweets_is_idempotent(self):
        call_command('seed_sweets', stdout=StringIO())
        call_command('seed_sweets', stdout=StringIO())
        self.assertEqual(User.objects.count(), 1)
        self.assertEqual(Sweet.objects.count(), 3)

    def test_seeded_owner_means_first_registrant_is_not_admin(self):
        call_command('seed_sweets', stdout=StringIO())
        user = register_account('first@test.com', 'password123')
        self.assertEqual(user.role, Role.USER)

    def test_set_role_promotes(self):
        TestDataFactory.create_admin(email='boss@test.com')
        TestDataFactory.create_user(email='clerk@test.com')
        call_command('set_role', 'clerk@test.com', 'ADMIN', stdout=StringIO())
        self.assertEqual(User.objects.get(email='clerk@test.com').role, Role.ADMIN)
        self.assertTrue(AuditLog.objects.filter(action='role_change').exists())

    def test_set_role_refuses_to_demote_last_admin(self):
        TestDataFactory.create_admin(email='boss@test.com')
        with self.assertRaises(CommandError):
            call_command('set_role', 'boss@test.com', 'USER', stdout=StringIO())

    def test_set_role_unknown_account(self):
        with self.assertRaises(CommandError):
            call_command('set_role', 'ghost@test.com', 'ADMIN', stdout=StringIO())


class ProjectCheckTests(SimpleTestCase):
    """The URLconf, views and REST framework settings load together"""

    def test_system_checks_pass(self):
        call_command('check', stdout=StringIO())

    def test_api_routes_resolve(self):
        self.assertEqual(reverse('sweet-purchase', args=[1]), '/api/sweets/1/purchase')
        self.assertEqual(reverse('login'), '/api/auth/login')

    def test_exception_handler_loads(self):
        from rest_framework.settings import api_settings
        from sweetshop.core.exceptions import api_exception_handler

        self.assertIs(api_settings.EXCEPTION_HANDLER, api_exception_handler)
        self.assertEqual(
            [cls.__name__ for cls in api_settings.DEFAULT_AUTHENTICATION_CLASSES],
            ['BearerTokenAuthentication'],
        )

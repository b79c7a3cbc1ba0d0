"""
Account registration, credential checks and bearer token handling.

Tokens are simplejwt access tokens carrying ``id``, ``email`` and ``role``
claims. Nothing about a session is stored server side; every request
re-validates its token.
"""
import logging
from dataclasses import dataclass

from django.conf import settings
from django.db import transaction
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken

from .exceptions import EmailAlreadyExists, Forbidden, InvalidCredentials, Unauthorized
from .models import Role, User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """Identity and role bound into a verified token"""
    id: int
    email: str
    role: str


def register_account(email, password, name=''):
    """
    Create an account and return it.

    The very first account becomes ADMIN while SWEETSHOP_FIRST_USER_IS_ADMIN
    is on; everyone after that is a regular USER.
    """
    email = User.objects.normalize_email(email)
    with transaction.atomic():
        if User.objects.filter(email__iexact=email).exists():
            raise EmailAlreadyExists()

        role = Role.USER
        if getattr(settings, 'SWEETSHOP_FIRST_USER_IS_ADMIN', True) and not User.objects.exists():
            role = Role.ADMIN

        user = User.objects.create_user(email=email, password=password, name=name or '', role=role)

    logger.info(f"Registered account {user.id} ({user.email}) with role {user.role}")
    return user


def authenticate_account(email, password):
    """Return the account matching the credentials or raise InvalidCredentials"""
    user = User.objects.filter(email__iexact=User.objects.normalize_email(email or '')).first()
    if user is None or not user.is_active or not user.check_password(password):
        logger.info(f"Failed login for {email!r}")
        raise InvalidCredentials()
    return user


def issue_token(user):
    token = AccessToken.for_user(user)
    token['email'] = user.email
    token['role'] = user.role
    return str(token)


def decode_token(raw_token):
    """Validate signature and expiry, returning the simplejwt token object"""
    if not raw_token:
        raise Unauthorized()
    try:
        return AccessToken(raw_token)
    except TokenError as e:
        raise Unauthorized() from e


def verify_token(raw_token):
    token = decode_token(raw_token)
    try:
        return Identity(id=int(token['id']), email=token['email'], role=token['role'])
    except (KeyError, TypeError, ValueError) as e:
        raise Unauthorized() from e


def require_role(identity, role):
    """Raise Forbidden unless the identity (or user) holds the given role"""
    if getattr(identity, 'role', None) != role:
        raise Forbidden()
    return identity

"""
Inventory operations on sweets.

Purchase and restock are the only operations that touch shared state
concurrently. Both run inside a transaction and write through a single
``UPDATE`` built from ``F()`` expressions; purchase also row-locks the sweet
with ``select_for_update`` and guards its decrement with
``quantity >= requested``, so the sufficiency check and the decrement are
one statement on every database backend. Two purchases racing for the
last units serialize; the loser sees the winner's committed quantity.
"""
import logging

from django.db import transaction
from django.db.models import F
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from sweetshop.core.exceptions import InsufficientStock, InvalidQuantity, SweetNotFound
from .filters import SweetFilter
from .models import MAX_QUANTITY, Sweet
from .serializers import SweetSerializer

logger = logging.getLogger(__name__)


def coerce_quantity(value, default=None):
    """Return value as a positive int that fits the quantity column, or raise InvalidQuantity"""
    if value is None or value == '':
        if default is None:
            raise InvalidQuantity()
        value = default
    if isinstance(value, bool):
        raise InvalidQuantity()
    try:
        quantity = int(value)
    except (TypeError, ValueError, OverflowError):
        raise InvalidQuantity()
    if isinstance(value, float) and value != quantity:
        raise InvalidQuantity()
    if quantity <= 0 or quantity > MAX_QUANTITY:
        raise InvalidQuantity()
    return quantity


def get_sweet(pk):
    try:
        return Sweet.objects.get(pk=pk)
    except Sweet.DoesNotExist:
        raise SweetNotFound()


def list_sweets(filters=None):
    """Return sweets matching the search filters, in store order"""
    filterset = SweetFilter(filters or {}, queryset=Sweet.objects.all())
    if not filterset.is_valid():
        raise ValidationError(filterset.errors)
    return filterset.qs


def create_sweet(data):
    serializer = SweetSerializer(data=data)
    serializer.is_valid(raise_exception=True)
    sweet = serializer.save()
    logger.info(f"Created sweet {sweet.id} ({sweet.name}) with quantity {sweet.quantity}")
    return sweet


def update_sweet(pk, data, partial=True):
    """Update the given fields of a sweet; fields left out keep their values"""
    sweet = get_sweet(pk)
    serializer = SweetSerializer(sweet, data=data, partial=partial)
    serializer.is_valid(raise_exception=True)
    return serializer.save()


def delete_sweet(pk):
    sweet = get_sweet(pk)
    sweet.delete()
    logger.info(f"Deleted sweet {pk}")


def purchase_sweet(pk, quantity=1):
    """
    Take quantity units of a sweet out of stock and return the updated sweet.

    Raises SweetNotFound if the sweet does not exist and InsufficientStock,
    leaving the quantity untouched, if fewer than quantity units are left.
    """
    quantity = coerce_quantity(quantity, default=1)

    with transaction.atomic():
        locked = Sweet.objects.select_for_update().filter(pk=pk).first()
        if locked is None:
            raise SweetNotFound()

        updated = Sweet.objects.filter(pk=pk, quantity__gte=quantity).update(
            quantity=F('quantity') - quantity,
            updated_at=timezone.now(),
        )
        if not updated:
            raise InsufficientStock()

        sweet = Sweet.objects.get(pk=pk)

    logger.info(f"Purchased {quantity} x sweet {pk}; {sweet.quantity} left")
    return sweet


def restock_sweet(pk, quantity):
    """Add quantity units (must be positive) to a sweet and return it"""
    quantity = coerce_quantity(quantity)

    with transaction.atomic():
        updated = Sweet.objects.filter(pk=pk, quantity__lte=MAX_QUANTITY - quantity).update(
            quantity=F('quantity') + quantity,
            updated_at=timezone.now(),
        )
        if not updated:
            if Sweet.objects.filter(pk=pk).exists():
                # Stock would overflow the column
                raise InvalidQuantity()
            raise SweetNotFound()

        sweet = Sweet.objects.get(pk=pk)

    logger.info(f"Restocked sweet {pk} by {quantity}; now {sweet.quantity}")
    return sweet

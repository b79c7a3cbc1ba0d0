from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models

# Largest value a PositiveIntegerField holds on every supported database
MAX_QUANTITY = 2147483647


class Sweet(models.Model):
    """A purchasable item in the shop's inventory"""
    name = models.CharField(max_length=200, db_index=True)
    category = models.CharField(max_length=100, db_index=True)
    price = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal('0.00'))])
    quantity = models.PositiveIntegerField(default=0)
    # URL or inline data URI
    image_url = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    @property
    def in_stock(self):
        return self.quantity > 0

    class Meta:
        db_table = 'sweets'
        ordering = ['id']
        constraints = [
            models.CheckConstraint(condition=models.Q(quantity__gte=0), name='sweet_quantity_non_negative'),
            models.CheckConstraint(condition=models.Q(price__gte=0), name='sweet_price_non_negative'),
        ]

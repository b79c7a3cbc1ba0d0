from decimal import Decimal

from rest_framework import serializers
from .models import MAX_QUANTITY, Sweet


class SweetSerializer(serializers.ModelSerializer):
    """Wire format uses camelCase for the image and timestamp fields"""
    price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.00'))
    quantity = serializers.IntegerField(min_value=0, max_value=MAX_QUANTITY)
    imageUrl = serializers.CharField(source='image_url', required=False, allow_blank=True, allow_null=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)
    updatedAt = serializers.DateTimeField(source='updated_at', read_only=True)

    class Meta:
        model = Sweet
        fields = ['id', 'name', 'category', 'price', 'quantity', 'imageUrl', 'createdAt', 'updatedAt']
        read_only_fields = ['id']

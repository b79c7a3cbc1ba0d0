import django_filters
from .models import Sweet


class SweetFilter(django_filters.FilterSet):
    """
    Storefront search filters.

    - name: case-insensitive substring match
    - category: exact match
    - minPrice / maxPrice: inclusive price bounds

    Each filter narrows the queryset independently; combining them intersects.
    Blank values are ignored.
    """
    name = django_filters.CharFilter(field_name='name', lookup_expr='icontains')
    category = django_filters.CharFilter(field_name='category', lookup_expr='exact')
    minPrice = django_filters.NumberFilter(field_name='price', lookup_expr='gte')
    maxPrice = django_filters.NumberFilter(field_name='price', lookup_expr='lte')

    class Meta:
        model = Sweet
        fields = ['name', 'category', 'minPrice', 'maxPrice']

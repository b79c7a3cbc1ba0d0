from django.contrib import admin
from .models import Sweet


@admin.register(Sweet)
class SweetAdmin(admin.ModelAdmin):
    list_display = ['name', 'category', 'price', 'quantity', 'in_stock', 'updated_at']
    list_filter = ['category', 'created_at']
    search_fields = ['name', 'category']
    ordering = ['id']
    readonly_fields = ['created_at', 'updated_at']

    @admin.display(boolean=True, description='In stock')
    def in_stock(self, obj):
        return obj.in_stock

from django.urls import path
from .views import sweet_collection, sweet_search, sweet_item, sweet_purchase, sweet_restock

urlpatterns = [
    # Public reads; POST/PUT/PATCH/DELETE on these paths are admin-gated
    path('sweets', sweet_collection, name='sweet-list-create'),
    path('sweets/search', sweet_search, name='sweet-search'),
    path('sweets/<int:pk>', sweet_item, name='sweet-detail'),

    # Stock movements
    path('sweets/<int:pk>/purchase', sweet_purchase, name='sweet-purchase'),
    path('sweets/<int:pk>/restock', sweet_restock, name='sweet-restock'),
]

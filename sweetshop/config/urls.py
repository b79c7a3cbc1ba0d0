"""
URL configuration for the sweetshop project.

Every API route lives under ``api/``. Public read routes and the gated
mutation routes are declared per app; see ``sweetshop.inventory.urls``.
"""
from django.contrib import admin
from django.urls import path, include

admin.site.site_header = "SweetShop Admin Panel"
admin.site.site_title = "SweetShop Admin Portal"
admin.site.index_title = "Welcome to the SweetShop Admin Portal"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', include('sweetshop.core.urls')),
    path('api/', include('sweetshop.inventory.urls')),
]

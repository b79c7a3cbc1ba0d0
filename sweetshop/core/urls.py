from django.urls import path
from .views import health, register, login, user_me, audit_log_list

urlpatterns = [
    path('health', health, name='health'),

    # Auth endpoints
    path('auth/register', register, name='register'),
    path('auth/login', login, name='login'),
    path('auth/me', user_me, name='user-me'),

    # AuditLog endpoints
    path('audit-logs', audit_log_list, name='audit-log-list'),
]

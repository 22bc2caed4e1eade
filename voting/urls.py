"""
URL routing for the voting pages
================================

Language-prefixed server-rendered pages:
- Login / logout
- Role dashboards (``dashboard/`` redirects to the caller's one)
"""

from django.urls import path
from . import views

app_name = 'voting'

urlpatterns = [
    path('', views.index, name='index'),

    # Authentication
    path('login/', views.login_view, name='login'),
    path('logout/', views.logout_view, name='logout'),

    # Dashboards
    path('dashboard/', views.dashboard, name='dashboard'),
    path('dashboard/admin/', views.admin_dashboard, name='admin_dashboard'),
    path('dashboard/delegate/', views.delegate_dashboard, name='delegate_dashboard'),
    path('dashboard/voter/', views.voter_dashboard, name='voter_dashboard'),
]

"""
URL configuration for the pricing platform.
Only the Django admin is routed; pricing and promotions are consumed as services.
"""

from django.contrib import admin
from django.urls import path

urlpatterns = [
    path("admin/", admin.site.urls),
]

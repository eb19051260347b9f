"""
URL configuration for pocket_ledger project.

The ledger engine is consumed in-process through ``finance.services``; only
the admin site is routed here.
"""
from django.contrib import admin
from django.urls import path

urlpatterns = [
    path('admin/', admin.site.urls),
]

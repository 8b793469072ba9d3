"""
URL configuration for the IMS workflow engine.

Admin site plus the JSON endpoints of every app.
"""

from django.contrib import admin
from django.urls import include, path

admin.site.site_header = 'IMS Administration'
admin.site.site_title = 'IMS Admin'

urlpatterns = [
    path('admin/', admin.site.urls),
    path('', include('procurement.urls')),
    path('', include('loans.urls')),
    path('', include('assets.urls')),
    path('', include('inventory.urls')),
]

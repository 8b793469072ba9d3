"""
Users Admin Configuration
=========================
Register the user model with Django admin interface.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ['username', 'email', 'full_name', 'division', 'role', 'is_active', 'is_staff']
    list_filter = ['is_active', 'is_staff', 'is_superuser', 'role', 'division']
    search_fields = ['username', 'email', 'full_name']
    ordering = ['username']

    fieldsets = (
        ('Authentication', {
            'fields': ('username', 'email', 'password')
        }),
        ('Personal Information', {
            'fields': ('full_name', 'phone')
        }),
        ('Organization', {
            'fields': ('division', 'role')
        }),
        ('Permissions', {
            'fields': ('is_active', 'is_staff', 'is_superuser')
        }),
        ('Audit', {
            'fields': ('id', 'last_login', 'created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('username', 'email', 'password1', 'password2', 'full_name', 'division', 'role'),
        }),
    )

    readonly_fields = ['id', 'last_login', 'created_at', 'updated_at']
    filter_horizontal = ()

"""
Asset Management Admin Configuration
====================================
Register asset models with Django admin interface.
"""

from django.contrib import admin, messages
from django.utils.html import format_html

from core.exceptions import WorkflowError
from .ledger import CustodyLedger
from .models import Asset, AssetStatus


STATUS_COLORS = {
    AssetStatus.IN_STORAGE: 'green',
    AssetStatus.IN_USE: 'blue',
    AssetStatus.IN_CUSTODY: 'blue',
    AssetStatus.AWAITING_RETURN: 'orange',
    AssetStatus.IN_REPAIR: 'orange',
    AssetStatus.DAMAGED: 'red',
    AssetStatus.DECOMMISSIONED: 'gray',
    AssetStatus.CONSUMED: 'gray',
}


@admin.register(Asset)
class AssetAdmin(admin.ModelAdmin):
    list_display = [
        'id', 'name', 'brand', 'serial_number', 'status_badge', 'condition',
        'current_holder_user', 'current_holder_customer', 'location'
    ]
    list_filter = ['status', 'condition', 'category', 'created_at']
    search_fields = [
        'id', 'name', 'brand', 'serial_number', 'mac_address',
        'current_holder_user__full_name', 'current_holder_customer__name'
    ]
    readonly_fields = [
        'id', 'status', 'current_holder_user', 'current_holder_customer',
        'version', 'origin_document', 'created_at', 'updated_at'
    ]

    fieldsets = (
        ('Asset Information', {
            'fields': (
                'id', 'name', 'brand', 'category', 'asset_type',
                'serial_number', 'mac_address'
            )
        }),
        ('Custody', {
            'fields': (
                'status', 'condition', 'current_holder_user',
                'current_holder_customer', 'location'
            )
        }),
        ('Origin', {
            'fields': ('origin_document', 'purchase_date', 'notes')
        }),
        ('Audit', {
            'fields': ('version', 'created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    actions = ['mark_as_in_repair', 'mark_as_decommissioned']

    def has_add_permission(self, request):
        # Assets enter through purchase registration
        return False

    def status_badge(self, obj):
        """Display custody status with color badge."""
        return format_html(
            '<span style="background-color: {}; color: white; padding: 3px 10px; border-radius: 3px;">'
            '{}</span>',
            STATUS_COLORS.get(obj.status, 'gray'), obj.get_status_display()
        )
    status_badge.short_description = 'Status'

    def _move(self, request, queryset, status):
        ids = list(queryset.values_list('pk', flat=True))
        try:
            CustodyLedger().update_batch(ids, {'status': status}, request.user, action='STATUS_CHANGE')
        except WorkflowError as exc:
            self.message_user(request, str(exc), level=messages.ERROR)
            return
        self.message_user(request, f'{len(ids)} asset(s) marked as {status}.')

    def mark_as_in_repair(self, request, queryset):
        """Bulk action to send assets to repair."""
        self._move(request, queryset, AssetStatus.IN_REPAIR)
    mark_as_in_repair.short_description = 'Mark as In Repair'

    def mark_as_decommissioned(self, request, queryset):
        """Bulk action to decommission assets."""
        self._move(request, queryset, AssetStatus.DECOMMISSIONED)
    mark_as_decommissioned.short_description = 'Mark as Decommissioned'

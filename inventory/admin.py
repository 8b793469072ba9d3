"""
Inventory Admin Configuration
==============================
Register the stock ledger with Django admin interface.
"""

from django.contrib import admin, messages

from core.exceptions import WorkflowError
from .ledger import StockLedger
from .models import StockMovement


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = [
        'id', 'occurred_at', 'item_name', 'brand', 'movement_type',
        'quantity', 'balance_after', 'reference_id', 'actor_name'
    ]
    list_filter = ['movement_type', 'occurred_at']
    search_fields = ['item_name', 'brand', 'reference_id', 'notes']
    date_hierarchy = 'occurred_at'
    readonly_fields = [
        'id', 'item_name', 'brand', 'movement_type', 'quantity', 'balance_after',
        'occurred_at', 'actor_id', 'actor_name', 'reference_id', 'related_asset',
        'reverses', 'notes', 'created_at'
    ]

    actions = ['reverse_movements']

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def reverse_movements(self, request, queryset):
        """Bulk action to compensate the selected movements."""
        ledger = StockLedger()
        count = 0
        for movement in queryset:
            try:
                ledger.reverse(movement.pk, request.user)
            except WorkflowError as exc:
                self.message_user(request, str(exc), level=messages.WARNING)
                continue
            count += 1
        self.message_user(request, f'{count} movement(s) reversed.')
    reverse_movements.short_description = 'Reverse selected movements'

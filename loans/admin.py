"""
Loans Admin Configuration
=========================
Register loan requests and asset returns with Django admin interface.
"""

from django.contrib import admin
from .models import LoanRequest, LoanItem, AssetReturn, AssetReturnItem


class LoanItemInline(admin.TabularInline):
    model = LoanItem
    extra = 0
    fields = ['name', 'brand', 'quantity', 'unit', 'return_date', 'item_status', 'approved_quantity']
    readonly_fields = ['item_status', 'approved_quantity']


@admin.register(LoanRequest)
class LoanRequestAdmin(admin.ModelAdmin):
    list_display = ['id', 'requester', 'division', 'status', 'request_date', 'actual_return_date']
    list_filter = ['status', 'division', 'request_date']
    search_fields = ['id', 'requester__username', 'requester__full_name', 'purpose']
    readonly_fields = [
        'id', 'status', 'version', 'approver', 'approval_date', 'rejected_by',
        'rejection_reason', 'rejection_date', 'assigned_asset_ids', 'returned_asset_ids',
        'actual_return_date', 'created_at', 'updated_at'
    ]
    date_hierarchy = 'request_date'
    inlines = [LoanItemInline]

    fieldsets = (
        ('Basic Information', {
            'fields': ('id', 'requester', 'division', 'request_date', 'purpose')
        }),
        ('Status & Approval', {
            'fields': ('status', 'approver', 'approval_date')
        }),
        ('Rejection', {
            'fields': ('rejected_by', 'rejection_reason', 'rejection_date'),
            'classes': ('collapse',)
        }),
        ('Custody', {
            'fields': ('assigned_asset_ids', 'returned_asset_ids', 'actual_return_date')
        }),
        ('Audit', {
            'fields': ('version', 'created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def has_add_permission(self, request):
        return False


class AssetReturnItemInline(admin.TabularInline):
    model = AssetReturnItem
    extra = 0
    fields = ['asset', 'returned_condition', 'notes', 'status']
    readonly_fields = ['asset', 'status']


@admin.register(AssetReturn)
class AssetReturnAdmin(admin.ModelAdmin):
    list_display = ['id', 'loan_request', 'returned_by', 'status', 'return_date', 'verified_by']
    list_filter = ['status', 'return_date']
    search_fields = ['id', 'loan_request__id', 'returned_by']
    readonly_fields = [
        'id', 'loan_request', 'status', 'version', 'returned_by', 'verified_by',
        'verification_date', 'created_at', 'updated_at'
    ]
    inlines = [AssetReturnItemInline]

    def has_add_permission(self, request):
        return False

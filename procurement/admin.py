"""
Procurement Admin Configuration
================================
Register purchase requests with Django admin interface.

Workflow fields are read-only here; transitions go through the
workflow service.
"""

from django.contrib import admin
from .models import Request, RequestItem


class RequestItemInline(admin.TabularInline):
    model = RequestItem
    extra = 0
    fields = ['name', 'brand', 'quantity', 'unit', 'item_status', 'approved_quantity', 'reason']
    readonly_fields = ['item_status', 'approved_quantity']


@admin.register(Request)
class RequestAdmin(admin.ModelAdmin):
    list_display = ['id', 'requester', 'division', 'order_type', 'allocation_target', 'status', 'request_date']
    list_filter = ['status', 'order_type', 'allocation_target', 'division', 'request_date']
    search_fields = ['id', 'requester__username', 'requester__full_name', 'justification', 'project_name']
    readonly_fields = [
        'id', 'status', 'version', 'logistic_approver', 'logistic_approval_date',
        'final_approver', 'final_approval_date', 'rejected_by', 'rejection_reason',
        'rejection_date', 'cancellation_reason', 'cancelled_at', 'arrival_date',
        'partially_registered_items', 'is_registered', 'completed_by', 'completion_date',
        'created_at', 'updated_at'
    ]
    date_hierarchy = 'request_date'
    inlines = [RequestItemInline]

    fieldsets = (
        ('Basic Information', {
            'fields': ('id', 'requester', 'division', 'order_type', 'allocation_target')
        }),
        ('Details', {
            'fields': ('request_date', 'justification', 'project_name', 'purchase_details')
        }),
        ('Status & Approval', {
            'fields': (
                'status', 'logistic_approver', 'logistic_approval_date',
                'final_approver', 'final_approval_date', 'arrival_date'
            )
        }),
        ('Rejection / Cancellation', {
            'fields': ('rejected_by', 'rejection_reason', 'rejection_date', 'cancellation_reason', 'cancelled_at'),
            'classes': ('collapse',)
        }),
        ('Registration', {
            'fields': ('partially_registered_items', 'is_registered', 'completed_by', 'completion_date')
        }),
        ('Audit', {
            'fields': ('version', 'created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def has_add_permission(self, request):
        return False

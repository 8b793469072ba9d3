from django.contrib import admin
from .models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['document_id', 'recipient_user', 'recipient_role', 'new_status', 'message', 'is_read', 'created_at']
    list_filter = ['is_read', 'recipient_role', 'document_type', 'new_status']
    search_fields = ['document_id', 'message', 'recipient_user__username']
    readonly_fields = [
        'recipient_user', 'recipient_role', 'document_type', 'document_id',
        'previous_status', 'new_status', 'message', 'read_at', 'created_at'
    ]
    actions = ['mark_as_read']

    def has_add_permission(self, request):
        return False

    def mark_as_read(self, request, queryset):
        for notification in queryset.unread():
            notification.mark_read()
        self.message_user(request, 'Notifications marked as read.')
    mark_as_read.short_description = 'Mark as read'

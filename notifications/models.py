"""
Notification Models
===================
In-app notifications raised by workflow transitions.

A notification goes either to one user (``recipient_user``) or to every
user holding a role (``recipient_role``).
"""

from django.db import models
from django.utils import timezone

from users.models import User, UserRole


class NotificationQuerySet(models.QuerySet):
    def for_user(self, user):
        """Notifications addressed to ``user`` directly or to their role."""
        return self.filter(
            models.Q(recipient_user=user) | models.Q(recipient_role=user.role)
        )

    def unread(self):
        return self.filter(is_read=False)


class Notification(models.Model):
    id = models.BigAutoField(primary_key=True)
    recipient_user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='notifications',
        help_text="User being notified"
    )
    recipient_role = models.CharField(
        max_length=20,
        choices=UserRole.choices,
        blank=True,
        null=True,
        help_text="Role inbox being notified"
    )
    document_type = models.CharField(
        max_length=50,
        help_text="Document type (Request, LoanRequest, AssetReturn)"
    )
    document_id = models.CharField(
        max_length=40,
        help_text="Document number"
    )
    previous_status = models.CharField(
        max_length=30,
        blank=True,
        null=True,
        help_text="Status before the transition"
    )
    new_status = models.CharField(
        max_length=30,
        help_text="Status after the transition"
    )
    message = models.CharField(
        max_length=255,
        help_text="Notification text"
    )
    is_read = models.BooleanField(
        default=False,
        help_text="Has the recipient read it?"
    )
    read_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When it was read"
    )
    created_at = models.DateTimeField(
        auto_now_add=True,
        help_text="Timestamp when notification was created"
    )

    objects = NotificationQuerySet.as_manager()

    class Meta:
        db_table = 'notifications'
        verbose_name = 'Notification'
        verbose_name_plural = 'Notifications'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['recipient_user', 'is_read']),
            models.Index(fields=['recipient_role', 'is_read']),
            models.Index(fields=['document_type', 'document_id']),
        ]

    def __str__(self):
        recipient = self.recipient_user or self.recipient_role
        return f"{recipient}: {self.message}"

    def mark_read(self):
        if not self.is_read:
            self.is_read = True
            self.read_at = timezone.now()
            self.save(update_fields=['is_read', 'read_at'])

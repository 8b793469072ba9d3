"""
Core Models - Base Classes and Organizational Structure
========================================================
This module contains:
1. TimestampedModel - Abstract timestamps + user tracking
2. BaseModel - Abstract UUID-keyed master data
3. DocumentModel - Abstract workflow document keyed by its document number
4. Division - Organizational divisions (requesters belong to one)
5. Customer - Customer sites that can hold installed assets
6. ActivityLog - Append-only audit trail for assets and documents
"""

import uuid
from django.db import models
from django.utils import timezone

from .exceptions import ConflictError


def actor_name(actor):
    """Display name for whoever performed an action."""
    if actor is None:
        return 'System'
    if isinstance(actor, str):
        return actor
    return getattr(actor, 'full_name', None) or getattr(actor, 'username', None) or str(actor)


def actor_pk(actor):
    """Primary key of the acting user, or None for system/named actors."""
    if actor is None or isinstance(actor, str):
        return None
    return getattr(actor, 'pk', None)


# ============================================================================
# ABSTRACT BASE MODELS
# ============================================================================

class TimestampedModel(models.Model):
    """
    Abstract model providing timestamps and user tracking.

    Fields:
    - created_at, updated_at (automatic timestamps)
    - created_by, updated_by (user tracking)
    """
    created_at = models.DateTimeField(
        auto_now_add=True,
        help_text="Timestamp when record was created"
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="Timestamp when record was last updated"
    )

    # User tracking (nullable for system-created records)
    created_by = models.UUIDField(
        null=True,
        blank=True,
        help_text="User who created this record"
    )
    updated_by = models.UUIDField(
        null=True,
        blank=True,
        help_text="User who last updated this record"
    )

    class Meta:
        abstract = True
        ordering = ['-created_at']


class BaseModel(TimestampedModel):
    """
    Abstract base model for master data, keyed by UUID.

    Usage:
        class MyModel(BaseModel):
            # Your fields here
            pass
    """
    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier (UUID)"
    )

    class Meta:
        abstract = True
        ordering = ['-created_at']


class DocumentModel(TimestampedModel):
    """
    Abstract base for workflow documents and ledger-owned records.

    The primary key is the human-readable document number
    (e.g. 'RO-202501-001'). ``version`` is bumped on every transition and
    lets callers detect concurrent changes.
    """
    TERMINAL_STATUSES = frozenset()

    id = models.CharField(
        primary_key=True,
        max_length=40,
        editable=False,
        help_text="Document number"
    )
    version = models.PositiveIntegerField(
        default=1,
        help_text="Optimistic concurrency counter"
    )

    class Meta:
        abstract = True
        ordering = ['-created_at']

    @property
    def doc_number(self):
        return self.id

    @property
    def is_terminal(self):
        return getattr(self, 'status', None) in self.TERMINAL_STATUSES

    def check_version(self, expected_version):
        """Raise ConflictError when the caller saw a different version."""
        if expected_version is not None and int(expected_version) != self.version:
            raise ConflictError(
                f"{self._meta.verbose_name} {self.pk} changed concurrently "
                f"(expected version {expected_version}, found {self.version})",
                expected=expected_version,
                found=self.version,
            )

    def bump_version(self):
        self.version += 1


# ============================================================================
# DIVISION MODEL
# ============================================================================

class Division(BaseModel):
    """
    Represents an organizational division.

    Examples: NOC, Engineering, Logistik, Purchase, Finance.
    """
    code = models.CharField(
        max_length=20,
        unique=True,
        help_text="Unique division code (e.g., 'NOC')"
    )
    name = models.CharField(
        max_length=100,
        help_text="Division name"
    )
    is_active = models.BooleanField(
        default=True,
        help_text="Is division currently active?"
    )

    class Meta:
        db_table = 'divisions'
        verbose_name = 'Division'
        verbose_name_plural = 'Divisions'
        ordering = ['code']

    def __str__(self):
        return f"{self.code} - {self.name}"

    def clean(self):
        """Validate division data."""
        super().clean()
        if self.code:
            self.code = self.code.upper()


# ============================================================================
# CUSTOMER MODEL
# ============================================================================

class Customer(BaseModel):
    """
    A customer site where assets are installed and held.
    """
    code = models.CharField(
        max_length=30,
        unique=True,
        help_text="Unique customer code"
    )
    name = models.CharField(
        max_length=200,
        help_text="Customer name"
    )
    address = models.TextField(
        blank=True,
        null=True,
        help_text="Installation address"
    )
    phone = models.CharField(
        max_length=20,
        blank=True,
        null=True,
        help_text="Contact phone number"
    )
    is_active = models.BooleanField(
        default=True,
        help_text="Is customer currently active?"
    )

    class Meta:
        db_table = 'customers'
        verbose_name = 'Customer'
        verbose_name_plural = 'Customers'
        ordering = ['name']

    def __str__(self):
        return f"{self.code} - {self.name}"


# ============================================================================
# ACTIVITY LOG (append-only)
# ============================================================================

class ActivityLogQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise TypeError("Activity log entries cannot be edited.")

    def delete(self):
        raise TypeError("Activity log entries cannot be removed.")


class ActivityLog(models.Model):
    """
    Audit trail of everything that happened to an asset or document.

    Immutable record of who did what, when and why. Rows are only ever
    inserted; editing or deleting one raises.
    """

    id = models.BigAutoField(primary_key=True)
    entity_type = models.CharField(
        max_length=50,
        help_text="Entity type (Asset, Request, LoanRequest, AssetReturn)"
    )
    entity_id = models.CharField(
        max_length=40,
        help_text="Entity identifier"
    )
    action = models.CharField(
        max_length=40,
        help_text="Action kind (CREATE, STATUS_CHANGE, APPROVED, ...)"
    )
    actor_id = models.UUIDField(
        null=True,
        blank=True,
        help_text="User who performed the action"
    )
    actor_name = models.CharField(
        max_length=150,
        help_text="Display name of the actor"
    )
    timestamp = models.DateTimeField(
        default=timezone.now,
        help_text="When the action happened"
    )
    detail = models.TextField(
        blank=True,
        default='',
        help_text="Human-readable description"
    )
    reference_id = models.CharField(
        max_length=40,
        blank=True,
        null=True,
        help_text="Document that triggered the action"
    )
    changes = models.JSONField(
        blank=True,
        null=True,
        help_text="Structured before/after values"
    )

    objects = ActivityLogQuerySet.as_manager()

    class Meta:
        db_table = 'activity_logs'
        verbose_name = 'Activity Log'
        verbose_name_plural = 'Activity Logs'
        ordering = ['timestamp', 'id']
        indexes = [
            models.Index(fields=['entity_type', 'entity_id', 'timestamp']),
            models.Index(fields=['reference_id']),
        ]

    def __str__(self):
        return f"{self.entity_type} {self.entity_id} - {self.action} by {self.actor_name}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise TypeError("Activity log entries cannot be edited.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise TypeError("Activity log entries cannot be removed.")

    @classmethod
    def build(cls, entity, action, actor=None, detail='', reference_id=None, changes=None):
        """Build an unsaved entry for ``entity`` (for bulk inserts)."""
        return cls(
            entity_type=entity.__class__.__name__,
            entity_id=str(entity.pk),
            action=action,
            actor_id=actor_pk(actor),
            actor_name=actor_name(actor),
            detail=detail or '',
            reference_id=reference_id,
            changes=changes,
        )

    @classmethod
    def record(cls, entity, action, actor=None, detail='', reference_id=None, changes=None):
        """Append one entry for ``entity``."""
        entry = cls.build(entity, action, actor, detail, reference_id, changes)
        entry.save()
        return entry

    @classmethod
    def for_entity(cls, entity):
        return cls.objects.filter(
            entity_type=entity.__class__.__name__,
            entity_id=str(entity.pk),
        )

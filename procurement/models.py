"""
Procurement Models
==================
This module contains:
1. RequestStatus / ItemStatus / OrderType / AllocationTarget - Closed enums
2. Request - Purchase / allocation request (RO-YYYYMM-NNN)
3. RequestItem - Individual line items and their per-item outcome

Requests change only through ``procurement.services.PurchaseRequestWorkflow``.
"""

from django.db import models
from django.core.validators import MinValueValidator
from django.utils import timezone

from core.models import DocumentModel, Division, ActivityLog
from users.models import User


# ============================================================================
# ENUMS
# ============================================================================

class RequestStatus(models.TextChoices):
    PENDING = 'PENDING', 'Pending'
    LOGISTIC_APPROVED = 'LOGISTIC_APPROVED', 'Logistic Approved'
    AWAITING_CEO_APPROVAL = 'AWAITING_CEO_APPROVAL', 'Awaiting CEO Approval'
    APPROVED = 'APPROVED', 'Approved'
    ARRIVED = 'ARRIVED', 'Arrived'
    AWAITING_HANDOVER = 'AWAITING_HANDOVER', 'Awaiting Handover'
    COMPLETED = 'COMPLETED', 'Completed'
    REJECTED = 'REJECTED', 'Rejected'
    CANCELLED = 'CANCELLED', 'Cancelled'


class ItemStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    APPROVED = 'approved', 'Approved'
    REJECTED = 'rejected', 'Rejected'
    PARTIAL = 'partial', 'Partially Approved'
    STOCK_ALLOCATED = 'stock_allocated', 'Allocated from Stock'
    PROCUREMENT_NEEDED = 'procurement_needed', 'Procurement Needed'


class OrderType(models.TextChoices):
    REGULAR_STOCK = 'REGULAR_STOCK', 'Regular Stock'
    URGENT = 'URGENT', 'Urgent'
    PROJECT_BASED = 'PROJECT_BASED', 'Project Based'


class AllocationTarget(models.TextChoices):
    USAGE = 'USAGE', 'Usage'
    INVENTORY = 'INVENTORY', 'Inventory'


# ============================================================================
# REQUEST
# ============================================================================

class Request(DocumentModel):
    """
    Purchase Request - request to allocate items from stock or buy them.

    Progresses PENDING → LOGISTIC_APPROVED → AWAITING_CEO_APPROVAL →
    APPROVED → ARRIVED → AWAITING_HANDOVER → COMPLETED, or ends REJECTED /
    CANCELLED.
    """

    TERMINAL_STATUSES = frozenset({
        RequestStatus.COMPLETED,
        RequestStatus.REJECTED,
        RequestStatus.CANCELLED,
    })

    requester = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='purchase_requests',
        help_text="User who created this request"
    )
    division = models.ForeignKey(
        Division,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='purchase_requests',
        help_text="Requesting division"
    )
    order_type = models.CharField(
        max_length=20,
        choices=OrderType.choices,
        default=OrderType.REGULAR_STOCK,
        help_text="Type of order"
    )
    allocation_target = models.CharField(
        max_length=20,
        choices=AllocationTarget.choices,
        default=AllocationTarget.USAGE,
        help_text="Fulfilled items go to active use or back into stock"
    )
    request_date = models.DateField(
        default=timezone.localdate,
        help_text="Date of request"
    )
    justification = models.TextField(
        blank=True,
        null=True,
        help_text="Justification for the request"
    )
    project_name = models.CharField(
        max_length=200,
        blank=True,
        null=True,
        help_text="Project (for project-based orders)"
    )
    status = models.CharField(
        max_length=30,
        choices=RequestStatus.choices,
        default=RequestStatus.PENDING,
        help_text="Current status"
    )

    # Approvals
    logistic_approver = models.CharField(
        max_length=150,
        blank=True,
        null=True,
        help_text="Logistic reviewer"
    )
    logistic_approval_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Logistic review timestamp"
    )
    final_approver = models.CharField(
        max_length=150,
        blank=True,
        null=True,
        help_text="Final (CEO) approver"
    )
    final_approval_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Final approval timestamp"
    )
    purchase_details = models.JSONField(
        default=dict,
        blank=True,
        help_text="Per item: price, vendor, PO number"
    )

    # Rejection / cancellation
    rejected_by = models.CharField(
        max_length=150,
        blank=True,
        null=True,
        help_text="User who rejected this request"
    )
    rejection_reason = models.TextField(
        blank=True,
        null=True,
        help_text="Reason for rejection"
    )
    rejection_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Rejection timestamp"
    )
    cancellation_reason = models.TextField(
        blank=True,
        null=True,
        help_text="Reason given by the requester"
    )
    cancelled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Cancellation timestamp"
    )

    # Fulfillment
    arrival_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When purchased goods arrived"
    )
    partially_registered_items = models.JSONField(
        default=dict,
        blank=True,
        help_text="Item id → cumulative registered quantity"
    )
    is_registered = models.BooleanField(
        default=False,
        help_text="Every non-rejected item is fully registered"
    )
    completed_by = models.CharField(
        max_length=150,
        blank=True,
        null=True,
        help_text="User who completed the request"
    )
    completion_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Completion timestamp"
    )

    class Meta:
        db_table = 'requests'
        verbose_name = 'Request'
        verbose_name_plural = 'Requests'
        ordering = ['-request_date', '-created_at']
        indexes = [
            models.Index(fields=['status', 'request_date']),
            models.Index(fields=['requester', 'status']),
        ]

    def __str__(self):
        return f"{self.id} - {self.requester.username} ({self.status})"

    @property
    def activity_log(self):
        return ActivityLog.for_entity(self)

    def registered_count(self, item):
        return int(self.partially_registered_items.get(str(item.pk), 0))


class RequestItem(models.Model):
    """
    Individual line items in a Request.
    """

    id = models.BigAutoField(primary_key=True)
    request = models.ForeignKey(
        Request,
        on_delete=models.CASCADE,
        related_name='items',
        help_text="Request"
    )
    name = models.CharField(
        max_length=200,
        help_text="Item name"
    )
    brand = models.CharField(
        max_length=100,
        blank=True,
        default='',
        help_text="Brand"
    )
    quantity = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
        help_text="Requested quantity"
    )
    unit = models.CharField(
        max_length=20,
        default='pcs',
        help_text="Unit of measurement"
    )
    note = models.TextField(
        blank=True,
        null=True,
        help_text="Specification / note"
    )
    item_status = models.CharField(
        max_length=20,
        choices=ItemStatus.choices,
        default=ItemStatus.PENDING,
        help_text="Per-item outcome"
    )
    approved_quantity = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Approved quantity (defaults to requested)"
    )
    reason = models.TextField(
        blank=True,
        null=True,
        help_text="Reason for the outcome"
    )

    class Meta:
        db_table = 'request_items'
        verbose_name = 'Request Item'
        verbose_name_plural = 'Request Items'
        ordering = ['request', 'id']

    def __str__(self):
        return f"{self.request_id} - {self.name} ({self.quantity} {self.unit})"

    @property
    def is_rejected(self):
        return self.item_status == ItemStatus.REJECTED

    @property
    def target_quantity(self):
        """Quantity that must be registered for this item."""
        if self.is_rejected:
            return 0
        if self.approved_quantity is not None:
            return self.approved_quantity
        return self.quantity

"""
Loan Models
===========
This module contains:
1. LoanRequest / LoanItem - Temporary custody of assets (RL-YYYYMM-NNN)
2. AssetReturn / AssetReturnItem - Physical return of loaned assets,
   verified item by item (RTN-YYYYMM-NNN)

Both documents change only through ``loans.services``.
"""

from django.db import models
from django.core.validators import MinValueValidator
from django.utils import timezone

from assets.models import Asset, AssetCondition
from core.models import DocumentModel, Division, ActivityLog
from procurement.models import ItemStatus
from users.models import User


# ============================================================================
# ENUMS
# ============================================================================

class LoanStatus(models.TextChoices):
    PENDING = 'PENDING', 'Pending'
    APPROVED = 'APPROVED', 'Approved'
    REJECTED = 'REJECTED', 'Rejected'
    ON_LOAN = 'ON_LOAN', 'On Loan'
    AWAITING_RETURN = 'AWAITING_RETURN', 'Awaiting Return'
    RETURNED = 'RETURNED', 'Returned'


class ReturnStatus(models.TextChoices):
    PENDING_APPROVAL = 'PENDING_APPROVAL', 'Pending Approval'
    APPROVED = 'APPROVED', 'Partially Settled'
    REJECTED = 'REJECTED', 'Rejected'
    COMPLETED = 'COMPLETED', 'Completed'


class ReturnItemStatus(models.TextChoices):
    PENDING = 'PENDING', 'Pending'
    ACCEPTED = 'ACCEPTED', 'Accepted'
    REJECTED = 'REJECTED', 'Rejected'


# ============================================================================
# LOAN REQUEST
# ============================================================================

class LoanRequest(DocumentModel):
    """
    Loan Request - borrow assets from storage and bring them back.

    Progresses PENDING → ON_LOAN → AWAITING_RETURN → (ON_LOAN →) RETURNED,
    or ends REJECTED.
    """

    TERMINAL_STATUSES = frozenset({LoanStatus.REJECTED, LoanStatus.RETURNED})

    requester = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='loan_requests',
        help_text="User borrowing the assets"
    )
    division = models.ForeignKey(
        Division,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='loan_requests',
        help_text="Requesting division"
    )
    request_date = models.DateField(
        default=timezone.localdate,
        help_text="Date of request"
    )
    purpose = models.TextField(
        blank=True,
        null=True,
        help_text="What the assets are needed for"
    )
    status = models.CharField(
        max_length=20,
        choices=LoanStatus.choices,
        default=LoanStatus.PENDING,
        help_text="Current status"
    )

    # Approval
    approver = models.CharField(
        max_length=150,
        blank=True,
        null=True,
        help_text="User who approved the loan"
    )
    approval_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Approval timestamp"
    )
    rejected_by = models.CharField(
        max_length=150,
        blank=True,
        null=True,
        help_text="User who rejected the loan"
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

    # Custody
    assigned_asset_ids = models.JSONField(
        default=dict,
        blank=True,
        help_text="Item id → list of assigned asset ids"
    )
    returned_asset_ids = models.JSONField(
        default=list,
        blank=True,
        help_text="Asset ids accepted back so far"
    )
    actual_return_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the last asset was accepted back"
    )

    class Meta:
        db_table = 'loan_requests'
        verbose_name = 'Loan Request'
        verbose_name_plural = 'Loan Requests'
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

    @property
    def all_assigned_ids(self):
        """Every asset id ever assigned to this loan, in assignment order."""
        ids = []
        for asset_ids in (self.assigned_asset_ids or {}).values():
            ids.extend(asset_ids)
        return list(dict.fromkeys(ids))

    @property
    def outstanding_asset_ids(self):
        returned = set(self.returned_asset_ids or ())
        return [asset_id for asset_id in self.all_assigned_ids if asset_id not in returned]


class LoanItem(models.Model):
    """
    Individual line items in a Loan Request.
    """

    id = models.BigAutoField(primary_key=True)
    loan = models.ForeignKey(
        LoanRequest,
        on_delete=models.CASCADE,
        related_name='items',
        help_text="Loan request"
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
    return_date = models.DateField(
        null=True,
        blank=True,
        help_text="Requested return date"
    )
    note = models.TextField(
        blank=True,
        null=True,
        help_text="Note"
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
        db_table = 'loan_items'
        verbose_name = 'Loan Item'
        verbose_name_plural = 'Loan Items'
        ordering = ['loan', 'id']

    def __str__(self):
        return f"{self.loan_id} - {self.name} ({self.quantity} {self.unit})"


# ============================================================================
# ASSET RETURN
# ============================================================================

class AssetReturn(DocumentModel):
    """
    Asset Return - the borrower hands assets back; logistics verifies each.

    COMPLETED when every item is accepted, REJECTED when every item is
    rejected, APPROVED (partially settled) otherwise.
    """

    TERMINAL_STATUSES = frozenset({ReturnStatus.COMPLETED, ReturnStatus.REJECTED})

    loan_request = models.ForeignKey(
        LoanRequest,
        on_delete=models.PROTECT,
        related_name='returns',
        help_text="Loan being returned"
    )
    return_date = models.DateTimeField(
        default=timezone.now,
        help_text="When the assets were handed back"
    )
    returned_by = models.CharField(
        max_length=150,
        help_text="Who handed the assets back"
    )
    status = models.CharField(
        max_length=20,
        choices=ReturnStatus.choices,
        default=ReturnStatus.PENDING_APPROVAL,
        help_text="Current status"
    )
    verified_by = models.CharField(
        max_length=150,
        blank=True,
        null=True,
        help_text="Who verified the returned assets"
    )
    verification_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Verification timestamp"
    )
    notes = models.TextField(
        blank=True,
        null=True,
        help_text="Notes"
    )

    class Meta:
        db_table = 'asset_returns'
        verbose_name = 'Asset Return'
        verbose_name_plural = 'Asset Returns'
        ordering = ['-return_date']

    def __str__(self):
        return f"{self.id} - {self.loan_request_id} ({self.status})"

    @property
    def activity_log(self):
        return ActivityLog.for_entity(self)


class AssetReturnItem(models.Model):
    """
    One returned asset and its verification outcome.
    """

    id = models.BigAutoField(primary_key=True)
    asset_return = models.ForeignKey(
        AssetReturn,
        on_delete=models.CASCADE,
        related_name='items',
        help_text="Return document"
    )
    asset = models.ForeignKey(
        Asset,
        on_delete=models.PROTECT,
        related_name='return_items',
        help_text="Returned asset"
    )
    returned_condition = models.CharField(
        max_length=20,
        choices=AssetCondition.choices,
        default=AssetCondition.GOOD,
        help_text="Condition reported on return"
    )
    notes = models.TextField(
        blank=True,
        null=True,
        help_text="Notes"
    )
    status = models.CharField(
        max_length=20,
        choices=ReturnItemStatus.choices,
        default=ReturnItemStatus.PENDING,
        help_text="Verification outcome"
    )

    class Meta:
        db_table = 'asset_return_items'
        verbose_name = 'Asset Return Item'
        verbose_name_plural = 'Asset Return Items'
        ordering = ['asset_return', 'id']

    def __str__(self):
        return f"{self.asset_return_id} - {self.asset_id} ({self.status})"

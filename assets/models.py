"""
Asset Management Models
=======================
This module contains:
1. AssetStatus / AssetCondition - Closed custody and condition enums
2. Asset - A tracked piece of equipment or material and its current custody

Custody (status, holder, location) is changed only through
``assets.ledger.CustodyLedger``; every change appends an ActivityLog entry.
"""

from django.db import models
from django.core.exceptions import ValidationError

from core.models import DocumentModel, Customer, ActivityLog
from users.models import User


# ============================================================================
# ENUMS
# ============================================================================

class AssetStatus(models.TextChoices):
    IN_STORAGE = 'IN_STORAGE', 'In Storage'
    IN_USE = 'IN_USE', 'In Use'
    IN_CUSTODY = 'IN_CUSTODY', 'In Custody'
    IN_REPAIR = 'IN_REPAIR', 'In Repair'
    AWAITING_RETURN = 'AWAITING_RETURN', 'Awaiting Return'
    DAMAGED = 'DAMAGED', 'Damaged'
    DECOMMISSIONED = 'DECOMMISSIONED', 'Decommissioned'
    CONSUMED = 'CONSUMED', 'Consumed'


class AssetCondition(models.TextChoices):
    NEW = 'NEW', 'New'
    GOOD = 'GOOD', 'Good'
    USED_OKAY = 'USED_OKAY', 'Used (Okay)'
    MINOR_DAMAGE = 'MINOR_DAMAGE', 'Minor Damage'
    MAJOR_DAMAGE = 'MAJOR_DAMAGE', 'Major Damage'
    SALVAGE = 'SALVAGE', 'Salvage'


# Statuses that need someone (user or customer) holding the asset
HOLDER_REQUIRED_STATUSES = frozenset({
    AssetStatus.IN_USE,
    AssetStatus.IN_CUSTODY,
    AssetStatus.AWAITING_RETURN,
})

# Statuses in which nobody may hold the asset
NO_HOLDER_STATUSES = frozenset({
    AssetStatus.IN_STORAGE,
    AssetStatus.DECOMMISSIONED,
    AssetStatus.CONSUMED,
})

GOOD_CONDITIONS = frozenset({
    AssetCondition.NEW,
    AssetCondition.GOOD,
    AssetCondition.USED_OKAY,
})


def is_good_condition(condition):
    return condition in GOOD_CONDITIONS


# ============================================================================
# ASSET MODEL
# ============================================================================

class Asset(DocumentModel):
    """
    A physical asset tracked through its custody lifecycle.

    Identified by its asset number (e.g. 'AST-202501-001'). Holds the
    current status, condition, holder and location; the history lives in
    the activity log.
    """

    # Basic Information
    name = models.CharField(
        max_length=200,
        help_text="Item name (e.g., 'Router RB750Gr3')"
    )
    brand = models.CharField(
        max_length=100,
        blank=True,
        default='',
        help_text="Brand / manufacturer"
    )
    category = models.CharField(
        max_length=100,
        blank=True,
        default='',
        help_text="Category (e.g., 'Perangkat Jaringan')"
    )
    asset_type = models.CharField(
        max_length=100,
        blank=True,
        default='',
        help_text="Type within the category"
    )
    serial_number = models.CharField(
        max_length=100,
        unique=True,
        null=True,
        blank=True,
        help_text="Serial number from manufacturer"
    )
    mac_address = models.CharField(
        max_length=50,
        blank=True,
        null=True,
        help_text="MAC address (for network devices)"
    )

    # Custody
    status = models.CharField(
        max_length=20,
        choices=AssetStatus.choices,
        default=AssetStatus.IN_STORAGE,
        help_text="Current custody status"
    )
    condition = models.CharField(
        max_length=20,
        choices=AssetCondition.choices,
        default=AssetCondition.NEW,
        help_text="Physical condition"
    )
    current_holder_user = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='held_assets',
        help_text="User currently holding the asset"
    )
    current_holder_customer = models.ForeignKey(
        Customer,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='held_assets',
        help_text="Customer site currently holding the asset"
    )
    location = models.CharField(
        max_length=200,
        blank=True,
        default='',
        help_text="Current location"
    )

    # Origin
    origin_document = models.CharField(
        max_length=40,
        blank=True,
        null=True,
        help_text="Document that brought the asset in (e.g., 'RO-202501-001')"
    )
    purchase_date = models.DateField(
        null=True,
        blank=True,
        help_text="Date of purchase"
    )
    notes = models.TextField(
        blank=True,
        null=True,
        help_text="Additional notes"
    )

    class Meta:
        db_table = 'assets'
        verbose_name = 'Asset'
        verbose_name_plural = 'Assets'
        ordering = ['id']
        indexes = [
            models.Index(fields=['name', 'brand', 'status']),
            models.Index(fields=['current_holder_user', 'status']),
            models.Index(fields=['status']),
        ]

    def __str__(self):
        return f"{self.id} - {self.name}"

    @property
    def current_holder(self):
        return self.current_holder_user or self.current_holder_customer

    @property
    def activity_log(self):
        return ActivityLog.for_entity(self)

    def custody_errors(self):
        """Return the list of status/holder consistency problems."""
        errors = []
        has_user = self.current_holder_user_id is not None
        has_customer = self.current_holder_customer_id is not None
        if has_user and has_customer:
            errors.append("An asset is held by a user or a customer, not both.")
        if self.status in HOLDER_REQUIRED_STATUSES and not (has_user or has_customer):
            errors.append(f"Status {self.status} requires a holder.")
        if self.status in NO_HOLDER_STATUSES and (has_user or has_customer):
            errors.append(f"Status {self.status} cannot have a holder.")
        return errors

    def clean(self):
        """Validate status/holder consistency."""
        super().clean()
        errors = self.custody_errors()
        if errors:
            raise ValidationError({'status': errors})

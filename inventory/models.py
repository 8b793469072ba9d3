"""
Inventory Models
================
This module contains:
1. MovementType - Inbound (IN_*) and outbound (OUT_*) movement kinds
2. StockMovement - Append-only ledger of bulk-material quantity changes

Stock is identified by item name + brand. ``balance_after`` is maintained
by ``inventory.ledger.StockLedger``; nothing else writes movements.
"""

from django.db import models
from django.core.validators import MinValueValidator
from django.utils import timezone

from assets.models import Asset


# ============================================================================
# MOVEMENT TYPES
# ============================================================================

class MovementType(models.TextChoices):
    IN_PURCHASE = 'IN_PURCHASE', 'Purchase Receipt'
    IN_RETURN = 'IN_RETURN', 'Return to Stock'
    IN_DISMANTLE = 'IN_DISMANTLE', 'Dismantled from Customer'
    IN_ADJUSTMENT = 'IN_ADJUSTMENT', 'Adjustment Increase'
    OUT_USAGE_CUSTODY = 'OUT_USAGE_CUSTODY', 'Usage / Custody'
    OUT_INSTALLATION = 'OUT_INSTALLATION', 'Installation at Customer'
    OUT_HANDOVER = 'OUT_HANDOVER', 'Handover'
    OUT_LOAN = 'OUT_LOAN', 'Loan'
    OUT_BROKEN = 'OUT_BROKEN', 'Broken'
    OUT_FOR_REPAIR = 'OUT_FOR_REPAIR', 'Sent for Repair'
    OUT_FOR_SERVICE = 'OUT_FOR_SERVICE', 'Sent for Service'
    OUT_ADJUSTMENT = 'OUT_ADJUSTMENT', 'Adjustment Decrease'


def is_inbound(movement_type):
    return str(movement_type).startswith('IN_')


# ============================================================================
# STOCK MOVEMENT
# ============================================================================

class StockMovement(models.Model):
    """
    Stock movement ledger - records all bulk-material transactions.

    Quantities are stored as positive magnitudes; the sign comes from the
    movement type. Rows are never edited apart from their recomputed
    ``balance_after``.
    """

    id = models.BigAutoField(primary_key=True)
    item_name = models.CharField(
        max_length=200,
        help_text="Item name"
    )
    brand = models.CharField(
        max_length=100,
        blank=True,
        default='',
        help_text="Brand (part of the stock identity)"
    )
    movement_type = models.CharField(
        max_length=20,
        choices=MovementType.choices,
        help_text="Type of movement"
    )
    quantity = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
        help_text="Movement quantity (positive magnitude)"
    )
    balance_after = models.IntegerField(
        default=0,
        help_text="Running balance after this movement"
    )
    occurred_at = models.DateTimeField(
        default=timezone.now,
        help_text="When the movement happened (may be backdated)"
    )
    actor_id = models.UUIDField(
        null=True,
        blank=True,
        help_text="User who recorded the movement"
    )
    actor_name = models.CharField(
        max_length=150,
        help_text="Display name of the actor"
    )
    reference_id = models.CharField(
        max_length=40,
        blank=True,
        null=True,
        help_text="Reference document number"
    )
    related_asset = models.ForeignKey(
        Asset,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='stock_movements',
        help_text="Asset this movement concerns"
    )
    reverses = models.OneToOneField(
        'self',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='reversal',
        help_text="Movement compensated by this one"
    )
    notes = models.TextField(
        blank=True,
        null=True,
        help_text="Remarks"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'stock_movements'
        verbose_name = 'Stock Movement'
        verbose_name_plural = 'Stock Movements'
        ordering = ['occurred_at', 'id']
        indexes = [
            models.Index(fields=['item_name', 'brand', 'occurred_at']),
            models.Index(fields=['movement_type', 'occurred_at']),
            models.Index(fields=['reference_id']),
        ]

    def __str__(self):
        return f"{self.movement_type} - {self.item_name} {self.brand} ({self.signed_quantity:+d}) on {self.occurred_at:%Y-%m-%d}"

    @property
    def is_inbound(self):
        return is_inbound(self.movement_type)

    @property
    def signed_quantity(self):
        return self.quantity if self.is_inbound else -self.quantity

    @property
    def is_reversed(self):
        return hasattr(self, 'reversal')

    def save(self, *args, **kwargs):
        if not self._state.adding and set(kwargs.get('update_fields') or ()) != {'balance_after'}:
            raise TypeError("Stock movements are append-only; record a reversal instead.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise TypeError("Stock movements are append-only; record a reversal instead.")

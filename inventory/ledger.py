"""
Stock Movement Ledger
=====================
Append-only record of quantity changes with a replayed running balance.

The balance of an item identity (name + brand) is the fold of all its
movements ordered by (occurred_at, id): IN_* adds, OUT_* subtracts, and the
running total is clamped at zero. Recording a backdated movement re-folds
and persists ``balance_after`` for every movement from that point forward.
"""

import logging

from django.db import transaction
from django.utils import timezone

from core.exceptions import InvalidTransition, NotFound, ValidationError
from core.models import actor_name, actor_pk
from .models import MovementType, StockMovement

logger = logging.getLogger(__name__)


def fold_balances(quantities, opening=0):
    """Running balances of signed ``quantities``, never below zero."""
    balance = opening
    balances = []
    for quantity in quantities:
        balance = max(balance + quantity, 0)
        balances.append(balance)
    return balances


class StockLedger:
    """
    Usage:
        ledger = StockLedger()
        movement = ledger.record('Kabel UTP Cat6', 'Belden', 'IN_PURCHASE', 100, actor=user)
        movement.balance_after  # 100
    """

    def _identity(self, item_name, brand):
        return StockMovement.objects.filter(item_name=item_name, brand=brand or '')

    def _replay(self, item_name, brand, since=None):
        """Re-fold the identity's balances; persist those at or after ``since``."""
        movements = list(self._identity(item_name, brand).order_by('occurred_at', 'id'))
        balances = fold_balances(m.signed_quantity for m in movements)

        changed = []
        for movement, balance in zip(movements, balances):
            if since is not None and movement.occurred_at < since:
                continue
            if movement.balance_after != balance:
                movement.balance_after = balance
                changed.append(movement)
        if changed:
            StockMovement.objects.bulk_update(changed, ['balance_after'])
        return balances[-1] if balances else 0

    def record(self, item_name, brand, movement_type, quantity, actor, occurred_at=None,
               notes=None, reference_id=None, related_asset=None, reverses=None):
        """
        Append a movement and return it with ``balance_after`` set.

        Raises:
            ValidationError: missing item name, unknown type, or a
                quantity that is not a positive integer
        """
        if not item_name:
            raise ValidationError("Item name is required")
        if movement_type not in MovementType.values:
            raise ValidationError(f"Unknown movement type: {movement_type}")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(
                f"Quantity must be a positive integer, got {quantity!r}", quantity=quantity
            )
        occurred_at = occurred_at or timezone.now()
        brand = brand or ''

        with transaction.atomic():
            # Serialize writers of the same identity
            list(self._identity(item_name, brand).select_for_update().values_list('pk', flat=True))

            is_backdated = self._identity(item_name, brand).filter(occurred_at__gt=occurred_at).exists()
            movement = StockMovement.objects.create(
                item_name=item_name,
                brand=brand,
                movement_type=movement_type,
                quantity=quantity,
                occurred_at=occurred_at,
                actor_id=actor_pk(actor),
                actor_name=actor_name(actor),
                notes=notes,
                reference_id=reference_id,
                related_asset=related_asset,
                reverses=reverses,
            )
            self._replay(item_name, brand, since=occurred_at)
            movement.refresh_from_db(fields=['balance_after'])

        if is_backdated:
            logger.info(
                "Backdated %s of %s %s at %s; balances recomputed",
                movement_type, item_name, brand, occurred_at,
            )
        logger.info(
            "Stock %s %s %s x%d -> balance %d (%s)",
            item_name, brand, movement_type, quantity, movement.balance_after, reference_id or '-',
        )
        return movement

    def current_balance(self, item_name, brand=''):
        last = self._identity(item_name, brand).order_by('-occurred_at', '-id').first()
        return last.balance_after if last else 0

    def history(self, item_name, brand=''):
        return self._identity(item_name, brand).order_by('occurred_at', 'id')

    def summary(self):
        """
        Current balance of every item identity.

        Returns:
            list: [{'item_name', 'brand', 'balance', 'movements'}] sorted
            by item name and brand
        """
        identities = (
            StockMovement.objects.values_list('item_name', 'brand')
            .distinct()
            .order_by('item_name', 'brand')
        )
        return [
            {
                'item_name': item_name,
                'brand': brand,
                'balance': self.current_balance(item_name, brand),
                'movements': self._identity(item_name, brand).count(),
            }
            for item_name, brand in identities
        ]

    def reverse(self, movement_id, actor, notes=None):
        """
        Compensate a movement with an opposite adjustment.

        Raises:
            NotFound: movement does not exist
            InvalidTransition: movement was already reversed
        """
        with transaction.atomic():
            try:
                original = StockMovement.objects.select_for_update().get(pk=movement_id)
            except (StockMovement.DoesNotExist, ValueError):
                raise NotFound(f"Stock movement {movement_id} not found", movement_id=movement_id)
            if original.is_reversed:
                raise InvalidTransition(
                    f"Stock movement {movement_id} has already been reversed",
                    movement_id=movement_id,
                )

            compensating_type = (
                MovementType.OUT_ADJUSTMENT if original.is_inbound else MovementType.IN_ADJUSTMENT
            )
            reversal = self.record(
                original.item_name,
                original.brand,
                compensating_type,
                original.quantity,
                actor,
                notes=notes or f"Reversal of movement {original.pk}",
                reference_id=original.reference_id,
                related_asset=original.related_asset,
                reverses=original,
            )

        logger.info("Reversed stock movement %s with %s", original.pk, reversal.pk)
        return reversal

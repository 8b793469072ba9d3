"""
Stock Endpoints
===============
Record stock movements and read balances through ``StockLedger``.
"""

from dateutil.parser import isoparse
from django.utils import timezone

from core.api import json_endpoint, require, isoformat
from core.exceptions import ValidationError
from .ledger import StockLedger


def serialize_movement(movement):
    return {
        'id': movement.id,
        'item_name': movement.item_name,
        'brand': movement.brand,
        'movement_type': movement.movement_type,
        'quantity': movement.quantity,
        'balance_after': movement.balance_after,
        'occurred_at': isoformat(movement.occurred_at),
        'actor': movement.actor_name,
        'reference_id': movement.reference_id,
        'related_asset': movement.related_asset_id,
        'reverses': movement.reverses_id,
        'notes': movement.notes,
    }


def parse_occurred_at(value):
    if not value:
        return None
    try:
        occurred_at = isoparse(str(value))
    except ValueError:
        raise ValidationError(f"Invalid timestamp: {value!r}", occurred_at=value)
    if timezone.is_naive(occurred_at):
        occurred_at = timezone.make_aware(occurred_at)
    return occurred_at


@json_endpoint('POST', status=201)
def movement_create(request, payload):
    movement = StockLedger().record(
        require(payload, 'item_name'),
        payload.get('brand'),
        require(payload, 'movement_type'),
        payload.get('quantity'),
        request.user,
        occurred_at=parse_occurred_at(payload.get('occurred_at')),
        notes=payload.get('notes'),
        reference_id=payload.get('reference_id'),
    )
    return serialize_movement(movement)


@json_endpoint('POST', status=201)
def movement_reverse(request, payload, pk):
    return serialize_movement(StockLedger().reverse(pk, request.user, notes=payload.get('notes')))


@json_endpoint('GET')
def stock_summary(request, payload):
    return StockLedger().summary()

"""
Asset Endpoints
===============
Read assets and patch their custody fields through ``CustodyLedger``.
"""

from core.api import json_endpoint, require, isoformat
from .ledger import CustodyLedger

# Body keys that steer the call rather than patch the asset
CONTROL_KEYS = ('version', 'reference_id', 'detail')


def serialize_asset(asset, with_log=False):
    data = {
        'id': asset.id,
        'name': asset.name,
        'brand': asset.brand,
        'category': asset.category,
        'asset_type': asset.asset_type,
        'serial_number': asset.serial_number,
        'mac_address': asset.mac_address,
        'status': asset.status,
        'condition': asset.condition,
        'current_holder_user': str(asset.current_holder_user_id) if asset.current_holder_user_id else None,
        'current_holder_customer': (
            str(asset.current_holder_customer_id) if asset.current_holder_customer_id else None
        ),
        'location': asset.location,
        'origin_document': asset.origin_document,
        'purchase_date': isoformat(asset.purchase_date),
        'version': asset.version,
    }
    if with_log:
        data['activity_log'] = [
            {
                'action': entry.action,
                'actor': entry.actor_name,
                'timestamp': isoformat(entry.timestamp),
                'detail': entry.detail,
                'reference_id': entry.reference_id,
            }
            for entry in asset.activity_log
        ]
    return data


@json_endpoint('GET', 'PATCH')
def asset_detail(request, payload, pk):
    ledger = CustodyLedger()
    if request.method == 'GET':
        return serialize_asset(ledger.get(pk), with_log=True)

    patch = {key: value for key, value in payload.items() if key not in CONTROL_KEYS}
    asset = ledger.update_one(
        pk, patch, request.user,
        detail=payload.get('detail'),
        reference_id=payload.get('reference_id'),
        expected_version=payload.get('version'),
    )
    return serialize_asset(asset)


@json_endpoint('PATCH')
def asset_batch(request, payload):
    assets = CustodyLedger().update_batch(
        require(payload, 'asset_ids'),
        require(payload, 'patch'),
        request.user,
        detail=payload.get('detail'),
        reference_id=payload.get('reference_id'),
    )
    return {'assets': [serialize_asset(asset) for asset in assets]}

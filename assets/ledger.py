"""
Asset Custody Ledger
====================
The only writer of asset custody state.

Every mutation appends exactly one ActivityLog entry per asset. Batch
updates lock the whole asset-id set (in id order) and are all-or-nothing:
a missing asset or an invalid patch rolls back every asset in the batch.
"""

import logging
from dataclasses import dataclass

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction

from core.conf import ims_setting
from core.events import AssetsRegistered, AssetsReleased, CustodyEvent
from core.exceptions import ConflictError, NotFound, ValidationError, from_django_validation_error
from core.models import ActivityLog, Customer, actor_name, actor_pk
from core.numbering import DocumentPrefix, allocate_document_numbers
from users.models import User
from .models import Asset, AssetStatus, AssetCondition, NO_HOLDER_STATUSES

logger = logging.getLogger(__name__)

CUSTODY_FIELDS = ('status', 'condition', 'current_holder_user', 'current_holder_customer', 'location')
HOLDER_FIELDS = {
    'current_holder_user': User,
    'current_holder_customer': Customer,
}
REGISTER_FIELDS = ('category', 'asset_type', 'condition', 'location', 'purchase_date', 'notes')


@dataclass(frozen=True)
class Availability:
    """In-storage stock of one item identity against a requested quantity."""
    name: str
    brand: str
    requested: int
    available: int
    asset_ids: tuple

    @property
    def is_sufficient(self):
        return self.available >= self.requested

    @property
    def deficit(self):
        return max(self.requested - self.available, 0)


def _display(value):
    if value is None or isinstance(value, str):
        return value
    return str(getattr(value, 'pk', value))


class CustodyLedger:
    """
    Applies custody patches and domain events to assets.

    Usage:
        ledger = CustodyLedger()
        ledger.update_one('AST-202501-001', {'status': 'IN_REPAIR'}, actor=user)
        ledger.apply([AssetsAssigned(asset_ids, reference_id='RL-202501-001',
                                     holder_user=user)], actor=approver)
    """

    def __init__(self, storage_location=None):
        self.storage_location = storage_location or ims_setting('STORAGE_LOCATION')

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, asset_id):
        try:
            return Asset.objects.get(pk=asset_id)
        except Asset.DoesNotExist:
            raise NotFound(f"Asset {asset_id} not found", asset_id=asset_id)

    def check_availability(self, name, brand, quantity):
        """Compare the in-storage count of ``name``/``brand`` with ``quantity``."""
        asset_ids = tuple(
            Asset.objects.filter(
                name=name, brand=brand or '', status=AssetStatus.IN_STORAGE
            ).order_by('pk').values_list('pk', flat=True)
        )
        return Availability(
            name=name,
            brand=brand or '',
            requested=quantity,
            available=len(asset_ids),
            asset_ids=asset_ids,
        )

    # ------------------------------------------------------------------
    # Patch handling
    # ------------------------------------------------------------------

    def clean_patch(self, patch):
        """Validate a custody patch and resolve holder ids to instances."""
        if not isinstance(patch, dict):
            raise ValidationError("Patch must be an object")
        if not patch:
            raise ValidationError("Patch is empty")
        unknown = sorted(set(patch) - set(CUSTODY_FIELDS))
        if unknown:
            raise ValidationError(
                f"Only custody fields can be patched, got: {', '.join(unknown)}",
                fields=unknown,
            )

        cleaned = dict(patch)
        if 'status' in cleaned and cleaned['status'] not in AssetStatus.values:
            raise ValidationError(f"Unknown asset status: {cleaned['status']}")
        if 'condition' in cleaned and cleaned['condition'] not in AssetCondition.values:
            raise ValidationError(f"Unknown asset condition: {cleaned['condition']}")
        if 'location' in cleaned and cleaned['location'] is None:
            cleaned['location'] = ''

        for field, model in HOLDER_FIELDS.items():
            value = cleaned.get(field)
            if value is None or isinstance(value, model):
                continue
            try:
                cleaned[field] = model.objects.get(pk=value)
            except (model.DoesNotExist, ValueError, DjangoValidationError):
                raise NotFound(f"{model._meta.verbose_name} {value} not found", **{field: value})
        return cleaned

    def _patch_asset(self, asset, patch):
        """Apply a cleaned patch to ``asset`` in memory; return the changes."""
        before = {field: getattr(asset, field) for field in CUSTODY_FIELDS}

        for field, value in patch.items():
            setattr(asset, field, value)

        # A new holder of one kind replaces a holder of the other kind
        if patch.get('current_holder_user') is not None and 'current_holder_customer' not in patch:
            asset.current_holder_customer = None
        if patch.get('current_holder_customer') is not None and 'current_holder_user' not in patch:
            asset.current_holder_user = None

        holder_in_patch = any(field in patch for field in HOLDER_FIELDS)
        if asset.status in NO_HOLDER_STATUSES and not holder_in_patch:
            asset.current_holder_user = None
            asset.current_holder_customer = None

        errors = asset.custody_errors()
        if errors:
            raise ValidationError(
                f"Asset {asset.pk}: {' '.join(errors)}",
                asset_id=asset.pk,
                status=asset.status,
            )

        changes = {}
        for field in CUSTODY_FIELDS:
            old, new = before[field], getattr(asset, field)
            if _display(old) != _display(new):
                changes[field] = [_display(old), _display(new)]
        if changes:
            asset.bump_version()
        return changes

    def _describe(self, changes):
        if not changes:
            return "No custody change"
        return ', '.join(f"{field}: {old or '-'} → {new or '-'}" for field, (old, new) in changes.items())

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update_one(self, asset_id, patch, actor, action='UPDATE', detail=None,
                   reference_id=None, expected_version=None):
        """
        Patch a single asset under a row lock.

        Raises:
            NotFound: asset (or holder) does not exist
            ValidationError: patch touches non-custody fields or breaks
                status/holder consistency
            ConflictError: ``expected_version`` does not match
        """
        patch = self.clean_patch(patch)
        with transaction.atomic():
            try:
                asset = Asset.objects.select_for_update().get(pk=asset_id)
            except Asset.DoesNotExist:
                raise NotFound(f"Asset {asset_id} not found", asset_id=asset_id)
            asset.check_version(expected_version)

            changes = self._patch_asset(asset, patch)
            asset.updated_by = actor_pk(actor)
            asset.save()
            ActivityLog.record(
                asset, action, actor,
                detail=detail or self._describe(changes),
                reference_id=reference_id,
                changes=changes,
            )

        logger.info("Asset %s %s by %s (%s)", asset.pk, action, actor_name(actor), reference_id or '-')
        return asset

    def update_batch(self, asset_ids, patch, actor, action='UPDATE', detail=None, reference_id=None):
        """
        Patch every listed asset, or none of them.

        The assets are locked in id order so concurrent batches cannot
        deadlock or overwrite each other.
        """
        if isinstance(asset_ids, str):
            raise ValidationError("Asset ids must be a list")
        ids = list(dict.fromkeys(str(asset_id) for asset_id in asset_ids))
        if not ids:
            return []
        patch = self.clean_patch(patch)

        with transaction.atomic():
            assets = list(Asset.objects.select_for_update().filter(pk__in=ids).order_by('pk'))
            found = {asset.pk for asset in assets}
            missing = [asset_id for asset_id in ids if asset_id not in found]
            if missing:
                raise NotFound(f"Assets not found: {', '.join(missing)}", asset_ids=missing)

            entries = []
            for asset in assets:
                changes = self._patch_asset(asset, patch)
                asset.updated_by = actor_pk(actor)
                asset.save()
                entries.append(ActivityLog.build(
                    asset, action, actor,
                    detail=detail or self._describe(changes),
                    reference_id=reference_id,
                    changes=changes,
                ))
            ActivityLog.objects.bulk_create(entries)

        logger.info(
            "Batch %s on %d asset(s) by %s (%s)", action, len(assets), actor_name(actor), reference_id or '-'
        )
        return assets

    def register(self, name, brand, count, actor, reference_id=None, **fields):
        """
        Create ``count`` new IN_STORAGE assets.

        Returns:
            list: The created assets (empty when ``count`` is 0)
        """
        if not name:
            raise ValidationError("Asset name is required")
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise ValidationError(f"Count must be a non-negative integer, got {count!r}", count=count)
        unknown = sorted(set(fields) - set(REGISTER_FIELDS))
        if unknown:
            raise ValidationError(f"Unknown asset fields: {', '.join(unknown)}", fields=unknown)
        condition = fields.get('condition') or AssetCondition.NEW
        if condition not in AssetCondition.values:
            raise ValidationError(f"Unknown asset condition: {condition}")
        if count == 0:
            return []

        try:
            with transaction.atomic():
                assets = self._insert_registered(name, brand, count, condition, actor, reference_id, fields)
        except IntegrityError as exc:
            raise ConflictError(f"Could not number the new assets: {exc}")

        logger.info("Registered %d x %s %s (%s)", count, name, brand, reference_id or '-')
        return assets

    def _insert_registered(self, name, brand, count, condition, actor, reference_id, fields):
        assets = []
        for number in allocate_document_numbers(Asset, DocumentPrefix.ASSET, count):
            asset = Asset(
                id=number,
                name=name,
                brand=brand or '',
                category=fields.get('category') or '',
                asset_type=fields.get('asset_type') or '',
                condition=condition,
                location=fields.get('location') or self.storage_location,
                purchase_date=fields.get('purchase_date'),
                notes=fields.get('notes'),
                status=AssetStatus.IN_STORAGE,
                origin_document=reference_id,
                created_by=actor_pk(actor),
            )
            # Number collisions surface from the insert below
            try:
                asset.full_clean(validate_unique=False)
            except DjangoValidationError as exc:
                raise from_django_validation_error(exc)
            asset.save(force_insert=True)
            ActivityLog.record(
                asset, 'CREATE', actor,
                detail=f"Registered from {reference_id}" if reference_id else "Registered",
                reference_id=reference_id,
            )
            assets.append(asset)
        return assets

    def apply(self, events, actor):
        """
        Apply workflow events, in order, inside one transaction.

        Returns:
            list: Every asset touched or created
        """
        touched = []
        with transaction.atomic():
            for event in events:
                if isinstance(event, AssetsRegistered):
                    touched.extend(self.register(
                        event.name, event.brand, event.count, actor,
                        reference_id=event.reference_id, **event.fields
                    ))
                elif isinstance(event, CustodyEvent):
                    patch = event.patch()
                    if isinstance(event, AssetsReleased) and 'location' not in patch:
                        patch['location'] = self.storage_location
                    touched.extend(self.update_batch(
                        event.asset_ids, patch, actor,
                        action=event.action,
                        detail=event.detail(),
                        reference_id=event.reference_id,
                    ))
                else:
                    raise TypeError(f"Unsupported custody event: {event!r}")
        return touched

"""
Asset Management Signals
=========================
Keep custody fields consistent however an asset gets saved.
"""

from django.db.models.signals import pre_save
from django.dispatch import receiver
from .models import Asset, NO_HOLDER_STATUSES


@receiver(pre_save, sender=Asset)
def normalize_asset_custody(sender, instance, **kwargs):
    """
    Normalize custody before saving.

    Ensures:
    - Serial numbers are stored without surrounding whitespace
    - Assets in storage, decommissioned or consumed have no holder
    """
    if instance.serial_number is not None:
        instance.serial_number = instance.serial_number.strip() or None

    # Ensure status consistency
    if instance.status in NO_HOLDER_STATUSES:
        instance.current_holder_user = None
        instance.current_holder_customer = None

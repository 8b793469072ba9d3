"""Engine settings with defaults, read from ``settings.IMS``."""

from django.conf import settings

DEFAULTS = {
    'STORAGE_LOCATION': 'Gudang',
    'NUMBER_PADDING': 3,
}


def ims_setting(name):
    overrides = getattr(settings, 'IMS', {}) or {}
    if name in overrides:
        return overrides[name]
    return DEFAULTS[name]

# assets/apps.py
from django.apps import AppConfig


class AssetsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'assets'
    verbose_name = 'Asset Custody'

    def ready(self):
        """Import signals when app is ready."""
        import assets.signals  # noqa: F401

# compensation/apps.py
from django.apps import AppConfig


class CompensationConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "compensation"
    verbose_name = "Binary compensation"

    def ready(self):
        # ✅ signal receivers (wallet creation + config cache invalidation)
        from . import config, signals  # noqa: F401

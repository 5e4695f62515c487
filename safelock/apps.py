from django.apps import AppConfig


class SafelockConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "safelock"
    verbose_name = "Optimistic locking"

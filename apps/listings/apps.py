from django.apps import AppConfig  # type: ignore


class ListingsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.listings"

    def ready(self) -> None:
        from . import signals  # noqa: F401

from django.apps import AppConfig  # type: ignore


class ReviewsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.reviews"

    def ready(self) -> None:
        from . import signals  # noqa: F401

from django.apps import AppConfig


class ClubsConfig(AppConfig):
    """Configuration for the clubs app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "clubs"

"""Django app configuration for previews app."""

from django.apps import AppConfig


class PreviewsConfig(AppConfig):
    """Configuration for the previews app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "previews"
    verbose_name = "Previews"

"""tutoring.apps module.

Django application configuration for the *tutoring* app used by the
**lingomeet** project.
"""

from django.apps import AppConfig


class TutoringConfig(AppConfig):
    """Django ``AppConfig`` for the **tutoring** application."""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'tutoring'
    verbose_name = 'Tutoring'

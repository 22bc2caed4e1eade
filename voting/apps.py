"""
Django app configuration for the voting module
==============================================
"""

from django.apps import AppConfig # pyright: ignore[reportMissingModuleSource]


class VotingConfig(AppConfig):
    """Configuration class for the voting application."""
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'voting'
    verbose_name = 'VoxPopuly'

from django.apps import AppConfig


class VectorsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.vectors'
    verbose_name = 'Native Vector Storage (pgvector)'

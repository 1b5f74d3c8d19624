from django.apps import AppConfig
from django.conf import settings


class RagConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.rag'
    verbose_name = 'Retrieval and Answer Generation'

    def ready(self):
        # Fail at startup rather than on the first query
        from apps.indexing.chunker import validate_window
        from apps.indexing.stores import validate_vector_dimensions
        from apps.rag.retrieval import validate_retrieval_settings
        from django.core.exceptions import ImproperlyConfigured

        validate_retrieval_settings(settings.RAG_TOP_K, settings.RAG_SIMILARITY_THRESHOLD)
        validate_vector_dimensions(settings.VECTOR_STORE, settings.EMBEDDING_DIMENSIONS)
        try:
            validate_window(settings.CHUNK_SIZE_TOKENS, settings.CHUNK_OVERLAP_TOKENS)
        except ValueError as e:
            raise ImproperlyConfigured(str(e))

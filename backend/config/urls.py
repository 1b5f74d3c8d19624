"""
URL configuration for the NoteChat backend.
"""
from django.urls import path, include

from apps.rag.health import healthz, readyz

urlpatterns = [
    # Health check endpoints
    path('healthz', healthz, name='healthz'),
    path('readyz', readyz, name='readyz'),

    # API routes
    path('api/docs/', include('apps.docs.urls')),
    path('api/rag/', include('apps.rag.urls')),
]

"""
Health check endpoints for container probes.

- /healthz - Liveness (is process running?)
- /readyz - Readiness (can we serve traffic?)
"""
import logging
from datetime import datetime, timezone

import httpx
from django.conf import settings
from django.db import connection
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET

logger = logging.getLogger(__name__)


def get_timestamp() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


@csrf_exempt
@require_GET
def healthz(request):
    """
    Liveness probe endpoint.

    Returns 200 if the Django process is running.
    Does NOT check dependencies - that's for readiness.
    """
    return JsonResponse({
        'status': 'healthy',
        'timestamp': get_timestamp()
    })


def check_database() -> tuple[str, bool]:
    """Check database connectivity."""
    try:
        with connection.cursor() as cursor:
            cursor.execute('SELECT 1')
            cursor.fetchone()
        return 'ok', True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return f'error: {str(e)[:50]}', False


def check_ollama() -> tuple[str, bool]:
    """
    Check Ollama connectivity (optional, degrades gracefully).

    Answers still come back (as FROM_GENERAL or an apology) while Ollama is down.
    """
    try:
        with httpx.Client(timeout=5.0) as client:
            response = client.get(f'{settings.OLLAMA_BASE_URL}/api/version')
            if response.status_code == 200:
                return 'ok', True
            return f'status: {response.status_code}', True
    except httpx.HTTPError as e:
        logger.warning(f"Ollama health check failed: {e}")
        return f'degraded: {str(e)[:30]}', True


@csrf_exempt
@require_GET
def readyz(request):
    """
    Readiness probe endpoint.

    Returns 200 only if all critical dependencies are reachable.
    """
    checks = {}
    all_ok = True

    # Database (critical)
    status, ok = check_database()
    checks['database'] = status
    if not ok:
        all_ok = False

    # Ollama (optional - doesn't block readiness)
    status, _ = check_ollama()
    checks['ollama'] = status

    response_data = {
        'status': 'ready' if all_ok else 'not_ready',
        'timestamp': get_timestamp(),
        'checks': checks
    }

    return JsonResponse(response_data, status=200 if all_ok else 503)

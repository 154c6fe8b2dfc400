from django.db import connection, DatabaseError
from django.http import JsonResponse
from django.views.decorators.http import require_http_methods
import logging

logger = logging.getLogger(__name__)


@require_http_methods(["GET", "HEAD"])
def health_check(request):
    """
    Lightweight health check endpoint for uptime monitoring.
    Returns 200 when the app can reach its database.
    """
    try:
        with connection.cursor() as cursor:
            cursor.execute('SELECT 1')
    except DatabaseError as e:
        logger.error(f"Health check failed: {str(e)}")
        return JsonResponse(
            {
                'status': 'error',
                'message': 'Database unavailable'
            },
            status=500
        )

    return JsonResponse(
        {
            'status': 'ok',
            'message': 'Dental practice app is running'
        },
        status=200
    )

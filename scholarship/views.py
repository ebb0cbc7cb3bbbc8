from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.http import require_GET


def _database_status() -> str:
    try:
        connection.ensure_connection()
    except DatabaseError:
        return "disconnected"
    return "connected"


@require_GET
def health_view(request):
    phonepe_ready = all(
        [
            settings.PHONEPE_CLIENT_ID,
            settings.PHONEPE_CLIENT_SECRET,
            settings.PHONEPE_CLIENT_VERSION,
            settings.PHONEPE_MERCHANT_ID,
        ]
    )
    return JsonResponse(
        {
            "status": "OK",
            "timestamp": timezone.now(),
            "environment": settings.ENVIRONMENT,
            "database": _database_status(),
            "email": "configured" if settings.EMAIL_ENABLED else "not configured",
            "phonepe": "configured" if phonepe_ready else "not configured",
            "phonePeEnv": settings.PHONEPE_ENV,
        }
    )


def error_404_view(request, exception):
    return JsonResponse({"success": False, "message": "Not found"}, status=404)


def error_500_view(request):
    return JsonResponse({"success": False, "message": "Internal server error"}, status=500)

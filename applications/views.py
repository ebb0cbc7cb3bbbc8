from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from scholarship.errors import api_view, json_body

from . import services


@csrf_exempt
@require_POST
@api_view(failure_message="Application submission failed")
def submit_application_view(request):
    application = services.submit_application(json_body(request))
    return JsonResponse(
        {
            "success": True,
            "message": "Application submitted successfully",
            "data": {
                "applicationId": application.application_id,
                "timestamp": application.created_at,
            },
        },
        status=201,
    )


@require_GET
@api_view(failure_message="Failed to fetch application")
def application_detail_view(request, application_id: str):
    application = services.get_application(application_id)
    return JsonResponse({"success": True, "data": application.to_dict()})

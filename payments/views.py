from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from scholarship.errors import api_view, json_body

from . import services


@csrf_exempt
@require_POST
@api_view(failure_message="Payment initiation failed")
def initiate_payment_view(request):
    # amount must arrive as a JSON number, so form bodies are refused
    data = services.initiate_payment(json_body(request, allow_form=False))
    return JsonResponse({"success": True, "message": "Payment initiated successfully", "data": data})


@require_GET
@api_view(failure_message="Payment status check failed")
def payment_status_view(request, merchant_order_id: str):
    result = services.reconcile_payment(merchant_order_id)
    return JsonResponse({"success": True, **result})

from django.contrib import admin

from .models import PaymentOrder


@admin.register(PaymentOrder)
class PaymentOrderAdmin(admin.ModelAdmin):
    list_display = ("merchant_order_id", "application_id", "status", "amount", "gateway_order_id", "created_at", "updated_at")
    search_fields = ("merchant_order_id", "gateway_order_id", "application_id")
    list_filter = ("status", "created_at")
    readonly_fields = ("created_at", "updated_at", "gateway_response")

from django.contrib import admin

from .models import Application


@admin.register(Application)
class ApplicationAdmin(admin.ModelAdmin):
    list_display = ("application_id", "name", "email", "phone", "status", "payment_status", "created_at")
    search_fields = ("application_id", "name", "email", "phone", "payment_order_id")
    list_filter = ("status", "payment_status", "gender", "state", "created_at")
    readonly_fields = ("application_id", "payment_order_id", "created_at", "updated_at")
    ordering = ("-created_at",)

from django.urls import path

from . import views

app_name = "payments"
urlpatterns = [
    path("initiate", views.initiate_payment_view, name="initiate"),
    path("status/<str:merchant_order_id>", views.payment_status_view, name="status"),
]

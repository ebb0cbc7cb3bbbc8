from django.contrib import admin
from django.urls import include, path

from . import views

urlpatterns = [
    path("health", views.health_view, name="health"),
    path("api/application/", include("applications.urls")),
    path("api/payment/", include("payments.urls")),
    path("admin/", admin.site.urls),
]

handler404 = "scholarship.views.error_404_view"
handler500 = "scholarship.views.error_500_view"

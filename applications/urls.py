from django.urls import path

from . import views

app_name = "applications"
urlpatterns = [
    path("submit", views.submit_application_view, name="submit"),
    path("<str:application_id>", views.application_detail_view, name="detail"),
]

from django.urls import include, path

from offers import api_views

urlpatterns = [
    path("healthz/", api_views.healthz, name="healthz"),
    path("api/", include("offers.api_urls")),
]

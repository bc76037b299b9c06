from django.urls import path

from offers import api_views

app_name = "offers-api"

urlpatterns = [
    path("search", api_views.SearchAPIView.as_view(), name="search"),
    path("normalize-flights", api_views.NormalizeFlightsAPIView.as_view(), name="normalize-flights"),
    path("cache", api_views.CacheAdminAPIView.as_view(), name="cache-admin"),
]

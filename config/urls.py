from django.urls import include, path

urlpatterns = [
    path("health/", include("apps.health.urls")),
    path("api/v1/", include("apps.api_urls")),
]

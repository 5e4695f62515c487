from django.urls import include, path

urlpatterns = [
    path("", include("safelock.urls")),
]

from django.urls import path

from safelock.views import KeyValueView

app_name = "safelock"

urlpatterns = [
    path("kv/<str:key>/", KeyValueView.as_view(), name="kv-detail"),
]

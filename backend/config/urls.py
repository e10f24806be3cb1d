from __future__ import annotations

from django.urls import include, path

urlpatterns = [
    path("delta/", include("deltas.urls")),
]

"""
URL routing for the delta API.
"""

from django.urls import path

from . import views

urlpatterns = [
    path("", views.DeltaIngestView.as_view(), name="delta-ingest"),
    path("status/", views.EngineStatusView.as_view(), name="delta-status"),
    path("rules/", views.RuleListView.as_view(), name="delta-rules"),
]

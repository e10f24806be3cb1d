"""Delta ingestion and engine status API views."""

from __future__ import annotations

from uuid import uuid4

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from config.domain_exceptions import ServiceUnavailableError

from .dispatcher import get_engine, get_engine_status, notify_delta
from .parsing import parse_delta
from .serializers import DeltaBodySerializer


class DeltaIngestView(APIView):
    """POST /delta/ - Accept one delta (a list of change sets) for matching."""

    def post(self, request):
        """Decode the delta, route it through the engine and report the fan-out."""
        body = request.data
        if isinstance(body, dict):
            body = [body]
        serializer = DeltaBodySerializer(data={"change_sets": body})
        serializer.is_valid(raise_exception=True)

        engine = get_engine()
        if engine.is_shut_down:
            raise ServiceUnavailableError("Delta engine is shutting down.")
        origin = request.headers.get(engine.config.origin_header) or f"external:{uuid4().hex}"
        scope = request.headers.get(engine.config.scope_header) or None

        delta, skipped = parse_delta(serializer.validated_data["change_sets"], origin=origin, scope=scope)
        result = notify_delta(delta, skipped=skipped)

        return Response(
            {
                "accepted": len(delta),
                "skipped": skipped,
                "matched_rules": [rule.name for rule in result.matches],
                "ignored_rules": [rule.name for rule in result.ignored_self],
            },
            status=status.HTTP_202_ACCEPTED,
        )


class EngineStatusView(APIView):
    """GET /delta/status/ - Return engine health metrics."""

    def get(self, request):
        return Response(get_engine_status(), status=status.HTTP_200_OK)


class RuleListView(APIView):
    """GET /delta/rules/ - List the loaded rules."""

    def get(self, request):
        rules = get_engine().rules
        return Response([rule.as_dict() for rule in rules], status=status.HTTP_200_OK)

"""
Serializers for the delta ingestion API.
"""

from rest_framework import serializers


class DeltaBodySerializer(serializers.Serializer):
    """
    Top-level shape of an incoming delta: a non-empty list of change sets.

    Individual change sets and quads are kept raw here; malformed entries are
    skipped and counted while decoding instead of failing the whole request.
    """

    change_sets = serializers.ListField(child=serializers.JSONField(allow_null=True), allow_empty=False)

from rest_framework import serializers

from safelock.models import KeyValueEntry


class KeyValueSerializer(serializers.ModelSerializer):
    """Entry as returned to clients; ``version`` is what they send back on writes."""

    owner = serializers.PrimaryKeyRelatedField(read_only=True)
    tags = serializers.SlugRelatedField(many=True, read_only=True, slug_field="name")

    class Meta:
        model = KeyValueEntry
        fields = ["key", "value", "version", "owner", "tags", "created_at", "updated_at"]
        read_only_fields = ["key", "value", "version", "created_at", "updated_at"]


class KeyValueWriteSerializer(serializers.Serializer):
    """Serializer for writing/updating key values."""

    value = serializers.CharField(
        allow_blank=True,
        help_text="The value to store for the key. Can be empty string.",
    )
    version = serializers.IntegerField(
        required=False,
        min_value=0,
        help_text="Version the client last read. The write is rejected with 409 if it is outdated.",
    )


class VersionQuerySerializer(serializers.Serializer):
    version = serializers.IntegerField(required=False, min_value=0)

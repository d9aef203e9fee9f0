from rest_framework import serializers

from vault.models import Record


class RecordSerializer(serializers.ModelSerializer):
    """Serializer for vault records with metadata."""

    class Meta:
        model = Record
        fields = [
            "id",
            "name",
            "value",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class RecordWriteSerializer(serializers.Serializer):
    """Serializer for the name/value pair of a new or updated record."""

    name = serializers.CharField(
        error_messages={"blank": "Name cannot be empty.", "required": "Name is required."},
        help_text="Label of the record. Surrounding whitespace is stripped.",
    )
    value = serializers.CharField(
        error_messages={"blank": "Value cannot be empty.", "required": "Value is required."},
        help_text="Payload of the record. Surrounding whitespace is stripped.",
    )

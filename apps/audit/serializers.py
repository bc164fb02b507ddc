from rest_framework import serializers

from apps.audit.models import AuditEntry


class AuditEntrySerializer(serializers.ModelSerializer):
    actionType = serializers.CharField(source="action_type", read_only=True)
    recordId = serializers.UUIDField(source="record_id", read_only=True)
    actorId = serializers.CharField(source="actor_id", read_only=True)
    actorName = serializers.CharField(source="actor_name", read_only=True)
    actorEmail = serializers.CharField(source="actor_email", read_only=True)

    class Meta:
        model = AuditEntry
        fields = [
            "id",
            "timestamp",
            "actionType",
            "recordId",
            "actorId",
            "actorName",
            "actorEmail",
            "brand",
            "sku",
            "changes",
        ]
        read_only_fields = fields

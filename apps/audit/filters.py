from django.db.models import Q
from rest_framework import serializers

from apps.audit.models import AuditAction
from apps.common.querying import FilterQuerySerializer


class AuditQuerySerializer(FilterQuerySerializer):
    brand = serializers.CharField(required=False, allow_blank=True)
    sku = serializers.CharField(required=False, allow_blank=True)
    actionType = serializers.CharField(required=False, allow_blank=True)
    actorId = serializers.CharField(required=False, allow_blank=True)
    startDate = serializers.DateField(required=False)
    endDate = serializers.DateField(required=False)

    search_fields = ("brand", "sku")
    text_filters = {"brand": "brand", "sku": "sku"}
    sort_fields = {
        "timestamp": "timestamp",
        "createdAt": "timestamp",
        "actionType": "action_type",
        "brand": "brand",
        "sku": "sku",
        "actorName": "actor_name",
    }
    default_sort = "timestamp"

    def validate_actionType(self, value):
        value = value.upper()
        if value not in AuditAction.values:
            raise serializers.ValidationError(f"Use one of: {', '.join(AuditAction.values)}.")
        return value

    def validate(self, attrs):
        attrs = super().validate(attrs)
        start_date = attrs.get("startDate")
        end_date = attrs.get("endDate")
        if start_date and end_date and start_date > end_date:
            raise serializers.ValidationError({"startDate": "startDate must be before or equal to endDate."})
        return attrs

    def get_extra_predicate(self, attrs):
        predicate = Q()
        if attrs.get("actionType"):
            predicate &= Q(action_type=attrs["actionType"])
        if attrs.get("actorId"):
            predicate &= Q(actor_id=attrs["actorId"])
        if attrs.get("startDate"):
            predicate &= Q(timestamp__date__gte=attrs["startDate"])
        if attrs.get("endDate"):
            predicate &= Q(timestamp__date__lte=attrs["endDate"])
        return predicate

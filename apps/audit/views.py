from django.db.models import OuterRef, Subquery
from rest_framework import generics
from rest_framework.response import Response

from apps.audit.filters import AuditQuerySerializer
from apps.audit.models import AuditEntry
from apps.audit.serializers import AuditEntrySerializer
from apps.common.permissions import RolePermission
from apps.common.querying import build_query


class AuditEntryListView(generics.ListAPIView):
    serializer_class = AuditEntrySerializer
    permission_classes = [RolePermission]
    capability_map = {"get": ["audit.view"]}

    def get_queryset(self):
        query = build_query(AuditQuerySerializer, self.request.query_params)
        return AuditEntry.objects.filter(query.predicate).order_by(*query.ordering)


class AuditActorListView(generics.GenericAPIView):
    permission_classes = [RolePermission]
    capability_map = {"get": ["audit.view"]}

    def get(self, request, *args, **kwargs):
        latest_for_actor = (
            AuditEntry.objects.filter(actor_id=OuterRef("actor_id")).order_by("-timestamp", "-id").values("id")[:1]
        )
        latest_entries = (
            AuditEntry.objects.filter(id=Subquery(latest_for_actor))
            .order_by("-timestamp", "-id")
            .values("actor_id", "actor_name", "actor_email", "timestamp")
        )
        actors = [
            {
                "actorId": entry["actor_id"],
                "name": entry["actor_name"],
                "email": entry["actor_email"],
                "lastActivity": entry["timestamp"],
            }
            for entry in latest_entries
        ]
        return Response({"success": True, "data": actors})

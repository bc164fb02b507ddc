from django.db import IntegrityError, transaction
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.audit.models import AuditAction
from apps.audit.services import build_audit_payload, compute_changes, dispatch_audit, product_snapshot, record_audit
from apps.catalog.filters import filter_products
from apps.catalog.models import Product
from apps.catalog.serializers import ProductSerializer
from apps.common.exceptions import ConflictError
from apps.common.permissions import RolePermission


class ProductViewSet(viewsets.ModelViewSet):
    queryset = Product.objects.all()
    serializer_class = ProductSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["inventory.view"],
        "retrieve": ["inventory.view"],
        "brands": ["inventory.view"],
        "create": ["inventory.manage"],
        "partial_update": ["inventory.manage"],
        "update": ["inventory.manage"],
        "destroy": ["inventory.manage"],
    }

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.action == "list":
            queryset = filter_products(queryset, self.request.query_params)
        return queryset

    def retrieve(self, request, *args, **kwargs):
        response = super().retrieve(request, *args, **kwargs)
        response.data = {"success": True, "data": response.data}
        return response

    def create(self, request, *args, **kwargs):
        response = super().create(request, *args, **kwargs)
        response.data = {"success": True, "data": response.data}
        return response

    def update(self, request, *args, **kwargs):
        response = super().update(request, *args, **kwargs)
        response.data = {"success": True, "data": response.data}
        return response

    @action(detail=False, methods=["get"])
    def brands(self, request):
        brands = Product.objects.exclude(brand="").order_by("brand").values_list("brand", flat=True).distinct()
        return Response({"success": True, "data": list(brands)})

    @staticmethod
    def _write(serializer, **extra):
        try:
            with transaction.atomic():
                return serializer.save(**extra)
        except IntegrityError as exc:
            raise ConflictError("A product with this SKU already exists.") from exc

    def perform_create(self, serializer):
        product = self._write(serializer, created_by=self.request.user)
        record_audit(AuditAction.CREATE, product, self.request.user)

    def perform_update(self, serializer):
        before = product_snapshot(serializer.instance)
        product = self._write(serializer)
        changes = compute_changes(before, product_snapshot(product))
        record_audit(AuditAction.UPDATE, product, self.request.user, changes=changes)

    def perform_destroy(self, instance):
        payload = build_audit_payload(AuditAction.DELETE, instance, self.request.user)
        super().perform_destroy(instance)
        dispatch_audit(payload)

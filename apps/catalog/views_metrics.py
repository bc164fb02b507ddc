from rest_framework import generics
from rest_framework.response import Response

from apps.catalog.models import Product
from apps.catalog.querysets import inventory_summary
from apps.common.permissions import RolePermission


class InventoryStatsView(generics.GenericAPIView):
    permission_classes = [RolePermission]
    capability_map = {"get": ["metrics.view"]}

    def get(self, request, *args, **kwargs):
        summary = inventory_summary(Product.objects.all())
        return Response(
            {
                "success": True,
                "data": {
                    "totalProducts": summary["total_products"],
                    "totalStock": summary["total_stock"],
                    "totalStoreValue": summary["total_store_value"],
                    "outOfStockCount": summary["out_of_stock_count"],
                },
            }
        )

from django.conf import settings
from django.utils import timezone
from rest_framework import generics
from rest_framework.negotiation import BaseContentNegotiation

from apps.catalog.filters import filter_products
from apps.catalog.models import Product
from apps.common.csvutils import stream_csv
from apps.common.permissions import RolePermission


EXPORT_HEADER = ["Brand", "SKU", "Category", "Inventory", "Price", "Total Value", "Description"]


class IgnoreClientContentNegotiation(BaseContentNegotiation):
    def select_parser(self, request, parsers):
        return parsers[0]

    def select_renderer(self, request, renderers, format_suffix=None):
        return (renderers[0], renderers[0].media_type)


def export_row(product):
    return [
        product.brand,
        product.sku,
        product.category,
        product.inventory,
        product.price,
        product.inventory * product.price,
        product.description,
    ]


class ProductExportView(generics.GenericAPIView):
    permission_classes = [RolePermission]
    capability_map = {"get": ["inventory.export"]}
    content_negotiation_class = IgnoreClientContentNegotiation

    def get(self, request, *args, **kwargs):
        queryset = filter_products(Product.objects.all(), request.query_params)
        products = queryset.iterator(chunk_size=settings.EXPORT_CHUNK_SIZE)
        # Fetched before the response exists so store errors still become a 503.
        first = next(products, None)
        filename = f"inventory-export-{int(timezone.now().timestamp() * 1000)}.csv"
        return stream_csv(
            EXPORT_HEADER,
            self._rows(first, products),
            filename,
            flush_rows=settings.EXPORT_FLUSH_ROWS,
            on_close=products.close,
        )

    @staticmethod
    def _rows(first, products):
        if first is None:
            return
        yield export_row(first)
        for product in products:
            yield export_row(product)

from rest_framework import serializers

from apps.common.querying import FilterQuerySerializer, build_query


class ProductQuerySerializer(FilterQuerySerializer):
    brand = serializers.CharField(required=False, allow_blank=True)
    category = serializers.CharField(required=False, allow_blank=True)

    search_fields = ("brand", "sku", "category", "description")
    text_filters = {"brand": "brand", "category": "category"}
    sort_fields = {
        "createdAt": "created_at",
        "updatedAt": "updated_at",
        "brand": "brand",
        "sku": "sku",
        "category": "category",
        "inventory": "inventory",
        "price": "price",
    }
    default_sort = "createdAt"


def filter_products(queryset, params):
    query = build_query(ProductQuerySerializer, params)
    return queryset.filter(query.predicate).order_by(*query.ordering)

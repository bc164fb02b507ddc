import math

from django.conf import settings
from rest_framework import serializers
from rest_framework.pagination import BasePagination
from rest_framework.response import Response

from apps.common.exceptions import InvalidQuery


class PageQuerySerializer(serializers.Serializer):
    page = serializers.IntegerField(required=False, min_value=1, default=1)
    limit = serializers.IntegerField(required=False, min_value=1)


class EnvelopePagination(BasePagination):
    """Offset pagination that answers with the ``{success, data, pagination}`` envelope.

    ``limit`` above ``PAGINATION_MAX_LIMIT`` is clamped. A page past the end is an
    empty page, not a 404.
    """

    def paginate_queryset(self, queryset, request, view=None):
        params = PageQuerySerializer(data=request.query_params)
        if not params.is_valid():
            raise InvalidQuery(params.errors)

        self.page = params.validated_data["page"]
        limit = params.validated_data.get("limit") or settings.PAGINATION_DEFAULT_LIMIT
        self.limit = min(limit, settings.PAGINATION_MAX_LIMIT)
        self.total = queryset.count()

        offset = (self.page - 1) * self.limit
        if offset >= self.total:
            return []
        return list(queryset[offset : offset + self.limit])

    def get_paginated_response(self, data):
        return Response(
            {
                "success": True,
                "data": data,
                "pagination": {
                    "page": self.page,
                    "limit": self.limit,
                    "total": self.total,
                    "pages": math.ceil(self.total / self.limit),
                },
            }
        )

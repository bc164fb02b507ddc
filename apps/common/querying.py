from typing import NamedTuple

from django.db.models import Q
from rest_framework import serializers

from apps.common.exceptions import InvalidQuery


SORT_ORDERS = ("asc", "desc")


class CanonicalQuery(NamedTuple):
    predicate: Q
    ordering: tuple


class FilterQuerySerializer(serializers.Serializer):
    """Turns loosely typed query parameters into one predicate plus an ordering.

    Subclasses declare their filter fields and configure:

    ``search_fields``
        model fields OR-ed together, case-insensitive substring, for ``search``.
    ``text_filters``
        parameter name -> model field, case-insensitive exact match. A non-empty
        ``search`` replaces all of them.
    ``sort_fields``
        accepted ``sortBy`` values -> model field.
    ``default_sort``
        ``sortBy`` value used when the caller supplies none.

    Blank and whitespace-only values are treated as absent. The ordering always
    ends with ``id`` so that pages are stable.
    """

    search = serializers.CharField(required=False, allow_blank=True)
    sortBy = serializers.CharField(required=False, allow_blank=True)
    sortOrder = serializers.CharField(required=False, allow_blank=True)

    search_fields = ()
    text_filters = {}
    sort_fields = {}
    default_sort = "createdAt"

    def to_internal_value(self, data):
        supplied = {}
        for key, value in data.items():
            if isinstance(value, str):
                value = value.strip()
            if value not in ("", None):
                supplied[key] = value
        return super().to_internal_value(supplied)

    def validate(self, attrs):
        sort_by = attrs.get("sortBy", self.default_sort)
        if sort_by not in self.sort_fields:
            raise serializers.ValidationError(
                {"sortBy": f"Unsupported sort field. Use one of: {', '.join(self.sort_fields)}."}
            )
        sort_order = attrs.get("sortOrder", "desc").lower()
        if sort_order not in SORT_ORDERS:
            raise serializers.ValidationError({"sortOrder": "sortOrder must be 'asc' or 'desc'."})
        attrs["sortBy"] = sort_by
        attrs["sortOrder"] = sort_order
        return attrs

    def get_text_predicate(self, attrs):
        search = attrs.get("search")
        predicate = Q()
        if search:
            for field in self.search_fields:
                predicate |= Q(**{f"{field}__icontains": search})
            return predicate

        for param, field in self.text_filters.items():
            value = attrs.get(param)
            if value:
                predicate &= Q(**{f"{field}__iexact": value})
        return predicate

    def get_extra_predicate(self, attrs):
        return Q()

    def get_ordering(self, attrs):
        prefix = "-" if attrs["sortOrder"] == "desc" else ""
        field = self.sort_fields[attrs["sortBy"]]
        return (f"{prefix}{field}", f"{prefix}id")

    def to_query(self):
        attrs = self.validated_data
        return CanonicalQuery(
            predicate=self.get_text_predicate(attrs) & self.get_extra_predicate(attrs),
            ordering=self.get_ordering(attrs),
        )


def build_query(serializer_class, params):
    serializer = serializer_class(data=params)
    if not serializer.is_valid():
        raise InvalidQuery(serializer.errors)
    return serializer.to_query()

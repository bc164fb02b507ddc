from decimal import ROUND_HALF_UP, Decimal

from django.db.models import BigIntegerField, Count, DecimalField, Q, Sum, Value
from django.db.models.functions import Coalesce


MONEY_FIELD = DecimalField(max_digits=16, decimal_places=2)
CENTS = Decimal("0.01")


def inventory_summary(queryset):
    """Count, stock, out-of-stock count and valuation in one aggregate query.

    The valuation is ``total_stock * (sum of prices of in-stock products)``, not a
    per-product ``inventory * price`` sum.
    """
    totals = queryset.aggregate(
        total_products=Count("id"),
        total_stock=Coalesce(Sum("inventory"), Value(0), output_field=BigIntegerField()),
        out_of_stock_count=Count("id", filter=Q(inventory=0)),
        in_stock_price_sum=Coalesce(
            Sum("price", filter=Q(inventory__gt=0, price__gte=0)),
            Value(Decimal("0.00")),
            output_field=MONEY_FIELD,
        ),
    )
    total_store_value = Decimal(totals["total_stock"]) * Decimal(totals["in_stock_price_sum"])
    return {
        "total_products": totals["total_products"],
        "total_stock": totals["total_stock"],
        "out_of_stock_count": totals["out_of_stock_count"],
        "total_store_value": total_store_value.quantize(CENTS, rounding=ROUND_HALF_UP),
    }

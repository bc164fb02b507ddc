from django.urls import path
from rest_framework.routers import DefaultRouter

from apps.catalog.views import ProductViewSet
from apps.catalog.views_export import ProductExportView
from apps.catalog.views_metrics import InventoryStatsView

router = DefaultRouter()
router.register("products", ProductViewSet, basename="product")

urlpatterns = [
    path("products/export/", ProductExportView.as_view(), name="product-export"),
    path("products/stats/", InventoryStatsView.as_view(), name="product-stats"),
]
urlpatterns += router.urls

from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.db import OperationalError
from django.test import override_settings
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from apps.audit.models import AuditEntry
from apps.catalog.models import Product

User = get_user_model()


class AuthMixin:
    def auth_as(self, username, password):
        token = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        ).data["access"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")


def make_product(age_minutes=0, **fields):
    product = Product.objects.create(**fields)
    if age_minutes:
        created_at = timezone.now() - timedelta(minutes=age_minutes)
        Product.objects.filter(pk=product.pk).update(created_at=created_at)
        product.refresh_from_db()
    return product


class ProductCrudTests(AuthMixin, APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(
            username="admin", password="admin123", role="ADMIN", first_name="Ana", last_name="Reyes"
        )
        self.staff = User.objects.create_user(username="staff", password="staff123", role="STAFF")

    def test_create_update_delete_respond_with_envelope_and_are_audited(self):
        self.auth_as("admin", "admin123")
        with self.captureOnCommitCallbacks(execute=True):
            created = self.client.post(
                "/api/v1/products/",
                {
                    "brand": " Casio ",
                    "sku": "CAS-001",
                    "category": "Watches",
                    "inventory": 5,
                    "price": "100.00",
                    "metafields": {"dialColor": "Black"},
                    "images": [{"url": "https://example.com/a.jpg"}, {"url": "uploads/b.jpg", "altText": "side"}],
                },
                format="json",
            )
        self.assertEqual(created.status_code, status.HTTP_201_CREATED)
        self.assertTrue(created.data["success"])
        product = created.data["data"]
        self.assertEqual(product["brand"], "Casio")
        self.assertEqual(product["price"], "100.00")
        self.assertEqual(product["metafields"]["dialColor"], "Black")
        self.assertEqual(product["metafields"]["caseSize"], "")
        self.assertEqual([image["url"] for image in product["images"]], ["https://example.com/a.jpg", "uploads/b.jpg"])
        self.assertIn("createdAt", product)

        with self.captureOnCommitCallbacks(execute=True):
            updated = self.client.patch(
                f"/api/v1/products/{product['id']}/",
                {"price": "120.00", "metafields": {"gender": "Unisex"}},
                format="json",
            )
        self.assertEqual(updated.status_code, status.HTTP_200_OK)
        self.assertEqual(updated.data["data"]["price"], "120.00")
        self.assertEqual(updated.data["data"]["metafields"]["dialColor"], "Black")
        self.assertEqual(updated.data["data"]["metafields"]["gender"], "Unisex")

        with self.captureOnCommitCallbacks(execute=True):
            deleted = self.client.delete(f"/api/v1/products/{product['id']}/")
        self.assertEqual(deleted.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Product.objects.filter(pk=product["id"]).exists())

        actions = list(AuditEntry.objects.filter(record_id=product["id"]).order_by("timestamp").values_list("action_type", flat=True))
        self.assertEqual(actions, ["CREATE", "UPDATE", "DELETE"])

    def test_retrieve_returns_single_product_or_404(self):
        self.auth_as("staff", "staff123")
        product = make_product(brand="Timex", sku="TMX-1")

        found = self.client.get(f"/api/v1/products/{product.id}/")
        self.assertEqual(found.status_code, status.HTTP_200_OK)
        self.assertEqual(found.data["data"]["sku"], "TMX-1")

        missing = self.client.get("/api/v1/products/4d7c3f51-4a8e-4a53-9b54-3c1c9d4c0000/")
        self.assertEqual(missing.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(missing.data["success"])

    def test_rejects_negative_inventory_and_unknown_metafields(self):
        self.auth_as("admin", "admin123")
        response = self.client.post(
            "/api/v1/products/",
            {"brand": "Casio", "inventory": -1, "metafields": {"strap": "leather"}},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("inventory", response.data["fields"])
        self.assertIn("metafields", response.data["fields"])

    def test_metafields_and_images_use_camel_case_keys(self):
        self.auth_as("admin", "admin123")
        response = self.client.post(
            "/api/v1/products/",
            {
                "brand": "Seiko",
                "metafields": {"dialColor": "Black", "caseMaterial": "Steel", "waterResistance": "200m"},
                "images": [{"url": "a.jpg", "altText": "front"}],
            },
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        data = response.data["data"]
        self.assertEqual(
            dict(data["metafields"]),
            {
                "caseMaterial": "Steel",
                "dialColor": "Black",
                "waterResistance": "200m",
                "warrantyPeriod": "",
                "movement": "",
                "gender": "",
                "caseSize": "",
            },
        )
        self.assertEqual([dict(image) for image in data["images"]], [{"url": "a.jpg", "altText": "front"}])

        product = Product.objects.get(pk=data["id"])
        self.assertEqual(product.metafields["dial_color"], "Black")
        self.assertEqual(product.metafields["case_material"], "Steel")
        self.assertEqual(product.images, [{"url": "a.jpg", "alt_text": "front"}])

        snake_case = self.client.post(
            "/api/v1/products/", {"brand": "Seiko", "metafields": {"dial_color": "Blue"}}, format="json"
        )
        self.assertEqual(snake_case.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("dial_color", snake_case.data["fields"]["metafields"])

    def test_duplicate_sku_is_a_conflict_but_empty_skus_are_allowed(self):
        self.auth_as("admin", "admin123")
        first = self.client.post("/api/v1/products/", {"brand": "Casio", "sku": "DUP-1"}, format="json")
        self.assertEqual(first.status_code, status.HTTP_201_CREATED)

        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            duplicate = self.client.post("/api/v1/products/", {"brand": "Seiko", "sku": "DUP-1"}, format="json")
        self.assertEqual(duplicate.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(duplicate.data["code"], "conflict")
        self.assertEqual(callbacks, [])

        for brand in ("Seiko", "Orient"):
            response = self.client.post("/api/v1/products/", {"brand": brand, "sku": ""}, format="json")
            self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Product.objects.filter(sku="").count(), 2)

        other = Product.objects.get(brand="Seiko")
        renamed = self.client.patch(f"/api/v1/products/{other.id}/", {"sku": "DUP-1"}, format="json")
        self.assertEqual(renamed.status_code, status.HTTP_409_CONFLICT)

    def test_staff_can_read_but_not_write(self):
        self.auth_as("staff", "staff123")
        self.assertEqual(self.client.get("/api/v1/products/").status_code, status.HTTP_200_OK)
        response = self.client.post("/api/v1/products/", {"brand": "Casio"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_products_require_authentication(self):
        response = self.client.get("/api/v1/products/")
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_brands_lists_distinct_non_empty_brands(self):
        self.auth_as("staff", "staff123")
        make_product(brand="Timex")
        make_product(brand="Casio")
        make_product(brand="Casio")
        make_product(brand="")

        response = self.client.get("/api/v1/products/brands/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["data"], ["Casio", "Timex"])


class ProductListFilterTests(AuthMixin, APITestCase):
    def setUp(self):
        User.objects.create_user(username="staff", password="staff123", role="STAFF")
        self.auth_as("staff", "staff123")
        self.casio_diver = make_product(
            age_minutes=5, brand="Casio", sku="C1", category="Diver", description="Resin case", inventory=5
        )
        self.casio_dress = make_product(
            age_minutes=4, brand="Casio", sku="C2", category="Dress", description="Steel case", inventory=0
        )
        self.timex = make_product(
            age_minutes=3, brand="Timex", sku="T1", category="Field", description="Nylon strap", inventory=2
        )
        self.casiopea = make_product(
            age_minutes=2, brand="Casiopea", sku="CP1", category="Diver", description="Mineral glass"
        )

    def skus(self, response):
        return [item["sku"] for item in response.data["data"]]

    def test_default_sort_is_newest_first(self):
        response = self.client.get("/api/v1/products/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(self.skus(response), ["CP1", "T1", "C2", "C1"])
        self.assertEqual(response.data["pagination"], {"page": 1, "limit": 50, "total": 4, "pages": 1})

    def test_brand_and_category_are_exact_case_insensitive_and_combined(self):
        by_brand = self.client.get("/api/v1/products/?brand=casio")
        self.assertEqual(sorted(self.skus(by_brand)), ["C1", "C2"])

        partial = self.client.get("/api/v1/products/?brand=cas")
        self.assertEqual(self.skus(partial), [])

        combined = self.client.get("/api/v1/products/?brand=CASIO&category=diver")
        self.assertEqual(self.skus(combined), ["C1"])

    def test_search_overrides_brand_and_category(self):
        response = self.client.get("/api/v1/products/?brand=Casio&category=Dress&search=timex")
        self.assertEqual(self.skus(response), ["T1"])
        self.assertEqual(response.data["pagination"]["total"], 1)

    def test_search_matches_substrings_across_text_fields(self):
        by_description = self.client.get("/api/v1/products/?search=CASE")
        self.assertEqual(sorted(self.skus(by_description)), ["C1", "C2"])

        by_brand_prefix = self.client.get("/api/v1/products/?search=casio")
        self.assertEqual(sorted(self.skus(by_brand_prefix)), ["C1", "C2", "CP1"])

        by_sku = self.client.get("/api/v1/products/?search=cp")
        self.assertEqual(self.skus(by_sku), ["CP1"])

    def test_blank_filters_are_ignored(self):
        response = self.client.get("/api/v1/products/?brand=%20%20&category=&search=%20")
        self.assertEqual(response.data["pagination"]["total"], 4)

    def test_custom_sort(self):
        response = self.client.get("/api/v1/products/?sortBy=sku&sortOrder=asc")
        self.assertEqual(self.skus(response), ["C1", "C2", "CP1", "T1"])

        by_inventory = self.client.get("/api/v1/products/?sortBy=inventory&sortOrder=DESC")
        self.assertEqual(self.skus(by_inventory)[:2], ["C1", "T1"])

    def test_invalid_sort_is_rejected(self):
        unknown_field = self.client.get("/api/v1/products/?sortBy=password")
        self.assertEqual(unknown_field.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(unknown_field.data["code"], "invalid_query")
        self.assertIn("sortBy", unknown_field.data["fields"])

        bad_order = self.client.get("/api/v1/products/?sortOrder=sideways")
        self.assertEqual(bad_order.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("sortOrder", bad_order.data["fields"])

    def test_pagination_metadata_and_page_past_the_end(self):
        second = self.client.get("/api/v1/products/?limit=3&page=2")
        self.assertEqual(self.skus(second), ["C1"])
        self.assertEqual(second.data["pagination"], {"page": 2, "limit": 3, "total": 4, "pages": 2})

        beyond = self.client.get("/api/v1/products/?limit=3&page=9")
        self.assertEqual(beyond.status_code, status.HTTP_200_OK)
        self.assertEqual(beyond.data["data"], [])
        self.assertEqual(beyond.data["pagination"], {"page": 9, "limit": 3, "total": 4, "pages": 2})

        filtered_beyond = self.client.get("/api/v1/products/?brand=casio&limit=1&page=5")
        self.assertEqual(filtered_beyond.data["data"], [])
        self.assertEqual(filtered_beyond.data["pagination"]["total"], 2)
        self.assertEqual(filtered_beyond.data["pagination"]["pages"], 2)

    def test_pages_are_stable_when_sort_keys_tie(self):
        Product.objects.update(created_at=timezone.now())

        def walk():
            return [self.skus(self.client.get(f"/api/v1/products/?limit=1&page={page}")) for page in range(1, 5)]

        first_walk = walk()
        self.assertEqual(first_walk, walk())
        self.assertEqual(sorted(sku for page in first_walk for sku in page), ["C1", "C2", "CP1", "T1"])

    def test_invalid_pagination_is_rejected(self):
        for query in ("page=0", "page=abc", "limit=0", "limit=-5"):
            response = self.client.get(f"/api/v1/products/?{query}")
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, query)
            self.assertEqual(response.data["code"], "invalid_query")

    @override_settings(PAGINATION_MAX_LIMIT=2)
    def test_limit_is_clamped_to_maximum(self):
        response = self.client.get("/api/v1/products/?limit=500")
        self.assertEqual(len(response.data["data"]), 2)
        self.assertEqual(response.data["pagination"]["limit"], 2)
        self.assertEqual(response.data["pagination"]["pages"], 2)

    def test_store_outage_is_reported_as_retryable(self):
        with mock.patch(
            "apps.common.pagination.EnvelopePagination.paginate_queryset",
            side_effect=OperationalError("connection refused"),
        ):
            response = self.client.get("/api/v1/products/")
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertEqual(response.data["code"], "store_unavailable")


class ProductExportTests(AuthMixin, APITestCase):
    def setUp(self):
        User.objects.create_user(username="staff", password="staff123", role="STAFF")
        self.auth_as("staff", "staff123")
        make_product(
            age_minutes=3,
            brand="Casio",
            sku="C1",
            category="Diver",
            inventory=5,
            price=Decimal("100.00"),
            description='Resin, "G" series\nshock resistant',
        )
        make_product(age_minutes=2, brand="Timex", sku="T1", category="Field", inventory=2, price=Decimal("50.00"))
        make_product(age_minutes=1, brand="Casio", sku="C2", category="Dress", inventory=0, price=Decimal("200.00"))

    def export(self, query=""):
        response = self.client.get(f"/api/v1/products/export/{query}")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.streaming)
        return response, b"".join(response.streaming_content).decode("utf-8")

    def test_export_streams_csv_with_headers_and_escaping(self):
        response, body = self.export()
        self.assertEqual(response["Content-Type"], "text/csv; charset=utf-8")
        self.assertRegex(response["Content-Disposition"], r'^attachment; filename="inventory-export-\d+\.csv"$')
        self.assertEqual(
            body,
            "Brand,SKU,Category,Inventory,Price,Total Value,Description\n"
            "Casio,C2,Dress,0,200.00,0.00,\n"
            "Timex,T1,Field,2,50.00,100.00,\n"
            'Casio,C1,Diver,5,100.00,500.00,"Resin, ""G"" series\nshock resistant"\n',
        )

    def test_export_applies_filters_with_search_precedence(self):
        _, by_brand = self.export("?brand=casio")
        self.assertIn("Casio,C1,", by_brand)
        self.assertIn("Casio,C2,", by_brand)
        self.assertNotIn("Timex", by_brand)

        _, searched = self.export("?brand=casio&search=time")
        self.assertIn("Timex,T1,", searched)
        self.assertNotIn("Casio,", searched)

    def test_export_of_empty_selection_is_header_only(self):
        _, body = self.export("?brand=Rolex")
        self.assertEqual(body, "Brand,SKU,Category,Inventory,Price,Total Value,Description\n")

    @override_settings(EXPORT_FLUSH_ROWS=1, EXPORT_CHUNK_SIZE=1)
    def test_export_is_reproducible_and_flushes_in_chunks(self):
        response = self.client.get("/api/v1/products/export/")
        chunks = list(response.streaming_content)
        self.assertEqual(len(chunks), 3)
        _, again = self.export()
        self.assertEqual(b"".join(chunks).decode("utf-8"), again)

    def test_export_accepts_csv_accept_header(self):
        response = self.client.get("/api/v1/products/export/", HTTP_ACCEPT="text/csv")
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_invalid_query_fails_before_streaming(self):
        response = self.client.get("/api/v1/products/export/?sortBy=nope")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.streaming)

    def test_store_failure_before_output_is_a_normal_error(self):
        with mock.patch(
            "apps.catalog.views_export.filter_products",
            side_effect=OperationalError("connection refused"),
        ):
            response = self.client.get("/api/v1/products/export/")
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertFalse(response.streaming)

    def test_disconnect_before_first_chunk_releases_the_cursor(self):
        cursor = TrackedCursor(list(Product.objects.all()))
        queryset = mock.Mock()
        queryset.iterator.return_value = cursor
        with mock.patch("apps.catalog.views_export.filter_products", return_value=queryset):
            response = self.client.get("/api/v1/products/export/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(cursor.closed)

        response.close()
        self.assertTrue(cursor.closed)


class TrackedCursor:
    def __init__(self, rows):
        self.rows = iter(rows)
        self.closed = False

    def __iter__(self):
        return self

    def __next__(self):
        return next(self.rows)

    def close(self):
        self.closed = True


class InventoryStatsTests(AuthMixin, APITestCase):
    def setUp(self):
        User.objects.create_user(username="staff", password="staff123", role="STAFF")
        self.auth_as("staff", "staff123")

    def test_stats_use_stock_times_in_stock_price_sum(self):
        make_product(brand="Casio", sku="C1", inventory=5, price=Decimal("100"))
        make_product(brand="Casio", sku="C2", inventory=0, price=Decimal("200"))
        make_product(brand="Timex", sku="T1", inventory=2, price=Decimal("50"))

        response = self.client.get("/api/v1/products/stats/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["success"])
        self.assertEqual(
            response.data["data"],
            {
                "totalProducts": 3,
                "totalStock": 7,
                "totalStoreValue": Decimal("1050.00"),
                "outOfStockCount": 1,
            },
        )

    def test_stats_on_empty_store(self):
        response = self.client.get("/api/v1/products/stats/")
        self.assertEqual(
            response.data["data"],
            {"totalProducts": 0, "totalStock": 0, "totalStoreValue": Decimal("0.00"), "outOfStockCount": 0},
        )

    def test_stats_round_to_cents(self):
        make_product(sku="A", inventory=3, price=Decimal("0.33"))
        make_product(sku="B", inventory=0, price=Decimal("9.99"))

        response = self.client.get("/api/v1/products/stats/")
        self.assertEqual(response.data["data"]["totalStoreValue"], Decimal("0.99"))

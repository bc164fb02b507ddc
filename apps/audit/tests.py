from datetime import datetime, timezone as dt_timezone
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import OperationalError
from rest_framework import status
from rest_framework.test import APITestCase

from apps.audit.models import AuditEntry
from apps.audit.services import build_audit_payload, compute_changes, product_snapshot
from apps.audit.tasks import persist_audit_entry
from apps.catalog.models import Product

User = get_user_model()


def at(day, hour=12):
    return datetime(2026, 3, day, hour, 0, tzinfo=dt_timezone.utc)


class AuthMixin:
    def auth_as(self, username, password):
        token = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        ).data["access"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")


class AuditTrailTests(AuthMixin, APITestCase):
    def setUp(self):
        self.owner = User.objects.create_user(
            username="owner",
            password="owner123",
            role="OWNER",
            first_name="Olga",
            last_name="Mendez",
            email="olga@example.com",
        )
        self.auth_as("owner", "owner123")

    def mutate(self, method, url, payload=None):
        with self.captureOnCommitCallbacks(execute=True):
            return getattr(self.client, method)(url, payload, format="json")

    def test_product_lifecycle_leaves_one_entry_per_mutation(self):
        created = self.mutate("post", "/api/v1/products/", {"brand": "Casio", "sku": "C1", "inventory": 5, "price": "100.00"})
        self.assertEqual(created.status_code, status.HTTP_201_CREATED)
        product_id = created.data["data"]["id"]
        url = f"/api/v1/products/{product_id}/"

        self.assertEqual(self.mutate("patch", url, {"inventory": 4}).status_code, status.HTTP_200_OK)
        self.assertEqual(self.mutate("patch", url, {"price": "120.00", "sku": "C1-B"}).status_code, status.HTTP_200_OK)
        self.assertEqual(self.mutate("delete", url).status_code, status.HTTP_204_NO_CONTENT)

        entries = list(AuditEntry.objects.order_by("timestamp"))
        self.assertEqual([entry.action_type for entry in entries], ["CREATE", "UPDATE", "UPDATE", "DELETE"])
        self.assertTrue(all(str(entry.record_id) == product_id for entry in entries))
        self.assertTrue(all(entry.actor_id == str(self.owner.pk) for entry in entries))
        self.assertTrue(all(entry.actor_name == "Olga Mendez" for entry in entries))

        self.assertEqual(entries[0].changes, {})
        self.assertEqual(entries[1].changes, {"inventory": {"from": 5, "to": 4}})
        self.assertEqual(
            entries[2].changes,
            {"sku": {"from": "C1", "to": "C1-B"}, "price": {"from": "100.00", "to": "120.00"}},
        )
        self.assertEqual(entries[3].sku, "C1-B")
        self.assertEqual(entries[3].brand, "Casio")

        self.owner.first_name = "Olivia"
        self.owner.email = "olivia@example.com"
        self.owner.save()
        for entry in AuditEntry.objects.all():
            self.assertEqual(entry.actor_name, "Olga Mendez")
            self.assertEqual(entry.actor_email, "olga@example.com")

    def test_untracked_field_change_records_empty_changes(self):
        product = Product.objects.create(brand="Casio", sku="C1", description="old")
        response = self.mutate("patch", f"/api/v1/products/{product.id}/", {"description": "new"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        entry = AuditEntry.objects.get()
        self.assertEqual(entry.action_type, "UPDATE")
        self.assertEqual(entry.changes, {})

    def test_entry_is_written_only_after_commit(self):
        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            response = self.client.post("/api/v1/products/", {"brand": "Casio"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(len(callbacks), 1)
        self.assertFalse(AuditEntry.objects.exists())

        callbacks[0]()
        self.assertEqual(AuditEntry.objects.get().action_type, "CREATE")

    def test_audit_store_failure_does_not_affect_the_mutation(self):
        with mock.patch.object(AuditEntry.objects, "create", side_effect=OperationalError("disk full")):
            with self.assertLogs("apps.audit.tasks", level="ERROR") as logs:
                response = self.mutate("post", "/api/v1/products/", {"brand": "Casio", "sku": "C9"})

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(Product.objects.filter(sku="C9").exists())
        self.assertFalse(AuditEntry.objects.exists())
        self.assertIn("Dropped CREATE audit entry", logs.output[0])

    def test_audit_store_failure_does_not_affect_update_or_delete(self):
        product = Product.objects.create(brand="Casio", sku="C9", inventory=3)
        url = f"/api/v1/products/{product.id}/"

        with mock.patch.object(AuditEntry.objects, "create", side_effect=OperationalError("disk full")):
            with self.assertLogs("apps.audit.tasks", level="ERROR") as update_logs:
                updated = self.mutate("patch", url, {"inventory": 1})
            with self.assertLogs("apps.audit.tasks", level="ERROR") as delete_logs:
                deleted = self.mutate("delete", url)

        self.assertEqual(updated.status_code, status.HTTP_200_OK)
        self.assertEqual(updated.data["data"]["inventory"], 1)
        self.assertEqual(deleted.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Product.objects.filter(pk=product.pk).exists())
        self.assertFalse(AuditEntry.objects.exists())
        self.assertIn("Dropped UPDATE audit entry", update_logs.output[0])
        self.assertIn("Dropped DELETE audit entry", delete_logs.output[0])

    def test_enqueue_failure_does_not_affect_the_mutation(self):
        with mock.patch("apps.audit.services.persist_audit_entry") as task:
            task.delay.side_effect = RuntimeError("broker unreachable")
            with self.assertLogs("apps.audit.services", level="ERROR") as logs:
                response = self.mutate("post", "/api/v1/products/", {"brand": "Casio", "sku": "C9"})

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(Product.objects.filter(sku="C9").exists())
        self.assertIn("Could not enqueue CREATE audit entry", logs.output[0])

    def test_failed_mutation_is_not_audited(self):
        Product.objects.create(brand="Casio", sku="TAKEN")
        response = self.mutate("post", "/api/v1/products/", {"brand": "Timex", "sku": "TAKEN"})
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertFalse(AuditEntry.objects.exists())


class AuditHelperTests(APITestCase):
    def test_compute_changes_only_reports_tracked_fields(self):
        product = Product(brand="Casio", sku="C1", inventory=1, price="10.00", description="a")
        before = product_snapshot(product)
        product.description = "b"
        product.inventory = 2
        self.assertEqual(compute_changes(before, product_snapshot(product)), {"inventory": {"from": 1, "to": 2}})

    def test_payload_captures_actor_at_write_time(self):
        actor = User.objects.create_user(username="kim", password="x", email="kim@example.com")
        product = Product.objects.create(brand="Seiko", sku="S1")
        payload = build_audit_payload("DELETE", product, actor, changes={"brand": {"from": "a", "to": "b"}})
        self.assertEqual(payload["actor_name"], "kim")
        self.assertEqual(payload["actor_email"], "kim@example.com")
        self.assertEqual(payload["record_id"], str(product.pk))
        self.assertEqual(payload["changes"], {})

    def test_task_persists_entry(self):
        persist_audit_entry.run(
            {
                "action_type": "CREATE",
                "record_id": None,
                "actor_id": "7",
                "actor_name": "Kim",
                "brand": "Seiko",
                "sku": "S1",
            }
        )
        entry = AuditEntry.objects.get()
        self.assertEqual(entry.actor_email, "")
        self.assertEqual(entry.changes, {})

    def test_entries_cannot_be_modified(self):
        entry = AuditEntry.objects.create(action_type="CREATE", actor_id="1", actor_name="Kim")
        entry.brand = "Other"
        with self.assertRaises(ValidationError):
            entry.save()


class AuditHistoryApiTests(AuthMixin, APITestCase):
    def setUp(self):
        User.objects.create_user(username="owner", password="owner123", role="OWNER")
        User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.auth_as("owner", "owner123")

        self.first = AuditEntry.objects.create(
            timestamp=at(1), action_type="CREATE", actor_id="10", actor_name="Ana", brand="Casio", sku="C1"
        )
        self.second = AuditEntry.objects.create(
            timestamp=at(2), action_type="UPDATE", actor_id="10", actor_name="Ana", brand="Casio", sku="C1",
            changes={"inventory": {"from": 5, "to": 4}},
        )
        self.third = AuditEntry.objects.create(
            timestamp=at(3), action_type="CREATE", actor_id="20", actor_name="Ben", actor_email="ben@example.com",
            brand="Timex", sku="T1",
        )
        self.fourth = AuditEntry.objects.create(
            timestamp=at(4), action_type="DELETE", actor_id="20", actor_name="Ben", actor_email="ben@example.com",
            brand="Casio", sku="C1",
        )

    def ids(self, response):
        return [item["id"] for item in response.data["data"]]

    def test_history_is_newest_first_with_envelope(self):
        response = self.client.get("/api/v1/audit/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(
            self.ids(response),
            [str(self.fourth.id), str(self.third.id), str(self.second.id), str(self.first.id)],
        )
        self.assertEqual(response.data["pagination"], {"page": 1, "limit": 50, "total": 4, "pages": 1})
        item = response.data["data"][2]
        self.assertEqual(item["actionType"], "UPDATE")
        self.assertEqual(item["actorName"], "Ana")
        self.assertEqual(item["changes"], {"inventory": {"from": 5, "to": 4}})

    def test_filters_combine(self):
        by_action = self.client.get("/api/v1/audit/?actionType=create")
        self.assertEqual(self.ids(by_action), [str(self.third.id), str(self.first.id)])

        by_actor = self.client.get("/api/v1/audit/?actorId=20&brand=casio")
        self.assertEqual(self.ids(by_actor), [str(self.fourth.id)])

        by_sku = self.client.get("/api/v1/audit/?sku=c1&sortOrder=asc")
        self.assertEqual(self.ids(by_sku), [str(self.first.id), str(self.second.id), str(self.fourth.id)])

    def test_search_overrides_brand_and_sku_but_not_other_filters(self):
        response = self.client.get("/api/v1/audit/?brand=Casio&sku=C1&search=tim")
        self.assertEqual(self.ids(response), [str(self.third.id)])

        narrowed = self.client.get("/api/v1/audit/?search=casio&actionType=UPDATE")
        self.assertEqual(self.ids(narrowed), [str(self.second.id)])

    def test_date_range_is_inclusive(self):
        response = self.client.get("/api/v1/audit/?startDate=2026-03-02&endDate=2026-03-03")
        self.assertEqual(self.ids(response), [str(self.third.id), str(self.second.id)])

        reversed_range = self.client.get("/api/v1/audit/?startDate=2026-03-05&endDate=2026-03-01")
        self.assertEqual(reversed_range.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("startDate", reversed_range.data["fields"])

    def test_invalid_parameters_are_rejected(self):
        for query in ("actionType=RENAME", "sortBy=changes", "startDate=yesterday", "page=0"):
            response = self.client.get(f"/api/v1/audit/?{query}")
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, query)
            self.assertEqual(response.data["code"], "invalid_query")

    def test_pagination_past_the_end(self):
        response = self.client.get("/api/v1/audit/?limit=3&page=3")
        self.assertEqual(response.data["data"], [])
        self.assertEqual(response.data["pagination"], {"page": 3, "limit": 3, "total": 4, "pages": 2})

    def test_actors_lists_each_actor_with_latest_activity(self):
        response = self.client.get("/api/v1/audit/actors/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(
            response.data["data"],
            [
                {"actorId": "20", "name": "Ben", "email": "ben@example.com", "lastActivity": at(4)},
                {"actorId": "10", "name": "Ana", "email": "", "lastActivity": at(2)},
            ],
        )

    def test_admin_cannot_read_history(self):
        self.auth_as("admin", "admin123")
        self.assertEqual(self.client.get("/api/v1/audit/").status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(self.client.get("/api/v1/audit/actors/").status_code, status.HTTP_403_FORBIDDEN)

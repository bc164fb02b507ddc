from unittest import mock

from django.db import OperationalError
from rest_framework import status
from rest_framework.test import APITestCase


class HealthTests(APITestCase):
    def test_health_needs_no_credentials(self):
        response = self.client.get("/health/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {"success": True, "database": "ok"})

    def test_health_reports_unreachable_database(self):
        with mock.patch("apps.health.views.connection") as connection:
            connection.cursor.side_effect = OperationalError("refused")
            response = self.client.get("/health/")
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertEqual(response.data["database"], "unavailable")

from unittest import mock

from django.db import DatabaseError
from django.test import TestCase
from django.urls import reverse

from rest_framework.test import APIClient
from rest_framework import status

HEALTH_URL = reverse("health")


class HealthCheckTests(TestCase):
    def setUp(self):
        self.client = APIClient()

    def test_health_reports_database(self):
        res = self.client.get(HEALTH_URL)

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["status"], "OK")
        self.assertTrue(res.data["database"])

    def test_health_degraded_when_database_unreachable(self):
        with mock.patch("blog.views.connections") as connections:
            connections.__getitem__.return_value.cursor.side_effect = DatabaseError("down")
            with self.assertLogs("blog.views", level="ERROR"):
                res = self.client.get(HEALTH_URL)

        self.assertEqual(res.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertFalse(res.data["database"])

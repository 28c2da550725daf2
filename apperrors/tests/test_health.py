import unittest
from fastapi.testclient import TestClient

from apperrors.core.config import Settings
from apperrors.main import app, create_app


class TestHealth(unittest.TestCase):
    def test_health(self):
        with TestClient(app) as client:
            r = client.get("/health")
            self.assertEqual(r.status_code, 200)
            data = r.json()
            self.assertEqual(data.get("status"), "ok")
            self.assertIn("service", data)

    def test_health_reports_service_name_and_request_id(self):
        custom = create_app(Settings(SERVICE_NAME="billing"))
        with TestClient(custom) as client:
            r = client.get("/health", headers={"X-Request-Id": "abc-123"})
            self.assertEqual(r.status_code, 200)
            self.assertEqual(r.json(), {"status": "ok", "service": "billing"})
            self.assertEqual(r.headers.get("X-Request-Id"), "abc-123")

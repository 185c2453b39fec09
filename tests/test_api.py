import importlib.util
import os
import sys
import unittest
from pathlib import Path
from unittest.mock import patch

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

_MISSING_DEPS = any(
    importlib.util.find_spec(name) is None for name in ("pydantic_settings", "fastapi", "httpx")
)


class _Reply:
    def __init__(self, content):
        self.content = content


class _DummyLLM:
    def invoke(self, _messages):
        return _Reply('{"suggestedPrice": 480, "reasoning": "district average", "effectivePricingUnit": "PerAcre"}')


VENDOR = {
    "vendor_id": "VendorA",
    "vendor_name": "Haveli Drones",
    "district": "Pune",
    "taluka": "Haveli",
    "equipments": [
        {
            "equipment_id": "drone-1",
            "category": "Drone Service",
            "capacity_per_day": 25,
            "preferred_time_slots": ["AnyTime"],
            "price_per_unit": 400,
            "pricing_unit": "per acre",
        }
    ],
}
VENDOR_HEADERS = {"X-Actor-Id": "VendorA", "X-Actor-Role": "vendor"}
FARMER_HEADERS = {"X-Actor-Id": "farmer-7", "X-Actor-Role": "farmer"}


@unittest.skipUnless(not _MISSING_DEPS, "api dependencies are not installed")
class ApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self._env_backup = {"DOCUMENT_STORE": os.environ.get("DOCUMENT_STORE")}
        os.environ["DOCUMENT_STORE"] = "memory"
        from fastapi.testclient import TestClient

        from agrirent.api.server import app, get_services
        from agrirent.infra.config import get_config

        get_config.cache_clear()
        get_services.cache_clear()
        self.client = TestClient(app)
        response = self.client.post("/api/v1/vendors", json=VENDOR)
        self.assertEqual(response.status_code, 201)

    def tearDown(self) -> None:
        for key, value in self._env_backup.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        from agrirent.api.server import get_services
        from agrirent.infra.config import get_config

        get_config.cache_clear()
        get_services.cache_clear()

    def _book(self, **overrides):
        body = {
            "vendor_id": "VendorA",
            "equipment_id": "drone-1",
            "farmer_ref": "farmer-7",
            "booking_date": "2025-06-02",
            "start_time": "10:00:00",
            "duration": "Full Day (8 acres)",
            "total_amount": 3200,
        }
        body.update(overrides)
        return self.client.post("/api/v1/bookings", json=body)

    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")

    def test_match(self) -> None:
        self.client.post(
            "/api/v1/vendors",
            json={
                "vendor_id": "VendorB",
                "vendor_name": "Satara Tractors",
                "district": "Satara",
                "equipments": [{"equipment_id": "t-1", "category": "Tractor"}],
            },
        )
        response = self.client.post(
            "/api/v1/match",
            json={
                "soil_type": "Clay",
                "crop_type": "Cotton",
                "district": "Pune",
                "land_size_acres": 8,
                "service_needed": "Drone Service",
            },
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual([item["vendor_id"] for item in body], ["VendorA"])
        self.assertGreater(body[0]["match_score"], 0)

    def test_invalid_request_maps_to_422(self) -> None:
        response = self.client.post(
            "/api/v1/match",
            json={"soil_type": "Clay", "crop_type": "Cotton", "district": "Pune", "land_size_acres": -1},
        )
        self.assertEqual(response.status_code, 422)
        detail = response.json()["detail"]
        self.assertEqual(detail["code"], "validation_error")
        self.assertIn("land_size_acres", detail["fields"])

    def test_capacity_rejection_reports_max(self) -> None:
        response = self.client.post(
            "/api/v1/vendors/VendorA/equipment",
            json={
                "equipment_id": "drone-2",
                "category": "Drone Service",
                "capacity_per_day": 50,
                "preferred_time_slots": ["Morning"],
            },
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["detail"]["code"], "capacity_exceeded")
        self.assertEqual(response.json()["detail"]["max_allowed"], 15)

    def test_unknown_vendor_maps_to_404(self) -> None:
        response = self.client.get("/api/v1/vendors/ghost")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["detail"]["code"], "not_found")

    def test_availability_routes(self) -> None:
        response = self.client.post(
            "/api/v1/vendors/VendorA/availability/toggle", json={"day": "2025-06-02"}
        )
        self.assertTrue(response.json()["blocked"])
        response = self.client.get(
            "/api/v1/vendors/VendorA/availability/open",
            params={"day": "2025-06-02", "at": "10:00:00"},
        )
        self.assertFalse(response.json()["open"])

        response = self.client.put(
            "/api/v1/vendors/VendorA/availability/operating-days/5",
            json={"enabled": True, "start_time": "12:00:00", "end_time": "08:00:00"},
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["detail"]["code"], "invalid_window")

        response = self.client.put(
            "/api/v1/vendors/VendorA/availability/operating-days/5",
            json={"enabled": True, "start_time": "07:00:00", "end_time": "11:00:00"},
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["operating_days"][5]["enabled"])

    def test_booking_flow(self) -> None:
        response = self._book()
        self.assertEqual(response.status_code, 201)
        booking_id = response.json()["booking_id"]

        response = self.client.post(
            f"/api/v1/bookings/{booking_id}/confirm", headers=FARMER_HEADERS
        )
        self.assertEqual(response.status_code, 409)

        response = self.client.post(
            f"/api/v1/bookings/{booking_id}/confirm", headers=VENDOR_HEADERS
        )
        self.assertEqual(response.json()["booking_status"], "confirmed")
        response = self.client.post(
            f"/api/v1/bookings/{booking_id}/complete", headers=VENDOR_HEADERS
        )
        self.assertEqual(response.json()["booking_status"], "completed")

        anomalies = self.client.get("/api/v1/bookings/anomalies").json()
        self.assertEqual([item["booking_id"] for item in anomalies], [booking_id])

        response = self.client.post(
            f"/api/v1/bookings/{booking_id}/payment", json={"payment_status": "paid"}
        )
        self.assertEqual(response.json()["payment_status"], "paid")
        self.assertEqual(self.client.get("/api/v1/bookings/anomalies").json(), [])

        response = self.client.post(
            f"/api/v1/bookings/{booking_id}/cancel", headers=FARMER_HEADERS
        )
        self.assertEqual(response.status_code, 409)

        events = self.client.get(f"/api/v1/bookings/{booking_id}/events").json()
        self.assertEqual(
            [event["event_type"] for event in events],
            ["booking.requested", "booking.confirmed", "booking.completed", "payment.paid"],
        )

    def test_booking_actions_need_actor(self) -> None:
        booking_id = self._book().json()["booking_id"]
        response = self.client.post(f"/api/v1/bookings/{booking_id}/confirm")
        self.assertEqual(response.status_code, 422)
        response = self.client.post(
            f"/api/v1/bookings/{booking_id}/cancel",
            headers={"X-Actor-Id": "farmer-7", "X-Actor-Role": "admin"},
        )
        self.assertEqual(response.status_code, 422)

    def test_booking_on_closed_day_rejected(self) -> None:
        response = self._book(booking_date="2025-06-08")
        self.assertEqual(response.status_code, 422)

    def test_pricing_suggestion_and_confirmation(self) -> None:
        with patch(
            "agrirent.application.services.pricing_service.get_pricing_model",
            return_value=_DummyLLM(),
        ):
            response = self.client.post(
                "/api/v1/pricing/suggestions",
                json={
                    "equipment_type": "Drone Service",
                    "acreage": 8,
                    "pricing_unit": "PerAcre",
                    "vendor_id": "VendorA",
                    "equipment_id": "drone-1",
                },
            )
        advice = response.json()
        self.assertTrue(advice["available"])
        self.assertEqual(advice["suggestion"]["suggested_price"], 480)

        response = self.client.post(
            f"/api/v1/pricing/proposals/{advice['proposal_id']}/confirm",
            headers=FARMER_HEADERS,
        )
        self.assertEqual(response.status_code, 409)

        response = self.client.post(
            f"/api/v1/pricing/proposals/{advice['proposal_id']}/confirm",
            headers=VENDOR_HEADERS,
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["price_per_unit"], 480)

    def test_pricing_without_provider_returns_no_suggestion(self) -> None:
        with patch(
            "agrirent.application.services.pricing_service.get_pricing_model",
            side_effect=ValueError("OPENAI_API_KEY is not configured"),
        ):
            response = self.client.post(
                "/api/v1/pricing/suggestions",
                json={"equipment_type": "Tractor", "pricing_unit": "PerHour"},
            )
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()["available"])


if __name__ == "__main__":
    unittest.main()

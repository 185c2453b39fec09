import importlib.util
import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

_MISSING_PYDANTIC_SETTINGS = importlib.util.find_spec("pydantic_settings") is None

if not _MISSING_PYDANTIC_SETTINGS:
    from agrirent.domain.geo import distance_km, haversine, is_serviceable, proximity_fit
    from agrirent.schemas import FarmerRequest, VendorProfile


def _request(**overrides):
    data = {
        "soil_type": "Black Cotton Soil",
        "crop_type": "Sugarcane",
        "district": "Pune",
        "taluka": "Haveli",
        "land_size_acres": 8,
        "service_needed": "Drone Service",
    }
    data.update(overrides)
    return FarmerRequest(**data)


def _vendor(**overrides):
    data = {
        "vendor_id": "v1",
        "vendor_name": "Haveli Agro",
        "district": "Pune",
        "taluka": "Haveli",
    }
    data.update(overrides)
    return VendorProfile(**data)


@unittest.skipUnless(
    not _MISSING_PYDANTIC_SETTINGS, "pydantic_settings is not installed"
)
class GeoFilterTests(unittest.TestCase):
    def test_same_district_and_taluka_is_serviceable(self) -> None:
        self.assertTrue(is_serviceable(_vendor(), _request()))

    def test_other_district_is_not_serviceable(self) -> None:
        self.assertFalse(is_serviceable(_vendor(), _request(district="Satara")))

    def test_district_comparison_ignores_case_and_spacing(self) -> None:
        self.assertTrue(is_serviceable(_vendor(district=" pune "), _request()))

    def test_radius_applies_only_with_coordinates(self) -> None:
        vendor = _vendor(serviceable_radius_km=10, latitude=18.52, longitude=73.85)
        self.assertTrue(is_serviceable(vendor, _request()))
        far = _request(latitude=18.95, longitude=74.40)
        self.assertGreater(distance_km(vendor, far), 10)
        self.assertFalse(is_serviceable(vendor, far))
        near = _request(latitude=18.55, longitude=73.88)
        self.assertTrue(is_serviceable(vendor, near))

    def test_haversine_known_distance(self) -> None:
        # Pune to Mumbai is roughly 120 km as the crow flies
        distance = haversine(18.5204, 73.8567, 19.0760, 72.8777)
        self.assertAlmostEqual(distance, 120, delta=5)

    def test_proximity_fit_levels(self) -> None:
        self.assertEqual(proximity_fit(_vendor(), _request()), 1.0)
        self.assertEqual(proximity_fit(_vendor(taluka="Mulshi"), _request()), 0.7)
        self.assertEqual(proximity_fit(_vendor(taluka=None), _request()), 0.7)
        self.assertEqual(proximity_fit(_vendor(), _request(district="Satara")), 0.0)


if __name__ == "__main__":
    unittest.main()

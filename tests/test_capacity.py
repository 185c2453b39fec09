import importlib.util
import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

_MISSING_PYDANTIC_SETTINGS = importlib.util.find_spec("pydantic_settings") is None

if not _MISSING_PYDANTIC_SETTINGS:
    from agrirent.domain.capacity import CapacityPolicy, CapacityValidator
    from agrirent.domain.enums import TimeSlot
    from agrirent.domain.errors import CapacityExceeded, TimeSelectionRequired


@unittest.skipUnless(
    not _MISSING_PYDANTIC_SETTINGS, "pydantic_settings is not installed"
)
class CapacityValidatorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.validator = CapacityValidator(CapacityPolicy())

    def test_morning_and_evening_add_up(self) -> None:
        capacity = self.validator.max_plausible_capacity(
            "Drone Service", [TimeSlot.MORNING, TimeSlot.EVENING]
        )
        self.assertEqual(capacity, 30)

    def test_anytime_alone_covers_six_hours(self) -> None:
        capacity = self.validator.max_plausible_capacity("Drone Service", [TimeSlot.ANY_TIME])
        self.assertEqual(capacity, 30)

    def test_anytime_does_not_stack_with_morning(self) -> None:
        capacity = self.validator.max_plausible_capacity(
            "Drone Service", [TimeSlot.MORNING, TimeSlot.ANY_TIME]
        )
        self.assertEqual(capacity, 15)

    def test_both_label_expands_to_morning_and_evening(self) -> None:
        self.assertEqual(self.validator.working_hours(["Both"]), 6)
        self.assertEqual(self.validator.working_hours("any time"), 6)

    def test_unchecked_category_has_no_ceiling(self) -> None:
        self.assertIsNone(
            self.validator.max_plausible_capacity("Tractor", [TimeSlot.MORNING])
        )
        check = self.validator.validate(500, "Tractor", [])
        self.assertTrue(check.ok)

    def test_zero_claim_passes_without_slots(self) -> None:
        check = self.validator.validate(0, "Drone Service", [])
        self.assertTrue(check.ok)
        check = self.validator.validate(None, "Drone Service", None)
        self.assertTrue(check.ok)

    def test_claim_without_slots_needs_time_selection(self) -> None:
        check = self.validator.validate(10, "Drone Service", [])
        self.assertEqual(check.outcome, "time_selection_required")
        with self.assertRaises(TimeSelectionRequired):
            check.raise_for_status()

    def test_claim_above_ceiling_reports_max(self) -> None:
        check = self.validator.validate(20, "Agri Drone Spraying", [TimeSlot.MORNING])
        self.assertEqual(check.outcome, "capacity_exceeded")
        self.assertEqual(check.max_allowed, 15)
        with self.assertRaises(CapacityExceeded) as ctx:
            check.raise_for_status()
        self.assertEqual(ctx.exception.max_allowed, 15)
        self.assertEqual(ctx.exception.to_dict()["code"], "capacity_exceeded")

    def test_claim_at_ceiling_is_ok(self) -> None:
        check = self.validator.validate(30, "drone service", ["Morning", "Evening"])
        self.assertTrue(check.ok)
        self.assertEqual(check.max_allowed, 30)

    def test_unknown_slot_labels_contribute_nothing(self) -> None:
        check = self.validator.validate(5, "Drone Service", ["midnight"])
        self.assertEqual(check.outcome, "time_selection_required")

    def test_policy_is_configurable(self) -> None:
        validator = CapacityValidator(
            CapacityPolicy(acres_per_hour=2.0, checked_keywords=("sprayer",))
        )
        self.assertEqual(
            validator.max_plausible_capacity("Boom Sprayer", [TimeSlot.ANY_TIME]), 12
        )
        self.assertIsNone(
            validator.max_plausible_capacity("Drone Service", [TimeSlot.ANY_TIME])
        )


if __name__ == "__main__":
    unittest.main()

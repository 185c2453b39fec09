import importlib.util
import json
import sys
import threading
import unittest
from pathlib import Path
from unittest.mock import patch

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

_MISSING_PYDANTIC_SETTINGS = importlib.util.find_spec("pydantic_settings") is None

if not _MISSING_PYDANTIC_SETTINGS:
    from agrirent.application.container import build_services
    from agrirent.application.services.pricing_service import (
        PricingAdvisor,
        build_oracle_payload,
        parse_suggestion,
    )
    from agrirent.domain.enums import PricingUnit
    from agrirent.domain.errors import (
        AdvisorUnavailable,
        InvalidTransition,
        NotFound,
        ValidationError,
    )
    from agrirent.infra.config import get_config
    from agrirent.infra.document_store import MemoryDocumentStore
    from agrirent.schemas import EquipmentOffering, PricingRequest, VendorProfile


class _Reply:
    def __init__(self, content):
        self.content = content


class _DummyLLM:
    def __init__(self, content):
        self.content = content
        self.messages = None

    def invoke(self, messages):
        self.messages = messages
        return _Reply(self.content)


@unittest.skipUnless(
    not _MISSING_PYDANTIC_SETTINGS, "pydantic_settings is not installed"
)
class ParseSuggestionTests(unittest.TestCase):
    def test_plain_json(self) -> None:
        suggestion = parse_suggestion(
            _Reply('{"suggestedPrice": 450, "reasoning": "local rates", "effectivePricingUnit": "PerAcre"}'),
            PricingUnit.PER_DAY,
        )
        self.assertEqual(suggestion.suggested_price, 450)
        self.assertEqual(suggestion.effective_pricing_unit, PricingUnit.PER_ACRE)
        self.assertEqual(suggestion.reasoning, "local rates")

    def test_code_fence_and_string_price(self) -> None:
        text = '```json\n{"suggestedPrice": "1,200", "effectivePricingUnit": "per hour"}\n```'
        suggestion = parse_suggestion(_Reply(text), PricingUnit.PER_ACRE)
        self.assertEqual(suggestion.suggested_price, 1200)
        self.assertEqual(suggestion.effective_pricing_unit, PricingUnit.PER_HOUR)

    def test_unit_falls_back_to_requested(self) -> None:
        for unit in (None, "per fortnight", 42):
            payload = {"suggestedPrice": 300}
            if unit is not None:
                payload["effectivePricingUnit"] = unit
            suggestion = parse_suggestion(_Reply(json.dumps(payload)), PricingUnit.PER_DAY)
            self.assertEqual(suggestion.effective_pricing_unit, PricingUnit.PER_DAY)

    def test_json_embedded_in_prose(self) -> None:
        text = 'Here you go: {"suggestedPrice": 99.5} hope it helps'
        self.assertEqual(parse_suggestion(text, PricingUnit.PER_ACRE).suggested_price, 99.5)

    def test_malformed_replies(self) -> None:
        for text in ("", "no idea", '{"reasoning": "x"}', '{"suggestedPrice": -5}', '{"suggestedPrice": "cheap"}', "[1, 2]"):
            with self.assertRaises(AdvisorUnavailable):
                parse_suggestion(_Reply(text), PricingUnit.PER_ACRE)

    def test_oracle_payload_uses_wire_names(self) -> None:
        request = PricingRequest(
            equipment_type="Drone Service",
            acreage=10,
            pricing_unit="PerAcre",
            comparable_listings="₹400/acre nearby",
            travel_charge=200,
        )
        payload = build_oracle_payload(request)
        self.assertEqual(
            payload,
            {
                "equipmentType": "Drone Service",
                "acreage": 10,
                "comparableListings": "₹400/acre nearby",
                "pricingUnit": "PerAcre",
                "travelCharge": 200,
            },
        )


@unittest.skipUnless(
    not _MISSING_PYDANTIC_SETTINGS, "pydantic_settings is not installed"
)
class PricingAdvisorTests(unittest.TestCase):
    def setUp(self) -> None:
        get_config.cache_clear()
        self.store = MemoryDocumentStore()
        self.services = build_services(self.store)
        self.services.vendors.register_vendor(
            VendorProfile(
                vendor_id="v1",
                vendor_name="Haveli Drones",
                district="Pune",
                equipments=[
                    EquipmentOffering(
                        equipment_id="drone-1",
                        category="Drone Service",
                        price_per_unit=400,
                        pricing_unit="PerAcre",
                    )
                ],
            )
        )

    def _advisor(self, oracle, timeout=2.0):
        return PricingAdvisor(
            self.store, self.services.vendors, oracle=oracle, timeout_seconds=timeout
        )

    def test_suggestion_without_listing_has_no_proposal(self) -> None:
        advisor = self._advisor(lambda payload: '{"suggestedPrice": 500}')
        advice = advisor.suggest("Drone Service", 10, PricingUnit.PER_ACRE, "₹450/acre")
        self.assertTrue(advice.available)
        self.assertEqual(advice.suggestion.suggested_price, 500)
        self.assertIsNone(advice.proposal_id)

    def test_oracle_receives_request_fields(self) -> None:
        seen = {}

        def oracle(payload):
            seen.update(payload)
            return '{"suggestedPrice": 500}'

        self._advisor(oracle).suggest(
            "Tractor", 0, "per hour", "", travel_charge=150, notes="hilly terrain"
        )
        self.assertEqual(seen["pricingUnit"], "PerHour")
        self.assertEqual(seen["travelCharge"], 150)
        self.assertEqual(seen["additionalConsiderations"], "hilly terrain")

    def test_oracle_timeout_degrades_to_no_suggestion(self) -> None:
        release = threading.Event()
        self.addCleanup(release.set)

        def slow_oracle(payload):
            release.wait(5)
            return '{"suggestedPrice": 1}'

        advice = self._advisor(slow_oracle, timeout=0.05).suggest(
            "Drone Service", 10, PricingUnit.PER_ACRE
        )
        self.assertFalse(advice.available)
        self.assertIsNone(advice.suggestion)

    def test_oracle_error_degrades_to_no_suggestion(self) -> None:
        def broken_oracle(payload):
            raise RuntimeError("provider down")

        advice = self._advisor(broken_oracle).suggest("Drone Service", 10, PricingUnit.PER_ACRE)
        self.assertFalse(advice.available)

    def test_malformed_reply_degrades_to_no_suggestion(self) -> None:
        advice = self._advisor(lambda payload: "I think around five hundred").suggest(
            "Drone Service", 10, PricingUnit.PER_ACRE
        )
        self.assertFalse(advice.available)
        self.assertTrue(advice.message)

    def test_suggestion_never_changes_listing_until_confirmed(self) -> None:
        advisor = self._advisor(
            lambda payload: '{"suggestedPrice": 520, "effectivePricingUnit": "PerAcre"}'
        )
        advice = advisor.suggest(
            "Drone Service",
            10,
            PricingUnit.PER_ACRE,
            vendor_id="v1",
            equipment_id="drone-1",
        )
        self.assertIsNotNone(advice.proposal_id)
        listing = self.services.vendors.get_vendor("v1").find_equipment("drone-1")
        self.assertEqual(listing.price_per_unit, 400)
        self.assertEqual(advisor.get_proposal(advice.proposal_id).status, "proposed")

        with self.assertRaises(InvalidTransition):
            advisor.confirm_proposal(advice.proposal_id, "v2")

        updated = advisor.confirm_proposal(advice.proposal_id, "v1", price=500)
        self.assertEqual(updated.price_per_unit, 500)
        proposal = advisor.get_proposal(advice.proposal_id)
        self.assertEqual(proposal.status, "confirmed")
        self.assertEqual(proposal.confirmed_price, 500)

        with self.assertRaises(InvalidTransition):
            advisor.confirm_proposal(advice.proposal_id, "v1")

    def test_proposal_for_unknown_listing(self) -> None:
        advisor = self._advisor(lambda payload: '{"suggestedPrice": 520}')
        with self.assertRaises(NotFound):
            advisor.suggest(
                "Drone Service", 10, "PerAcre", vendor_id="v1", equipment_id="nope"
            )
        with self.assertRaises(ValidationError):
            advisor.suggest("Drone Service", 10, "PerAcre", vendor_id="v1")
        with self.assertRaises(NotFound):
            advisor.confirm_proposal("missing", "v1")

    def test_default_oracle_uses_chat_model(self) -> None:
        llm = _DummyLLM('{"suggestedPrice": 610, "reasoning": "demand is high"}')
        with patch(
            "agrirent.application.services.pricing_service.get_pricing_model",
            return_value=llm,
        ):
            advice = self.services.pricing.suggest("Drone Service", 10, PricingUnit.PER_ACRE)

        self.assertTrue(advice.available)
        self.assertEqual(advice.suggestion.suggested_price, 610)
        self.assertEqual(advice.suggestion.effective_pricing_unit, PricingUnit.PER_ACRE)
        self.assertIn("Drone Service", llm.messages[1].content)

    def test_missing_api_key_degrades_to_no_suggestion(self) -> None:
        with patch(
            "agrirent.application.services.pricing_service.get_pricing_model",
            side_effect=ValueError("OPENAI_API_KEY is not configured"),
        ):
            advice = self.services.pricing.suggest("Drone Service", 10, PricingUnit.PER_ACRE)
        self.assertFalse(advice.available)


if __name__ == "__main__":
    unittest.main()

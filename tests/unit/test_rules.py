"""Tests for the validation rules engine."""

from datetime import date, datetime, timedelta

import pytest

from staycheck.core.exceptions import RuleEngineError
from staycheck.core.types import ValidationContext
from staycheck.validate.business import BusinessRule, default_business_rules, format_amount
from staycheck.validate.rules import UNKNOWN_TYPE_INTENT, ValidationRulesEngine


def _by_field(issues, field):
    return [i for i in issues if i.field == field]


@pytest.fixture
def engine() -> ValidationRulesEngine:
    return ValidationRulesEngine()


class TestBusinessRules:
    """Tests for the business rule set."""

    def test_default_rule_count(self):
        """Test that all 25 rules are registered with unique ids."""
        rules = default_business_rules()
        assert len(rules) == 25
        assert len({r.id for r in rules}) == 25

    def test_negative_price(self, engine, context):
        """Test the {price: -10} example."""
        issues = engine.apply_business_rules({"price": -10}, context)
        price_issues = _by_field(issues, "price")
        assert len(price_issues) == 1
        assert price_issues[0].kind == "business"
        assert price_issues[0].severity == "critical"
        assert price_issues[0].suggested_fix == "50"

    def test_price_above_limit(self, engine, context):
        issues = engine.apply_business_rules({"price": 60000}, context)
        assert _by_field(issues, "price")[0].suggested_fix == "2000"

    @pytest.mark.parametrize("guests,fix", [(0, "1"), (-3, "1"), (51, "20"), (80, "20")])
    def test_guest_capacity_fix_clamped(self, engine, context, guests, fix):
        """Test maxGuests outside [1, 50] yields a major issue with a clamped fix."""
        issues = _by_field(engine.apply_business_rules({"maxGuests": guests}, context), "maxGuests")
        assert len(issues) == 1
        assert issues[0].severity == "major"
        assert issues[0].suggested_fix == fix
        assert 1 <= int(issues[0].suggested_fix) <= 20

    @pytest.mark.parametrize("check_in", [
        "2020-01-01",
        date.today().isoformat(),
        (datetime.now() - timedelta(hours=1)).isoformat(),
    ])
    def test_checkin_not_in_future(self, engine, booking_context, check_in):
        """Test any check-in at or before now is critical."""
        issues = _by_field(engine.apply_business_rules({"checkIn": check_in}, booking_context), "checkIn")
        critical = [i for i in issues if i.severity == "critical"]
        assert len(critical) == 1
        assert critical[0].kind == "business"
        assert critical[0].suggested_fix == (date.today() + timedelta(days=2)).isoformat()

    def test_advance_booking(self, engine, booking_context):
        """Test that check-in within 24 hours is a major issue."""
        check_in = (datetime.now() + timedelta(hours=5)).isoformat()
        issues = _by_field(engine.apply_business_rules({"checkIn": check_in}, booking_context), "checkIn")
        assert [i.severity for i in issues] == ["major"]

    def test_stay_duration(self, engine, booking_context):
        """Test stays must be between 1 and 365 nights."""
        too_long = engine.apply_business_rules({"checkIn": "2030-01-01", "checkOut": "2031-06-01"}, booking_context)
        backwards = engine.apply_business_rules({"checkIn": "2030-01-05", "checkOut": "2030-01-01"}, booking_context)
        assert _by_field(too_long, "duration")[0].severity == "major"
        assert _by_field(backwards, "duration")[0].severity == "critical"

    def test_conflicting_amenities(self, engine, context):
        """Test the {amenities: [petFriendly, noPets]} example."""
        issues = engine.apply_business_rules({"amenities": ["petFriendly", "noPets"]}, context)
        amenity_issues = _by_field(issues, "amenities")
        assert len(amenity_issues) == 1
        assert amenity_issues[0].severity == "major"
        assert "Conflicting" in amenity_issues[0].message

    def test_total_price_mismatch(self, engine, booking_context):
        """Test a wrong pricing.total is critical with the recomputed total as fix."""
        response = {
            "pricing": {"basePrice": 100, "cleaningFee": 20, "serviceFee": 10.5, "taxes": 5, "total": 150}
        }
        issues = _by_field(engine.apply_business_rules(response, booking_context), "pricing.total")
        assert len(issues) == 1
        assert issues[0].severity == "critical"
        assert issues[0].confidence > 0.95
        assert issues[0].suggested_fix == "135.50"

    def test_total_price_within_tolerance(self, engine, booking_context):
        response = {"pricing": {"basePrice": 100, "cleaningFee": 20, "total": 120.005}}
        assert not _by_field(engine.apply_business_rules(response, booking_context), "pricing.total")

    def test_fee_and_deposit_limits(self, engine, context):
        issues = engine.apply_business_rules({"price": 100, "cleaningFee": 80, "securityDeposit": 9000}, context)
        assert _by_field(issues, "cleaningFee")[0].suggested_fix == "30.00"
        assert _by_field(issues, "securityDeposit")[0].suggested_fix == "1000"

    def test_address_and_contact(self, engine, context):
        response = {
            "address": {"street": "Rua 1", "city": "", "country": "Portugal"},
            "contact": {"email": "not-an-email", "phone": "12"},
        }
        issues = engine.apply_business_rules(response, context)
        assert {i.field for i in issues} >= {
            "address.city", "address.postalCode", "contact.email", "contact.phone"
        }
        assert _by_field(issues, "contact.email")[0].severity == "critical"

    def test_coordinates(self, engine, context):
        issues = engine.apply_business_rules({"coordinates": {"latitude": 95, "longitude": -200}}, context)
        assert {i.field for i in issues} == {"coordinates.latitude", "coordinates.longitude"}

    def test_guest_count_limit(self, engine, booking_context):
        issues = engine.apply_business_rules({"guestCount": 6, "maxGuests": 4}, booking_context)
        assert _by_field(issues, "guestCount")[0].suggested_fix == "4"

    def test_policy_rules(self, engine, context):
        response = {"cancellationPolicy": "whenever", "minimumStay": 0, "hostResponseTime": "soon", "reviewScore": 7}
        issues = engine.apply_business_rules(response, context)
        assert _by_field(issues, "cancellationPolicy")[0].suggested_fix == "moderate"
        assert _by_field(issues, "minimumStay")[0].suggested_fix == "1"
        assert _by_field(issues, "hostResponseTime")[0].severity == "minor"
        assert _by_field(issues, "reviewScore")[0].suggested_fix == "5.0"

    def test_villa_rule_only_in_property_domain(self, engine):
        response = {"amenities": ["wifi"]}
        villa = ValidationContext(request_id="r", session_id="s", response_type="property_info", property_type="villa")
        general = ValidationContext(
            request_id="r", session_id="s", response_type="property_info", property_type="villa", domain="general"
        )
        assert _by_field(engine.apply_business_rules(response, villa), "amenities")
        assert not _by_field(engine.apply_business_rules(response, general), "amenities")

    def test_currency_rule_needs_pricing(self, engine, context):
        assert not engine.apply_business_rules({"currency": "JPY"}, context)
        issues = engine.apply_business_rules({"currency": "JPY", "pricing": {}}, context)
        assert _by_field(issues, "currency")[0].suggested_fix == "EUR"

    def test_failing_rule_is_skipped(self, context):
        """Test a rule that raises never aborts the remaining rules."""
        def explode(response, ctx):
            raise RuntimeError("boom")

        engine = ValidationRulesEngine(business_rules=[
            BusinessRule("explode", "Explode", "test", explode),
            *default_business_rules(),
        ])
        issues = engine.apply_business_rules({"price": -10}, context)
        assert _by_field(issues, "price")

        healthy = ValidationRulesEngine()
        healthy.apply_business_rules({"price": -10}, context)
        assert engine.rules_applied == healthy.rules_applied

    def test_rules_applied_resets(self, engine, context):
        engine.apply_business_rules({}, context)
        first = engine.rules_applied
        engine.apply_business_rules({}, context)
        assert engine.rules_applied == first

    def test_format_amount(self):
        assert format_amount(50.0) == "50"
        assert format_amount(135.5) == "135.50"


class TestRuleRegistry:
    """Tests for registering and toggling rules."""

    def test_duplicate_rule_rejected(self, engine):
        rule = engine.get_rule("property_price_range")
        with pytest.raises(RuleEngineError):
            engine.add_rule(rule)

    def test_unknown_rule(self, engine):
        with pytest.raises(RuleEngineError):
            engine.get_rule("nope")

    def test_disable_and_enable(self, engine, context):
        engine.disable_rule("property_price_range")
        assert not engine.apply_business_rules({"price": -10}, context)
        engine.enable_rule("property_price_range")
        assert engine.apply_business_rules({"price": -10}, context)


class TestStructuralChecks:
    """Tests for required fields, data types and formats."""

    def test_required_fields(self, engine, context):
        issues = engine.validate_required_fields({"id": "p1", "price": 10}, context)
        assert sorted(i.field for i in issues) == ["address", "name"]
        assert all(i.kind == "syntax" and i.severity == "major" for i in issues)
        assert issues[0].message.startswith("Missing required field: ")

    def test_pricing_required_fields(self, engine):
        context = ValidationContext(request_id="r", session_id="s", response_type="pricing")
        issues = engine.validate_required_fields({"basePrice": 10}, context)
        assert sorted(i.field for i in issues) == ["fees", "total"]

    def test_data_types(self, engine, context):
        response = {"price": "100", "maxGuests": 2.5, "available": "yes", "checkIn": "soon", "bedrooms": 2}
        fields = {i.field for i in engine.validate_data_types(response, context)}
        assert fields == {"price", "maxGuests", "available", "checkIn"}

    def test_formats_are_recursive(self, engine, context):
        response = {
            "contact": {"email": "bad", "phone": "+351 912 345 678"},
            "host": {"websiteUrl": "ftp://example.com"},
            "address": {"postalCode": "1"},
        }
        fields = {i.field for i in engine.validate_formats(response, context)}
        assert fields == {"contact.email", "address.postalCode"}

    def test_url_format(self, engine, context):
        issues = engine.validate_formats({"url": "example.com"}, context)
        assert [i.message for i in issues] == ["Invalid URL format"]


class TestSemanticAndConsistency:
    """Tests for the semantic and consistency checks."""

    def test_guest_ratio(self, engine, context):
        issues = engine.validate_semantics({"bedrooms": 1, "maxGuests": 6}, context)
        assert [(i.field, i.severity) for i in issues] == [("maxGuests", "minor")]

    def test_price_band_uses_context_type(self, engine):
        context = ValidationContext(request_id="r", session_id="s", response_type="x", property_type="studio")
        issues = engine.validate_semantics({"price": 900}, context)
        assert [i.field for i in issues] == ["price"]

    def test_general_domain_has_no_semantic_checks(self, engine):
        context = ValidationContext(request_id="r", session_id="s", response_type="x", domain="general")
        assert engine.validate_semantics({"bedrooms": 1, "maxGuests": 9}, context) == []

    def test_intent_score(self, engine, context):
        assert engine.score_intent({"id": 1, "name": "x", "address": {}, "price": 1}, context) == 1.0
        assert engine.score_intent({"id": 1}, context) == 0.25
        unknown = ValidationContext(request_id="r", session_id="s", response_type="chat")
        assert engine.score_intent({}, unknown) == UNKNOWN_TYPE_INTENT
        assert engine.intent_warnings(0.25)[0].field == "intent"
        assert engine.intent_warnings(0.9) == []

    def test_nights_example(self, engine, booking_context):
        """Test the nights example yields a consistency fix of "5"."""
        response = {"checkIn": "2024-06-15", "checkOut": "2024-06-20", "nights": 3}
        issues = engine.validate_consistency(response, booking_context)
        assert len(issues) == 1
        assert issues[0].kind == "consistency"
        assert issues[0].field == "nights"
        assert issues[0].suggested_fix == "5"

    def test_base_price_and_booking_total(self, engine, booking_context):
        response = {"price": 100, "totalPrice": 500, "pricing": {"basePrice": 90, "total": 450}}
        issues = {i.field: i for i in engine.validate_consistency(response, booking_context)}
        assert issues["pricing.basePrice"].severity == "minor"
        assert issues["pricing.basePrice"].suggested_fix == "100"
        assert issues["totalPrice"].severity == "major"
        assert issues["totalPrice"].suggested_fix == "450"


class TestRulesFromYaml:
    """Tests for loading structural overrides."""

    def test_from_yaml(self, tmp_path):
        yaml_file = tmp_path / "rules.yaml"
        yaml_file.write_text(
            "required_fields:\n"
            "  listing: [title, price]\n"
            "price_ranges:\n"
            "  loft: [70, 400]\n"
            "disabled_rules: [review_score_range]\n"
        )
        engine = ValidationRulesEngine.from_yaml(yaml_file)
        assert engine.required_fields["listing"] == ("title", "price")
        assert "property_info" in engine.required_fields
        assert engine.price_ranges["loft"] == (70.0, 400.0)
        assert engine.get_rule("review_score_range").enabled is False

    def test_from_yaml_missing(self, tmp_path):
        with pytest.raises(RuleEngineError):
            ValidationRulesEngine.from_yaml(tmp_path / "missing.yaml")

    def test_to_yaml_round_trip(self, engine):
        engine.disable_rule("host_response_time")
        import yaml

        data = yaml.safe_load(engine.to_yaml())
        assert data["disabled_rules"] == ["host_response_time"]
        assert data["required_fields"]["pricing"] == ["basePrice", "fees", "total"]

"""Validation rules engine.

This module provides the ValidationRulesEngine, a library of
side-effect-free checks over loosely typed response documents:
business rules, required fields, data types, string formats,
semantic plausibility and cross-field consistency. Structural
tables can be overridden from a YAML file.
"""

import math
import re
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml

from staycheck.core.documents import get_path, is_number, iter_leaves, parse_datetime
from staycheck.core.exceptions import RuleEngineError
from staycheck.core.logging import get_logger
from staycheck.core.types import ValidationContext, ValidationIssue, ValidationWarning
from staycheck.validate.business import BusinessRule, default_business_rules, format_amount
from staycheck.validate.formats import (
    PRICE_RANGES,
    REQUIRED_FIELDS,
    DataTypeRule,
    FormatRule,
    default_data_type_rules,
    default_format_rules,
)

logger = get_logger(__name__)

Document = dict[str, Any]

# Intent score used when the response type has no required-field table
UNKNOWN_TYPE_INTENT = 0.85


class ValidationRulesEngine:
    """Stateless rule library shared by the validation layers.

    The only state is the business rule registry and the
    ``rules_applied`` counter, which is reset at the start of every
    ``apply_business_rules`` call.

    Example:
        >>> engine = ValidationRulesEngine()
        >>> issues = engine.apply_business_rules({"price": -10}, context)
        >>> issues[0].severity
        'critical'
    """

    def __init__(
        self,
        business_rules: list[BusinessRule] | None = None,
        data_type_rules: list[DataTypeRule] | None = None,
        format_rules: list[FormatRule] | None = None,
        required_fields: dict[str, tuple[str, ...]] | None = None,
        price_ranges: dict[str, tuple[float, float]] | None = None,
    ) -> None:
        """Initialize ValidationRulesEngine.

        Args:
            business_rules: Business rules, defaults to the built-in set
            data_type_rules: Field type rules, defaults to the built-in set
            format_rules: Regex format rules, defaults to the built-in set
            required_fields: Response type to required top-level fields
            price_ranges: Property type to typical nightly price range
        """
        self._rules: dict[str, BusinessRule] = {}
        for rule in default_business_rules() if business_rules is None else business_rules:
            self.add_rule(rule)
        self.data_type_rules = default_data_type_rules() if data_type_rules is None else data_type_rules
        self.format_rules = default_format_rules() if format_rules is None else format_rules
        self.required_fields = dict(REQUIRED_FIELDS if required_fields is None else required_fields)
        self.price_ranges = dict(PRICE_RANGES if price_ranges is None else price_ranges)
        self.rules_applied = 0

    @classmethod
    def from_yaml(cls, path: Path | str) -> "ValidationRulesEngine":
        """Load structural overrides from a YAML file.

        Args:
            path: Path to YAML file

        Returns:
            Configured ValidationRulesEngine
        """
        path = Path(path)
        if not path.exists():
            raise RuleEngineError(f"Rules file not found: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise RuleEngineError(f"Invalid YAML in {path}: {e}") from e

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ValidationRulesEngine":
        """Create an engine from a dictionary.

        Recognised keys: ``required_fields`` (type -> field list),
        ``price_ranges`` (type -> [min, max]), ``formats`` (list of
        name/pattern/message) and ``disabled_rules`` (rule ids).
        """
        required = data.get("required_fields")
        ranges = data.get("price_ranges")
        formats = data.get("formats")

        engine = cls(
            required_fields=(
                {**REQUIRED_FIELDS, **{k: tuple(v) for k, v in required.items()}} if required else None
            ),
            price_ranges=(
                {**PRICE_RANGES, **{k: (float(v[0]), float(v[1])) for k, v in ranges.items()}} if ranges else None
            ),
            format_rules=(
                [
                    FormatRule(
                        name=f["name"],
                        pattern=re.compile(f["pattern"]),
                        message=f.get("message", f"Invalid {f['name']} format"),
                    )
                    for f in formats
                ]
                if formats
                else None
            ),
        )
        for rule_id in data.get("disabled_rules", []):
            engine.disable_rule(rule_id)
        return engine

    def to_yaml(self) -> str:
        """Export the structural tables to a YAML string."""
        data = {
            "required_fields": {k: list(v) for k, v in self.required_fields.items()},
            "price_ranges": {k: list(v) for k, v in self.price_ranges.items()},
            "formats": [
                {"name": r.name, "pattern": r.pattern.pattern, "message": r.message} for r in self.format_rules
            ],
            "disabled_rules": [r.id for r in self._rules.values() if not r.enabled],
        }
        return yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)

    # Registry

    @property
    def business_rules(self) -> list[BusinessRule]:
        return list(self._rules.values())

    def add_rule(self, rule: BusinessRule) -> None:
        """Register a business rule.

        Raises:
            RuleEngineError: If a rule with the same id is already registered
        """
        if rule.id in self._rules:
            raise RuleEngineError(f"Duplicate rule id: {rule.id}", rule_id=rule.id, category=rule.category)
        self._rules[rule.id] = rule

    def get_rule(self, rule_id: str) -> BusinessRule:
        try:
            return self._rules[rule_id]
        except KeyError:
            raise RuleEngineError(f"Unknown rule id: {rule_id}", rule_id=rule_id) from None

    def disable_rule(self, rule_id: str) -> None:
        self.get_rule(rule_id).enabled = False

    def enable_rule(self, rule_id: str) -> None:
        self.get_rule(rule_id).enabled = True

    # Business layer

    def apply_business_rules(self, response: Document, context: ValidationContext) -> list[ValidationIssue]:
        """Run every enabled business rule.

        A rule that raises is logged and skipped; the remaining rules
        still run. ``rules_applied`` counts the rules that completed.
        """
        issues: list[ValidationIssue] = []
        self.rules_applied = 0

        for rule in self._rules.values():
            if not rule.enabled:
                continue
            try:
                if rule.applies is not None and not rule.applies(response, context):
                    continue
                issues.extend(rule.check(response, context))
                self.rules_applied += 1
            except Exception as e:
                logger.error(
                    f"Error applying rule {rule.id}: {e}",
                    extra={"extra_data": {"rule_id": rule.id, "request_id": context.request_id}},
                )

        return issues

    # Syntax layer

    def validate_required_fields(self, response: Document, context: ValidationContext) -> list[ValidationIssue]:
        return [
            ValidationIssue(
                kind="syntax",
                severity="major",
                field=name,
                message=f"Missing required field: {name}",
                confidence=0.95,
                source="syntax_validator",
            )
            for name in self.required_fields.get(context.response_type, ())
            if name not in response
        ]

    def validate_data_types(self, response: Document, context: ValidationContext) -> list[ValidationIssue]:
        issues = []
        for rule in self.data_type_rules:
            if rule.field not in response:
                continue
            if not self._safe(f"type:{rule.field}", lambda r=rule: r.validator(response[r.field]), default=True):
                issues.append(ValidationIssue(
                    kind="syntax",
                    severity="major",
                    field=rule.field,
                    message=f"Expected {rule.expected_type} for field {rule.field}",
                    confidence=0.9,
                    source="data_type_validator",
                ))
        return issues

    def validate_formats(self, response: Document, context: ValidationContext) -> list[ValidationIssue]:
        issues = []
        for path, key, value in iter_leaves(response):
            if not isinstance(value, str):
                continue
            for rule in self.format_rules:
                if rule.matches_field(path, key) and not rule.pattern.match(value):
                    issues.append(ValidationIssue(
                        kind="syntax",
                        severity="major",
                        field=path,
                        message=rule.message,
                        confidence=0.85,
                        source="format_validator",
                    ))
        return issues

    # Semantic layer

    def validate_semantics(self, response: Document, context: ValidationContext) -> list[ValidationIssue]:
        """Contextual plausibility checks for the property domain."""
        if context.domain != "property_management":
            return []
        issues: list[ValidationIssue] = []
        issues.extend(self._safe("guest_ratio", lambda: self._check_guest_ratio(response), default=[]))
        issues.extend(self._safe("price_band", lambda: self._check_price_band(response, context), default=[]))
        return issues

    def _check_guest_ratio(self, response: Document) -> list[ValidationIssue]:
        bedrooms = response.get("bedrooms")
        guests = response.get("maxGuests")
        if not (is_number(bedrooms) and is_number(guests)) or bedrooms <= 0:
            return []
        if guests <= bedrooms * 3:
            return []
        return [ValidationIssue(
            kind="semantic",
            severity="minor",
            field="maxGuests",
            message=f"High guest count ({guests}) for {bedrooms} bedrooms",
            confidence=0.6,
            source="semantic_validator",
        )]

    def _check_price_band(self, response: Document, context: ValidationContext) -> list[ValidationIssue]:
        price = response.get("price")
        property_type = response.get("propertyType") or context.property_type
        band = self.price_ranges.get(property_type) if isinstance(property_type, str) else None
        if band is None or not is_number(price) or band[0] <= price <= band[1]:
            return []
        return [ValidationIssue(
            kind="semantic",
            severity="minor",
            field="price",
            message=f"Price {price} seems unusual for {property_type}",
            confidence=0.5,
            source="semantic_validator",
        )]

    def score_intent(self, response: Document, context: ValidationContext) -> float:
        """Share of the response type's required fields that are present."""
        required = self.required_fields.get(context.response_type)
        if not required:
            return UNKNOWN_TYPE_INTENT
        present = sum(1 for name in required if name in response)
        return present / len(required)

    def intent_warnings(self, score: float) -> list[ValidationWarning]:
        if score >= 0.7:
            return []
        return [ValidationWarning(
            kind="potential_issue",
            field="intent",
            message="Response may not match user intent",
            impact="medium",
        )]

    # Consistency layer

    def validate_consistency(self, response: Document, context: ValidationContext) -> list[ValidationIssue]:
        """Cross-field arithmetic and identity checks."""
        issues: list[ValidationIssue] = []
        for name, check in (
            ("nights", self._check_nights),
            ("base_price", self._check_base_price),
            ("booking_total", self._check_booking_total),
        ):
            issues.extend(self._safe(name, lambda c=check: c(response), default=[]))
        return issues

    def _check_nights(self, response: Document) -> list[ValidationIssue]:
        check_in = parse_datetime(response.get("checkIn"))
        check_out = parse_datetime(response.get("checkOut"))
        nights = response.get("nights")
        if check_in is None or check_out is None or not is_number(nights):
            return []
        calculated = math.ceil((check_out - check_in).total_seconds() / 86400)
        if calculated == nights:
            return []
        return [ValidationIssue(
            kind="consistency",
            severity="major",
            field="nights",
            message="Nights value inconsistent with check-in/check-out dates",
            confidence=0.95,
            source="consistency_validator",
            suggested_fix=str(calculated),
        )]

    def _check_base_price(self, response: Document) -> list[ValidationIssue]:
        price = response.get("price")
        base = get_path(response, "pricing.basePrice")
        if not (is_number(price) and is_number(base)) or abs(base - price) <= 0.01:
            return []
        return [ValidationIssue(
            kind="consistency",
            severity="minor",
            field="pricing.basePrice",
            message="Base price in pricing object differs from main price field",
            confidence=0.7,
            source="consistency_validator",
            suggested_fix=format_amount(price),
        )]

    def _check_booking_total(self, response: Document) -> list[ValidationIssue]:
        total = response.get("totalPrice")
        pricing_total = get_path(response, "pricing.total")
        if not (is_number(total) and is_number(pricing_total)):
            return []
        if abs(total - pricing_total) <= 0.01:
            return []
        return [ValidationIssue(
            kind="consistency",
            severity="major",
            field="totalPrice",
            message="Booking total differs from pricing total",
            confidence=0.9,
            source="consistency_validator",
            suggested_fix=format_amount(pricing_total),
        )]

    def _safe(self, name: str, check: Callable[[], Any], default: Any) -> Any:
        try:
            return check()
        except Exception as e:
            logger.warning(f"Check {name} failed: {e}")
            return default

"""Rules engine for staycheck.

This module provides the checks behind four of the five layers:
- Syntax: required fields, data types, string formats
- Semantic: guest/bedroom ratio, price vs property type, intent coverage
- Business: 25 independently pluggable business rules
- Consistency: nights, base price and booking total cross-checks
"""

from staycheck.validate.business import BusinessRule, default_business_rules
from staycheck.validate.formats import DataTypeRule, FormatRule
from staycheck.validate.rules import ValidationRulesEngine

__all__ = [
    "ValidationRulesEngine",
    "BusinessRule",
    "DataTypeRule",
    "FormatRule",
    "default_business_rules",
]

"""Custom exceptions for staycheck.

This module defines the exception hierarchy used throughout staycheck
for clear error handling and reporting.
"""


class StaycheckError(Exception):
    """Base exception for all staycheck errors.

    All staycheck-specific exceptions inherit from this class,
    allowing users to catch all staycheck errors with a single except clause.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        """Initialize StaycheckError.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


class InvalidRequestError(StaycheckError):
    """Raised when a validation request is malformed.

    Input errors are rejected before any validation layer runs:
    a missing session id, an unknown domain, an oversized batch.
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: object = None,
    ) -> None:
        """Initialize InvalidRequestError.

        Args:
            message: Human-readable error message
            field: Name of the offending request field
            value: Value that was rejected
        """
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = repr(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


class ConfigurationError(StaycheckError):
    """Raised when configuration is invalid.

    This is raised when settings are misconfigured, required
    configuration is missing, or configuration files are malformed.
    """

    def __init__(
        self,
        message: str,
        setting_name: str | None = None,
        setting_value: str | None = None,
    ) -> None:
        """Initialize ConfigurationError.

        Args:
            message: Human-readable error message
            setting_name: Name of the problematic setting
            setting_value: Value that caused the error
        """
        details = {}
        if setting_name:
            details["setting_name"] = setting_name
        if setting_value:
            details["setting_value"] = setting_value
        super().__init__(message, details)
        self.setting_name = setting_name
        self.setting_value = setting_value


class RuleEngineError(StaycheckError):
    """Raised when the rule registry is misused.

    Rule *evaluation* failures never surface as exceptions; they are
    logged and the rule is skipped. This covers registry problems such
    as duplicate rule ids or unknown rule lookups.
    """

    def __init__(
        self,
        message: str,
        rule_id: str | None = None,
        category: str | None = None,
    ) -> None:
        """Initialize RuleEngineError.

        Args:
            message: Human-readable error message
            rule_id: Id of the rule involved
            category: Rule category
        """
        details = {}
        if rule_id:
            details["rule_id"] = rule_id
        if category:
            details["category"] = category
        super().__init__(message, details)
        self.rule_id = rule_id
        self.category = category


class VerificationError(StaycheckError):
    """Raised when an external fact source cannot answer.

    The fact checker catches these at the verifier boundary, so they
    lower the factual layer's coverage instead of failing validation.
    """

    def __init__(
        self,
        message: str,
        source: str | None = None,
        field_group: str | None = None,
        status_code: int | None = None,
    ) -> None:
        """Initialize VerificationError.

        Args:
            message: Human-readable error message
            source: Name of the verifier or remote service
            field_group: Field group being verified (location, currency, season)
            status_code: HTTP status code if applicable
        """
        details: dict = {}
        if source:
            details["source"] = source
        if field_group:
            details["field_group"] = field_group
        if status_code:
            details["status_code"] = status_code
        super().__init__(message, details)
        self.source = source
        self.field_group = field_group
        self.status_code = status_code

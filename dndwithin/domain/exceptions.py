"""
Domain exceptions - Semantic error types for the account subsystem.

This module defines domain-specific exceptions that communicate
infrastructure and configuration failures without leaking driver
details. Business-rule violations are reported through result objects
instead (see ``ValidationResult`` and the result enums in ports).
"""


class AccountError(Exception):
    """Base class for account domain errors."""

    pass


class DuplicateAccountError(AccountError):
    """A unique username or email constraint rejected a write."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"Account with duplicate {field}")


class ConfigurationMissingError(AccountError):
    """A required global setting is absent or blank."""

    def __init__(self, setting_name: str) -> None:
        self.setting_name = setting_name
        super().__init__(f"Required setting '{setting_name}' is not configured")


class EmailDeliveryError(AccountError):
    """A single delivery attempt failed. The dispatch worker will retry."""

    pass

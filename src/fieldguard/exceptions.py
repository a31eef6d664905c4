"""Exception types raised by the fieldguard engine.

A rule returning False is a normal validation failure and never raises.
These exceptions cover structural problems only: unknown rules, malformed
rule specifications, duplicate fields and unknown field selectors.
"""


class FieldguardError(Exception):
    """Base class for all fieldguard errors."""


class UnknownRuleError(FieldguardError):
    """Raised when a rule name cannot be resolved from the registry."""

    def __init__(self, name: str, available: list[str] | None = None):
        self.name = name
        self.available = available or []
        message = f"Rule '{name}' is not registered."
        if self.available:
            message += " Available rules: " + ", ".join(self.available)
        super().__init__(message)


class ConfigurationError(FieldguardError):
    """Raised for malformed rule specifications or invalid registrations."""


class DuplicateFieldError(FieldguardError):
    """Raised when a field with the same name and scope is already attached.

    Only raised when the validator runs with ``strict_fields`` enabled;
    otherwise the newest field replaces the previous one with a warning.
    """

    def __init__(self, name: str, scope: str | None = None):
        self.name = name
        self.scope = scope
        label = f"{scope}.{name}" if scope else name
        super().__init__(f"Field '{label}' is already attached.")


class FieldNotFoundError(FieldguardError):
    """Raised when a field selector does not match any attached field."""

    def __init__(self, selector: str):
        self.selector = selector
        super().__init__(f"No field matches '{selector}'.")

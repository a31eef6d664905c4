"""Core types for the fieldguard validation engine.

This module defines the records passed between the engine layers:
- RuleSpec: one parsed entry of a field's rule specification
- RuleContext / RuleOutcome: what a rule receives and may return
- FieldError: one ErrorBag entry
- VerifyResult: the result shape of a validation pass
"""

from dataclasses import dataclass
from dataclasses import field as dataclass_field
from typing import Any, Callable


class _Missing:
    """Sentinel for "argument not supplied" where None is a legal value."""

    _instance: "_Missing | None" = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


@dataclass(frozen=True)
class RuleSpec:
    """A rule reference parsed from a field's rule specification.

    Attributes:
        name: Registered rule name
        params: Positional parameters, or a dict of named parameters
    """

    name: str
    params: tuple[Any, ...] | dict[str, Any] = ()

    @property
    def param_list(self) -> list[Any]:
        if isinstance(self.params, dict):
            return list(self.params.values())
        return list(self.params)


@dataclass
class RuleContext:
    """Context passed to a rule's validate function.

    Attributes:
        field: Field name (None for one-off verify calls without a name)
        display_name: Alias if set, otherwise the name
        scope: Field scope, if any
        targets: Live values of the fields referenced by target parameters
        required: Whether the field is currently considered required
    """

    field: str | None = None
    display_name: str | None = None
    scope: str | None = None
    targets: dict[str, Any] = dataclass_field(default_factory=dict)
    required: bool = False


@dataclass(frozen=True)
class RuleOutcome:
    """Rich rule result.

    Rules may return a plain bool; a RuleOutcome lets them attach data
    (``data["required"]`` for computesRequired rules, extra message data).
    """

    valid: bool
    data: dict[str, Any] = dataclass_field(default_factory=dict)


@dataclass
class FieldError:
    """A single ErrorBag entry.

    Attributes:
        field: Field name
        msg: Resolved message
        rule: Name of the failed rule
        scope: Field scope, if any
        field_id: Id of the field that produced the entry
        regenerate: Optional callable rebuilding the message (after a locale switch)
    """

    field: str
    msg: str
    rule: str | None = None
    scope: str | None = None
    field_id: str | None = None
    regenerate: Callable[[], str] | None = dataclass_field(default=None, compare=False, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "msg": self.msg,
            "rule": self.rule,
            "scope": self.scope,
            "id": self.field_id,
        }


@dataclass
class VerifyResult:
    """Result of validating one value against a rule list.

    Attributes:
        valid: True if every executed rule passed
        errors: Messages of the failed rules, in declaration order
        failed_rules: Map of failed rule name to its message
    """

    valid: bool
    errors: list[str] = dataclass_field(default_factory=list)
    failed_rules: dict[str, str] = dataclass_field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "failedRules": dict(self.failed_rules),
        }

"""Field: the per-input validation unit.

A Field holds its parsed rules, interaction flags, a value accessor and
the validation token used to discard stale asynchronous results. The
Validator drives its transitions; the Field itself never runs rules.
"""

import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Mapping

from fieldguard.dsl import parse_rules
from fieldguard.exceptions import ConfigurationError
from fieldguard.registry import RuleRegistry
from fieldguard.types import MISSING, RuleSpec

# Negated flag pairs kept in sync by FieldFlags.set
_COUNTERPARTS = {
    "touched": "untouched",
    "untouched": "touched",
    "dirty": "pristine",
    "pristine": "dirty",
}

_UPDATABLE_OPTIONS = frozenset({"alias", "scope", "getter", "bails", "rules"})


@dataclass
class FieldFlags:
    """Interaction and validity flags of a field.

    ``valid`` and ``invalid`` stay None until the field has been validated.
    """

    untouched: bool = True
    touched: bool = False
    dirty: bool = False
    pristine: bool = True
    validated: bool = False
    pending: bool = False
    required: bool = False
    valid: bool | None = None
    invalid: bool | None = None

    def set(self, **flags: Any) -> None:
        """Set flags along with their negated counterparts."""
        for name, value in flags.items():
            if name not in self.__dataclass_fields__:
                raise AttributeError(f"Unknown field flag: {name}")
            if name in ("valid", "invalid"):
                self._set_validity(value if name == "valid" else (None if value is None else not value))
                continue
            setattr(self, name, bool(value))
            if name in _COUNTERPARTS:
                setattr(self, _COUNTERPARTS[name], not value)
        if not self.validated:
            self.valid = None
            self.invalid = None

    def _set_validity(self, valid: bool | None) -> None:
        if valid is None:
            self.valid = None
            self.invalid = None
        else:
            self.valid = bool(valid)
            self.invalid = not valid

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class FieldOptions:
    """Descriptor used to attach a field.

    Attributes:
        name: Field name (unique within its scope unless allow_duplicate)
        rules: Rule specification, string DSL or mapping
        scope: Optional scope (form group)
        alias: Display name used in messages
        getter: Value accessor, read on demand
        initial: Validate immediately on attach
        initial_value: Starting value when no getter is supplied
        bails: Per-field bail policy (None uses the validator's fast_exit)
        events: Interaction event names, pipe separated
        rejects_false: The required rule treats False as empty
        allow_duplicate: Keep an existing field with the same name and scope
    """

    name: str
    rules: str | Mapping[str, Any] | list[RuleSpec] | None = None
    scope: str | None = None
    alias: str | None = None
    getter: Callable[[], Any] | None = None
    initial: bool = False
    initial_value: Any = None
    bails: bool | None = None
    events: str = "input"
    rejects_false: bool = False
    allow_duplicate: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FieldOptions":
        """Create FieldOptions from a dict (camelCase keys accepted)."""
        return cls(
            name=data["name"],
            rules=data.get("rules"),
            scope=data.get("scope"),
            alias=data.get("alias"),
            getter=data.get("getter"),
            initial=bool(data.get("initial", False)),
            initial_value=data.get("initial_value", data.get("initialValue")),
            bails=data.get("bails"),
            events=data.get("events", "input"),
            rejects_false=bool(data.get("rejects_false", data.get("rejectsFalse", False))),
            allow_duplicate=bool(data.get("allow_duplicate", data.get("allowDuplicate", False))),
        )


class Field:
    """One validated input."""

    def __init__(self, options: FieldOptions, registry: RuleRegistry):
        self.id = uuid.uuid4().hex
        self.registry = registry
        self.name = options.name
        self.scope = options.scope
        self._alias = options.alias
        self.getter = options.getter
        self.initial = options.initial
        self.initial_value = options.initial_value
        self.bails = options.bails
        self.events = [e for e in (options.events or "").split("|") if e]
        self.rejects_false = options.rejects_false
        self.allow_duplicate = options.allow_duplicate
        self.rules: list[RuleSpec] = self._parse(options.rules)

        self._value = options.initial_value
        self.token = 0
        self.force_required = False
        self.detached = False
        self.pending_validation = None  # asyncio.Task of an in-flight initial pass
        self.flags = FieldFlags()
        self.flags.set(**self.initial_flags())

    def __repr__(self) -> str:
        return f"Field(name={self.name!r}, scope={self.scope!r}, id={self.id!r})"

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def alias(self) -> str | None:
        return self._alias

    @property
    def display_name(self) -> str:
        return self._alias or self.name

    @property
    def qualified_name(self) -> str:
        return f"{self.scope}.{self.name}" if self.scope else self.name

    @property
    def value(self) -> Any:
        """Current value, read from the getter when one is supplied."""
        if self.getter is not None:
            return self.getter()
        return self._value

    @value.setter
    def value(self, value: Any) -> None:
        self._value = value

    @property
    def is_required(self) -> bool:
        return self.force_required or any(spec.name == "required" for spec in self.rules)

    @property
    def rule_names(self) -> list[str]:
        return [spec.name for spec in self.rules]

    # -------------------------------------------------------------------------
    # Rules and dependencies
    # -------------------------------------------------------------------------

    def _parse(self, spec: Any) -> list[RuleSpec]:
        rules = parse_rules(spec)
        if self.rejects_false:
            rules = [
                RuleSpec("required", (True,)) if r.name == "required" and not r.params else r
                for r in rules
            ]
        return rules

    def update(self, **options: Any) -> None:
        """Update rules, alias, scope, getter or bail policy in place.

        Raises:
            ConfigurationError: An option is not one of the above
        """
        unknown = sorted(set(options) - _UPDATABLE_OPTIONS)
        if unknown:
            raise ConfigurationError(f"Unknown field option(s): {', '.join(unknown)}")
        if "alias" in options:
            self._alias = options["alias"]
        if "scope" in options:
            self.scope = options["scope"]
        if "getter" in options:
            self.getter = options["getter"]
        if "bails" in options:
            self.bails = options["bails"]
        if "rules" in options:
            self.rules = self._parse(options["rules"])
            self.flags.set(required=self.is_required)

    def target_names(self) -> list[str]:
        """Names of fields referenced by this field's target rules.

        Rules not (yet) registered are skipped; they fail at validation time.
        """
        names: list[str] = []
        for spec in self.rules:
            if not self.registry.has(spec.name):
                continue
            if not self.registry.resolve(spec.name).has_target:
                continue
            params = spec.param_list
            if params and params[0] is not None and str(params[0]) not in names:
                names.append(str(params[0]))
        return names

    # -------------------------------------------------------------------------
    # Flags and state
    # -------------------------------------------------------------------------

    def initial_flags(self) -> dict[str, Any]:
        return {
            "untouched": True,
            "pristine": not self.initial,
            "validated": False,
            "pending": False,
            "required": self.is_required,
        }

    def set_flags(self, **flags: Any) -> None:
        self.flags.set(**flags)

    def bump_token(self) -> int:
        """Start a new validation run; results of older runs become stale."""
        self.token += 1
        return self.token

    def is_current(self, token: int) -> bool:
        return not self.detached and token == self.token

    def reset(self) -> None:
        """Return flags to their post-attach state and supersede in-flight runs."""
        self.bump_token()
        self.force_required = False
        self.flags = FieldFlags()
        self.flags.set(**self.initial_flags())

    def matches(self, options: Mapping[str, Any] | None) -> bool:
        """Check id/name/scope against a matcher without side effects.

        An omitted ``scope`` key matches any scope; ``scope: None`` matches
        unscoped fields only.
        """
        if not options:
            return True
        if "id" in options and options["id"] is not None:
            return self.id == options["id"]
        if "name" in options and options["name"] is not None:
            name = options["name"]
            names = name if isinstance(name, (list, tuple, set)) else [name]
            if self.name not in names:
                return False
        if "scope" in options:
            return self.scope == options["scope"]
        return True

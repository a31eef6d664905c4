"""Rule registry for fieldguard.

Provides registration and lookup for:
- Built-in rules (shipped with the engine, reserved)
- Custom rules (application-specific, registered via extend)

Registries can be layered: a Validator owns a local registry whose parent
is the shared ``default_registry``, so per-validator overrides never leak
into other validators.
"""

from dataclasses import dataclass, field
from typing import Any, Callable

from fieldguard.exceptions import ConfigurationError, UnknownRuleError

# Rule function signature: (value, params, context) -> bool | RuleOutcome | Awaitable
RuleFn = Callable[[Any, Any, Any], Any]

_FORBIDDEN_NAME_CHARS = ("|", ":", ",")


@dataclass(frozen=True)
class Rule:
    """A registered rule definition.

    Attributes:
        name: Name used in rule specifications
        validate: The predicate, sync or async
        param_names: Names bound positionally to the DSL parameters
        has_target: First parameter names another field whose value is used
        computes_required: Rule decides whether the field is required
        initial: Rule runs on attach even without interaction
        required_params: Minimum number of parameters the rule needs
    """

    name: str
    validate: RuleFn
    param_names: tuple[str, ...] = ()
    has_target: bool = False
    computes_required: bool = False
    initial: bool = False
    required_params: int = 0

    def bind_params(self, params: list[Any] | dict[str, Any]) -> list[Any] | dict[str, Any]:
        """Bind positional parameters to the declared parameter names.

        Rules that declare no names get the positional list unchanged.
        """
        if isinstance(params, dict):
            return dict(params)
        if not self.param_names:
            return list(params)
        bound: dict[str, Any] = {}
        for index, name in enumerate(self.param_names):
            bound[name] = params[index] if index < len(params) else None
        return bound

    def check_params(self, params: list[Any] | dict[str, Any]) -> None:
        """Raise ConfigurationError when fewer parameters than required are given."""
        count = len([p for p in params.values() if p is not None]) if isinstance(params, dict) else len(params)
        if count < self.required_params:
            raise ConfigurationError(
                f"Rule '{self.name}' requires {self.required_params} parameter(s), got {count}."
            )


class RuleRegistry:
    """Registry for validation rules.

    Rules must be registered before a field can reference them. Resolution
    checks the local layer first, then the parent registry.

    Example:
        registry = RuleRegistry(parent=default_registry)
        registry.extend("even", lambda value, params, ctx: int(value) % 2 == 0)

        rule = registry.resolve("even")
    """

    def __init__(self, parent: "RuleRegistry | None" = None):
        self.parent = parent
        self._rules: dict[str, Rule] = {}
        self._reserved: set[str] = set()
        self._removed: set[str] = set()

    def extend(
        self,
        name: str,
        rule: Rule | RuleFn,
        *,
        override: bool = False,
        reserved: bool = False,
        **options: Any,
    ) -> Rule:
        """Register a rule, overwriting any rule with the same name.

        Args:
            name: Rule name (case-sensitive)
            rule: A Rule, or a plain callable wrapped using ``options``
            override: Allow replacing a reserved rule
            reserved: Mark the name as reserved (used for built-ins)
            **options: param_names, has_target, computes_required, initial, required_params

        Returns:
            The registered Rule

        Raises:
            ConfigurationError: Invalid name, or reserved name without override
        """
        if not name or not isinstance(name, str) or name.strip() != name:
            raise ConfigurationError(f"Invalid rule name: {name!r}")
        if any(ch in name for ch in _FORBIDDEN_NAME_CHARS):
            raise ConfigurationError(f"Rule name '{name}' contains a reserved character.")
        if self.is_reserved(name) and not override:
            raise ConfigurationError(
                f"Rule '{name}' is a built-in rule. Pass override=True to replace it."
            )

        if isinstance(rule, Rule):
            definition = rule if rule.name == name and not options else Rule(
                name=name,
                validate=rule.validate,
                param_names=tuple(options.get("param_names", rule.param_names)),
                has_target=bool(options.get("has_target", rule.has_target)),
                computes_required=bool(options.get("computes_required", rule.computes_required)),
                initial=bool(options.get("initial", rule.initial)),
                required_params=int(options.get("required_params", rule.required_params)),
            )
        elif callable(rule):
            definition = Rule(
                name=name,
                validate=rule,
                param_names=tuple(options.get("param_names") or ()),
                has_target=bool(options.get("has_target", False)),
                computes_required=bool(options.get("computes_required", False)),
                initial=bool(options.get("initial", False)),
                required_params=int(options.get("required_params", 0)),
            )
        else:
            raise ConfigurationError(
                f"Rule '{name}' must be a Rule or a callable, got {type(rule).__name__}."
            )

        self._rules[name] = definition
        self._removed.discard(name)
        if reserved:
            self._reserved.add(name)
        return definition

    def resolve(self, name: str) -> Rule:
        """Get a registered rule by name.

        Raises:
            UnknownRuleError: If the rule is not registered in any layer
        """
        if name in self._rules:
            return self._rules[name]
        if self.parent is not None and name not in self._removed:
            return self.parent.resolve(name)
        raise UnknownRuleError(name, self.names())

    def remove(self, name: str) -> None:
        """Remove a rule. Later resolution of ``name`` fails in this layer."""
        self._rules.pop(name, None)
        self._reserved.discard(name)
        if self.parent is not None and self.parent.has(name):
            self._removed.add(name)

    def has(self, name: str) -> bool:
        """Check if a rule is resolvable."""
        if name in self._rules:
            return True
        return self.parent is not None and name not in self._removed and self.parent.has(name)

    def is_reserved(self, name: str) -> bool:
        if name in self._reserved:
            return True
        return self.parent is not None and self.parent.is_reserved(name)

    def reserve(self, name: str) -> None:
        self._reserved.add(name)

    def names(self) -> list[str]:
        """List all resolvable rule names."""
        names = set(self._rules)
        if self.parent is not None:
            names |= set(self.parent.names()) - self._removed
        return sorted(names)

    def clear(self) -> None:
        """Clear this layer's registrations. Primarily for testing."""
        self._rules.clear()
        self._reserved.clear()
        self._removed.clear()


# Shared registry for bindings that want one process-wide rule set.
# The engine never requires it; Validators accept any registry.
default_registry = RuleRegistry()


def rule(
    name: str,
    registry: RuleRegistry | None = None,
    **options: Any,
) -> Callable[[RuleFn], RuleFn]:
    """Decorator to register a rule function.

    Usage:
        @rule("even")
        def even(value, params, ctx):
            return int(value) % 2 == 0
    """

    def decorator(fn: RuleFn) -> RuleFn:
        (registry or default_registry).extend(name, fn, **options)
        return fn

    return decorator

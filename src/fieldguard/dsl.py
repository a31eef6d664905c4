"""Rule specification parser.

Two forms are accepted:

    "required|min:3|confirmed:password"
    {"required": True, "min": 3, "between": [1, 5]}

In the string form pipes separate rules, the first colon separates the
rule name from its comma-separated parameters. ``regex`` keeps everything
after the colon as a single parameter so patterns may contain commas and
colons.
"""

from typing import Any, Iterable, Mapping

from fieldguard.exceptions import ConfigurationError
from fieldguard.types import RuleSpec

# Rules whose parameter string is never split on commas
UNSPLIT_PARAM_RULES = frozenset({"regex"})


def parse_rule(segment: str) -> RuleSpec:
    """Parse a single ``name:param1,param2`` segment."""
    segment = segment.strip()
    if not segment:
        raise ConfigurationError("Empty rule in rule specification.")

    name, sep, raw_params = segment.partition(":")
    name = name.strip()
    if not name:
        raise ConfigurationError(f"Missing rule name in '{segment}'.")
    if not sep:
        return RuleSpec(name=name)
    if raw_params == "":
        raise ConfigurationError(f"Rule '{name}' has a trailing ':' without parameters.")

    if name in UNSPLIT_PARAM_RULES:
        return RuleSpec(name=name, params=(raw_params,))
    return RuleSpec(name=name, params=tuple(p.strip() for p in raw_params.split(",")))


def _parse_string(spec: str) -> list[RuleSpec]:
    if not spec.strip():
        return []
    return [parse_rule(segment) for segment in spec.split("|")]


def _parse_mapping(spec: Mapping[str, Any]) -> list[RuleSpec]:
    rules: list[RuleSpec] = []
    for name, value in spec.items():
        if not isinstance(name, str) or not name.strip():
            raise ConfigurationError(f"Invalid rule name in mapping: {name!r}")
        if value is False or value is None:
            continue  # Disabled rule
        if value is True:
            params: tuple[Any, ...] | dict[str, Any] = ()
        elif isinstance(value, Mapping):
            params = dict(value)
        elif isinstance(value, (list, tuple)):
            params = tuple(value)
        else:
            params = (value,)
        rules.append(RuleSpec(name=name, params=params))
    return rules


def parse_rules(spec: str | Mapping[str, Any] | Iterable[RuleSpec] | None) -> list[RuleSpec]:
    """Parse a rule specification into an ordered list of RuleSpec.

    Duplicate rule names keep the position of their first occurrence and
    the parameters of the last one.

    Raises:
        ConfigurationError: Malformed specification
    """
    if spec is None:
        return []
    if isinstance(spec, str):
        parsed = _parse_string(spec)
    elif isinstance(spec, Mapping):
        parsed = _parse_mapping(spec)
    else:
        try:
            parsed = list(spec)
        except TypeError:
            raise ConfigurationError(
                f"Unsupported rule specification type: {type(spec).__name__}"
            ) from None
        for item in parsed:
            if not isinstance(item, RuleSpec):
                raise ConfigurationError(f"Expected RuleSpec, got {type(item).__name__}")

    ordered: dict[str, RuleSpec] = {}
    for item in parsed:
        ordered[item.name] = item
    return list(ordered.values())


def format_rules(rules: Iterable[RuleSpec]) -> str:
    """Render rules back to the string form (used in logs and the CLI)."""
    parts = []
    for item in rules:
        params = item.param_list
        if params:
            parts.append(f"{item.name}:{','.join(str(p) for p in params)}")
        else:
            parts.append(item.name)
    return "|".join(parts)

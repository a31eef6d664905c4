"""Built-in rules for fieldguard.

These are ready-to-use rules that ship with the engine. They are
registered as reserved names: replacing one requires ``override=True``.

Available rules:
- required, required_if: presence checks (required_if computes required)
- confirmed: value equals another field's value
- is, is_not: value equals / differs from a literal
- min, max, length: string or list length bounds
- min_value, max_value, between: numeric bounds
- numeric, integer, decimal, digits: number formats
- alpha, alpha_num, alpha_dash: character classes
- email, url, regex: pattern checks
- included (oneOf), excluded (notOneOf): membership
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any

from fieldguard.registry import RuleRegistry, default_registry
from fieldguard.types import RuleContext, RuleOutcome

# Email: Basic RFC 5322 compliant pattern
EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

# URL: Basic URL pattern
URL_PATTERN = re.compile(r"^https?://[^\s/$.?#].[^\s]*$", re.IGNORECASE)

NUMERIC_PATTERN = re.compile(r"^[0-9]+$")
INTEGER_PATTERN = re.compile(r"^-?[0-9]+$")
ALPHA_DASH_EXTRA = frozenset("-_")


# =============================================================================
# Helpers
# =============================================================================


def is_empty(value: Any) -> bool:
    """Check if a value is considered empty for validation purposes."""
    if value is None:
        return True
    if isinstance(value, str) and value == "":
        return True
    if isinstance(value, (list, tuple, set, dict)) and len(value) == 0:
        return True
    return False


def _to_number(value: Any) -> Decimal | None:
    if isinstance(value, bool):
        return None
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def _each(value: Any, check) -> bool:
    """Apply a string check to a scalar or to every item of a list."""
    if isinstance(value, (list, tuple)):
        return all(check(item) for item in value)
    return check(value)


def _length(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, (list, tuple, set, dict, str)):
        return len(value)
    return len(str(value))


# =============================================================================
# Presence
# =============================================================================


def required(value: Any, params: list[Any], ctx: RuleContext) -> bool:
    """Value must be non-empty. With a truthy first param, False is rejected too."""
    invalidate_false = bool(params[0]) if params else False
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) > 0
    if value is None:
        return False
    if value is False and invalidate_false:
        return False
    return bool(str(value).strip())


def required_if(value: Any, params: list[Any], ctx: RuleContext) -> RuleOutcome:
    """Required when the target field's value is one of the given values.

    With no values listed, required whenever the target is non-empty.
    """
    target_value, *possible = params if params else [None]
    if possible:
        is_required = str(target_value).strip() in {str(p).strip() for p in possible}
    else:
        is_required = not is_empty(target_value)

    if not is_required:
        return RuleOutcome(valid=True, data={"required": False})
    return RuleOutcome(
        valid=required(value, [True], ctx),
        data={"required": True},
    )


# =============================================================================
# Comparison
# =============================================================================


def confirmed(value: Any, params: dict[str, Any], ctx: RuleContext) -> bool:
    return str(value) == str(params.get("target"))


def is_rule(value: Any, params: dict[str, Any], ctx: RuleContext) -> bool:
    return str(value) == str(params.get("other"))


def is_not(value: Any, params: dict[str, Any], ctx: RuleContext) -> bool:
    return str(value) != str(params.get("other"))


def included(value: Any, params: list[Any], ctx: RuleContext) -> bool:
    allowed = {str(p) for p in params}
    return _each(value, lambda item: str(item) in allowed)


def excluded(value: Any, params: list[Any], ctx: RuleContext) -> bool:
    disallowed = {str(p) for p in params}
    return _each(value, lambda item: str(item) not in disallowed)


# =============================================================================
# Length and numeric bounds
# =============================================================================


def min_length(value: Any, params: dict[str, Any], ctx: RuleContext) -> bool:
    length = _length(value)
    return length is not None and length >= _to_int(params.get("length"))


def max_length(value: Any, params: dict[str, Any], ctx: RuleContext) -> bool:
    length = _length(value)
    if length is None:
        return True
    return length <= _to_int(params.get("length"))


def length(value: Any, params: dict[str, Any], ctx: RuleContext) -> bool:
    """Exact length, or a range when ``max`` is given."""
    size = _length(value)
    if size is None:
        return False
    low = _to_int(params.get("length"))
    high = params.get("max")
    if high is None:
        return size == low
    return low <= size <= _to_int(high)


def min_value(value: Any, params: dict[str, Any], ctx: RuleContext) -> bool:
    number, bound = _to_number(value), _to_number(params.get("min"))
    return number is not None and bound is not None and number >= bound


def max_value(value: Any, params: dict[str, Any], ctx: RuleContext) -> bool:
    number, bound = _to_number(value), _to_number(params.get("max"))
    return number is not None and bound is not None and number <= bound


def between(value: Any, params: dict[str, Any], ctx: RuleContext) -> bool:
    number = _to_number(value)
    low, high = _to_number(params.get("min")), _to_number(params.get("max"))
    if number is None or low is None or high is None:
        return False
    return low <= number <= high


# =============================================================================
# Formats
# =============================================================================


def numeric(value: Any, params: list[Any], ctx: RuleContext) -> bool:
    return _each(value, lambda item: bool(NUMERIC_PATTERN.match(str(item))))


def integer(value: Any, params: list[Any], ctx: RuleContext) -> bool:
    return _each(value, lambda item: bool(INTEGER_PATTERN.match(str(item))))


def decimal(value: Any, params: dict[str, Any], ctx: RuleContext) -> bool:
    """Decimal number with an optional fixed count of decimals ("*" means any)."""
    decimals = params.get("decimals") or "*"
    separator = params.get("separator") or "."
    quantifier = "+" if decimals == "*" else "{1,%d}" % _to_int(decimals)
    pattern = re.compile(
        r"^[-+]?\d*(%s\d%s)?([eE][-+]?\d+)?$" % (re.escape(separator), quantifier)
    )

    def check(item: Any) -> bool:
        text = str(item)
        return text not in ("", "-", "+") and bool(pattern.match(text))

    return _each(value, check)


def digits(value: Any, params: dict[str, Any], ctx: RuleContext) -> bool:
    size = _to_int(params.get("length"))
    return _each(
        value,
        lambda item: bool(NUMERIC_PATTERN.match(str(item))) and len(str(item)) == size,
    )


def alpha(value: Any, params: list[Any], ctx: RuleContext) -> bool:
    return _each(value, lambda item: str(item).isalpha())


def alpha_num(value: Any, params: list[Any], ctx: RuleContext) -> bool:
    return _each(value, lambda item: str(item).isalnum())


def alpha_dash(value: Any, params: list[Any], ctx: RuleContext) -> bool:
    return _each(
        value,
        lambda item: bool(str(item)) and all(ch.isalnum() or ch in ALPHA_DASH_EXTRA for ch in str(item)),
    )


def email(value: Any, params: list[Any], ctx: RuleContext) -> bool:
    return _each(value, lambda item: bool(EMAIL_PATTERN.match(str(item).strip())))


def url(value: Any, params: list[Any], ctx: RuleContext) -> bool:
    return _each(value, lambda item: bool(URL_PATTERN.match(str(item))))


def regex(value: Any, params: dict[str, Any], ctx: RuleContext) -> bool:
    pattern = params.get("expression")
    if pattern is None:
        return False
    compiled = pattern if isinstance(pattern, re.Pattern) else re.compile(str(pattern))
    return _each(value, lambda item: compiled.search(str(item)) is not None)


# =============================================================================
# Registration
# =============================================================================


def register_builtin_rules(registry: RuleRegistry | None = None) -> RuleRegistry:
    """Register all built-in rules as reserved names.

    Safe to call more than once on the same registry.

    Args:
        registry: Target registry (defaults to the shared default_registry)

    Returns:
        The registry the rules were registered on
    """
    registry = registry or default_registry

    def add(name: str, fn, **options: Any) -> None:
        registry.extend(name, fn, override=True, reserved=True, **options)

    add("required", required)
    add("required_if", required_if, has_target=True, computes_required=True, required_params=1)
    add("confirmed", confirmed, param_names=("target",), has_target=True, required_params=1)
    add("is", is_rule, param_names=("other",), required_params=1)
    add("is_not", is_not, param_names=("other",), required_params=1)
    add("included", included, required_params=1)
    add("oneOf", included, required_params=1)
    add("excluded", excluded, required_params=1)
    add("notOneOf", excluded, required_params=1)
    add("min", min_length, param_names=("length",), required_params=1)
    add("max", max_length, param_names=("length",), required_params=1)
    add("length", length, param_names=("length", "max"), required_params=1)
    add("min_value", min_value, param_names=("min",), required_params=1)
    add("max_value", max_value, param_names=("max",), required_params=1)
    add("between", between, param_names=("min", "max"), required_params=2)
    add("numeric", numeric)
    add("integer", integer)
    add("decimal", decimal, param_names=("decimals", "separator"))
    add("digits", digits, param_names=("length",), required_params=1)
    add("alpha", alpha)
    add("alpha_num", alpha_num)
    add("alpha_dash", alpha_dash)
    add("email", email)
    add("url", url)
    add("regex", regex, param_names=("expression",), required_params=1)
    return registry

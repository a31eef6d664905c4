"""fieldguard: a declarative field validation engine.

This package validates named values (form fields) against named,
composable rules and tracks per-field interaction state:
- RuleRegistry: named rule definitions (built-ins are reserved)
- Field / FieldBag: per-input validation units and their index
- ErrorBag: ordered, structured error collection
- DependencyGraph: cross-field references and revalidation cascades
- Validator: the orchestrator

Usage:
    from fieldguard import Validator, register_builtin_rules

    # At application startup
    register_builtin_rules()

    validator = Validator()
    validator.attach(name="password", rules="required|min:8")
    validator.attach(name="confirm", rules="confirmed:password")
    await validator.change("password", "secret123")
"""

from fieldguard.config import ValidatorConfig
from fieldguard.dsl import format_rules, parse_rules
from fieldguard.error_bag import ErrorBag
from fieldguard.exceptions import (
    ConfigurationError,
    DuplicateFieldError,
    FieldguardError,
    FieldNotFoundError,
    UnknownRuleError,
)
from fieldguard.field import Field, FieldFlags, FieldOptions
from fieldguard.field_bag import FieldBag
from fieldguard.graph import DependencyGraph
from fieldguard.messages import Dictionary, MessageProvider
from fieldguard.pipeline import PassResult, RuleRunner, RunRequest
from fieldguard.registry import Rule, RuleRegistry, default_registry, rule
from fieldguard.rules import register_builtin_rules
from fieldguard.types import (
    MISSING,
    FieldError,
    RuleContext,
    RuleOutcome,
    RuleSpec,
    VerifyResult,
)
from fieldguard.validator import Validator

__all__ = [
    # Types
    "MISSING",
    "FieldError",
    "RuleContext",
    "RuleOutcome",
    "RuleSpec",
    "VerifyResult",
    # Errors
    "ConfigurationError",
    "DuplicateFieldError",
    "FieldguardError",
    "FieldNotFoundError",
    "UnknownRuleError",
    # Registry
    "Rule",
    "RuleRegistry",
    "default_registry",
    "rule",
    "register_builtin_rules",
    # Rule specifications
    "format_rules",
    "parse_rules",
    # State
    "DependencyGraph",
    "ErrorBag",
    "Field",
    "FieldBag",
    "FieldFlags",
    "FieldOptions",
    # Execution
    "PassResult",
    "RuleRunner",
    "RunRequest",
    "Validator",
    "ValidatorConfig",
    # Messages
    "Dictionary",
    "MessageProvider",
]

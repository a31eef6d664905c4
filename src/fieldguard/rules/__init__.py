"""Built-in rules for fieldguard.

This module provides the stock rule set that can be referenced from
rule specifications once registered.
"""

from fieldguard.rules.builtins import (
    EMAIL_PATTERN,
    URL_PATTERN,
    is_empty,
    register_builtin_rules,
)

__all__ = [
    "EMAIL_PATTERN",
    "URL_PATTERN",
    "is_empty",
    "register_builtin_rules",
]

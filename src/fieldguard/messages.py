"""Message lookup for failed rules.

The engine only consumes the MessageProvider protocol. Dictionary is the
default provider: a per-locale store of message templates, attribute
(display) names and field-specific overrides, loadable from YAML.

Templates are ``str.format`` strings. Available placeholders:
- {field}: display name of the field
- {0}, {1}, ...: positional rule parameters
- {length}, {min}, ...: named rule parameters
A template may also be a callable ``(field, params, data) -> str``.
"""

import logging
import string
from pathlib import Path
from typing import Any, Callable, Mapping, Protocol

import yaml

logger = logging.getLogger(__name__)

MessageGenerator = Callable[[str, Any, Mapping[str, Any]], str]

DEFAULT_LOCALE = "en"

DEFAULT_MESSAGES: dict[str, str] = {
    "_default": "The {field} value is not valid.",
    "required": "The {field} field is required.",
    "required_if": "The {field} field is required.",
    "confirmed": "The {field} confirmation does not match.",
    "is": "The {field} value is not valid.",
    "is_not": "The {field} value is not valid.",
    "included": "The {field} field must be a valid value.",
    "oneOf": "The {field} field must be a valid value.",
    "excluded": "The {field} field must be a valid value.",
    "notOneOf": "The {field} field must be a valid value.",
    "min": "The {field} field must be at least {length} characters.",
    "max": "The {field} field may not be greater than {length} characters.",
    "length": "The {field} length must be {length}.",
    "min_value": "The {field} field must be {min} or more.",
    "max_value": "The {field} field must be {max} or less.",
    "between": "The {field} field must be between {min} and {max}.",
    "numeric": "The {field} field may only contain numeric characters.",
    "integer": "The {field} field must be an integer.",
    "decimal": "The {field} field must be numeric and may contain decimal points.",
    "digits": "The {field} field must be numeric and exactly contain {length} digits.",
    "alpha": "The {field} field may only contain alphabetic characters.",
    "alpha_num": "The {field} field may only contain alpha-numeric characters.",
    "alpha_dash": "The {field} field may contain alpha-numeric characters as well as dashes and underscores.",
    "email": "The {field} field must be a valid email.",
    "url": "The {field} field is not a valid URL.",
    "regex": "The {field} field format is invalid.",
}


class MessageProvider(Protocol):
    """Protocol for resolving the message of a failed rule.

    Implementations are free to use any localisation backend.
    """

    def get_message(
        self,
        locale: str,
        rule: str,
        field: str,
        alias: str | None,
        params: Any,
        data: Mapping[str, Any],
    ) -> str:
        """Build the message for ``rule`` failing on ``field``.

        Args:
            locale: Active locale code
            rule: Failed rule name
            field: Field name
            alias: Field alias, if any
            params: Rule parameters (target parameters carry display names)
            data: Extra data returned by the rule

        Returns:
            The message text
        """
        ...


class _MessageFormatter(string.Formatter):
    """Formatter that leaves unknown placeholders untouched."""

    def get_value(self, key: int | str, args: Any, kwargs: Mapping[str, Any]) -> Any:
        if isinstance(key, int):
            return args[key] if key < len(args) else "{%d}" % key
        return kwargs.get(key, "{" + key + "}")


_formatter = _MessageFormatter()


class Dictionary:
    """Default MessageProvider backed by per-locale dictionaries.

    Structure:
        {
            "en": {
                "messages": {"required": "The {field} field is required."},
                "attributes": {"email": "E-mail address"},
                "custom": {"email": {"required": "We need your e-mail."}},
            }
        }
    """

    def __init__(self, dictionary: Mapping[str, Any] | None = None, fallback_locale: str = DEFAULT_LOCALE):
        self.fallback_locale = fallback_locale
        self.container: dict[str, dict[str, dict[str, Any]]] = {
            DEFAULT_LOCALE: {"messages": dict(DEFAULT_MESSAGES), "attributes": {}, "custom": {}},
        }
        if dictionary:
            self.merge(dictionary)

    @classmethod
    def from_yaml(cls, path: Path | str) -> "Dictionary":
        """Load locales from a YAML file shaped like the structure above."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Message file {path} must contain a mapping of locales.")
        return cls(data)

    def merge(self, dictionary: Mapping[str, Any]) -> None:
        """Deep-merge locales into the container."""
        for locale, sections in dictionary.items():
            target = self.container.setdefault(
                locale, {"messages": {}, "attributes": {}, "custom": {}}
            )
            for section, values in (sections or {}).items():
                if section == "custom":
                    for field, rules in (values or {}).items():
                        target["custom"].setdefault(field, {}).update(rules or {})
                else:
                    target.setdefault(section, {}).update(values or {})

    def has_locale(self, locale: str) -> bool:
        return locale in self.container

    def set_message(self, locale: str, rule: str, message: str | MessageGenerator) -> None:
        self.merge({locale: {"messages": {rule: message}}})

    def set_attribute(self, locale: str, field: str, name: str) -> None:
        self.merge({locale: {"attributes": {field: name}}})

    def get_attribute(self, locale: str, field: str) -> str | None:
        for code in (locale, self.fallback_locale):
            name = self.container.get(code, {}).get("attributes", {}).get(field)
            if name:
                return name
        return None

    def _lookup(self, locale: str, section: str, key: str, field: str | None = None) -> Any:
        for code in (locale, self.fallback_locale):
            values = self.container.get(code, {}).get(section, {})
            if field is not None:
                values = values.get(field, {})
            if key in values:
                return values[key]
        return None

    def get_message(
        self,
        locale: str,
        rule: str,
        field: str,
        alias: str | None,
        params: Any,
        data: Mapping[str, Any],
    ) -> str:
        display = alias or self.get_attribute(locale, field) or field
        template = (
            self._lookup(locale, "custom", rule, field=field)
            or self._lookup(locale, "messages", rule)
            or self._lookup(locale, "messages", "_default")
            or DEFAULT_MESSAGES["_default"]
        )
        if callable(template):
            return template(display, params, data)
        return self._format(template, display, params, data)

    def _format(self, template: str, display: str, params: Any, data: Mapping[str, Any]) -> str:
        args: dict[str, Any] = dict(data or {})
        if isinstance(params, Mapping):
            positional = ["" if v is None else v for v in params.values()]
            args.update({k: "" if v is None else v for k, v in params.items()})
        else:
            positional = ["" if v is None else v for v in (params or [])]
        args["field"] = display
        try:
            return _formatter.vformat(template, positional, args)
        except (IndexError, ValueError, AttributeError) as e:
            logger.debug("Could not format message template %r: %s", template, e)
            return template


"""Validator configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping

import yaml

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_VALUES
    return bool(value)


@dataclass
class ValidatorConfig:
    """Validator configuration.

    Attributes:
        fast_exit: Default bail policy, stop at the first synchronous failure
        locale: Active message locale
        strict_fields: Raise DuplicateFieldError instead of replacing duplicates
        events: Default interaction event names for attached fields
        messages_path: Optional YAML file merged into the message dictionary
    """

    fast_exit: bool = True
    locale: str = "en"
    strict_fields: bool = False
    events: str = "input"
    messages_path: Path | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ValidatorConfig:
        """Create config from a dict (camelCase keys accepted)."""
        aliases = {
            "fastExit": "fast_exit",
            "strictFields": "strict_fields",
            "messagesPath": "messages_path",
        }
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in data.items():
            key = aliases.get(key, key)
            if key not in known:
                raise ValueError(f"Unknown configuration option: {key}")
            values[key] = value

        config = cls(**values)
        config.fast_exit = _as_bool(config.fast_exit)
        config.strict_fields = _as_bool(config.strict_fields)
        if config.messages_path is not None:
            config.messages_path = Path(config.messages_path)
        return config

    @classmethod
    def from_yaml(cls, path: Path | str) -> ValidatorConfig:
        """Load config from a YAML file, optionally nested under ``fieldguard:``."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if "fieldguard" in data:
            data = data["fieldguard"] or {}
        config = cls.from_dict(data)
        if config.messages_path is not None and not config.messages_path.is_absolute():
            config.messages_path = Path(path).parent / config.messages_path
        return config

    @classmethod
    def from_env(cls) -> ValidatorConfig:
        """Create config from environment variables.

        Reads FIELDGUARD_FAST_EXIT, FIELDGUARD_LOCALE, FIELDGUARD_STRICT_FIELDS
        and FIELDGUARD_MESSAGES; unset variables keep their defaults.
        """
        data: dict[str, Any] = {}
        if "FIELDGUARD_FAST_EXIT" in os.environ:
            data["fast_exit"] = os.environ["FIELDGUARD_FAST_EXIT"]
        if os.environ.get("FIELDGUARD_LOCALE"):
            data["locale"] = os.environ["FIELDGUARD_LOCALE"]
        if "FIELDGUARD_STRICT_FIELDS" in os.environ:
            data["strict_fields"] = os.environ["FIELDGUARD_STRICT_FIELDS"]
        if os.environ.get("FIELDGUARD_MESSAGES"):
            data["messages_path"] = os.environ["FIELDGUARD_MESSAGES"]
        return cls.from_dict(data)

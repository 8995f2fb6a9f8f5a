"""
Validator configuration.

Two layers, highest priority first:
- ValidatorOptions: rules and messages passed to one Validator
- Default rule registry: process-level table seeded from default_rules,
  extendable with register_default_rule()

The registry is read when a Validator resolves its rules, so registering a
rule only affects Validators constructed afterwards.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from fieldstate.default_rules import DEFAULT_RULE_NAME, DEFAULT_RULES
from fieldstate.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


# Registry of named rules: name -> {'rule': ..., 'message': ...}
_default_rules: Dict[str, Dict[str, Any]] = {name: dict(entry) for name, entry in DEFAULT_RULES.items()}


def register_default_rule(name: str, rule: Any, message: Optional[str] = None) -> None:
    """Make ``rule`` available by ``name`` to every Validator built afterwards.

    Args:
        name: Rule name used in field validations
        rule: Compiled regular expression or callable(value, settle)
        message: Message shown when the rule fails
    """
    if name == DEFAULT_RULE_NAME:
        raise ConfigurationError(f"'{DEFAULT_RULE_NAME}' only holds the fallback message")
    if name in _default_rules:
        logger.warning(f"Overwriting default rule: {name}")
    entry: Dict[str, Any] = {'rule': rule}
    if message is not None:
        entry['message'] = message
    _default_rules[name] = entry


def unregister_default_rule(name: str) -> None:
    """Remove a registered rule; built-in rules fall back to their original entry."""
    _default_rules.pop(name, None)
    if name in DEFAULT_RULES:
        _default_rules[name] = dict(DEFAULT_RULES[name])


def get_default_rules() -> Dict[str, Dict[str, Any]]:
    """Current default rule table (a copy)."""
    return {name: dict(entry) for name, entry in _default_rules.items()}


def get_fallback_message() -> str:
    return _default_rules[DEFAULT_RULE_NAME]['message']


def set_fallback_message(message: str) -> None:
    _default_rules[DEFAULT_RULE_NAME] = {'message': message}


@dataclass(frozen=True)
class ValidatorOptions:
    """Per-Validator overrides of the default rule table.

    rules: name -> compiled regular expression or callable
    messages: rule name -> message
    """
    rules: Dict[str, Any] = field(default_factory=dict)
    messages: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_value(cls, value: Any) -> 'ValidatorOptions':
        """Normalise None, a mapping {'rules', 'messages'} or an instance."""
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        if isinstance(value, Mapping):
            unknown = set(value) - {'rules', 'messages'}
            if unknown:
                raise ConfigurationError(f"Unknown validator options: {sorted(unknown)}")
            return cls(
                rules=dict(value.get('rules') or {}),
                messages=dict(value.get('messages') or {}),
            )
        raise ConfigurationError(f"Options must be a mapping, got {type(value).__name__}")

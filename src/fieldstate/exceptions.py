"""
Exception classes for fieldstate.

Configuration problems are raised synchronously while a Validator is being
built. Failed validation rules are never exceptions: they show up as
``is_invalid`` plus messages in the field state.
"""

from typing import Any


class FieldStateError(Exception):
    """Base exception for all fieldstate errors."""

    pass


class ConfigurationError(FieldStateError):
    """Raised when a Validator is constructed with missing or malformed arguments."""

    pass


class UnknownRuleError(ConfigurationError):
    """Raised when a named rule is neither in the instance options nor the default table."""

    def __init__(self, rule_name: str):
        self.rule_name = rule_name
        super().__init__(
            f'Rule: "{rule_name}" is not available. You need to add it as an option.'
        )


class InvalidRuleTypeError(ConfigurationError):
    """Raised when a rule is not (or does not point to) a regular expression or a callable."""

    def __init__(self, rule: Any, rule_name: str = None):
        self.rule = rule
        self.rule_name = rule_name
        where = f' (resolved from "{rule_name}")' if rule_name else ''
        super().__init__(
            f"Rule {rule!r}{where} is not (or does not point to) a regular expression or a callable."
        )


class UnknownFieldError(FieldStateError, KeyError):
    """Raised when a facade operation addresses a path that is not a field."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"No field at path '{path}'")

    def __str__(self) -> str:
        return self.args[0]


class StoreError(FieldStateError):
    """Base exception for observable store failures."""

    pass


class EntityExistsError(StoreError):
    """Raised when adding an entity under an identifier that is already taken."""

    def __init__(self, collection: str, entity_id: str):
        self.collection = collection
        self.entity_id = entity_id
        super().__init__(f"Entity '{entity_id}' already exists in '{collection}'")

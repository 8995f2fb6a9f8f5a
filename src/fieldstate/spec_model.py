"""
Field spec dataclasses.

Authors describe fields with plain mappings:

    {
        'default': '',
        'group': 'contact',
        'validations': [{'rule': 'required'}, {'rule': 'email', 'message': 'Bad email'}],
    }

These are normalised into immutable FieldSpec / ValidationSpec instances.
Design Philosophy: Correct by Construction
- Frozen dataclasses, tuples instead of lists
- Unknown keys rejected up front
"""

import copy
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from fieldstate.exceptions import ConfigurationError

DEFAULT_GROUP = 'default'

_FIELD_KEYS = {'default', 'group', 'validations'}
_VALIDATION_KEYS = {'rule', 'message'}


@dataclass(frozen=True)
class ValidationSpec:
    """One validation of a field: a rule reference and an optional message."""
    rule: Any
    message: Optional[str] = None

    @classmethod
    def from_value(cls, value: Any) -> 'ValidationSpec':
        if isinstance(value, cls):
            return value
        if not isinstance(value, Mapping):
            raise ConfigurationError(f"Validation must be a mapping with a 'rule', got {value!r}")
        unknown = set(value) - _VALIDATION_KEYS
        if unknown:
            raise ConfigurationError(f"Unknown validation keys: {sorted(unknown)}")
        if 'rule' not in value:
            raise ConfigurationError(f"Validation is missing its 'rule': {dict(value)!r}")
        return cls(rule=value['rule'], message=value.get('message'))


@dataclass(frozen=True)
class FieldSpec:
    """Immutable author-supplied description of one field."""
    default: Any = None
    group: str = DEFAULT_GROUP
    validations: Tuple[ValidationSpec, ...] = field(default_factory=tuple)

    @property
    def has_validations(self) -> bool:
        return bool(self.validations)

    def with_default(self, default: Any) -> 'FieldSpec':
        return FieldSpec(default=default, group=self.group, validations=self.validations)

    def initial_value(self) -> Any:
        """Fresh copy of the default so mutable defaults are never shared."""
        return copy.deepcopy(self.default)

    @classmethod
    def from_value(cls, value: Any) -> 'FieldSpec':
        """Normalise None, a mapping or an existing FieldSpec."""
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        if not isinstance(value, Mapping):
            raise ConfigurationError(f"Field spec must be a mapping, got {type(value).__name__}")
        unknown = set(value) - _FIELD_KEYS
        if unknown:
            raise ConfigurationError(f"Unknown field spec keys: {sorted(unknown)}")

        group = value.get('group') or DEFAULT_GROUP
        if not isinstance(group, str) or '.' in group:
            raise ConfigurationError(f"Group name must be a string without dots, got {group!r}")

        validations = value.get('validations') or ()
        if isinstance(validations, (str, bytes, Mapping)) or not isinstance(validations, Iterable):
            raise ConfigurationError(f"'validations' must be a list, got {validations!r}")

        return cls(
            default=value.get('default'),
            group=group,
            validations=tuple(ValidationSpec.from_value(v) for v in validations),
        )


def normalize_fields(fields: Any, defaults: Optional[Mapping] = None) -> Dict[str, FieldSpec]:
    """Turn the author's field collection into path -> FieldSpec.

    Args:
        fields: Mapping path -> spec, or an iterable of paths (empty specs)
        defaults: Mapping path -> default value, merged into the specs

    Returns:
        Ordered dict of FieldSpec keyed by dotted path
    """
    specs: Dict[str, FieldSpec] = {}
    if isinstance(fields, Mapping):
        for path, value in fields.items():
            specs[str(path)] = FieldSpec.from_value(value)
    elif fields is not None:
        if isinstance(fields, (str, bytes)) or not isinstance(fields, Iterable):
            raise ConfigurationError(f"Fields must be a mapping or a list of paths, got {fields!r}")
        for path in fields:
            specs[str(path)] = FieldSpec()

    for path, default in (defaults or {}).items():
        path = str(path)
        specs[path] = specs.get(path, FieldSpec()).with_default(default)
    return specs

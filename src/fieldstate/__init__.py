"""
Reactive field validation for path-addressed observable stores.

fieldstate keeps a field state tree for a form inside an observable store,
runs declarative validation rules against it and reconciles the verified
values back into an origin.

Key Features:
- Named, regular-expression and callable rules, resolved at construction
- Deferred rules with per-field serials discarding stale results
- Group validity and changed-field tracking kept current on every mutation
- Nested dotted-path fields reconciled against an origin for reset/commit

Quick Start:
    >>> from fieldstate import ObservableStore, Validator
    >>> store = ObservableStore({'users': {'1': {'id': '1', 'email': ''}}})
    >>> validator = Validator(
    ...     store.scope('_page.form'),
    ...     'users.1',
    ...     {'email': {'validations': [{'rule': 'required'}, {'rule': 'email'}]}},
    ... )
    >>> validator.set_value('email', 'someone@example.com')
    >>> validator.commit().result()
    True

Modules:
    - validator: Validator facade, FieldProxy/FieldHandle access
    - validation: Validation rounds and the engine running them
    - rules: Rule resolution (named / pattern / callable)
    - groups: Group validity aggregation
    - changes: Change tracking against the setup baseline
    - origin: Origin setup and commit
    - field_tree: Dotted path <-> nested tree codec
    - store: In-memory observable store
    - config: Validator options and the default rule registry
"""

from fieldstate.config import (
    ValidatorOptions,
    register_default_rule,
    unregister_default_rule,
    get_default_rules,
    get_fallback_message,
    set_fallback_message,
)
from fieldstate.exceptions import (
    FieldStateError,
    ConfigurationError,
    UnknownRuleError,
    InvalidRuleTypeError,
    UnknownFieldError,
    StoreError,
    EntityExistsError,
)
from fieldstate.field_tree import build_field_tree, iter_leaves, project_nested
from fieldstate.rules import RuleKind, ResolvedRule, resolve_rule
from fieldstate.spec_model import FieldSpec, ValidationSpec
from fieldstate.store import ObservableStore
from fieldstate.validation import ValidationEngine, ValidationRound
from fieldstate.validator import Validator, FieldHandle, FieldProxy

__all__ = [
    # Facade
    'Validator',
    'FieldHandle',
    'FieldProxy',
    # Spec model
    'FieldSpec',
    'ValidationSpec',
    # Rules
    'RuleKind',
    'ResolvedRule',
    'resolve_rule',
    # Engine
    'ValidationEngine',
    'ValidationRound',
    # Field tree codec
    'build_field_tree',
    'iter_leaves',
    'project_nested',
    # Store
    'ObservableStore',
    # Configuration
    'ValidatorOptions',
    'register_default_rule',
    'unregister_default_rule',
    'get_default_rules',
    'get_fallback_message',
    'set_fallback_message',
    # Errors
    'FieldStateError',
    'ConfigurationError',
    'UnknownRuleError',
    'InvalidRuleTypeError',
    'UnknownFieldError',
    'StoreError',
    'EntityExistsError',
]

__version__ = '1.0.0'
__description__ = 'Reactive field validation for path-addressed observable stores'

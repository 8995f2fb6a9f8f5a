"""
Validator: field state, validation and origin reconciliation for one form.

A Validator owns a store scope (the model). For every field it keeps a state
mapping under the field's dotted path:

    model.get('email') -> {'value': 'a@b.c', 'is_valid': True, 'is_invalid': False,
                           'messages': [], 'has_changed': True, 'serial': 3}

plus scope-wide flags ('groups.<name>.is_valid', 'has_invalid_fields',
'has_changed_fields'). Values are edited through the store (or set_value());
a change subscription keeps the derived flags current.

Lifecycle: Created once per form/session, reset() returns to the origin
baseline, commit() writes back, close() drops the store subscription.
"""

import copy
import logging
from collections.abc import Mapping
from concurrent.futures import Future
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from fieldstate.changes import ChangeTracker
from fieldstate.config import ValidatorOptions, get_fallback_message
from fieldstate.exceptions import ConfigurationError, UnknownFieldError
from fieldstate.field_tree import build_field_tree, project_nested
from fieldstate.groups import GroupAggregator
from fieldstate.origin import OriginSynchronizer, is_reserved_path, resolve_origin
from fieldstate.rules import ResolvedRule, resolve_rule
from fieldstate.spec_model import FieldSpec, normalize_fields
from fieldstate.validation import ValidationEngine, resolved_future

logger = logging.getLogger(__name__)

ResultCallback = Callable[[bool], None]


def _is_store(value: Any) -> bool:
    return callable(getattr(value, 'path', None))


def _field_value(path: str, state: Any) -> Any:
    return copy.deepcopy(state.get('value')) if isinstance(state, Mapping) else None


class FieldHandle:
    """View onto one field's state in the Validator's model."""

    def __init__(self, validator: 'Validator', path: str):
        self.validator = validator
        self.path = path

    def __repr__(self) -> str:
        return f"FieldHandle({self.path!r}, value={self.value!r})"

    def _get(self, key: str) -> Any:
        return self.validator.model.get(f'{self.path}.{key}')

    @property
    def value(self) -> Any:
        return self._get('value')

    @property
    def is_valid(self) -> bool:
        return bool(self._get('is_valid'))

    @property
    def is_invalid(self) -> bool:
        return bool(self._get('is_invalid'))

    @property
    def is_validating(self) -> bool:
        return bool(self._get('is_validating'))

    @property
    def messages(self) -> List[str]:
        return list(self._get('messages') or [])

    @property
    def invalid_at(self) -> Any:
        return self._get('invalid_at')

    @property
    def has_changed(self) -> bool:
        return bool(self._get('has_changed'))

    @property
    def spec(self) -> Optional[FieldSpec]:
        """Declared spec, None for fields taken implicitly from the origin."""
        return self.validator.specs.get(self.path)

    def set(self, value: Any) -> None:
        self.validator.set_value(self.path, value)

    def validate(self, callback: Optional[ResultCallback] = None) -> Future:
        return self.validator.validate(self.path, callback)

    def set_invalid(self, message: Optional[str] = None) -> None:
        self.validator.set_invalid(self.path, message)


class FieldProxy:
    """Dotted attribute access to fields.

    Provides navigation matching the nested value shape:
    - External API: validator.fields.c.d.f.value
    - Internal: model.get('c.d.f.value')
    Intermediate segments return FieldProxy, field paths return FieldHandle.
    """

    def __init__(self, validator: 'Validator', path: str):
        object.__setattr__(self, '_validator', validator)
        object.__setattr__(self, '_path', path)

    def _child(self, name: str) -> Any:
        new_path = f'{self._path}.{name}' if self._path else name
        paths = self._validator.field_paths
        if new_path in paths:
            return FieldHandle(self._validator, new_path)
        if any(path.startswith(f'{new_path}.') for path in paths):
            return FieldProxy(self._validator, new_path)
        raise AttributeError(f"No field or field group at '{new_path}'")

    def __getattr__(self, name: str) -> Any:
        if name.startswith('__'):
            raise AttributeError(name)
        return self._child(name)

    def __getitem__(self, name: str) -> Any:
        try:
            return self._child(str(name))
        except AttributeError as e:
            raise KeyError(name) from e

    def __dir__(self) -> List[str]:
        prefix = f'{self._path}.' if self._path else ''
        return sorted({path[len(prefix):].split('.', 1)[0]
                       for path in self._validator.field_paths if path.startswith(prefix)})

    def __setattr__(self, name: str, value: Any) -> None:
        """Prevent attribute setting - use validator.set_value() instead."""
        _ = (name, value)
        raise AttributeError("FieldProxy is read-only. Use validator.set_value(path, value) to set values.")


class Validator:
    """Validates and reconciles a form's fields against an origin.

    Args:
        model: Store scope where the field states live
        origin: Store scope or absolute path string of the original data. If a
            field collection is passed here and ``fields`` is omitted, it is
            used as ``fields``.
        fields: Mapping dotted path -> field spec ({'default', 'group',
            'validations'}), or a list of paths. Mandatory without origin.
        options: {'rules': name -> rule, 'messages': name -> message} or
            ValidatorOptions
        defaults: Mapping dotted path -> default value merged into the specs

    Raises:
        ConfigurationError: missing model, neither origin nor fields, or a
            malformed field spec
        UnknownRuleError: a named rule cannot be resolved
        InvalidRuleTypeError: a rule is not a regular expression or callable
    """

    def __init__(
        self,
        model: Any,
        origin: Any = None,
        fields: Any = None,
        options: Any = None,
        defaults: Optional[Mapping] = None,
    ):
        if model is None:
            raise ConfigurationError('You must specify a model!')

        # Field collection passed in the origin position
        if fields is None and origin is not None and not isinstance(origin, str) and not _is_store(origin):
            fields, origin = origin, None

        if origin is None and fields is None and not defaults:
            raise ConfigurationError('You must either specify an origin or a fields object')

        self.model = model
        self.origin, self.reserved_id = resolve_origin(model, origin)
        self.options = ValidatorOptions.from_value(options)
        self.specs: Dict[str, FieldSpec] = normalize_fields(fields, defaults)

        for path in self.specs:
            if is_reserved_path(path):
                raise ConfigurationError(f"Field name '{path.split('.', 1)[0]}' is reserved for validator state")
        # Rejects malformed and conflicting paths up front
        build_field_tree(self.specs)

        self._rules: Dict[str, Tuple[ResolvedRule, ...]] = {
            path: tuple(resolve_rule(v.rule, v.message, self.options) for v in spec.validations)
            for path, spec in self.specs.items()
        }

        self.engine = ValidationEngine(model, self._rules)
        self.groups = GroupAggregator(
            model, {path: spec.group for path, spec in self.specs.items() if spec.has_validations}
        )
        self.changes = ChangeTracker(model)
        self._sync = OriginSynchronizer(model, self.origin, self.reserved_id)

        self._field_tree: Dict[str, Any] = {}
        self._field_paths: Set[str] = set()
        self._listener = model.on('change', '**', self._on_model_change)

        self._setup()

    def __repr__(self) -> str:
        origin = self.origin.path() if self.origin is not None else None
        return f"Validator(model={self.model.path()!r}, origin={origin!r}, fields={len(self._field_paths)})"

    # ==================== SETUP ====================

    def _setup(self) -> None:
        self.engine.supersede_all()
        baselines = self._sync.setup(self.specs)
        all_paths = list(self.specs) + self._sync.implicit_paths
        self._field_tree = build_field_tree(all_paths)
        self._field_paths = set(all_paths)
        self.groups.track(all_paths)
        self.groups.initialize()
        self.changes.rebaseline(baselines)

    def _locate(self, segments: List[str]) -> Tuple[Optional[str], List[str]]:
        """Split a mutated path into (field path, remainder inside the field state)."""
        for end in range(len(segments), 0, -1):
            candidate = '.'.join(segments[:end])
            if candidate in self._field_paths:
                return candidate, segments[end:]
        return None, segments

    def _on_model_change(self, path: str, value: Any) -> None:
        if self._sync.in_setup or not path:
            return

        field_path, remainder = self._locate(path.split('.'))
        if field_path is None:
            # A container above several fields was replaced
            prefix = f'{path}.'
            for candidate in self._field_paths:
                if candidate.startswith(prefix):
                    self.changes.on_value_changed(candidate)
            return

        if not remainder or remainder[0] == 'value':
            self.changes.on_value_changed(field_path)
        if remainder == ['is_invalid']:
            self.groups.on_validity_changed(field_path, bool(value))

    def _require_field(self, path: str) -> None:
        if path not in self._field_paths:
            raise UnknownFieldError(path)

    @staticmethod
    def _with_callback(future: Future, callback: Optional[ResultCallback]) -> Future:
        if callback is not None:
            future.add_done_callback(lambda done: callback(done.result()))
        return future

    # ==================== FIELDS ====================

    @property
    def field_paths(self) -> List[str]:
        """Declared fields followed by fields taken implicitly from the origin."""
        return list(self.specs) + self._sync.implicit_paths

    @property
    def fields(self) -> FieldProxy:
        """Dotted attribute access: validator.fields.c.d.f -> FieldHandle."""
        return FieldProxy(self, '')

    def field(self, path: str) -> FieldHandle:
        self._require_field(path)
        return FieldHandle(self, path)

    def get_value(self, path: str) -> Any:
        self._require_field(path)
        return self.model.get(f'{path}.value')

    def set_value(self, path: str, value: Any) -> None:
        self._require_field(path)
        self.model.set(f'{path}.value', value)

    def get_values(self, exclude_identifier: bool = False) -> Dict[str, Any]:
        """Nested tree of current field values, without validator bookkeeping.

        Args:
            exclude_identifier: Drop the top-level 'id' value

        Returns:
            e.g. {'name': 'x', 'c': {'d': {'f': 'f'}}}
        """
        values = project_nested(self.model.get() or {}, self._field_tree, leaf=_field_value, passthrough=False)
        if exclude_identifier:
            values.pop('id', None)
        return values

    # ==================== STATUS ====================

    @property
    def has_invalid_fields(self) -> bool:
        return bool(self.model.get('has_invalid_fields'))

    @property
    def has_changed_fields(self) -> bool:
        return bool(self.model.get('has_changed_fields'))

    @property
    def changed_fields(self) -> Set[str]:
        return self.changes.changed_fields

    def group_is_valid(self, group: str) -> bool:
        return self.groups.is_valid(group)

    # ==================== VALIDATION ====================

    def validate(self, path: str, callback: Optional[ResultCallback] = None) -> Future:
        """Validate one field.

        Returns:
            Future resolving with the field's validity; ``callback`` receives the
            same bool. Already resolved when every rule settled synchronously.
        """
        self._require_field(path)
        return self._with_callback(self.engine.validate_field(path), callback)

    def validate_all(self, callback: Optional[ResultCallback] = None) -> Future:
        """Validate every field with validations; resolves with the AND of all."""
        return self._with_callback(self.engine.validate_all(), callback)

    def set_invalid(self, path: str, message: Optional[str] = None) -> None:
        """Force ``path`` invalid and append ``message`` (or the fallback message)."""
        self._require_field(path)
        self.engine.set_validity(path, False)
        self.model.push(f'{path}.messages', message or get_fallback_message())

    # ==================== ORIGIN ====================

    def reset(self) -> None:
        """Return every field to its origin/default baseline."""
        self._setup()
        logger.debug(f"Reset validator scope '{self.model.path()}'")

    def commit(self, force: bool = False, callback: Optional[ResultCallback] = None) -> Future:
        """Write current values to the origin.

        Args:
            force: Skip validation and write regardless of validity
            callback: Receives True if the origin was written

        Returns:
            Future resolving True once written. False without origin, when
            validation failed or when creating the entity conflicted.
        """
        if self.origin is None:
            logger.debug("Commit skipped: validator has no origin")
            return self._with_callback(resolved_future(False), callback)

        result: Future = Future()

        def _write(valid: bool) -> None:
            if not valid:
                logger.debug("Commit skipped: validation failed")
                result.set_result(False)
                return
            try:
                written = self._sync.commit(self.get_values(exclude_identifier=True))
            except Exception as e:
                result.set_exception(e)
                return
            result.set_result(written)

        if force:
            _write(True)
        else:
            self.engine.validate_all().add_done_callback(lambda done: _write(done.result()))
        return self._with_callback(result, callback)

    def close(self) -> None:
        """Drop the store subscription. Field states stay in the model."""
        self.model.remove_listener('change', self._listener)

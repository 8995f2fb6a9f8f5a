"""
Origin synchronisation.

The origin is the store location a Validator initialises from and commits to.
Lifecycle:
- setup(): seed field states from specs, overlay origin values (origin wins)
- reset(): setup() again, replacing the field states wholesale
- commit(): write projected values back (update) or create the entity

When the origin points at a bare collection ('items'), a fresh identifier is
reserved at construction time and the origin becomes 'items.<id>'; commit
then creates the entity under that identifier.
"""

import copy
import logging
from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Mapping, Optional, Tuple

from fieldstate.exceptions import ConfigurationError, EntityExistsError
from fieldstate.field_tree import build_field_tree, iter_leaves
from fieldstate.spec_model import FieldSpec

logger = logging.getLogger(__name__)

RESERVED_NAMES = frozenset({'groups', 'has_invalid_fields', 'has_changed_fields'})


def is_reserved_path(path: str) -> bool:
    return path.split('.', 1)[0] in RESERVED_NAMES


def resolve_origin(model: Any, origin: Any) -> Tuple[Optional[Any], Optional[str]]:
    """Turn the origin argument into (origin scope, reserved identifier).

    Args:
        model: Validator scope, used to resolve path strings and generate ids
        origin: Store scope, absolute path string, or None

    Returns:
        (None, None) without origin. Otherwise the origin scope and the
        identifier the entity is created under if it has no 'id' yet.
    """
    if origin is None:
        return None, None
    if isinstance(origin, str):
        origin = model.scope(origin)

    segments = origin.split_path()
    if not segments:
        raise ConfigurationError("Origin must point inside the store, not at its root")
    if len(segments) == 1:
        # Collection only: reserve a new document
        reserved_id = model.id()
        origin = origin.at(reserved_id)
        logger.debug(f"Reserved new entity id {reserved_id!r} in collection {segments[0]!r}")
        return origin, reserved_id
    return origin, segments[-1]


class OriginSynchronizer:
    """Copies baselines into the field states and projects values back."""

    def __init__(self, model: Any, origin: Optional[Any] = None, reserved_id: Optional[str] = None):
        self.model = model
        self.origin = origin
        self.reserved_id = reserved_id
        self.implicit_paths: List[str] = []
        self.in_setup = False

    @contextmanager
    def _setting_up(self) -> Generator[None, None, None]:
        self.in_setup = True
        try:
            yield
        finally:
            self.in_setup = False

    def setup(self, specs: Mapping[str, FieldSpec]) -> Dict[str, Any]:
        """Write fresh field states for every declared (and implicit) field.

        Returns:
            Baseline value per field path, in setup order
        """
        with self._setting_up():
            for path in self.implicit_paths:
                if path not in specs:
                    self.model.delete(path)
            self.implicit_paths = []

            for path, spec in specs.items():
                self.model.set(path, self._initial_state(path, spec))

            if self.origin is not None:
                self._overlay_origin(specs)

            paths = list(specs) + self.implicit_paths
            baselines = {path: copy.deepcopy(self.model.get(f'{path}.value')) for path in paths}

        logger.debug(f"Setup complete: declared={len(specs)} implicit={len(self.implicit_paths)}")
        return baselines

    def _initial_state(self, path: str, spec: FieldSpec) -> Dict[str, Any]:
        state: Dict[str, Any] = {'value': spec.initial_value(), 'has_changed': False}
        if spec.has_validations:
            state.update({
                'is_valid': False,
                'is_invalid': False,
                'messages': [],
                # Serial survives setup so rounds started before a reset stay stale
                'serial': self.model.get(f'{path}.serial') or 0,
            })
        return state

    def _overlay_origin(self, specs: Mapping[str, FieldSpec]) -> None:
        snapshot = self.origin.get()
        field_tree = build_field_tree(specs) if specs else None
        for path, value in iter_leaves(snapshot, field_tree):
            if path in specs:
                self.model.set(f'{path}.value', copy.deepcopy(value))
            elif is_reserved_path(path):
                logger.warning(f"Skipping origin key '{path}': name is reserved for validator state")
            else:
                self.model.set(path, {'value': copy.deepcopy(value), 'has_changed': False})
                self.implicit_paths.append(path)

    def commit(self, values: Mapping[str, Any]) -> bool:
        """Write ``values`` to the origin.

        Existing entities (origin holds an 'id') receive a partial update of the
        projected keys. Otherwise the entity is created in the parent
        collection under the reserved identifier.

        Returns:
            True if written, False without origin or when creation conflicted
        """
        if self.origin is None:
            return False

        if self.origin.get('id') is not None:
            self.origin.set_each(dict(values))
            logger.debug(f"Committed update to '{self.origin.path()}': keys={list(values)}")
            return True

        entity = dict(values)
        entity['id'] = self.reserved_id
        try:
            self.origin.parent().add(entity)
        except EntityExistsError as e:
            logger.warning(f"Commit could not create entity: {e}")
            return False
        logger.debug(f"Committed new entity '{self.origin.path()}'")
        return True

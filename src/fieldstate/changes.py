"""
Change tracking against the baseline captured at setup/reset.

Mirrors a saved/live split: the baseline is a deep copy of every field value
right after setup, the live value is whatever the store holds now. The set of
diverged fields is materialised so the scope-wide flag is only written when
it actually flips.
"""

import copy
import logging
from typing import Any, Dict, Mapping, Set

logger = logging.getLogger(__name__)


class ChangeTracker:
    """Derives ``<field>.has_changed`` and ``has_changed_fields`` in ``model``."""

    def __init__(self, model: Any):
        self.model = model
        self._baselines: Dict[str, Any] = {}
        self._changed_fields: Set[str] = set()

    @property
    def changed_fields(self) -> Set[str]:
        """Fields whose value differs from their baseline."""
        return set(self._changed_fields)

    def rebaseline(self, baselines: Mapping[str, Any]) -> None:
        """Adopt new baselines and mark every field unchanged."""
        self._baselines = {path: copy.deepcopy(value) for path, value in baselines.items()}
        self._changed_fields = set()
        for path in self._baselines:
            self.model.set(f'{path}.has_changed', False)
        self.model.set('has_changed_fields', False)

    def on_value_changed(self, path: str) -> None:
        """Recompute the changed flag of ``path`` after its value was written."""
        if path not in self._baselines:
            return

        changed = self.model.get(f'{path}.value') != self._baselines[path]
        was_changed = path in self._changed_fields
        if changed == was_changed:
            return

        if changed:
            self._changed_fields.add(path)
        else:
            self._changed_fields.discard(path)
        self.model.set(f'{path}.has_changed', changed)
        logger.debug(f"Field change status: field={path!r} has_changed={changed}")

        has_changed_fields = bool(self._changed_fields)
        if has_changed_fields != bool(self.model.get('has_changed_fields')):
            self.model.set('has_changed_fields', has_changed_fields)

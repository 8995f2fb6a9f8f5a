"""
Group validity aggregation.

Each field with validations belongs to one group ('default' unless its FieldSpec
says otherwise). The store keeps ``groups.<name>.is_valid`` equal to "no
member of the group is invalid", updated incrementally on every is_invalid
transition:
- a member turning invalid poisons its group immediately
- a member turning valid triggers a recount, written only if it flips

The scope-wide ``has_invalid_fields`` flag is re-derived on the same events.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping

logger = logging.getLogger(__name__)


class GroupAggregator:
    """Maintains derived group and scope validity flags in ``model``."""

    def __init__(self, model: Any, field_groups: Mapping[str, str]):
        """
        Args:
            model: Store scope holding the field states
            field_groups: Validated field path -> group name
        """
        self.model = model
        self._field_groups: Dict[str, str] = dict(field_groups)
        self._members: Dict[str, List[str]] = {}
        for path, group in self._field_groups.items():
            self._members.setdefault(group, []).append(path)
        # Fields counted for has_invalid_fields (set_invalid() reaches fields outside any group)
        self._tracked_paths: List[str] = list(self._field_groups)

    def track(self, paths: Iterable[str]) -> None:
        """Set the fields the scope-wide invalid flag is derived from."""
        self._tracked_paths = list(paths)

    def initialize(self) -> None:
        """Mark every group unverified and clear the scope-wide invalid flag."""
        for group in self._members:
            self.model.set(f'groups.{group}.is_valid', False)
        self.model.set('has_invalid_fields', False)

    def is_valid(self, group: str) -> bool:
        return bool(self.model.get(f'groups.{group}.is_valid'))

    def on_validity_changed(self, path: str, is_invalid: bool) -> None:
        """React to an is_invalid write on field ``path``."""
        group = self._field_groups.get(path)
        if group is not None:
            self._update_group(group, is_invalid)
        self._sync_invalid_flag()

    def _update_group(self, group: str, member_invalid: bool) -> None:
        if member_invalid:
            self.model.set(f'groups.{group}.is_valid', False)
            return
        group_valid = all(not self.model.get(f'{member}.is_invalid') for member in self._members[group])
        if group_valid != self.is_valid(group):
            self.model.set(f'groups.{group}.is_valid', group_valid)
            logger.debug(f"Group validity changed: group={group!r} is_valid={group_valid}")

    def _sync_invalid_flag(self) -> None:
        has_invalid = any(self.model.get(f'{path}.is_invalid') for path in self._tracked_paths)
        if has_invalid != bool(self.model.get('has_invalid_fields')):
            self.model.set('has_invalid_fields', has_invalid)

"""
In-memory observable store.

Reference implementation of the path-addressed store a Validator works on.
Any object providing the same methods can be injected instead.

A store handle is a view onto a shared root rooted at a dotted path:
- scope(path): handle at an absolute path
- at(subpath): handle relative to this one
- parent(): handle one segment up

Every mutation fires 'change' listeners whose pattern matches the mutated
path. Patterns are dotted and relative to the handle the listener was added
on; '*' matches exactly one segment and '**' matches any remainder.

Thread safety: Not thread-safe (all operations expected on one thread).
"""

import logging
import uuid
from collections.abc import Mapping
from typing import Any, Callable, Dict, List, Optional, Tuple

from fieldstate.exceptions import EntityExistsError, StoreError

logger = logging.getLogger(__name__)

ChangeHandler = Callable[[str, Any], None]

_CHANGE_EVENT = 'change'


def _segments(path: Optional[str]) -> List[str]:
    return [segment for segment in path.split('.') if segment] if path else []


def _pattern_matches(pattern: List[str], segments: List[str]) -> bool:
    for index, part in enumerate(pattern):
        if part == '**':
            return True
        if index >= len(segments):
            return False
        if part != '*' and part != segments[index]:
            return False
    return len(pattern) == len(segments)


class _StoreRoot:
    """Shared data and listener table behind every handle of one store."""

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self.data: Dict[str, Any] = dict(data) if data else {}
        # (base segments, pattern segments, handler)
        self.listeners: List[Tuple[List[str], List[str], ChangeHandler]] = []

    def lookup(self, segments: List[str]) -> Any:
        node: Any = self.data
        for segment in segments:
            if isinstance(node, Mapping):
                node = node.get(segment)
            elif isinstance(node, list) and segment.isdigit() and int(segment) < len(node):
                node = node[int(segment)]
            else:
                return None
        return node

    def container(self, segments: List[str]) -> Dict[str, Any]:
        """Return the dict holding the last segment, creating parents as needed."""
        node = self.data
        for depth, segment in enumerate(segments[:-1]):
            child = node.get(segment)
            if not isinstance(child, dict):
                if child is not None:
                    logger.debug(f"Replacing scalar at '{'.'.join(segments[:depth + 1])}' with a mapping")
                child = {}
                node[segment] = child
            node = child
        return node

    def notify(self, segments: List[str], value: Any) -> None:
        for base, pattern, handler in list(self.listeners):
            if segments[:len(base)] != base:
                continue
            relative = segments[len(base):]
            if not _pattern_matches(pattern, relative):
                continue
            try:
                handler('.'.join(relative), value)
            except Exception as e:
                logger.warning(f"Error in change listener for '{'.'.join(segments)}': {e}")


class ObservableStore:
    """Handle onto an observable nested key/value tree.

    Example:
        store = ObservableStore({'items': {}})
        item = store.scope('items').at(store.id())
        item.set('title', 'Hello')
        store.get('items')  # {'<id>': {'title': 'Hello'}}
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None, *, _root: Optional[_StoreRoot] = None,
                 _segments: Optional[List[str]] = None):
        self._root = _root if _root is not None else _StoreRoot(data)
        self._base: List[str] = list(_segments or [])

    def __repr__(self) -> str:
        return f"ObservableStore(path={self.path()!r})"

    # ==================== HANDLES ====================

    def path(self) -> str:
        """Absolute dotted path of this handle ('' for the root)."""
        return '.'.join(self._base)

    def split_path(self) -> List[str]:
        return list(self._base)

    def scope(self, path: Optional[str] = None) -> 'ObservableStore':
        """Handle rooted at an absolute path."""
        return ObservableStore(_root=self._root, _segments=_segments(path))

    def at(self, subpath: str) -> 'ObservableStore':
        """Handle rooted at a path relative to this handle."""
        return ObservableStore(_root=self._root, _segments=self._base + _segments(str(subpath)))

    def parent(self, levels: int = 1) -> 'ObservableStore':
        return ObservableStore(_root=self._root, _segments=self._base[:max(len(self._base) - levels, 0)])

    def id(self) -> str:
        """Generate a fresh unique identifier."""
        return uuid.uuid4().hex

    def _absolute(self, path: Optional[str]) -> List[str]:
        return self._base + _segments(None if path is None else str(path))

    # ==================== READS ====================

    def get(self, path: Optional[str] = None) -> Any:
        """Read the value at ``path`` (the whole subtree of this handle if omitted)."""
        return self._root.lookup(self._absolute(path))

    # ==================== WRITES ====================

    def set(self, path: str, value: Any) -> Any:
        """Write ``value`` at ``path`` and return the previous value."""
        segments = self._absolute(path)
        if not segments:
            raise StoreError("Cannot replace the store root with set(); use set_each()")
        container = self._root.container(segments)
        previous = container.get(segments[-1])
        container[segments[-1]] = value
        self._root.notify(segments, value)
        return previous

    def set_each(self, path: Any = None, mapping: Optional[Mapping] = None) -> None:
        """Write every key of ``mapping`` below ``path``.

        Can also be called as set_each(mapping) to write below this handle.
        """
        if mapping is None and isinstance(path, Mapping):
            path, mapping = None, path
        prefix = '' if path is None else f'{path}.'
        for key, value in (mapping or {}).items():
            self.set(f'{prefix}{key}', value)

    def delete(self, path: Optional[str] = None) -> Any:
        """Remove the value at ``path`` and return it (None if absent)."""
        segments = self._absolute(path)
        if not segments:
            raise StoreError("Cannot delete the store root")
        parent = self._root.lookup(segments[:-1])
        if not isinstance(parent, dict) or segments[-1] not in parent:
            return None
        previous = parent.pop(segments[-1])
        self._root.notify(segments, None)
        return previous

    def push(self, path: str, value: Any) -> int:
        """Append ``value`` to the list at ``path`` (created if missing); return the new length."""
        segments = self._absolute(path)
        current = self._root.lookup(segments)
        if current is None:
            current = []
            self._root.container(segments)[segments[-1]] = current
        elif not isinstance(current, list):
            raise StoreError(f"Cannot push onto non-list value at '{'.'.join(segments)}'")
        current.append(value)
        self._root.notify(segments, current)
        return len(current)

    def increment(self, path: str, by: int = 1) -> int:
        """Bump the counter at ``path`` (missing counts as 0) and return the new value."""
        current = self.get(path) or 0
        value = current + by
        self.set(path, value)
        return value

    def add(self, value: Mapping, path: Optional[str] = None) -> str:
        """Add an entity to the collection at ``path`` under its 'id' (generated if absent).

        Raises:
            EntityExistsError: if the collection already holds that id.
        """
        collection = self.at(path) if path else self
        entity = dict(value)
        entity_id = str(entity.get('id') or self.id())
        entity['id'] = entity_id
        if collection.get(entity_id) is not None:
            raise EntityExistsError(collection.path(), entity_id)
        collection.set(entity_id, entity)
        return entity_id

    # ==================== SUBSCRIPTIONS ====================

    def on(self, event: str, pattern: str, handler: ChangeHandler) -> ChangeHandler:
        """Subscribe ``handler(path, value)`` to mutations matching ``pattern``.

        Returns the handler so it can be passed to remove_listener().
        """
        if event != _CHANGE_EVENT:
            raise ValueError(f"Unsupported store event: {event!r}")
        self._root.listeners.append((list(self._base), _segments(pattern), handler))
        logger.debug(f"Added change listener on '{self.path()}' for pattern '{pattern}'")
        return handler

    def remove_listener(self, event: str, handler: ChangeHandler) -> None:
        """Unsubscribe every registration of ``handler`` for ``event``."""
        if event != _CHANGE_EVENT:
            raise ValueError(f"Unsupported store event: {event!r}")
        self._root.listeners = [
            entry for entry in self._root.listeners if entry[2] is not handler
        ]

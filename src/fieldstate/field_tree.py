"""
Field tree codec.

Field specs are declared under flat dotted paths ('c.d.f') while origin data
and the field state tree are nested mappings. The field tree built from the
declared paths decides, for any nested value tree, which keys are owned
leaves (copied as a whole) and which are containers to walk into.

Traversals use an explicit stack so path depth never maps onto Python
recursion depth.
"""

import copy
import logging
from collections.abc import Mapping
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from fieldstate.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

LEAF = True
MAX_PATH_DEPTH = 32


def split_path(path: str) -> List[str]:
    """Split a dotted path into segments, rejecting empty segments."""
    segments = path.split('.') if path else []
    if not segments or any(not segment for segment in segments):
        raise ConfigurationError(f"Invalid field path: {path!r}")
    if len(segments) > MAX_PATH_DEPTH:
        raise ConfigurationError(
            f"Field path {path!r} is nested deeper than {MAX_PATH_DEPTH} levels"
        )
    return segments


def join_path(prefix: str, key: str) -> str:
    return f'{prefix}.{key}' if prefix else key


def build_field_tree(paths: Iterable[str]) -> Dict[str, Any]:
    """Build a nested tree from dotted field paths.

    Intermediate segments become nested dicts, terminal segments map to LEAF.

    Examples:
        ['a', 'c.d.f'] -> {'a': True, 'c': {'d': {'f': True}}}

    Raises:
        ConfigurationError: if a path is both a field and the parent of another
            field, or a path is malformed.
    """
    tree: Dict[str, Any] = {}
    for path in paths:
        segments = split_path(path)
        node = tree
        for depth, segment in enumerate(segments[:-1]):
            child = node.setdefault(segment, {})
            if child is LEAF:
                parent = '.'.join(segments[:depth + 1])
                raise ConfigurationError(
                    f"Field '{parent}' cannot also contain field '{path}'"
                )
            node = child
        existing = node.get(segments[-1])
        if isinstance(existing, dict):
            raise ConfigurationError(
                f"Field '{path}' cannot also contain nested fields"
            )
        node[segments[-1]] = LEAF
    return tree


def iter_leaves(
    source: Any,
    field_tree: Optional[Mapping],
    prefix: str = '',
) -> Iterator[Tuple[str, Any]]:
    """Yield (path, value) for every position project_nested() copies whole.

    Keys are visited in document order. A key the tree marks as a container but
    whose value is not a mapping is skipped: it cannot hold the fields declared
    beneath it.
    """
    if not isinstance(source, Mapping):
        return
    # Stack of iterators keeps document order without recursion
    stack = [(iter(source.items()), field_tree, prefix)]
    while stack:
        items, tree, base = stack[-1]
        try:
            key, value = next(items)
        except StopIteration:
            stack.pop()
            continue
        path = join_path(base, str(key))
        subtree = tree.get(key) if isinstance(tree, Mapping) else None
        if not isinstance(subtree, Mapping):
            yield path, value
        elif isinstance(value, Mapping):
            stack.append((iter(value.items()), subtree, path))
        else:
            logger.warning(
                f"Skipping '{path}': expected a mapping holding fields, got {type(value).__name__}"
            )


def project_nested(
    source: Any,
    field_tree: Optional[Mapping],
    prefix: str = '',
    leaf: Optional[Callable[[str, Any], Any]] = None,
    passthrough: bool = True,
) -> Dict[str, Any]:
    """Copy a nested value tree following the shape of a field tree.

    For every key of ``source``: when the tree is absent, maps the key to LEAF
    or does not know the key, the value is copied as a whole (through
    ``leaf(path, value)`` if given, else deep-copied). Keys the tree marks as
    containers are walked into. With ``passthrough=False`` keys the tree does
    not know are dropped instead of copied.

    Args:
        source: Nested mapping to project (never mutated)
        field_tree: Tree from build_field_tree(), or None
        prefix: Dotted path of ``source`` itself
        leaf: Transform applied to each copied value
        passthrough: Whether to keep keys absent from the tree

    Returns:
        New nested dict preserving the key order of ``source``
    """
    result: Dict[str, Any] = {}
    if not isinstance(source, Mapping):
        return result

    transform = leaf or (lambda path, value: copy.deepcopy(value))
    stack = [(source, field_tree, prefix, result)]
    while stack:
        src, tree, base, out = stack.pop()
        for key, value in src.items():
            path = join_path(base, str(key))
            subtree = tree.get(key) if isinstance(tree, Mapping) else None
            if isinstance(subtree, Mapping) and isinstance(value, Mapping):
                # Reserve the slot now so output order follows source order
                out[key] = {}
                stack.append((value, subtree, path, out[key]))
            elif subtree is not None or tree is None or passthrough:
                out[key] = transform(path, value)
    return result

"""
Path-addressed access into nested value trees.

Form values and error trees are plain nested dicts and lists. A path
addresses one node inside such a tree using dotted keys and bracketed list
indices:

    'address.city'      -> ('address', 'city')
    'items[0].name'     -> ('items', 0, 'name')
    'matrix[1][2]'      -> ('matrix', 1, 2)
    ''                  -> ()   (the root)

Every write returns a NEW tree. Containers along the written path are
shallow-copied; untouched subtrees are shared with the input tree, so a
reader holding the old tree never sees a partial update.
"""
import re
from collections.abc import Mapping, Sequence, Set as AbstractSet
from functools import lru_cache
from typing import Any, Dict, Iterator, List, Tuple, Union

from formstate.errors import InvalidPathError

PathKey = Union[str, int]

_SEGMENT_RE = re.compile(r'([^.\[\]]+)|\[([^\[\]]*)\]|(\.)')


def parse_path(path: str) -> Tuple[PathKey, ...]:
    """Split a path string into its keys.

    Args:
        path: Dotted/bracketed path, e.g. 'items[0].name'

    Returns:
        Tuple of keys; bracketed segments are ints.

    Raises:
        InvalidPathError: On empty segments, unbalanced brackets or a
            non-integer index.
    """
    if not isinstance(path, str):
        raise InvalidPathError(path, "path must be a string")
    return _parse(path)


@lru_cache(maxsize=1024)
def _parse(path: str) -> Tuple[PathKey, ...]:
    if path == '':
        return ()

    keys: List[PathKey] = []
    pos = 0
    expect_key = True  # True at start and right after a '.'
    while pos < len(path):
        match = _SEGMENT_RE.match(path, pos)
        if match is None:
            raise InvalidPathError(path, f"unexpected character at offset {pos}")
        name, index, dot = match.groups()
        if dot is not None:
            if expect_key:
                raise InvalidPathError(path, f"empty segment at offset {pos}")
            expect_key = True
        elif name is not None:
            if not expect_key:
                raise InvalidPathError(path, f"missing '.' before {name!r}")
            keys.append(name)
            expect_key = False
        else:
            if expect_key and keys:
                raise InvalidPathError(path, f"empty segment at offset {pos}")
            if not index.strip().isdigit():
                raise InvalidPathError(path, f"list index must be a non-negative integer, got {index!r}")
            keys.append(int(index))
            expect_key = False
        pos = match.end()

    if expect_key:
        raise InvalidPathError(path, "path ends with '.'")
    return tuple(keys)


def format_path(keys: Sequence) -> str:
    """Inverse of parse_path: ('items', 0, 'name') -> 'items[0].name'."""
    out = ''
    for key in keys:
        if isinstance(key, int):
            out += f'[{key}]'
        else:
            out = f'{out}.{key}' if out else str(key)
    return out


def _is_list(node: Any) -> bool:
    return isinstance(node, list)


def get_in(tree: Any, path: str, default: Any = None) -> Any:
    """Read the node at path, or default if any segment is missing."""
    node = tree
    for key in parse_path(path):
        if isinstance(key, int):
            if not _is_list(node) or key >= len(node):
                return default
            node = node[key]
        else:
            if not isinstance(node, Mapping) or key not in node:
                return default
            node = node[key]
    return node


def has_path(tree: Any, path: str) -> bool:
    """True if every segment of path exists in tree."""
    missing = object()
    return get_in(tree, path, missing) is not missing


def _set_keys(node: Any, keys: Tuple[PathKey, ...], value: Any) -> Any:
    if not keys:
        return value

    key, rest = keys[0], keys[1:]
    if isinstance(key, int):
        new_node = list(node) if _is_list(node) else []
        if key >= len(new_node):
            new_node.extend([None] * (key + 1 - len(new_node)))
        new_node[key] = _set_keys(new_node[key], rest, value)
        return new_node

    new_node = dict(node) if isinstance(node, Mapping) else {}
    new_node[key] = _set_keys(new_node.get(key), rest, value)
    return new_node


def set_in(tree: Any, path: str, value: Any) -> Any:
    """Return a copy of tree with value stored at path.

    Missing containers are created: a list when the next key is an index,
    a dict otherwise. Lists shorter than the index are padded with None.
    Setting the root path returns value itself.
    """
    return _set_keys(tree, parse_path(path), value)


def _delete_keys(node: Any, keys: Tuple[PathKey, ...]) -> Any:
    key, rest = keys[0], keys[1:]
    if isinstance(key, int):
        if not _is_list(node) or key >= len(node):
            return node
        new_node = list(node)
        new_node[key] = None if not rest else _delete_keys(node[key], rest)
        return new_node

    if not isinstance(node, Mapping) or key not in node:
        return node
    new_node = dict(node)
    if rest:
        new_node[key] = _delete_keys(node[key], rest)
    else:
        del new_node[key]
    return new_node


def delete_in(tree: Any, path: str) -> Any:
    """Return a copy of tree without the node at path.

    List slots are set to None instead of being removed, so sibling indices
    keep addressing the same fields. Missing paths leave the tree unchanged.
    """
    keys = parse_path(path)
    if not keys:
        return {}
    return _delete_keys(tree, keys)


def deep_merge(base: Any, overlay: Any) -> Any:
    """Merge overlay on top of base into a new tree.

    Mappings merge key by key, lists merge index by index, any other overlay
    value (None included) replaces what base holds at that position.
    """
    if isinstance(overlay, Mapping) and isinstance(base, Mapping):
        merged = dict(base)
        for key, value in overlay.items():
            merged[key] = deep_merge(base[key], value) if key in base else value
        return merged
    if _is_list(overlay) and _is_list(base):
        merged_list = list(base)
        for index, value in enumerate(overlay):
            if index < len(merged_list):
                merged_list[index] = deep_merge(merged_list[index], value)
            else:
                merged_list.append(value)
        return merged_list
    return overlay


def expand_paths(mapping: Mapping) -> Dict[str, Any]:
    """Turn a mapping with (possibly) path-shaped keys into a nested tree.

    Form validators may answer either {'address': {'city': 'required'}} or
    {'address.city': 'required'}; both expand to the same tree. Later keys
    overlay earlier ones where they collide.

    Raises:
        InvalidPathError: If a key is malformed or does not start with a
            field name ('' or '[0]' would replace the mapping itself).
    """
    tree: Dict[str, Any] = {}
    for key, value in mapping.items():
        if isinstance(value, Mapping):
            value = expand_paths(value)
        if isinstance(key, str):
            keys = parse_path(key)
            if not keys or isinstance(keys[0], int):
                raise InvalidPathError(key, "error key must start with a field name")
            existing = get_in(tree, key)
            tree = set_in(tree, key, deep_merge(existing, value) if existing is not None else value)
        else:
            tree = dict(tree)
            tree[key] = value
    return tree


def is_empty_result(result: Any) -> bool:
    """True if a validator result means 'no error'."""
    if result is None:
        return True
    if isinstance(result, (str, bytes)):
        return len(result) == 0
    if isinstance(result, (Mapping, Sequence, AbstractSet)):
        return len(result) == 0
    return False


def normalize_result(result: Any) -> Any:
    """Map every empty validator result onto None."""
    return None if is_empty_result(result) else result


def iter_leaves(tree: Any, prefix: Tuple[PathKey, ...] = ()) -> Iterator[Tuple[str, Any]]:
    """Yield (path, leaf) for every non-container node under tree."""
    if isinstance(tree, Mapping) and tree:
        for key, value in tree.items():
            yield from iter_leaves(value, prefix + (key,))
    elif _is_list(tree) and tree:
        for index, value in enumerate(tree):
            yield from iter_leaves(value, prefix + (index,))
    else:
        yield format_path(prefix), tree


def has_errors(tree: Any) -> bool:
    """True if any leaf of an error tree carries a non-empty payload."""
    return any(not is_empty_result(leaf) for _, leaf in iter_leaves(tree))

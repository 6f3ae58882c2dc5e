"""Wildcard patterns over plugin-parameter structures.

Plugin commands carry arbitrary nested arguments, often with arrays and
objects JSON-encoded into strings (MZ ``@type struct`` / ``@type string[]``).
A pattern such as ``QuestDatas.|ARY|.Title`` picks out leaves by their
structural location:

* ``|ARY|`` matches any array position
* ``|OBJ|`` matches any single object key
* anything else matches that literal key (or position, when numeric)

The same depth-first leaf walker drives extraction, injection and the
read-only field tree offered to plugin inspection.
"""

import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Iterator, Optional

from .errors import InvalidStructure, PluginConfigError
from .translation_path import Index, Key, PARAMETERS_KEY, TranslationPath

log = logging.getLogger(__name__)

ANY_INDEX = "|ARY|"
ANY_KEY = "|OBJ|"

# A step is ("key", name) or ("index", position) - raw container kind is kept
# so that |OBJ| never matches an array slot and |ARY| never matches a key.
KEY = "key"
INDEX = "index"


def _steps_of(path: TranslationPath) -> tuple:
    steps = []
    for seg in path:
        if isinstance(seg, Key):
            steps.append((KEY, seg.name))
        elif isinstance(seg, Index):
            steps.append((INDEX, seg.position))
        else:
            steps.append((KEY, PARAMETERS_KEY))
            steps.append((INDEX, seg.position))
    return tuple(steps)


def steps_to_string(steps) -> str:
    return ".".join(str(v) for _, v in steps)


class FieldPatternMatcher:
    """A compiled, immutable pattern.  Use compile_pattern() to get one."""

    __slots__ = ("pattern", "_tokens")

    def __init__(self, pattern: str):
        if not isinstance(pattern, str) or not pattern.strip():
            raise PluginConfigError(f"empty field pattern: {pattern!r}")
        tokens = []
        for part in pattern.split("."):
            if not part:
                raise PluginConfigError(f"empty segment in field pattern {pattern!r}")
            if part != part.strip():
                raise PluginConfigError(f"whitespace around segment in field pattern {pattern!r}")
            if "|" in part and part not in (ANY_INDEX, ANY_KEY):
                raise PluginConfigError(f"unknown wildcard {part!r} in field pattern {pattern!r}")
            tokens.append(part)
        self.pattern = pattern
        self._tokens = tuple(tokens)

    def matches_steps(self, steps) -> bool:
        if len(steps) != len(self._tokens):
            return False
        for token, (kind, value) in zip(self._tokens, steps):
            if token == ANY_INDEX:
                if kind != INDEX:
                    return False
            elif token == ANY_KEY:
                if kind != KEY:
                    return False
            elif str(value) != token:
                return False
        return True

    def matches(self, path) -> bool:
        """Test a concrete path (TranslationPath or dotted string)."""
        if isinstance(path, str):
            try:
                path = TranslationPath.parse(path)
            except InvalidStructure:
                return False
        return self.matches_steps(_steps_of(path))

    def __repr__(self) -> str:
        return f"FieldPatternMatcher({self.pattern!r})"


@lru_cache(maxsize=1024)
def compile_pattern(pattern: str) -> FieldPatternMatcher:
    """Compile a pattern, reusing an earlier compilation of the same string."""
    return FieldPatternMatcher(pattern)


# ── Leaf walker ────────────────────────────────────────────────────

@dataclass(frozen=True)
class FieldLeaf:
    """A string leaf inside a plugin argument structure."""
    steps: tuple
    value: str
    json_string: bool = False   # leaf was a JSON-encoded string literal

    @property
    def path(self) -> TranslationPath:
        return TranslationPath(
            Key(v) if kind == KEY else Index(v) for kind, v in self.steps)

    @property
    def field_path(self) -> str:
        return steps_to_string(self.steps)


def decode_embedded(value: str):
    """Return (decoded, True) when ``value`` is JSON text, else (value, False)."""
    if not value or value[0] not in '[{"':
        return value, False
    try:
        return json.loads(value), True
    except (json.JSONDecodeError, ValueError):
        return value, False


def _addressable(key) -> bool:
    try:
        TranslationPath([Key(key)])
    except InvalidStructure:
        return False
    return True


def walk_leaves(value, steps: tuple = ()) -> Iterator[FieldLeaf]:
    """Depth-first walk yielding every string leaf with its location.

    Object members are visited in document order, array items by position.
    Keys that cannot be written as a path segment are skipped.
    """
    if isinstance(value, dict):
        for k, v in value.items():
            if not _addressable(k):
                log.debug("Skipping unaddressable plugin key %r at %s",
                          k, steps_to_string(steps))
                continue
            yield from walk_leaves(v, steps + ((KEY, k),))
    elif isinstance(value, list):
        for i, v in enumerate(value):
            yield from walk_leaves(v, steps + ((INDEX, i),))
    elif isinstance(value, str):
        decoded, was_json = decode_embedded(value)
        if was_json and isinstance(decoded, (dict, list)):
            yield from walk_leaves(decoded, steps)
        elif was_json and isinstance(decoded, str):
            if steps:
                yield FieldLeaf(steps, decoded, json_string=True)
        elif steps:
            yield FieldLeaf(steps, value)


# ── Field inspection ───────────────────────────────────────────────

@dataclass
class FieldNode:
    """One node of the navigable field tree shown in a plugin inspector."""
    key: str
    path: str
    value_type: str
    value: Optional[object] = None
    pattern: str = ""
    children: list = field(default_factory=list)


def _value_type(value) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return "string"


def _suggest_pattern(steps) -> str:
    return ".".join(ANY_INDEX if kind == INDEX else str(v) for kind, v in steps)


def _inspect(key: str, value, steps: tuple) -> FieldNode:
    node = FieldNode(key=key, path=steps_to_string(steps),
                     value_type=_value_type(value), pattern=_suggest_pattern(steps))
    if isinstance(value, str):
        decoded, was_json = decode_embedded(value)
        if was_json and isinstance(decoded, (dict, list)):
            node.value_type = "json_object" if isinstance(decoded, dict) else "json_array"
            node.children = _inspect_children(decoded, steps)
            return node
        if was_json and isinstance(decoded, str):
            node.value_type = "json_string"
            node.value = decoded
            return node
    if isinstance(value, (dict, list)):
        node.children = _inspect_children(value, steps)
    else:
        node.value = value
    return node


def _inspect_children(container, steps: tuple) -> list:
    if isinstance(container, dict):
        return [_inspect(str(k), v, steps + ((KEY, k),))
                for k, v in container.items() if _addressable(k)]
    return [_inspect(f"[{i}]", v, steps + ((INDEX, i),))
            for i, v in enumerate(container)]


def inspect_plugin_fields(args) -> list:
    """Describe a plugin argument structure as a tree of FieldNode.

    Read-only: ``args`` is never modified.  A JSON-encoded root string is
    decoded first.  Scalars at the root have no addressable fields.
    """
    if isinstance(args, str):
        decoded, was_json = decode_embedded(args)
        if was_json:
            args = decoded
    if isinstance(args, (dict, list)):
        return _inspect_children(args, ())
    return []


def leaf_paths(pattern: str, args) -> list:
    """Concrete field paths in ``args`` that ``pattern`` selects."""
    matcher = compile_pattern(pattern)
    return [leaf.field_path for leaf in walk_leaves(args) if matcher.matches_steps(leaf.steps)]

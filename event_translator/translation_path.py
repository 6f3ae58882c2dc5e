"""Structured addresses into RPG Maker JSON documents.

A path is a sequence of segments that serializes to a dotted string such as
``events.3.pages.0.list.12.parameters.0``.  Three segment kinds exist:

* ``Key``       - an object member (``events``, ``pages``, a plugin arg name)
* ``Index``     - a position in an array (``3``)
* ``Parameter`` - a position inside an event command's ``parameters`` array

Paths are immutable and hashable.  ``TranslationPath.parse(str(p)) == p``
holds for every path that can be constructed.
"""

import json
import re
from dataclasses import dataclass
from typing import Optional, Union

from .errors import InvalidStructure, PathNotFound

_INDEX_RE = re.compile(r'(0|[1-9][0-9]*)\Z')
_SIGNED_RE = re.compile(r'[+-][0-9]+\Z')

PARAMETERS_KEY = "parameters"


@dataclass(frozen=True)
class Key:
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Index:
    position: int

    def __str__(self) -> str:
        return str(self.position)


@dataclass(frozen=True)
class Parameter:
    position: int

    def __str__(self) -> str:
        return f"{PARAMETERS_KEY}.{self.position}"


Segment = Union[Key, Index, Parameter]

_MISSING = object()


def _check_key(name) -> None:
    if not isinstance(name, str) or not name:
        raise InvalidStructure(f"empty path segment: {name!r}")
    if "." in name:
        raise InvalidStructure(f"path key may not contain '.': {name!r}")
    if name != name.strip():
        raise InvalidStructure(f"path segment has surrounding whitespace: {name!r}")
    if _SIGNED_RE.match(name):
        raise InvalidStructure(f"signed index in path: {name!r}")


def _check_position(seg) -> None:
    if isinstance(seg.position, bool) or not isinstance(seg.position, int):
        raise InvalidStructure(f"non-integer position: {seg!r}")
    if seg.position < 0:
        raise InvalidStructure(f"negative position: {seg!r}")


def _normalize(segments) -> tuple:
    """Validate segments and fold them into canonical form."""
    out = []
    for seg in segments:
        if isinstance(seg, Key):
            _check_key(seg.name)
            if _INDEX_RE.match(seg.name):
                seg = Index(int(seg.name))
        elif isinstance(seg, (Index, Parameter)):
            _check_position(seg)
        else:
            raise InvalidStructure(f"not a path segment: {seg!r}")

        if (isinstance(seg, Index) and out
                and out[-1] == Key(PARAMETERS_KEY)):
            out[-1] = Parameter(seg.position)
        else:
            out.append(seg)
    return tuple(out)


def _decode_container(value: str):
    """Decode a JSON-encoded array/object string, or return None."""
    try:
        parsed = json.loads(value)
    except (json.JSONDecodeError, ValueError):
        return None
    if isinstance(parsed, (list, dict)):
        return parsed
    return None


def encode_container(value) -> str:
    """Serialize a decoded container the way RPG Maker's JSON.stringify does."""
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _child(node, seg, decode_json: bool):
    if decode_json and isinstance(node, str):
        node = _decode_container(node)
        if node is None:
            return _MISSING

    if isinstance(seg, Key):
        if isinstance(node, dict):
            return node.get(seg.name, _MISSING)
        return _MISSING

    if isinstance(seg, Index):
        if isinstance(node, list):
            if seg.position < len(node):
                return node[seg.position]
            return _MISSING
        if isinstance(node, dict):
            return node.get(str(seg.position), _MISSING)
        return _MISSING

    # Parameter
    if isinstance(node, dict):
        params = node.get(PARAMETERS_KEY)
        if decode_json and isinstance(params, str):
            params = _decode_container(params)
        if isinstance(params, list) and seg.position < len(params):
            return params[seg.position]
    return _MISSING


def _put(node, seg, value, path) -> None:
    if isinstance(seg, Key):
        if not isinstance(node, dict):
            raise PathNotFound(path, f"expected an object for key {seg.name!r}")
        node[seg.name] = value
        return

    if isinstance(seg, Index):
        if isinstance(node, list):
            if seg.position >= len(node):
                raise PathNotFound(path, f"index {seg.position} out of range")
            node[seg.position] = value
            return
        if isinstance(node, dict) and str(seg.position) in node:
            node[str(seg.position)] = value
            return
        raise PathNotFound(path, f"expected an array for index {seg.position}")

    params = node.get(PARAMETERS_KEY) if isinstance(node, dict) else None
    if not isinstance(params, list):
        raise PathNotFound(path, "expected an event command with parameters")
    if seg.position >= len(params):
        raise PathNotFound(path, f"parameter {seg.position} out of range")
    params[seg.position] = value


def _assign(node, segments: tuple, value, decode_json: bool, path) -> None:
    seg = segments[0]
    if (decode_json and isinstance(seg, Parameter) and isinstance(node, dict)
            and isinstance(node.get(PARAMETERS_KEY), str)):
        # a plain "parameters" member holding JSON text
        segments = (Key(PARAMETERS_KEY), Index(seg.position)) + segments[1:]
        seg = segments[0]
    if len(segments) == 1:
        _put(node, seg, value, path)
        return

    child = _child(node, seg, False)
    if child is _MISSING:
        raise PathNotFound(path, f"no value at segment {seg}")

    if decode_json and isinstance(child, str):
        decoded = _decode_container(child)
        if decoded is None:
            raise PathNotFound(path, f"segment {seg} is not a container")
        _assign(decoded, segments[1:], value, decode_json, path)
        _put(node, seg, encode_container(decoded), path)
        return

    _assign(child, segments[1:], value, decode_json, path)


class TranslationPath:
    """Immutable, hashable address of a value inside a document tree."""

    __slots__ = ("_segments",)

    def __init__(self, segments=()):
        self._segments = _normalize(segments)

    # ── Construction ────────────────────────────────────────────────

    @classmethod
    def parse(cls, text: str) -> "TranslationPath":
        """Parse a dotted path string.  The empty string is the root."""
        if not isinstance(text, str):
            raise InvalidStructure(f"path must be a string, got {type(text).__name__}")
        if text == "":
            return cls()
        segments = []
        for part in text.split("."):
            if _INDEX_RE.match(part):
                segments.append(Index(int(part)))
            else:
                segments.append(Key(part))
        return cls(segments)

    def append_key(self, name: str) -> "TranslationPath":
        return TranslationPath(self._segments + (Key(name),))

    def append_index(self, position: int) -> "TranslationPath":
        return TranslationPath(self._segments + (Index(position),))

    def append_parameter(self, position: int) -> "TranslationPath":
        return TranslationPath(self._segments + (Parameter(position),))

    def join(self, other: "TranslationPath") -> "TranslationPath":
        return TranslationPath(self._segments + other.segments)

    # ── Inspection ──────────────────────────────────────────────────

    @property
    def segments(self) -> tuple:
        return self._segments

    @property
    def last(self) -> Optional[Segment]:
        return self._segments[-1] if self._segments else None

    def parent(self) -> "TranslationPath":
        if not self._segments:
            raise InvalidStructure("the root path has no parent")
        return TranslationPath(self._segments[:-1])

    def starts_with(self, prefix: "TranslationPath") -> bool:
        n = len(prefix.segments)
        return self._segments[:n] == prefix.segments

    def relative_to(self, prefix: "TranslationPath") -> Optional["TranslationPath"]:
        """Return the remainder after ``prefix``, or None if it is not a prefix."""
        if not self.starts_with(prefix):
            return None
        return TranslationPath(self._segments[len(prefix.segments):])

    def to_unit_id(self, suffix: str) -> str:
        return f"{self}_{suffix}"

    # ── Document access ─────────────────────────────────────────────

    def get(self, document, decode_json: bool = False):
        """Return the value at this path, or None when any segment is absent.

        With ``decode_json``, string values holding JSON arrays or objects
        are descended into as if they were already decoded.
        """
        node = document
        for seg in self._segments:
            node = _child(node, seg, decode_json)
            if node is _MISSING:
                return None
        return node

    def exists(self, document, decode_json: bool = False) -> bool:
        node = document
        for seg in self._segments:
            node = _child(node, seg, decode_json)
            if node is _MISSING:
                return False
        return True

    def set(self, document, value, decode_json: bool = False) -> None:
        """Replace exactly one value in place.

        Raises PathNotFound when the parent does not resolve to a container
        of the right shape, or when an array position is out of range.
        Embedded JSON strings crossed with ``decode_json`` are re-encoded.
        """
        if not self._segments:
            raise PathNotFound(self, "cannot replace the document root")
        _assign(document, self._segments, value, decode_json, self)

    # ── Dunder ──────────────────────────────────────────────────────

    def __str__(self) -> str:
        return ".".join(str(seg) for seg in self._segments)

    def __repr__(self) -> str:
        return f"TranslationPath({str(self)!r})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, TranslationPath):
            return NotImplemented
        return self._segments == other._segments

    def __hash__(self) -> int:
        return hash(self._segments)

    def __len__(self) -> int:
        return len(self._segments)

    def __iter__(self):
        return iter(self._segments)

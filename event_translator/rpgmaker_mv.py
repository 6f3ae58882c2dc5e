"""RPG Maker MV/MZ event documents: extraction and injection.

Handles the data files whose events carry command lists (CommonEvents.json,
Troops.json and Map###.json) and their load/save.
"""

import enum
import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Iterator, Optional

from .context import ExtractionContext
from .errors import DocumentLoadError, InvalidStructure
from .event_walker import extract_page, inject_page
from .handlers import HandlerRegistry
from .plugin_config import PluginConfigStore
from .settings import ExtractionOptions, InjectionOptions
from .translation_path import TranslationPath

log = logging.getLogger(__name__)

_MAP_FILE_RE = re.compile(r'^Map\d+\.json$', re.IGNORECASE)


class DocumentKind(enum.Enum):
    COMMON_EVENTS = "common_events"
    MAP = "map"
    TROOPS = "troops"


def is_event_file(filename: str) -> bool:
    """True for data files that hold event command lists."""
    name = os.path.basename(filename)
    return (name in ("CommonEvents.json", "Troops.json")
            or bool(_MAP_FILE_RE.match(name)))


def detect_kind(data, source_file: str = "") -> DocumentKind:
    """Decide the document kind from its file name, else from its shape."""
    name = os.path.basename(source_file)
    if name == "CommonEvents.json":
        return DocumentKind.COMMON_EVENTS
    if name == "Troops.json":
        return DocumentKind.TROOPS
    if _MAP_FILE_RE.match(name):
        return DocumentKind.MAP

    if isinstance(data, dict) and "events" in data:
        return DocumentKind.MAP
    if isinstance(data, list):
        for entry in data:
            if isinstance(entry, dict):
                if "pages" in entry:
                    return DocumentKind.TROOPS
                if "list" in entry:
                    return DocumentKind.COMMON_EVENTS
        return DocumentKind.COMMON_EVENTS
    raise InvalidStructure(f"{source_file or 'document'}: not an event document")


@dataclass
class _Page:
    list_path: TranslationPath
    commands: list
    event_name: str
    event_id: Optional[int]
    page_index: Optional[int]


def _pages_of(event, event_path: TranslationPath, page_key: str,
              warnings: list) -> Iterator[tuple]:
    pages = event.get(page_key)
    if not isinstance(pages, list):
        warnings.append(f"{event_path}: '{page_key}' is not a list")
        return
    for p, page in enumerate(pages):
        page_path = event_path.append_key(page_key).append_index(p)
        if page is None:
            continue
        if not isinstance(page, dict):
            warnings.append(f"{page_path}: page is not an object")
            continue
        yield p, page_path, page


def iter_pages(data, kind: DocumentKind, warnings: list) -> Iterator[_Page]:
    """Every command list of a document, in document order.

    Null entries are skipped silently; malformed events or pages are
    reported in ``warnings``.  A wrong document root is InvalidStructure.
    """
    if kind is DocumentKind.MAP:
        if not isinstance(data, dict) or not isinstance(data.get("events"), list):
            raise InvalidStructure("map document needs an 'events' list")
        events = data["events"]
        root = TranslationPath().append_key("events")
    else:
        if not isinstance(data, list):
            raise InvalidStructure(f"{kind.value} document must be a list")
        events = data
        root = TranslationPath()

    for e, event in enumerate(events):
        event_path = root.append_index(e)
        if event is None:
            continue
        if not isinstance(event, dict):
            warnings.append(f"{event_path}: event is not an object")
            continue
        name = event.get("name", "") or ""
        event_id = event.get("id")

        if kind is DocumentKind.COMMON_EVENTS:
            commands = event.get("list")
            if not isinstance(commands, list):
                warnings.append(f"{event_path}: 'list' is not a list")
                continue
            yield _Page(event_path.append_key("list"), commands, name, event_id, None)
            continue

        for p, page_path, page in _pages_of(event, event_path, "pages", warnings):
            commands = page.get("list")
            if not isinstance(commands, list):
                warnings.append(f"{page_path}: 'list' is not a list")
                continue
            yield _Page(page_path.append_key("list"), commands, name, event_id, p)


@dataclass
class ExtractionOutput:
    source_file: str
    kind: DocumentKind
    units: list = field(default_factory=list)
    metadata: dict = field(default_factory=dict)
    warnings: list = field(default_factory=list)


@dataclass
class InjectionOutput:
    source_file: str
    document: object = None
    applied: int = 0
    not_found: int = 0
    warnings: list = field(default_factory=list)


def _map_name(data, source_file: str) -> str:
    if isinstance(data, dict) and data.get("displayName"):
        return data["displayName"]
    return os.path.splitext(os.path.basename(source_file))[0]


class EventExtractor:
    """Turns an event document into an ordered list of translation units."""

    def __init__(self, registry: Optional[HandlerRegistry] = None,
                 plugin_store: Optional[PluginConfigStore] = None,
                 options: Optional[ExtractionOptions] = None):
        self.options = options or ExtractionOptions()
        self.registry = registry or HandlerRegistry.with_defaults(plugin_store)

    def extract(self, data, source_file: str = "",
                kind: Optional[DocumentKind] = None) -> ExtractionOutput:
        kind = kind or detect_kind(data, source_file)
        out = ExtractionOutput(source_file=source_file, kind=kind)
        base = ExtractionContext(
            file_name=source_file,
            map_name=_map_name(data, source_file) if kind is DocumentKind.MAP else "",
            max_preceding_lines=self.options.max_preceding_lines,
        )

        events = set()
        pages = 0
        for page in iter_pages(data, kind, out.warnings):
            ctx = base.for_page(page.event_name, page.event_id, page.page_index)
            found = extract_page(page.commands, page.list_path, ctx,
                                 self.registry, self.options)
            out.units.extend(found.units)
            out.warnings.extend(found.warnings)
            events.add(page.event_id if page.event_id is not None else page.list_path)
            pages += 1

        speakers = []
        for u in out.units:
            if u.speaker and u.speaker not in speakers:
                speakers.append(u.speaker)
        out.metadata = {
            "source_file": source_file,
            "kind": kind.value,
            "total_units": len(out.units),
            "speakers": speakers,
            "events": len(events),
            "pages": pages,
        }
        if out.warnings:
            log.debug("%s: %d warnings during extraction", source_file or kind.value,
                      len(out.warnings))
        return out

    def extract_file(self, path: str) -> ExtractionOutput:
        data = load_document(path)
        return self.extract(data, os.path.basename(path))


class EventInjector:
    """Writes translated text back into an event document, in place.

    Must be built with the same handlers, plugin configs and extraction
    options used to produce the units, so both walks see the same ranges.
    """

    def __init__(self, registry: Optional[HandlerRegistry] = None,
                 plugin_store: Optional[PluginConfigStore] = None,
                 options: Optional[ExtractionOptions] = None,
                 inject_options: Optional[InjectionOptions] = None):
        self.options = options or ExtractionOptions()
        self.inject_options = inject_options or InjectionOptions()
        self.registry = registry or HandlerRegistry.with_defaults(plugin_store)

    def inject(self, data, translations: dict, source_file: str = "",
               kind: Optional[DocumentKind] = None) -> InjectionOutput:
        kind = kind or detect_kind(data, source_file)
        out = InjectionOutput(source_file=source_file, document=data)
        base = ExtractionContext(
            file_name=source_file,
            map_name=_map_name(data, source_file) if kind is DocumentKind.MAP else "",
            max_preceding_lines=self.options.max_preceding_lines,
        )
        for page in iter_pages(data, kind, out.warnings):
            ctx = base.for_page(page.event_name, page.event_id, page.page_index)
            done = inject_page(page.commands, page.list_path, ctx, self.registry,
                               translations, self.options, self.inject_options)
            out.applied += done.applied
            out.not_found += done.not_found
            out.warnings.extend(done.warnings)
        return out

    def inject_file(self, path: str, translations: dict,
                    output_path: Optional[str] = None) -> InjectionOutput:
        data = load_document(path)
        out = self.inject(data, translations, os.path.basename(path))
        save_document(output_path or path, out.document)
        return out


def load_document(path: str):
    """Read a data file.  I/O and decoding failures raise DocumentLoadError."""
    try:
        with open(path, "r", encoding="utf-8-sig") as f:
            return json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DocumentLoadError(path, f"not valid JSON: {e}") from e
    except OSError as e:
        raise DocumentLoadError(path, str(e)) from e


def save_document(path: str, data):
    """Write a data file as UTF-8 JSON."""
    os.makedirs(os.path.dirname(path) if os.path.dirname(path) else ".", exist_ok=True)
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
    except OSError as e:
        raise DocumentLoadError(path, str(e)) from e

"""Data model for translation units and the translation cache file."""

import json
import os
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from .errors import InvalidStructure
from .event_codes import CommandCode, classify
from .translation_path import TranslationPath

CACHE_VERSION = "1.0"


class TranslationStatus:
    PENDING = "pending"
    TRANSLATED = "translated"
    REVIEWED = "reviewed"
    NEEDS_REVISION = "needs_revision"
    SKIPPED = "skipped"

    ALL = (PENDING, TRANSLATED, REVIEWED, NEEDS_REVISION, SKIPPED)
    DONE = (TRANSLATED, REVIEWED)


@dataclass(frozen=True)
class UnitContext:
    """Where a unit came from and what was said just before it."""
    event_name: str = ""
    map_name: str = ""
    page_index: Optional[int] = None
    preceding_lines: tuple = ()
    tags: tuple = ()

    def to_dict(self) -> dict:
        return {
            "event_name": self.event_name,
            "map_name": self.map_name,
            "page_index": self.page_index,
            "preceding_lines": list(self.preceding_lines),
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "UnitContext":
        return cls(
            event_name=data.get("event_name", "") or "",
            map_name=data.get("map_name", "") or "",
            page_index=data.get("page_index"),
            preceding_lines=tuple(data.get("preceding_lines", ())),
            tags=tuple(data.get("tags", ())),
        )


@dataclass(frozen=True)
class TranslationUnit:
    """A single translatable string found in an event command list."""
    id: str                # e.g. "events.1.pages.0.list.3_dialogue"
    path: TranslationPath  # location of the first command or parameter leaf
    code: CommandCode      # command code the text came from
    original: str          # text as found in the document
    speaker: Optional[str] = None
    context: UnitContext = field(default_factory=UnitContext)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "path": str(self.path),
            "code": int(self.code),
            "original": self.original,
            "speaker": self.speaker,
            "context": self.context.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TranslationUnit":
        context = data.get("context") or {}
        if not isinstance(context, dict):
            raise InvalidStructure(f"unit {data.get('id')!r}: context must be an object")
        return cls(
            id=data["id"],
            path=TranslationPath.parse(data["path"]),
            code=classify(int(data["code"])),
            original=data["original"],
            speaker=data.get("speaker"),
            context=UnitContext.from_dict(context),
        )


@dataclass
class CacheEntry:
    """A unit plus its translation state, as kept in the cache file."""
    unit: TranslationUnit
    translated: Optional[str] = None
    status: str = TranslationStatus.PENDING

    @property
    def id(self) -> str:
        return self.unit.id

    @property
    def original(self) -> str:
        return self.unit.original

    def to_dict(self) -> dict:
        data = self.unit.to_dict()
        data["translated"] = self.translated
        data["status"] = self.status
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "CacheEntry":
        if not isinstance(data, dict):
            raise InvalidStructure(f"cache unit must be an object, got {type(data).__name__}")
        status = data.get("status", TranslationStatus.PENDING)
        if status not in TranslationStatus.ALL:
            raise InvalidStructure(f"unknown unit status {status!r} for {data.get('id')!r}")
        return cls(
            unit=TranslationUnit.from_dict(data),
            translated=data.get("translated"),
            status=status,
        )


@dataclass
class TranslationFile:
    """Translation cache for one source document.

    Written after extraction, edited externally, and read back to build
    the id → text mapping handed to the injector.
    """
    source_file: str = ""
    extracted_at: str = ""
    entries: list = field(default_factory=list)
    version: str = CACHE_VERSION

    @classmethod
    def from_units(cls, source_file: str, units: list) -> "TranslationFile":
        return cls(
            source_file=source_file,
            extracted_at=datetime.now(timezone.utc).isoformat(),
            entries=[CacheEntry(unit=u) for u in units],
        )

    @classmethod
    def from_output(cls, output) -> "TranslationFile":
        """Build a cache from an ExtractionOutput."""
        return cls.from_units(output.source_file, output.units)

    # ── Counts ──────────────────────────────────────────────────────

    @property
    def total(self) -> int:
        return len(self.entries)

    @property
    def translated_count(self) -> int:
        return sum(1 for e in self.entries if e.status in TranslationStatus.DONE)

    @property
    def reviewed_count(self) -> int:
        return sum(1 for e in self.entries if e.status == TranslationStatus.REVIEWED)

    def speakers(self) -> list:
        """Unique speakers in first-seen order."""
        seen = []
        for e in self.entries:
            if e.unit.speaker and e.unit.speaker not in seen:
                seen.append(e.unit.speaker)
        return seen

    def completion_percentage(self) -> float:
        if not self.entries:
            return 0.0
        return 100.0 * self.translated_count / self.total

    def metadata(self) -> dict:
        return {
            "total_units": self.total,
            "translated": self.translated_count,
            "reviewed": self.reviewed_count,
            "speakers": self.speakers(),
        }

    # ── Lookup / edit ───────────────────────────────────────────────

    def get_entry(self, unit_id: str) -> Optional[CacheEntry]:
        for e in self.entries:
            if e.id == unit_id:
                return e
        return None

    def set_translation(self, unit_id: str, text: str,
                        status: str = TranslationStatus.TRANSLATED) -> bool:
        """Record a translation.  Returns False when the id is unknown."""
        if status not in TranslationStatus.ALL:
            raise ValueError(f"unknown status {status!r}")
        entry = self.get_entry(unit_id)
        if entry is None:
            return False
        entry.translated = text
        entry.status = status
        return True

    def translations(self) -> dict:
        """Mapping of unit id → translated text for the injector.

        Skipped units and units without text are left out, so the injector
        leaves their commands untouched.
        """
        return {
            e.id: e.translated
            for e in self.entries
            if e.translated is not None and e.status != TranslationStatus.SKIPPED
        }

    def import_translations(self, old: "TranslationFile") -> dict:
        """Carry translations over from an older cache of the same file.

        Matching strategy:
        1. Exact ID match with identical original text
        2. Original text match - catches units whose commands moved

        Only pending entries are filled.

        Returns:
            Dict with stats: {"by_id": int, "by_text": int, "skipped": int, "new": int}
        """
        old_by_id = {}
        old_by_text = defaultdict(list)
        for e in old.entries:
            if e.translated and e.status in TranslationStatus.DONE:
                old_by_id[e.id] = e
                old_by_text[e.original].append(e)

        stats = {"by_id": 0, "by_text": 0, "skipped": 0, "new": 0}

        for entry in self.entries:
            if entry.status != TranslationStatus.PENDING:
                stats["skipped"] += 1
                continue

            prev = old_by_id.get(entry.id)
            if prev and prev.original == entry.original:
                entry.translated = prev.translated
                entry.status = prev.status
                stats["by_id"] += 1
                continue

            candidates = old_by_text.get(entry.original, [])
            if candidates:
                entry.translated = candidates[0].translated
                entry.status = candidates[0].status
                stats["by_text"] += 1
                continue

            stats["new"] += 1

        return stats

    # ── Persistence ─────────────────────────────────────────────────

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "source_file": self.source_file,
            "extracted_at": self.extracted_at,
            "units": [e.to_dict() for e in self.entries],
            "metadata": self.metadata(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TranslationFile":
        if not isinstance(data, dict) or not isinstance(data.get("units"), list):
            raise InvalidStructure("translation cache must be an object with a 'units' list")
        try:
            entries = [CacheEntry.from_dict(u) for u in data["units"]]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise InvalidStructure(f"malformed unit in translation cache: {e}") from e
        return cls(
            source_file=data.get("source_file", ""),
            extracted_at=data.get("extracted_at", ""),
            entries=entries,
            version=data.get("version", CACHE_VERSION),
        )

    def save(self, path: str):
        """Write the cache as UTF-8 JSON."""
        os.makedirs(os.path.dirname(path) if os.path.dirname(path) else ".", exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, ensure_ascii=False, indent=2)

    @classmethod
    def load(cls, path: str) -> "TranslationFile":
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise InvalidStructure(f"{path}: translation cache is not valid UTF-8 JSON ({e})") from e
        return cls.from_dict(data)


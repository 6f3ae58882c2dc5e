"""Per-page walk state and the values handlers hand back to the walker."""

from collections import deque
from dataclasses import dataclass, field
from typing import Optional

from .project_model import UnitContext


class ExtractionContext:
    """State carried from command to command within one page.

    Holds the current speaker and a bounded window of the most recent
    text lines.  A fresh context is made for every page, so nothing leaks
    between pages or events.
    """

    def __init__(self, file_name: str = "", map_name: str = "",
                 event_name: str = "", event_id: Optional[int] = None,
                 page_index: Optional[int] = None, max_preceding_lines: int = 5):
        self.file_name = file_name
        self.map_name = map_name
        self.event_name = event_name
        self.event_id = event_id
        self.page_index = page_index
        self.current_speaker: Optional[str] = None
        self.preceding_lines: deque = deque(maxlen=max(0, max_preceding_lines))

    def for_page(self, event_name: str, event_id: Optional[int] = None,
                 page_index: Optional[int] = None) -> "ExtractionContext":
        """A clean context for the next page of the same document."""
        return ExtractionContext(
            file_name=self.file_name,
            map_name=self.map_name,
            event_name=event_name,
            event_id=event_id,
            page_index=page_index,
            max_preceding_lines=self.preceding_lines.maxlen,
        )

    def push_line(self, text: str):
        """Record a line of recent text.  Blank lines are ignored."""
        if text and text.strip():
            self.preceding_lines.append(text)

    def apply(self, result: "ExtractionResult"):
        """Fold a handler result into the context."""
        if result.sets_speaker:
            self.current_speaker = result.speaker
        for line in result.preceding:
            self.push_line(line)

    def unit_context(self, tags=()) -> UnitContext:
        return UnitContext(
            event_name=self.event_name,
            map_name=self.map_name,
            page_index=self.page_index,
            preceding_lines=tuple(self.preceding_lines),
            tags=tuple(tags),
        )


@dataclass
class ExtractionResult:
    """What a handler found at one position of a command list."""
    units: list = field(default_factory=list)
    consumed: int = 1
    speaker: Optional[str] = None
    sets_speaker: bool = False
    preceding: tuple = ()   # lines pushed into the context after this step
    warnings: list = field(default_factory=list)
    meta: dict = field(default_factory=dict)  # handler data reused by inject()

    def __post_init__(self):
        if self.consumed < 1:
            raise ValueError(f"handler must consume at least one command, got {self.consumed}")


@dataclass
class InjectionStep:
    """What a handler did to the command list during injection."""
    produced: int = 1      # commands now occupying the handled range
    applied: int = 0
    not_found: int = 0
    warnings: list = field(default_factory=list)

"""Extraction/injection options and the persisted settings file."""

import json
import logging
import os
from dataclasses import dataclass, field, asdict, fields
from typing import Optional

log = logging.getLogger(__name__)

SETTINGS_FILE = os.path.join(os.path.dirname(os.path.dirname(__file__)), "_settings.json")


@dataclass
class ExtractionOptions:
    """Knobs that control what the extractor turns into translation units."""
    max_preceding_lines: int = 5       # size of the recent-context window
    trim_whitespace: bool = False      # strip unit text (injection writes the stripped form)
    merge_dialogue_lines: bool = True  # one unit per text run; off = one unit per line
    dialogue_line_separator: str = "\n"  # joins the lines of a merged run
    include_empty: bool = False        # emit units for all-blank text blocks
    extract_comments: bool = True      # 108/408 comments
    skip_comment_prefixes: tuple = (";",)
    extract_plugins: bool = True       # 356/357 plugin commands
    extract_script_text: bool = False  # 657 lines carrying script_text_prefix
    script_text_prefix: str = "テキスト = "
    extract_speaker_names: bool = False  # MZ speaker name on the 101 header
    require_cjk: bool = False          # only emit units containing CJK text
    strict: bool = False               # unknown codes abort the document

    @classmethod
    def for_machine_translation(cls) -> "ExtractionOptions":
        """Preset for feeding text to a translation model.

        Runs are joined with spaces so each reads as one sentence, and
        comments are left out.
        """
        return cls(
            max_preceding_lines=3,
            trim_whitespace=True,
            dialogue_line_separator=" ",
            extract_comments=False,
        )

    def should_skip_comment(self, text: str) -> bool:
        return any(text.startswith(p) for p in self.skip_comment_prefixes)


@dataclass
class InjectionOptions:
    """Knobs that control how translated text is written back."""
    max_line_length: Optional[int] = None  # re-wrap dialogue lines longer than this
    word_aware_split: bool = True          # wrap at spaces; else by display width
    single_line_mode: bool = False         # write each dialogue block as one 401 line
    sync_choice_branches: bool = True      # mirror choice labels into 402 branches

    def split_text(self, text: str, separator: str = "\n") -> list:
        """Split translated text into the lines written as body commands.

        Lines always break at ``\\n``.  A run joined with another visible
        separator is also split back at it; a whitespace separator cannot be
        told apart from spaces in the translation, so such text is only
        broken by ``max_line_length``.
        """
        lines = text.split("\n")
        if separator != "\n" and separator.strip():
            lines = [part for line in lines for part in line.split(separator)]
        if self.max_line_length and self.max_line_length > 0:
            wrapped = []
            for line in lines:
                wrapped.extend(self._split_line(line, self.max_line_length))
            lines = wrapped
        if self.single_line_mode:
            return ["\n".join(lines)]
        return lines

    def _split_line(self, line: str, max_len: int) -> list:
        if _display_width(line) <= max_len:
            return [line]
        if self.word_aware_split and " " in line.strip():
            return _split_at_words(line, max_len)
        return _split_at_chars(line, max_len)


def _display_width(text: str) -> int:
    """ASCII counts 1 column, everything else 2 (full-width glyphs)."""
    return sum(1 if ord(c) < 128 else 2 for c in text)


def _split_at_words(text: str, max_len: int) -> list:
    result = []
    current = ""
    for word in text.split():
        if not current:
            if _display_width(word) > max_len:
                result.extend(_split_at_chars(word, max_len))
            else:
                current = word
        elif _display_width(current) + 1 + _display_width(word) <= max_len:
            current += " " + word
        else:
            result.append(current)
            if _display_width(word) > max_len:
                result.extend(_split_at_chars(word, max_len))
                current = ""
            else:
                current = word
    if current:
        result.append(current)
    return result


def _split_at_chars(text: str, max_len: int) -> list:
    result = []
    current = ""
    width = 0
    for c in text:
        w = 1 if ord(c) < 128 else 2
        if width + w > max_len and current:
            result.append(current)
            current = ""
            width = 0
        current += c
        width += w
    if current:
        result.append(current)
    return result


@dataclass
class Settings:
    extraction: ExtractionOptions = field(default_factory=ExtractionOptions)
    injection: InjectionOptions = field(default_factory=InjectionOptions)
    workers: int = 2
    plugin_config_file: str = ""  # user plugin field configs (JSON)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["extraction"]["skip_comment_prefixes"] = list(
            self.extraction.skip_comment_prefixes)
        return data


def _known(cls, raw: dict) -> dict:
    """Keep only keys that are fields of ``cls``."""
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in raw.items() if k in names}


def load_settings(path: str = SETTINGS_FILE) -> Settings:
    """Load settings from a JSON file.  Missing or corrupt files give defaults."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = json.load(f)
    except (FileNotFoundError, json.JSONDecodeError, OSError):
        return Settings()  # No saved settings - use defaults

    if not isinstance(cfg, dict):
        log.warning("Ignoring settings file %s: top level is not an object", path)
        return Settings()

    settings = Settings()
    if isinstance(cfg.get("extraction"), dict):
        ext = _known(ExtractionOptions, cfg["extraction"])
        if "skip_comment_prefixes" in ext:
            ext["skip_comment_prefixes"] = tuple(ext["skip_comment_prefixes"])
        settings.extraction = ExtractionOptions(**ext)
    if isinstance(cfg.get("injection"), dict):
        settings.injection = InjectionOptions(**_known(InjectionOptions, cfg["injection"]))
    if isinstance(cfg.get("workers"), int):
        settings.workers = max(1, cfg["workers"])
    if "plugin_config_file" in cfg:
        settings.plugin_config_file = cfg["plugin_config_file"]
    return settings


def save_settings(settings: Settings, path: str = SETTINGS_FILE):
    """Persist settings to a JSON file."""
    with open(path, "w", encoding="utf-8") as f:
        json.dump(settings.to_dict(), f, ensure_ascii=False, indent=2)

"""Per-code handlers for event command lists.

Each handler claims a set of command codes and implements two operations
over a page's command list:

``extract(commands, index, origin, list_path, context, options)``
    Read the command(s) starting at ``index`` and return an
    ExtractionResult: the translation units found, how many commands were
    accounted for (``consumed``), and any speaker / recent-line updates.

``inject(commands, index, origin, list_path, result, translations, options)``
    Patch the same range using ``result`` (computed by ``extract`` on the
    same position) and a unit id → text mapping.  Returns an InjectionStep
    whose ``produced`` is the number of commands now occupying the range.

``index`` is the position in the list being read or modified.  ``origin``
is the position the command had when the page was extracted; unit ids and
paths always use ``origin`` so they stay stable while injection grows or
shrinks earlier text blocks.
"""

import copy
import json
import logging
import re
from typing import Optional

from . import NAMEBOX_RE, has_cjk
from .context import ExtractionContext, ExtractionResult, InjectionStep
from .errors import InvalidCommand, PathNotFound
from .event_codes import EventCode, classify
from .field_pattern import walk_leaves
from .plugin_config import PluginConfigStore
from .project_model import TranslationUnit
from .settings import ExtractionOptions, InjectionOptions
from .translation_path import Index, TranslationPath

log = logging.getLogger(__name__)

# MV plugin commands (code 356): (prefix, compiled_regex) tuples.
# prefix is checked via startswith() for fast filtering.
# regex capture group 1 = the translatable text portion.
MV_PLUGIN_COMMAND_WHITELIST: list[tuple[str, re.Pattern]] = [
    ("D_TEXT",
     re.compile(r"D_TEXT\s+([^\s]+)\s?\d*")),
    ("Tachie showName",
     re.compile(r"Tachie showName (.+)")),
    ("ShowInfo",
     re.compile(r"ShowInfo\s(.*)")),
    ("PushGab",
     re.compile(r"PushGab\s(.*)")),
    ("addLog",
     re.compile(r"addLog\s(.*)")),
    ("DW_",
     re.compile(r"DW_.*\s\d+\s(.+)")),
    ("CommonPopup",
     re.compile(r"CommonPopup\sadd\stext:(.*?)\\}")),
    ("AddCustomChoice",
     re.compile(r"AddCustomChoice\s\d+\s(.+)\s\d")),
    ("namePop",
     re.compile(r"<namePop:\s*([^>]+)>")),
    ("namePop",
     re.compile(r"\bnamePop\b\s*(?:-?\d+)?\s*([^\r\n<>]+)")),
    ("LL_InfoPopupWIndowMV",
     re.compile(r"LL_InfoPopupWIndowMV\sshowWindow\s(.+?) .+")),
    ("OriginMenuStatus SetParam",
     re.compile(r"OriginMenuStatus\sSetParam\sparam[\d]\s(.*)")),
    ("LL_GalgeChoiceWindowMV setMessageText",
     re.compile(r"LL_GalgeChoiceWindowMV setMessageText (.+)")),
    ("LL_GalgeChoiceWindowMV setChoices",
     re.compile(r"LL_GalgeChoiceWindowMV setChoices (.+)")),
]


# ── Command access helpers ─────────────────────────────────────────

def _params(cmd, path: TranslationPath, needed: int = 1) -> list:
    params = cmd.get("parameters") if isinstance(cmd, dict) else None
    if not isinstance(params, list):
        raise InvalidCommand(path, "missing parameters list")
    if len(params) < needed:
        raise InvalidCommand(path, f"expected at least {needed} parameters, got {len(params)}")
    return params


def _text_param(cmd, path: TranslationPath, position: int = 0) -> str:
    params = _params(cmd, path, position + 1)
    text = params[position]
    if not isinstance(text, str):
        raise InvalidCommand(path, f"parameter {position} is not a string")
    return text


def _code_of(cmd) -> Optional[int]:
    if not isinstance(cmd, dict):
        return None
    code = cmd.get("code")
    if isinstance(code, bool) or not isinstance(code, int):
        return None
    return code


def _wanted(text: str, options: ExtractionOptions) -> bool:
    """Apply the content filters shared by every handler."""
    if not text.strip():
        return options.include_empty
    if options.require_cjk and not has_cjk(text):
        return False
    return True


def _unit(unit_id: str, path: TranslationPath, code: int, text: str,
          context: ExtractionContext, tags=(), speaker: Optional[str] = None):
    return TranslationUnit(
        id=unit_id,
        path=path,
        code=classify(code),
        original=text,
        speaker=speaker,
        context=context.unit_context(tags),
    )


class CommandHandler:
    """Base for handlers: claims ``codes`` and leaves untranslated ranges alone."""

    codes: tuple = ()

    def extract(self, commands: list, index: int, origin: int,
                list_path: TranslationPath, context: ExtractionContext,
                options: ExtractionOptions) -> ExtractionResult:
        raise NotImplementedError

    def inject(self, commands: list, index: int, origin: int,
               list_path: TranslationPath, result: ExtractionResult,
               translations: dict, options: InjectionOptions) -> InjectionStep:
        raise NotImplementedError


class StructuralHandler(CommandHandler):
    """Choice branch / cancel / end markers: no text, one command."""

    codes = (EventCode.WHEN_CHOICE, EventCode.WHEN_CANCEL, EventCode.CHOICES_END)

    def extract(self, commands, index, origin, list_path, context, options):
        return ExtractionResult()

    def inject(self, commands, index, origin, list_path, result, translations, options):
        return InjectionStep(produced=1)


class ActorTextHandler(CommandHandler):
    """Change Actor Name / Nickname / Profile (320, 324, 325).

    params[0]=actorId, params[1]=text
    """

    codes = (EventCode.CHANGE_NAME, EventCode.CHANGE_NICKNAME, EventCode.CHANGE_PROFILE)
    TEXT_PARAM = 1
    SUFFIXES = {
        EventCode.CHANGE_NAME: "name",
        EventCode.CHANGE_NICKNAME: "nickname",
        EventCode.CHANGE_PROFILE: "profile",
    }

    def extract(self, commands, index, origin, list_path, context, options):
        cmd = commands[index]
        path = list_path.append_index(origin)
        text = _text_param(cmd, path, self.TEXT_PARAM)
        if options.trim_whitespace:
            text = text.strip()
        if not _wanted(text, options):
            return ExtractionResult()
        suffix = self.SUFFIXES[cmd["code"]]
        unit = _unit(path.to_unit_id(suffix), path.append_parameter(self.TEXT_PARAM),
                     cmd["code"], text, context, (f"actor_{suffix}",))
        return ExtractionResult(units=[unit])

    def inject(self, commands, index, origin, list_path, result, translations, options):
        step = InjectionStep(produced=1)
        for unit in result.units:
            text = translations.get(unit.id)
            if text is None:
                step.not_found += 1
                continue
            step.applied += 1
            if text != unit.original:
                commands[index]["parameters"][self.TEXT_PARAM] = text
        return step


class ScriptTextHandler(CommandHandler):
    """Script text lines (657) that carry a display-text prefix.

    Only lines starting with ``options.script_text_prefix`` are text, and
    only when ``extract_script_text`` is on; other script is code.
    """

    codes = (EventCode.PLUGIN_ARGS,)

    def extract(self, commands, index, origin, list_path, context, options):
        if not options.extract_script_text:
            return ExtractionResult()
        path = list_path.append_index(origin)
        line = _text_param(commands[index], path)
        prefix = options.script_text_prefix
        if not prefix or not line.startswith(prefix):
            return ExtractionResult()
        text = line[len(prefix):]
        if options.trim_whitespace:
            text = text.strip()
        if not _wanted(text, options):
            return ExtractionResult()
        unit = _unit(path.to_unit_id("script_text"), path.append_parameter(0),
                     EventCode.PLUGIN_ARGS, text, context, ("script_text",))
        return ExtractionResult(units=[unit], meta={"prefix": prefix})

    def inject(self, commands, index, origin, list_path, result, translations, options):
        step = InjectionStep(produced=1)
        for unit in result.units:
            text = translations.get(unit.id)
            if text is None:
                step.not_found += 1
                continue
            step.applied += 1
            if text != unit.original:
                commands[index]["parameters"][0] = result.meta["prefix"] + text
        return step


class ShowTextHandler(CommandHandler):
    """Show Text header (101).

    MV: parameters = [faceName, faceIndex, background, positionType]
    MZ: parameters = [faceName, faceIndex, background, positionType, speakerName]

    Sets the current speaker for the dialogue that follows.  The MZ
    speaker name itself is a unit only with ``extract_speaker_names``.
    """

    codes = (EventCode.SHOW_TEXT,)
    SPEAKER_PARAM = 4

    def extract(self, commands, index, origin, list_path, context, options):
        path = list_path.append_index(origin)
        params = _params(commands[index], path, 0)
        name = params[self.SPEAKER_PARAM] if len(params) > self.SPEAKER_PARAM else ""
        speaker = name if isinstance(name, str) and name.strip() else None

        units = []
        if speaker and options.extract_speaker_names and _wanted(speaker, options):
            units.append(_unit(path.to_unit_id("speaker"),
                               path.append_parameter(self.SPEAKER_PARAM),
                               EventCode.SHOW_TEXT, speaker, context,
                               ("speaker_name",), speaker=speaker))
        return ExtractionResult(units=units, speaker=speaker, sets_speaker=True)

    def inject(self, commands, index, origin, list_path, result, translations, options):
        step = InjectionStep(produced=1)
        for unit in result.units:
            text = translations.get(unit.id)
            if text is None:
                step.not_found += 1
                continue
            if text != unit.original:
                commands[index]["parameters"][self.SPEAKER_PARAM] = text
            step.applied += 1
        return step


class TextRunHandler(CommandHandler):
    """Consecutive same-indent text lines merged into one unit.

    Used for Show Text bodies (401), Scroll Text bodies (405) and comments
    (108 followed by 408 continuations).  The unit's text is the lines
    joined with ``dialogue_line_separator`` (always ``\\n`` for comments);
    with ``merge_dialogue_lines`` off each line is its own unit.  On
    injection the translation is split back into lines and the whole run
    is replaced, so the line count may change.
    """

    def __init__(self, codes, body_code: int, suffix: str, tag: str,
                 is_comment: bool = False):
        self.codes = tuple(codes)
        self.body_code = int(body_code)
        self.suffix = suffix
        self.tag = tag
        self.is_comment = is_comment

    def _run(self, commands: list, index: int, list_path, origin: int):
        """Lines of the run starting at ``index``."""
        first = commands[index]
        lines = [_text_param(first, list_path.append_index(origin))]
        indent = first.get("indent", 0)
        j = index + 1
        while j < len(commands):
            cmd = commands[j]
            if _code_of(cmd) != self.body_code or cmd.get("indent", 0) != indent:
                break
            params = cmd.get("parameters")
            if not isinstance(params, list) or not params or not isinstance(params[0], str):
                break  # reported when the walker reaches it
            lines.append(params[0])
            j += 1
        return lines

    def extract(self, commands, index, origin, list_path, context, options):
        lines = self._run(commands, index, list_path, origin)
        if not self.is_comment and not options.merge_dialogue_lines:
            lines = lines[:1]
        consumed = len(lines)
        if self.is_comment and not options.extract_comments:
            return ExtractionResult(consumed=consumed)

        separator = "\n" if self.is_comment else options.dialogue_line_separator
        text = separator.join(lines)
        if options.trim_whitespace:
            text = text.strip()
        if self.is_comment and options.should_skip_comment(text):
            return ExtractionResult(consumed=consumed)
        if not _wanted(text, options):
            return ExtractionResult(consumed=consumed)

        path = list_path.append_index(origin)
        tags = [self.tag]
        warnings = []
        if any("\n" in line or (separator.strip() and separator in line) for line in lines):
            tags.append("embedded_line_break")
            warnings.append(f"{path}: text line contains a line break; "
                            "a changed translation is re-split into more commands")

        speaker = None
        if not self.is_comment:
            speaker = context.current_speaker
            if speaker is None:
                m = NAMEBOX_RE.match(text)
                if m:
                    speaker = m.group(1)

        unit = _unit(path.to_unit_id(self.suffix), path, commands[index]["code"],
                     text, context, tags, speaker=speaker)
        preceding = () if self.is_comment else (text,)
        return ExtractionResult(units=[unit], consumed=consumed, preceding=preceding,
                                warnings=warnings, meta={"separator": separator})

    def inject(self, commands, index, origin, list_path, result, translations, options):
        step = InjectionStep(produced=result.consumed)
        if not result.units:
            return step
        unit = result.units[0]
        text = translations.get(unit.id)
        if text is None:
            step.not_found = 1
            return step
        step.applied = 1
        if text == unit.original:
            return step

        run = commands[index:index + result.consumed]
        new_cmds = []
        for k, line in enumerate(options.split_text(text, result.meta["separator"])):
            template = run[min(k, len(run) - 1)]
            cmd = copy.deepcopy(template)
            if k > 0:
                cmd["code"] = self.body_code
            params = cmd.get("parameters") or [""]
            cmd["parameters"] = [line] + list(params[1:])
            new_cmds.append(cmd)
        commands[index:index + result.consumed] = new_cmds
        step.produced = len(new_cmds)
        return step


class ChoicesHandler(CommandHandler):
    """Show Choices (102): one unit per visible label.

    parameters = [labels, cancelType, defaultType, positionType, background]
    With ``sync_choice_branches`` the label copies kept in the matching
    When [choice] commands (402, params[1]) are updated too.
    """

    codes = (EventCode.SHOW_CHOICES,)

    def extract(self, commands, index, origin, list_path, context, options):
        path = list_path.append_index(origin)
        labels = _params(commands[index], path)[0]
        if not isinstance(labels, list):
            raise InvalidCommand(path, "choice labels are not a list")

        units = []
        shown = []
        for ci, label in enumerate(labels):
            if not isinstance(label, str):
                continue
            text = label.strip() if options.trim_whitespace else label
            if not _wanted(text, options):
                continue
            units.append(_unit(path.to_unit_id(f"choice_{ci}"),
                               path.append_parameter(0).append_index(ci),
                               EventCode.SHOW_CHOICES, text, context, ("choice",),
                               speaker=context.current_speaker))
            shown.append(text)
        return ExtractionResult(units=units, preceding=tuple(shown))

    def inject(self, commands, index, origin, list_path, result, translations, options):
        step = InjectionStep(produced=1)
        cmd = commands[index]
        labels = cmd["parameters"][0]
        for unit in result.units:
            text = translations.get(unit.id)
            if text is None:
                step.not_found += 1
                continue
            step.applied += 1
            if text == unit.original:
                continue
            ci = unit.path.last.position
            old = labels[ci]
            labels[ci] = text
            if options.sync_choice_branches:
                self._sync_branch(commands, index, ci, old, text)
        return step

    @staticmethod
    def _sync_branch(commands: list, index: int, ci: int, old: str, new: str):
        """Update the When [choice] command for label ``ci`` of this block."""
        indent = commands[index].get("indent", 0)
        for cmd in commands[index + 1:]:
            if not isinstance(cmd, dict):
                continue
            code = _code_of(cmd)
            if cmd.get("indent", 0) != indent:
                continue
            if code == EventCode.CHOICES_END:
                return
            if code != EventCode.WHEN_CHOICE:
                continue
            params = cmd.get("parameters")
            if (isinstance(params, list) and len(params) > 1
                    and params[0] == ci and params[1] == old):
                params[1] = new
                return


class PluginCommandHandler(CommandHandler):
    """MZ plugin command (357): [pluginName, commandName, displayName, args].

    Leaves of ``args`` selected by the plugin's field patterns become
    units.  Plugins without a config yield nothing.
    """

    codes = (EventCode.PLUGIN_COMMAND_MZ,)
    ARGS_PARAM = 3

    def __init__(self, store: PluginConfigStore):
        self.store = store

    def _matches(self, cmd, path, options, warnings: list):
        """(unit id, leaf, text) for each selected leaf, in walk order.

        A leaf whose id collides with an earlier one is left out and
        reported in ``warnings``.
        """
        params = _params(cmd, path, self.ARGS_PARAM + 1)
        plugin = params[0]
        if not isinstance(plugin, str):
            raise InvalidCommand(path, "plugin name is not a string")
        if not options.extract_plugins or not self.store.matchers(plugin):
            return plugin, []

        found = []
        seen = set()
        for leaf in walk_leaves(params[self.ARGS_PARAM]):
            if self.store.match_field(plugin, leaf.steps) is None:
                continue
            text = leaf.value.strip() if options.trim_whitespace else leaf.value
            if not _wanted(text, options):
                continue
            unit_id = path.to_unit_id(
                f"plugin_{plugin.replace('.', '_')}_{leaf.field_path.replace('.', '_')}")
            if unit_id in seen:
                warnings.append(f"{path}: plugin field {leaf.field_path!r} has the same unit id "
                                f"as an earlier field and was not extracted")
                continue
            seen.add(unit_id)
            found.append((unit_id, leaf, text))
        return plugin, found

    def extract(self, commands, index, origin, list_path, context, options):
        path = list_path.append_index(origin)
        warnings = []
        plugin, found = self._matches(commands[index], path, options, warnings)
        base = path.append_parameter(self.ARGS_PARAM)
        units = []
        for unit_id, leaf, text in found:
            tags = [f"plugin:{plugin}", f"field:{leaf.field_path}"]
            if leaf.json_string:
                tags.append("json_string")
            units.append(_unit(unit_id, base.join(leaf.path),
                               EventCode.PLUGIN_COMMAND_MZ, text, context, tags))
        return ExtractionResult(units=units, warnings=warnings)

    def inject(self, commands, index, origin, list_path, result, translations, options):
        step = InjectionStep(produced=1)
        origin_path = list_path.append_index(origin)
        here = TranslationPath([Index(index)])
        for unit in result.units:
            text = translations.get(unit.id)
            if text is None:
                step.not_found += 1
                continue
            if text == unit.original:
                step.applied += 1
                continue
            if "json_string" in unit.context.tags:
                text = json.dumps(text, ensure_ascii=False)
            target = here.join(unit.path.relative_to(origin_path))
            try:
                target.set(commands, text, decode_json=True)
            except PathNotFound as e:
                log.debug("Plugin field not written: %s", e)
                step.not_found += 1
                step.warnings.append(str(e))
                continue
            step.applied += 1
        return step


class MVPluginCommandHandler(CommandHandler):
    """MV plugin command (356): a single command string.

    Only whitelisted command prefixes carry display text; the regex's
    first group is the unit and is substituted back in place.
    """

    codes = (EventCode.PLUGIN_COMMAND_MV,)

    @staticmethod
    def _match(line: str):
        for prefix, pattern in MV_PLUGIN_COMMAND_WHITELIST:
            if not line.startswith(prefix):
                continue
            m = pattern.search(line)
            if m and m.group(1):
                return prefix, m
        return None, None

    def extract(self, commands, index, origin, list_path, context, options):
        if not options.extract_plugins:
            return ExtractionResult()
        path = list_path.append_index(origin)
        line = _text_param(commands[index], path)
        prefix, m = self._match(line)
        if m is None or not _wanted(m.group(1), options):
            return ExtractionResult()
        unit = _unit(path.to_unit_id("plugin_mv"), path.append_parameter(0),
                     EventCode.PLUGIN_COMMAND_MV, m.group(1), context,
                     (f"plugin_mv:{prefix}",))
        return ExtractionResult(units=[unit], meta={"span": m.span(1)})

    def inject(self, commands, index, origin, list_path, result, translations, options):
        step = InjectionStep(produced=1)
        for unit in result.units:
            text = translations.get(unit.id)
            if text is None:
                step.not_found += 1
                continue
            step.applied += 1
            if text == unit.original:
                continue
            params = commands[index]["parameters"]
            start, end = result.meta["span"]
            params[0] = params[0][:start] + text + params[0][end:]
        return step


class HandlerRegistry:
    """Code → handler table, built once and then only read."""

    def __init__(self):
        self._handlers: dict[int, CommandHandler] = {}

    def register(self, handler: CommandHandler, replace: bool = False):
        for code in handler.codes:
            code = int(code)
            if code in self._handlers and not replace:
                raise ValueError(f"event code {code} already has a handler")
            self._handlers[code] = handler

    def get(self, code) -> Optional[CommandHandler]:
        return self._handlers.get(int(code))

    def __contains__(self, code) -> bool:
        return int(code) in self._handlers

    def codes(self) -> list:
        return sorted(self._handlers)

    @classmethod
    def with_defaults(cls, plugin_store: Optional[PluginConfigStore] = None) -> "HandlerRegistry":
        """Registry with every built-in handler."""
        registry = cls()
        registry.register(ShowTextHandler())
        registry.register(TextRunHandler((EventCode.TEXT_BODY,), EventCode.TEXT_BODY,
                                         "dialogue", "dialogue"))
        registry.register(TextRunHandler((EventCode.SCROLL_BODY,), EventCode.SCROLL_BODY,
                                         "scroll_text", "scroll_text"))
        registry.register(TextRunHandler((EventCode.COMMENT, EventCode.COMMENT_BODY),
                                         EventCode.COMMENT_BODY, "comment", "comment",
                                         is_comment=True))
        registry.register(ChoicesHandler())
        registry.register(StructuralHandler())
        registry.register(ActorTextHandler())
        registry.register(ScriptTextHandler())
        registry.register(PluginCommandHandler(plugin_store or PluginConfigStore()))
        registry.register(MVPluginCommandHandler())
        return registry

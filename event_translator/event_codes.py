"""RPG Maker event command codes and their roles in text extraction."""

import enum
from dataclasses import dataclass
from typing import Union


class EventCode(enum.IntEnum):
    """Event command codes that matter for text extraction."""
    END = 0                  # End of list / end of branch
    SHOW_TEXT = 101          # Show Text setup: [face, faceIndex, bg, pos, speaker(MZ)]
    SHOW_CHOICES = 102       # Show Choices: parameters[0] is list of labels
    INPUT_NUMBER = 103
    SELECT_ITEM = 104
    SCROLL_TEXT = 105        # Scroll Text setup: not translatable
    COMMENT = 108            # Comment first line
    CHANGE_NAME = 320        # Change Actor Name: params[1]=name
    CHANGE_NICKNAME = 324    # Change Actor Nickname: params[1]=nickname
    CHANGE_PROFILE = 325     # Change Actor Profile: params[1]=profile
    SCRIPT = 355             # Script first line: JS code
    PLUGIN_COMMAND_MV = 356  # Plugin Command (MV): params[0]=command string
    PLUGIN_COMMAND_MZ = 357  # Plugin Command (MZ): [plugin, command, label, args]
    TEXT_BODY = 401          # Show Text line: params[0]=text
    WHEN_CHOICE = 402        # When [choice]: params[1]=label copy
    WHEN_CANCEL = 403
    CHOICES_END = 404
    SCROLL_BODY = 405        # Scroll Text line: params[0]=text
    COMMENT_BODY = 408       # Comment continuation
    SCRIPT_BODY = 655        # Script continuation
    PLUGIN_ARGS = 657        # Plugin command (MZ) argument display line


@dataclass(frozen=True)
class UnknownCode:
    """A command code not present in EventCode, carrying its raw value."""
    value: int

    def __int__(self) -> int:
        return self.value


CommandCode = Union[EventCode, UnknownCode]


class CodeRole(enum.Enum):
    DIALOGUE_HEADER = "dialogue_header"
    DIALOGUE_BODY = "dialogue_body"
    CHOICE_OPEN = "choice_open"
    CHOICE_BRANCH = "choice_branch"
    CHOICE_CANCEL = "choice_cancel"
    CHOICE_END = "choice_end"
    COMMENT_HEADER = "comment_header"
    COMMENT_BODY = "comment_body"
    PLUGIN_CALL = "plugin_call"
    SCRIPT = "script"
    SINGLE_FIELD = "single_field"
    STRUCTURAL = "structural"
    UNKNOWN = "unknown"


_ROLES = {
    EventCode.SHOW_TEXT: CodeRole.DIALOGUE_HEADER,
    EventCode.SCROLL_TEXT: CodeRole.DIALOGUE_HEADER,
    EventCode.TEXT_BODY: CodeRole.DIALOGUE_BODY,
    EventCode.SCROLL_BODY: CodeRole.DIALOGUE_BODY,
    EventCode.SHOW_CHOICES: CodeRole.CHOICE_OPEN,
    EventCode.WHEN_CHOICE: CodeRole.CHOICE_BRANCH,
    EventCode.WHEN_CANCEL: CodeRole.CHOICE_CANCEL,
    EventCode.CHOICES_END: CodeRole.CHOICE_END,
    EventCode.COMMENT: CodeRole.COMMENT_HEADER,
    EventCode.COMMENT_BODY: CodeRole.COMMENT_BODY,
    EventCode.PLUGIN_COMMAND_MV: CodeRole.PLUGIN_CALL,
    EventCode.PLUGIN_COMMAND_MZ: CodeRole.PLUGIN_CALL,
    EventCode.SCRIPT: CodeRole.SCRIPT,
    EventCode.SCRIPT_BODY: CodeRole.SCRIPT,
    EventCode.PLUGIN_ARGS: CodeRole.SCRIPT,
    EventCode.CHANGE_NAME: CodeRole.SINGLE_FIELD,
    EventCode.CHANGE_NICKNAME: CodeRole.SINGLE_FIELD,
    EventCode.CHANGE_PROFILE: CodeRole.SINGLE_FIELD,
    EventCode.END: CodeRole.STRUCTURAL,
    EventCode.INPUT_NUMBER: CodeRole.STRUCTURAL,
    EventCode.SELECT_ITEM: CodeRole.STRUCTURAL,
}

# Engine codes that never carry player-visible text: flow control,
# switches/variables, movement, audio/visual effects, battle and map
# processing, and their continuation codes.
STRUCTURAL_CODES = frozenset({
    109, 111, 112, 113, 115, 117, 118, 119, 121, 122, 123, 124, 125, 126,
    127, 128, 129, 132, 133, 134, 135, 136, 137, 138, 139, 140, 201, 202,
    203, 204, 205, 206, 211, 212, 213, 214, 216, 217, 221, 222, 223, 224,
    225, 230, 231, 232, 233, 234, 235, 236, 241, 242, 243, 244, 245, 246,
    249, 250, 251, 261, 281, 282, 283, 284, 285, 301, 302, 303, 311, 312,
    313, 314, 315, 316, 317, 318, 319, 321, 322, 323, 326, 331, 332, 333,
    334, 335, 336, 337, 339, 340, 342, 351, 352, 353, 354, 411, 413, 505,
    601, 602, 603, 604, 605,
})


def classify(raw) -> CommandCode:
    """Map a raw ``code`` value to an EventCode or an UnknownCode.

    Non-integer codes (strings, floats, None) are rejected with TypeError;
    callers turn that into a per-command warning.
    """
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise TypeError(f"event code must be an integer, got {raw!r}")
    try:
        return EventCode(raw)
    except ValueError:
        return UnknownCode(raw)


def role_of(code: CommandCode) -> CodeRole:
    if isinstance(code, EventCode):
        return _ROLES[code]
    if code.value in STRUCTURAL_CODES:
        return CodeRole.STRUCTURAL
    return CodeRole.UNKNOWN

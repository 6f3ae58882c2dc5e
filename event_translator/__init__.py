"""RPG Maker event translator - shared constants."""

import re

__version__ = "0.4.0"

# Any CJK script, Hangul included.
CJK_RE = re.compile(
    r'[\u3040-\u30FF\u3400-\u4DBF\u4E00-\u9FFF'
    r'\uAC00-\uD7AF\uFF65-\uFF9F]'
)

# Namebox prefix: \N<name> at the start of a text block.
NAMEBOX_RE = re.compile(r'\\[Nn]<([^>]+)>')


def has_cjk(text: str) -> bool:
    """Check if text contains any CJK characters."""
    return bool(CJK_RE.search(text))

"""
Keyword-based content filter for user-supplied story inputs.
"""

import re
from typing import List

from capabilities import FilterResult

BLOCKED_KEYWORDS: List[str] = [
    'sex', 'sexual', 'porn', 'xxx', 'nude', 'naked', 'erotic',
    'nsfw', '18+', 'explicit', 'adult content', 'intercourse',
    'masturbat', 'orgasm', 'penis', 'vagina', 'genitals', 'breast',
    'strip', 'prostitut', 'rape', 'molest', 'pedophil', 'incest'
]

MAX_SPECIAL_CHAR_RATIO = 0.3

_SPECIAL_CHARS = re.compile(r"[^a-zA-Z0-9\s.,!?'-]")


def check_content_filter(text: str) -> FilterResult:
    """Reject explicit material and spam-like input"""
    lowered = (text or "").lower()

    for keyword in BLOCKED_KEYWORDS:
        if keyword in lowered:
            return FilterResult(False, "Content contains inappropriate or explicit material")

    special_count = len(_SPECIAL_CHARS.findall(text or ""))
    if special_count > len(text or "") * MAX_SPECIAL_CHAR_RATIO:
        return FilterResult(False, "Content contains too many special characters")

    return FilterResult(True)

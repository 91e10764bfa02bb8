"""
标题清洗 (Title normalization)
Deterministic cleanup applied before persistence, dedup checks and prompts.
"""

import re

DEFAULT_COLON_WINDOW = 45

# Trailing "(WATCH)", "[LISTEN]", "(READ MORE)" style call-to-action tokens.
# Other bracketed capitals ("(UK)", "[AP]") are part of the headline.
_RE_TRAILING_CTA = re.compile(
    r"\s*[\(\[]\s*"
    r"(?:WATCH(?:\s+LIVE)?|LIVE|LISTEN|VIDEOS?|PHOTOS?|GALLERY|PODCAST|READ(?:\s+MORE)?|CLICK\s+HERE|UPDATED)"
    r"\s*!*\s*[\)\]]\s*$"
)
_RE_WHITESPACE = re.compile(r"\s+")


def normalize_title(title: str, colon_window: int = DEFAULT_COLON_WINDOW) -> str:
    """
    Strip a short leading label ("Breaking: ...") and a trailing all-caps
    bracketed call-to-action ("... (WATCH)").

    The label rule only fires when the colon sits within the first
    ``colon_window`` characters. Rules repeat until the title stops changing
    so normalize(normalize(t)) == normalize(t).
    """
    text = _RE_WHITESPACE.sub(" ", title or "").strip()
    while True:
        cleaned = _strip_once(text, colon_window)
        if cleaned == text:
            return cleaned
        text = cleaned


def _strip_once(text: str, colon_window: int) -> str:
    colon = text.find(":")
    if 0 <= colon < colon_window:
        remainder = text[colon + 1:].strip()
        # Never reduce a title to nothing
        if remainder:
            text = remainder

    match = _RE_TRAILING_CTA.search(text)
    if match and match.start() > 0:
        text = text[: match.start()].rstrip()
    return text

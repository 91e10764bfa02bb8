"""
Tolerant JSON recovery for model output.
从模型输出中鲁棒地提取 JSON 对象。
Handles: pure JSON, code fences, function-call wrappers, JSON embedded in
free text, smart quotes and trailing commas. Output cut off mid-object is
rejected rather than repaired.
"""

import json
import re

_RE_FENCE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)\n?```", re.DOTALL)
_RE_FENCE_UNCLOSED = re.compile(r"```(?:json|JSON)?\s*\n?(.*)$", re.DOTALL)
_RE_CALL_TAG = re.compile(
    r"<(tool_call|function_call|functioncall|json)>\s*(.*?)\s*(?:</\1>|$)", re.DOTALL | re.IGNORECASE
)
_RE_CONTROL = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F]")
_RE_TRAILING_COMMA = re.compile(r",\s*([}\]])")

# Keys a function-call wrapper uses to carry the real payload
_WRAPPER_PAYLOAD_KEYS = ("arguments", "parameters", "args", "input")


def _escape_controls_in_strings(s: str) -> str:
    """Escape raw newlines/tabs that appear inside quoted strings."""
    out: list[str] = []
    in_string = False
    escaped = False
    for ch in s:
        if escaped:
            out.append(ch)
            escaped = False
            continue
        if ch == "\\":
            out.append(ch)
            escaped = in_string
            continue
        if ch == '"':
            in_string = not in_string
            out.append(ch)
            continue
        if in_string and ch in "\n\r\t":
            out.append({"\n": "\\n", "\r": "\\r", "\t": "\\t"}[ch])
            continue
        if in_string and ord(ch) < 0x20:
            continue
        out.append(ch)
    return "".join(out)


def _loads_object(candidate: str) -> dict | None:
    s = (candidate or "").strip()
    if not s:
        return None
    attempts = [s]
    repaired = s.replace("\u201c", '"').replace("\u201d", '"').replace("\u2019", "'")
    repaired = repaired.replace("\ufeff", "")
    repaired = _escape_controls_in_strings(repaired)
    repaired = _RE_CONTROL.sub("", repaired)
    repaired = _RE_TRAILING_COMMA.sub(r"\1", repaired)
    attempts.append(repaired)
    if "'" in repaired and '"' not in repaired:
        attempts.append(repaired.replace("'", '"'))

    for attempt in attempts:
        try:
            parsed = json.loads(attempt)
        except json.JSONDecodeError:
            continue
        return parsed if isinstance(parsed, dict) else None
    return None


def _first_brace_block(raw: str) -> str | None:
    start = raw.find("{")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(raw)):
        ch = raw[i]
        if escaped:
            escaped = False
            continue
        if ch == "\\" and in_string:
            escaped = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return raw[start:i + 1]
    # Unbalanced: truncated output, nothing usable
    return None


def unwrap_function_call(data: dict, expected_keys: tuple[str, ...] = ()) -> dict:
    """
    ``{"name": "...", "arguments": {...}}`` -> the arguments object, when the
    top level does not already carry the expected keys.
    """
    if expected_keys and any(key in data for key in expected_keys):
        return data
    if not expected_keys and "name" not in data:
        return data
    for key in _WRAPPER_PAYLOAD_KEYS:
        payload = data.get(key)
        if isinstance(payload, str):
            payload = _loads_object(payload)
        if isinstance(payload, dict):
            return payload
    return data


def extract_json(text: str, expected_keys: tuple[str, ...] = ()) -> dict | None:
    """Recover the first JSON object from ``text``; None when nothing parses."""
    if not text or not text.strip():
        return None
    raw = text.strip()

    candidates: list[str] = [raw]
    for match in _RE_CALL_TAG.finditer(raw):
        candidates.append(match.group(2))
    fence = _RE_FENCE.search(raw)
    if fence:
        candidates.append(fence.group(1))
    else:
        unclosed = _RE_FENCE_UNCLOSED.search(raw)
        if unclosed:
            candidates.append(unclosed.group(1).replace("```", ""))
    block = _first_brace_block(raw)
    if block:
        candidates.append(block)

    for candidate in candidates:
        parsed = _loads_object(candidate)
        if parsed is not None:
            return unwrap_function_call(parsed, expected_keys)
    return None

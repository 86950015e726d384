"""
Common utility functions and helpers.
"""
from typing import Any, List, Tuple
import json
import logging
import re

logger = logging.getLogger(__name__)


def count_words(text: str) -> int:
    """
    Count whitespace-separated words.

    Args:
        text: Raw text string

    Returns:
        Number of words (0 for blank text)
    """
    return len(text.split())


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 rounding away from zero (for value >= 0)."""
    return int(value + 0.5)


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """
    Safely divide two numbers, returning default if denominator is zero.

    Args:
        numerator: Numerator
        denominator: Denominator
        default: Default value if division fails

    Returns:
        Result of division or default
    """
    return numerator / denominator if denominator != 0 else default


def word_shingles(text: str, size: int = 5, min_chars: int = 20) -> List[str]:
    """
    Lower-cased runs of *size* consecutive words, per paragraph.

    Short shingles (fewer than *min_chars* characters) are dropped so that
    filler such as "and it is in the" does not count as repetition.
    """
    shingles: List[str] = []
    for paragraph in text.split("\n\n"):
        words = paragraph.split()
        for i in range(len(words) - size + 1):
            phrase = " ".join(words[i:i + size]).lower()
            if len(phrase) >= min_chars:
                shingles.append(phrase)
    return shingles


def repeated_phrase_ratio(text: str) -> float:
    """
    Share of 5-word phrases in *text* that already appeared earlier.

    Returns a value in [0, 1]; 0 for text with no repetition.
    """
    shingles = word_shingles(text)
    if not shingles:
        return 0.0
    seen = set()
    repeats = 0
    for phrase in shingles:
        if phrase in seen:
            repeats += 1
        seen.add(phrase)
    return repeats / len(shingles)


def truncate_text(text: str, max_length: int = 200, suffix: str = "...") -> str:
    """
    Truncate text to maximum length.

    Args:
        text: Text to truncate
        max_length: Maximum length
        suffix: Suffix to add if truncated

    Returns:
        Truncated text
    """
    if len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)] + suffix


# ---------------------------------------------------------------------------
# Robust JSON parsing for LLM output
# ---------------------------------------------------------------------------

def parse_json_robust(response: str) -> Tuple[bool, Any]:
    """
    Try multiple strategies to parse JSON from potentially messy LLM output.

    Handles:
    - Markdown code fences (```json … ```, ``` … ```)
    - Trailing commas before ] or }
    - Python-style True / False / None
    - Surrounding prose — finds the first balanced {...} or [...] block

    Returns ``(success, parsed_value)``.
    """
    if not response:
        return False, None

    text = response.strip()

    ok, val = _try_json(text)
    if ok:
        return True, val

    stripped = strip_code_fences(text)
    if stripped != text:
        ok, val = _try_json(stripped)
        if ok:
            return True, val
        text = stripped

    fixed = fix_json_issues(text)
    ok, val = _try_json(fixed)
    if ok:
        return True, val

    for open_b, close_b in (("{", "}"), ("[", "]")):
        fragment = extract_json_structure(text, open_b, close_b)
        if fragment:
            ok, val = _try_json(fragment)
            if ok:
                return True, val
            ok, val = _try_json(fix_json_issues(fragment))
            if ok:
                return True, val

    logger.warning("parse_json_robust: all strategies failed. Preview: %s", response[:300])
    return False, None


def _try_json(text: str) -> Tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return False, None


def strip_code_fences(text: str) -> str:
    """Remove ```json / ``` delimiters that LLMs often wrap output in."""
    text = re.sub(r"^```(?:json|text)?\s*\n?", "", text, flags=re.IGNORECASE)
    text = re.sub(r"\n?```\s*$", "", text)
    return text.strip()


def fix_json_issues(text: str) -> str:
    """Repair the most common JSON mangling patterns from LLMs."""
    text = re.sub(r",(\s*[}\]])", r"\1", text)
    text = re.sub(r"\bTrue\b", "true", text)
    text = re.sub(r"\bFalse\b", "false", text)
    text = re.sub(r"\bNone\b", "null", text)
    return text.strip()


def extract_json_structure(text: str, open_b: str, close_b: str) -> str:
    """
    Find the first complete balanced open_b … close_b structure in *text*.
    Returns the matched fragment, or empty string if not found.
    """
    start = text.find(open_b)
    if start == -1:
        return ""

    depth = 0
    in_string = False
    escape_next = False

    for i, ch in enumerate(text[start:], start=start):
        if escape_next:
            escape_next = False
            continue
        if ch == "\\" and in_string:
            escape_next = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == open_b:
            depth += 1
        elif ch == close_b:
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return ""

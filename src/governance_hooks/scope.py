"""Scope matching: is a workspace path covered by an intent's owned_scope?

Pattern semantics:
    **   zero or more whole path segments (recursive)
    *    any characters within a single segment (never crosses '/')
    everything else matches literally (including '?', '[', ']')

A path is authorized if it matches ANY pattern (logical OR).
"""

import posixpath
import re
from functools import lru_cache
from typing import Iterable, Optional, Pattern


def normalize_path(path: str) -> str:
    """Forward slashes, no leading './' or '/', '..' segments folded."""
    p = str(path).replace("\\", "/").lstrip("/")
    p = posixpath.normpath(p) if p else "."
    return "" if p == "." else p


@lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> Pattern:
    """Translate a scope glob into an anchored regular expression."""
    raw = [part for part in pattern.replace("\\", "/").split("/") if part not in ("", ".")]
    # "a/**/**/b" is the same as "a/**/b"
    parts = [p for i, p in enumerate(raw) if not (p == "**" and i > 0 and raw[i - 1] == "**")]

    out = ""
    last = len(parts) - 1
    for i, part in enumerate(parts):
        if part == "**":
            if i < last:
                out += "(?:[^/]+/)*"
            elif out:
                # trailing '**' after a literal prefix: the prefix itself or anything below it
                out = out[:-1] + "(?:/[^/]+)*"
            else:
                out = "(?:[^/]+(?:/[^/]+)*)?"
            continue
        out += "".join("[^/]*" if ch == "*" else re.escape(ch) for ch in part)
        if i < last:
            out += "/"
    return re.compile(out)


def first_match(path: str, patterns: Iterable[str]) -> Optional[str]:
    """Return the first pattern (in order) that covers ``path``, or None."""
    target = normalize_path(path)
    for pattern in patterns:
        if compile_pattern(pattern).fullmatch(target):
            return pattern
    return None


def matches(path: str, patterns: Iterable[str]) -> bool:
    """True if ``path`` matches at least one of ``patterns``."""
    return first_match(path, patterns) is not None

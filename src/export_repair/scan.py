from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, Iterator

from .urls import strip_cache_buster

DEFAULT_PREFIXES: tuple[str, ...] = ("uploads/",)
DEFAULT_DOCUMENT_PATTERNS: tuple[str, ...] = ("*.html", "files/*.css")

# Characters that end a reference: quotes, angle brackets, whitespace, '&'
# (HTML entities / query joins) and parentheses (CSS url(...)).
_TERMINATORS = "\"'<>\\s&()"


def reference_pattern(prefixes: Iterable[str] = DEFAULT_PREFIXES) -> re.Pattern[str]:
    cleaned = sorted({p for p in prefixes if p}, key=len, reverse=True)
    if not cleaned:
        raise ValueError("At least one asset prefix is required")
    alternation = "|".join(re.escape(p) for p in cleaned)
    return re.compile(rf"(?:{alternation})[^{_TERMINATORS}]+")


def scan_references(
    documents: Iterable[str],
    *,
    prefixes: Iterable[str] = DEFAULT_PREFIXES,
) -> set[str]:
    """Return the distinct normalized asset paths referenced by ``documents``.

    Pure function of the document texts: matches are cut at the first
    terminating character and stripped of any cache-busting query before they
    enter the set.
    """

    prefixes = tuple(prefixes)
    pattern = reference_pattern(prefixes)
    found: set[str] = set()
    for text in documents:
        for m in pattern.finditer(text):
            ref = strip_cache_buster(m.group(0))
            if not ref or ref in prefixes or ref.endswith("/"):
                continue
            found.add(ref)
    return found


def iter_document_paths(
    root: Path,
    patterns: Iterable[str] = DEFAULT_DOCUMENT_PATTERNS,
) -> Iterator[Path]:
    """Yield files under ``root`` matching any glob, each once, sorted per glob."""
    seen: set[Path] = set()
    for pattern in patterns:
        for path in sorted(root.glob(pattern)):
            if not path.is_file() or path in seen:
                continue
            seen.add(path)
            yield path


def read_documents(paths: Iterable[Path]) -> list[str]:
    return [path.read_text(encoding="utf-8", errors="replace") for path in paths]

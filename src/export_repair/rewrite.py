"""Ordered, data-driven text substitutions over an export.

Each rule names a regex, its replacement and a glob (relative to the export
root) selecting the files it applies to. Rules run in declared order, so a
later rule sees the output of earlier ones.

Rules file format (JSON)::

    {"rules": [
        {"pattern": "/files/theme/", "replacement": "files/theme/",
         "applies_to": "*.html"}
    ]}

A bare list of rule objects is accepted too.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Any, Iterable


@dataclass(frozen=True)
class RewriteRule:
    pattern: str
    replacement: str
    applies_to: str

    def compiled(self) -> re.Pattern[str]:
        return re.compile(self.pattern)


@dataclass
class RewriteSummary:
    substitutions: list[int] = field(default_factory=list)
    files_changed: set[Path] = field(default_factory=set)

    def to_dict(self, root: Path) -> dict[str, Any]:
        return {
            "substitutions": list(self.substitutions),
            "files_changed": sorted(
                p.relative_to(root).as_posix() for p in self.files_changed
            ),
        }


def check_selector(applies_to: str) -> None:
    """Raise ValueError unless ``applies_to`` is a glob relative to the root."""
    posix = PurePosixPath(applies_to)
    windows = PureWindowsPath(applies_to)
    if posix.is_absolute() or windows.is_absolute() or windows.drive:
        raise ValueError(f"applies_to must be relative to the root: {applies_to}")
    if ".." in posix.parts or ".." in windows.parts:
        raise ValueError(f"applies_to must stay inside the root: {applies_to}")


def _rule_from_obj(idx: int, obj: Any) -> RewriteRule:
    if not isinstance(obj, dict):
        raise ValueError(f"Rule #{idx} must be an object")
    values: dict[str, str] = {}
    for key in ("pattern", "replacement", "applies_to"):
        v = obj.get(key)
        if not isinstance(v, str):
            raise ValueError(f"Rule #{idx} is missing string field {key!r}")
        values[key] = v
    if not values["pattern"] or not values["applies_to"]:
        raise ValueError(f"Rule #{idx} has an empty pattern or applies_to")

    rule = RewriteRule(**values)
    try:
        regex = rule.compiled()
    except re.error as e:
        raise ValueError(f"Rule #{idx} has an invalid pattern: {e}") from e
    # The replacement template is parsed before any matching happens.
    try:
        regex.sub(rule.replacement, "")
    except re.error as e:
        raise ValueError(f"Rule #{idx} has an invalid replacement: {e}") from e
    try:
        check_selector(rule.applies_to)
    except ValueError as e:
        raise ValueError(f"Rule #{idx}: {e}") from None
    return rule


def load_rules(path: Path) -> list[RewriteRule]:
    try:
        obj = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in rules file {path}: {e}") from e

    items = obj.get("rules") if isinstance(obj, dict) else obj
    if not isinstance(items, list):
        raise ValueError(f"Rules file {path} must hold a list of rules")
    return [_rule_from_obj(i, it) for i, it in enumerate(items)]


def apply_rules(
    root: Path,
    rules: Iterable[RewriteRule],
    *,
    dry_run: bool = False,
) -> RewriteSummary:
    """Run ``rules`` in order over a working copy, then write changed files.

    Nothing is written unless every rule succeeds, and a dry run reports the
    same counts as a real run.
    """

    root = root.resolve()
    summary = RewriteSummary()
    originals: dict[Path, str] = {}
    working: dict[Path, str] = {}

    for idx, rule in enumerate(rules):
        check_selector(rule.applies_to)
        regex = rule.compiled()
        count = 0
        for path in sorted(root.glob(rule.applies_to)):
            if not path.is_file():
                continue
            if path not in working:
                # Bytes round-trip keeps line endings untouched.
                text = path.read_bytes().decode("utf-8", errors="surrogateescape")
                originals[path] = text
                working[path] = text
            try:
                new_text, n = regex.subn(rule.replacement, working[path])
            except re.error as e:
                raise ValueError(f"Rule #{idx} has an invalid replacement: {e}") from e
            if n == 0 or new_text == working[path]:
                continue
            count += n
            working[path] = new_text
        summary.substitutions.append(count)

    summary.files_changed = {p for p, text in working.items() if text != originals[p]}
    if not dry_run:
        for path in sorted(summary.files_changed):
            path.write_bytes(working[path].encode("utf-8", errors="surrogateescape"))

    return summary

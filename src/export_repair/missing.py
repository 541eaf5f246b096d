from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable


def local_path_for(root: Path, ref: str) -> Path:
    """Map a reference to its path under ``root``.

    Raises ValueError when the reference resolves outside ``root``.
    """

    root = root.resolve()
    candidate = (root / Path(ref.lstrip("/"))).resolve()
    # Keep writes local to root.
    try:
        candidate.relative_to(root)
    except ValueError:
        raise ValueError(f"Reference escapes export root: {ref}") from None
    if candidate == root:
        raise ValueError(f"Reference does not name a file: {ref!r}")
    return candidate


def _exists(path: Path) -> bool:
    try:
        os.stat(path)
    except (FileNotFoundError, NotADirectoryError):
        return False
    return True


def find_missing(references: Iterable[str], root: Path) -> list[str]:
    """Return the sorted references that do not exist under ``root``.

    Any filesystem error other than "not found" propagates; a partial answer
    would silently skip files.
    """

    missing: list[str] = []
    for ref in set(references):
        try:
            path = local_path_for(root, ref)
        except ValueError:
            missing.append(ref)
            continue
        if not _exists(path):
            missing.append(ref)
    return sorted(missing)


@dataclass(frozen=True)
class MissingInspection:
    root: Path
    documents: int
    referenced: int
    missing: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "root": str(self.root),
            "documents": self.documents,
            "referenced": self.referenced,
            "missing_count": len(self.missing),
            "missing": list(self.missing),
        }


def inspect_missing(
    *,
    root: Path,
    references: Iterable[str],
    documents: int = 0,
) -> MissingInspection:
    references = set(references)
    return MissingInspection(
        root=root.resolve(),
        documents=documents,
        referenced=len(references),
        missing=find_missing(references, root),
    )

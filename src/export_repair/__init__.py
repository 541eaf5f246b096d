"""export-repair core library.

This package provides the primitives for repairing a static site export so it
can be served without its original hosting platform: scanning documents for
asset references, resolving which referenced files are missing locally,
re-fetching them from the origin, and applying declared rewrite rules.

Repo rules:
- Existing local files are never overwritten by a fetch.
- The manifest is an output report; nothing reads it back between runs.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"

from __future__ import annotations

from urllib.parse import quote, urlparse


def strip_cache_buster(ref: str) -> str:
    """Normalize an asset reference for de-duplication.

    - Drops a trailing query (cache-busting token such as ``?1771438535``).
    - Drops a fragment.
    """

    for sep in ("?", "#"):
        ref = ref.split(sep, 1)[0]
    return ref


def normalize_origin(origin: str) -> str:
    origin = (origin or "").strip()
    parsed = urlparse(origin)
    if parsed.scheme.lower() not in {"http", "https"} or not parsed.netloc:
        raise ValueError(f"Origin must be an http(s) URL with a host: {origin!r}")
    return origin.rstrip("/")


def origin_url(origin: str, path: str) -> str:
    rel = quote(path.lstrip("/"), safe="/%-._~")
    return f"{normalize_origin(origin)}/{rel}"

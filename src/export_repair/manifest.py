from __future__ import annotations

import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .fetch import FetchConfig, FetchRecord, FetchReport


def utc_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def fetch_event(record: FetchRecord, *, url: str) -> dict[str, Any]:
    """Event for one attempted fetch: kind is fetched, failed or skipped."""
    if record.skipped:
        kind = "skipped"
    elif record.ok:
        kind = "fetched"
    else:
        kind = "failed"

    event: dict[str, Any] = {
        "kind": kind,
        "path": record.path,
        "url": url,
        "status_code": record.status_code,
    }
    if record.ok:
        event["size_bytes"] = record.size_bytes
    else:
        event["reason"] = record.reason
    return event


def fetch_summary(
    *,
    config: FetchConfig,
    origin: str,
    report: FetchReport,
    started_at: str,
    finished_at: str | None = None,
) -> dict[str, Any]:
    return {
        "started_at": started_at,
        "finished_at": finished_at or utc_iso(),
        "config": {
            "root": str(config.root),
            "origin": origin,
            "timeout_s": config.timeout_s,
            "max_retries": config.max_retries,
            "workers": config.workers,
            "dry_run": config.dry_run,
        },
        "stats": {
            "succeeded": report.succeeded,
            "failed": report.failed,
            "skipped": report.skipped,
        },
        "failed_paths": [
            r.path for r in report.records if not r.ok and not r.skipped
        ],
    }


@dataclass
class ManifestWriter:
    """Append-only event log plus a run summary.

    Events are written from the fetch loop's calling thread only.
    """

    out_dir: Path

    def __post_init__(self) -> None:
        self.jsonl_path = self.out_dir / "manifest.jsonl"
        self.json_path = self.out_dir / "manifest.json"

    def append(self, event: dict[str, Any]) -> None:
        event = dict(event)
        event.setdefault("at", utc_iso())
        self.jsonl_path.parent.mkdir(parents=True, exist_ok=True)
        with self.jsonl_path.open("a", encoding="utf-8", newline="\n") as f:
            f.write(json.dumps(event, ensure_ascii=False) + "\n")

    def write_summary(self, summary: dict[str, Any]) -> None:
        self.json_path.parent.mkdir(parents=True, exist_ok=True)
        self.json_path.write_text(
            json.dumps(summary, indent=2, ensure_ascii=False) + "\n",
            encoding="utf-8",
        )

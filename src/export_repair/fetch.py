from __future__ import annotations

import os
import tempfile
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable

import requests
from tqdm import tqdm  # type: ignore[import-untyped]

from .http_client import DEFAULT_USER_AGENT, HttpClient
from .manifest import ManifestWriter, fetch_event, fetch_summary, utc_iso
from .missing import local_path_for
from .urls import normalize_origin, origin_url


@dataclass
class FetchConfig:
    root: Path
    origin: str
    timeout_s: float = 30
    max_retries: int = 0
    workers: int = 1
    user_agent: str = DEFAULT_USER_AGENT
    dry_run: bool = False


@dataclass(frozen=True)
class FetchRecord:
    path: str
    ok: bool
    reason: str | None = None
    status_code: int | None = None
    size_bytes: int = 0
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "ok": self.ok,
            "reason": self.reason,
            "status_code": self.status_code,
            "size_bytes": self.size_bytes,
            "skipped": self.skipped,
        }


@dataclass
class FetchReport:
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    records: list[FetchRecord] = field(default_factory=list)

    @property
    def tally(self) -> tuple[int, int]:
        return self.succeeded, self.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "records": [r.to_dict() for r in self.records],
        }


RecordCallback = Callable[[FetchRecord], None]


def _write_atomic(dest: Path, body: bytes) -> None:
    dest.parent.mkdir(parents=True, exist_ok=True)
    # Unique name; never collides with an existing sibling file.
    fd, tmp_name = tempfile.mkstemp(
        dir=dest.parent, prefix=f".{dest.name}.", suffix=".part"
    )
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(body)
        os.replace(tmp, dest)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


class Fetcher:
    """Download missing references from the origin into the export root.

    Every path is attempted at most once per call. A failure is recorded and
    the batch moves on; nothing here aborts the run.
    """

    def __init__(
        self,
        *,
        http: HttpClient,
        config: FetchConfig,
        manifest: ManifestWriter | None = None,
    ) -> None:
        self.http = http
        self.cfg = config
        self.origin = normalize_origin(config.origin)
        self.manifest = manifest

    def _fetch_one(self, path: str) -> FetchRecord:
        try:
            dest = local_path_for(self.cfg.root, path)
        except ValueError as e:
            return FetchRecord(path=path, ok=False, reason=str(e))

        try:
            if dest.exists():
                return FetchRecord(path=path, ok=False, reason="exists", skipped=True)
        except OSError as e:
            return FetchRecord(path=path, ok=False, reason=str(e))

        if self.cfg.dry_run:
            return FetchRecord(path=path, ok=False, reason="dry-run", skipped=True)

        url = origin_url(self.origin, path)
        try:
            res = self.http.get(url)
        except (requests.RequestException, RuntimeError) as e:
            return FetchRecord(path=path, ok=False, reason=str(e))

        if not res.ok:
            return FetchRecord(
                path=path,
                ok=False,
                reason=f"HTTP {res.status_code}",
                status_code=res.status_code,
            )

        try:
            _write_atomic(dest, res.body)
        except OSError as e:
            return FetchRecord(
                path=path,
                ok=False,
                reason=f"write failed: {e}",
                status_code=res.status_code,
            )

        return FetchRecord(
            path=path,
            ok=True,
            status_code=res.status_code,
            size_bytes=len(res.body),
        )

    def _record(
        self,
        report: FetchReport,
        record: FetchRecord,
        on_record: RecordCallback | None,
    ) -> None:
        if record.skipped:
            report.skipped += 1
        elif record.ok:
            report.succeeded += 1
        else:
            report.failed += 1
        report.records.append(record)

        if self.manifest is not None:
            self.manifest.append(
                fetch_event(record, url=origin_url(self.origin, record.path))
            )

        if on_record is not None:
            on_record(record)

    def fetch_all(
        self,
        paths: Iterable[str],
        *,
        on_record: RecordCallback | None = None,
        progress: bool = False,
    ) -> FetchReport:
        # Distinct destinations, so parallel writes need no coordination.
        todo = list(dict.fromkeys(paths))
        report = FetchReport()

        if self.cfg.workers <= 1 or len(todo) <= 1:
            for path in tqdm(todo, desc="Fetching", unit="file", disable=not progress):
                self._record(report, self._fetch_one(path), on_record)
        else:
            with ThreadPoolExecutor(max_workers=self.cfg.workers) as pool, tqdm(
                total=len(todo), desc="Fetching", unit="file", disable=not progress
            ) as bar:
                futures = [pool.submit(self._fetch_one, path) for path in todo]
                for fut in as_completed(futures):
                    self._record(report, fut.result(), on_record)
                    bar.update(1)

        report.records.sort(key=lambda r: r.path)
        return report


def run(
    config: FetchConfig,
    paths: Iterable[str],
    *,
    manifest: ManifestWriter | None = None,
    on_record: RecordCallback | None = None,
    progress: bool = False,
    session: requests.Session | None = None,
) -> FetchReport:
    session = session or requests.Session()
    http = HttpClient(
        session,
        timeout_s=config.timeout_s,
        max_retries=config.max_retries,
        user_agent=config.user_agent,
    )
    fetcher = Fetcher(http=http, config=config, manifest=manifest)

    started_at = utc_iso()
    report = fetcher.fetch_all(paths, on_record=on_record, progress=progress)

    if manifest is not None:
        manifest.write_summary(
            fetch_summary(
                config=config,
                origin=fetcher.origin,
                report=report,
                started_at=started_at,
            )
        )
    return report

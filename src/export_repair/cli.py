from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from tqdm import tqdm  # type: ignore[import-untyped]

from . import fetch as fetch_mod
from .fetch import FetchConfig, FetchRecord
from .http_client import DEFAULT_USER_AGENT
from .manifest import ManifestWriter
from .missing import inspect_missing
from .rewrite import apply_rules, load_rules
from .scan import (
    DEFAULT_DOCUMENT_PATTERNS,
    DEFAULT_PREFIXES,
    iter_document_paths,
    read_documents,
    scan_references,
)


def _add_common_scan_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--root",
        type=Path,
        required=True,
        help="Export directory (asset paths are relative to it)",
    )
    p.add_argument(
        "--include",
        action="append",
        default=None,
        help=(
            "Repeatable glob of documents to scan, relative to --root. "
            f"Defaults to {' '.join(DEFAULT_DOCUMENT_PATTERNS)}"
        ),
    )
    p.add_argument(
        "--prefix",
        action="append",
        default=None,
        help=(
            "Repeatable asset path prefix. "
            f"Defaults to {' '.join(DEFAULT_PREFIXES)}"
        ),
    )


def _scan(args: argparse.Namespace) -> tuple[int, set[str]]:
    root = Path(args.root)
    if not root.is_dir():
        raise NotADirectoryError(f"--root is not a directory: {root}")
    patterns = tuple(args.include or DEFAULT_DOCUMENT_PATTERNS)
    prefixes = tuple(args.prefix or DEFAULT_PREFIXES)
    doc_paths = list(iter_document_paths(root, patterns))
    refs = scan_references(read_documents(doc_paths), prefixes=prefixes)
    return len(doc_paths), refs


def _format_record(record: FetchRecord) -> str:
    if record.ok:
        return f"ok {record.path}"
    if record.skipped:
        return f"skipped {record.path}: {record.reason}"
    return f"failed {record.path}: {record.reason}"


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="export-repair")
    sub = parser.add_subparsers(dest="cmd", required=True)

    scan_p = sub.add_parser(
        "scan",
        help="List the normalized asset paths referenced by the export",
    )
    _add_common_scan_args(scan_p)
    scan_p.add_argument("--json", action="store_true")

    missing_p = sub.add_parser(
        "missing",
        help="List referenced asset paths that do not exist under --root",
    )
    _add_common_scan_args(missing_p)
    missing_p.add_argument(
        "--json",
        action="store_true",
        help="Print machine-readable JSON to stdout",
    )
    missing_p.add_argument(
        "--fail-on-missing",
        action="store_true",
        help="Return non-zero if any referenced files are missing",
    )

    fetch_p = sub.add_parser(
        "fetch",
        help="Download missing referenced files from the original origin",
    )
    _add_common_scan_args(fetch_p)
    fetch_p.add_argument(
        "--origin",
        required=True,
        help="Base URL of the live site, e.g. https://example.org",
    )
    fetch_p.add_argument("--timeout", type=float, default=30)
    fetch_p.add_argument(
        "--retries",
        type=int,
        default=0,
        help="Retries for transient statuses/network errors (default: none)",
    )
    fetch_p.add_argument("--workers", type=int, default=1)
    fetch_p.add_argument("--user-agent", default=DEFAULT_USER_AGENT)
    fetch_p.add_argument(
        "--manifest-dir",
        type=Path,
        default=None,
        help="Write manifest.jsonl events and a manifest.json summary here",
    )
    fetch_p.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be fetched without requesting or writing",
    )
    fetch_p.add_argument("--progress", action="store_true")

    rewrite_p = sub.add_parser(
        "rewrite",
        help="Apply an ordered list of regex rewrite rules to export files",
    )
    rewrite_p.add_argument("--root", type=Path, required=True)
    rewrite_p.add_argument(
        "--rules",
        type=Path,
        required=True,
        help="JSON file with rules: pattern, replacement, applies_to",
    )
    rewrite_p.add_argument("--dry-run", action="store_true")

    args = parser.parse_args(argv)

    if args.cmd == "scan":
        try:
            _, refs = _scan(args)
        except (OSError, ValueError) as e:
            print(str(e), file=sys.stderr)
            return 2
        ordered = sorted(refs)
        if bool(args.json):
            print(json.dumps(ordered, indent=2))
        else:
            for ref in ordered:
                print(ref)
        return 0

    if args.cmd == "missing":
        try:
            documents, refs = _scan(args)
            inspected = inspect_missing(
                root=args.root, references=refs, documents=documents
            )
        except (OSError, ValueError) as e:
            print(str(e), file=sys.stderr)
            return 2

        if bool(args.json):
            print(json.dumps(inspected.to_dict(), indent=2))
        else:
            for ref in inspected.missing:
                print(ref)
            print(
                "missing: "
                f"documents={inspected.documents} "
                f"referenced={inspected.referenced} "
                f"missing={len(inspected.missing)}"
            )
        if bool(args.fail_on_missing) and inspected.missing:
            return 4
        return 0

    if args.cmd == "fetch":
        if args.workers < 1:
            print("--workers must be at least 1", file=sys.stderr)
            return 2
        try:
            documents, refs = _scan(args)
            inspected = inspect_missing(
                root=args.root, references=refs, documents=documents
            )
        except (OSError, ValueError) as e:
            print(str(e), file=sys.stderr)
            return 2

        fetch_cfg = FetchConfig(
            root=args.root,
            origin=args.origin,
            timeout_s=float(args.timeout),
            max_retries=int(args.retries),
            workers=int(args.workers),
            user_agent=args.user_agent,
            dry_run=bool(args.dry_run),
        )
        manifest = (
            ManifestWriter(args.manifest_dir)
            if args.manifest_dir is not None
            else None
        )
        try:
            report = fetch_mod.run(
                fetch_cfg,
                inspected.missing,
                manifest=manifest,
                on_record=lambda r: tqdm.write(_format_record(r)),
                progress=bool(args.progress),
            )
        except (OSError, ValueError) as e:
            print(str(e), file=sys.stderr)
            return 2

        # A failed fetch is reported, never fatal.
        print(
            "fetch: "
            f"referenced={inspected.referenced} "
            f"ok={report.succeeded} failed={report.failed} "
            f"skipped={report.skipped}"
        )
        return 0

    if args.cmd == "rewrite":
        try:
            rules = load_rules(args.rules)
            summary = apply_rules(args.root, rules, dry_run=bool(args.dry_run))
        except (OSError, ValueError) as e:
            print(str(e), file=sys.stderr)
            return 2

        for rule, n in zip(rules, summary.substitutions):
            print(f"{n:>6}  {rule.applies_to}  {rule.pattern}")
        prefix = "rewrite (dry-run)" if args.dry_run else "rewrite"
        print(f"{prefix}: files_changed={len(summary.files_changed)}")
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main())

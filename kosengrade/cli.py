"""
CLI (Command Line Interface).

Terminal commands for importing syllabi and inspecting the course pool, e.g.:

    kosengrade urls --school 20 --department 31 --year 2025
    kosengrade fetch --school 20 --department 電気電子工学科 --grade 2 --term fall
    kosengrade extract page.md --url https://syllabus.kosen-k.go.jp/...
    kosengrade pool
    kosengrade remove <course_id>

Note:
- fetch/urls need FIRECRAWL_API_KEY in the environment (or a .env file)
- output is plain text; only fetch shows a rich progress bar
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from rich.progress import BarColumn, Progress, TextColumn, TimeRemainingColumn

from kosengrade.config import CHUNK_DELAY_MS, CHUNK_SIZE, current_academic_year
from kosengrade.errors import AllDetailsFailedError, SyllabusError
from kosengrade.extract import extract_candidate
from kosengrade.firecrawl import FirecrawlClient
from kosengrade.grades import grade_status
from kosengrade.model import RawDocument
from kosengrade.pipeline import FetchRequest, PipelineResult, resolve_detail_urls, run_pipeline
from kosengrade.storage import delete_course_record, load_course_records, save_course_records
from kosengrade.validate import validate_candidate


logger = logging.getLogger(__name__)


def _request_from_args(args: argparse.Namespace) -> FetchRequest:
    return FetchRequest(
        institution_id=str(args.school),
        department=args.department,
        grade_level=args.grade,
        academic_year=args.year,
        term=args.term,
    )


def _cmd_urls(args: argparse.Namespace) -> int:
    """
    Stage 1 only: print the syllabus detail URLs of one department.
    """
    client = FirecrawlClient()
    listing = resolve_detail_urls(client, _request_from_args(args))

    if args.json:
        print(json.dumps(listing.to_dict(), indent=2, ensure_ascii=False))
        return 0

    for url in listing.urls:
        print(url)
    print(f"Found {len(listing.urls)} syllabus URLs ({listing.raw_link_count} links on {listing.listing_url})")
    return 0


def _print_failures(failures: list, file=None) -> None:
    for failure in failures:
        print(f"- {failure.url}: {failure.reason}", file=file)
        for err in failure.errors:
            print(f"    {err}", file=file)


def _fetch_with_progress(client: FirecrawlClient, request: FetchRequest, args: argparse.Namespace) -> PipelineResult:
    progress = Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        TimeRemainingColumn(),
    )
    task = progress.add_task("Importing syllabi...", total=None)

    def on_progress(done: int, total: int, url: str) -> None:
        progress.update(task, total=total, completed=done)

    with progress:
        return asyncio.run(
            run_pipeline(
                client,
                request,
                chunk_size=args.chunk_size,
                delay_ms=args.delay_ms,
                on_progress=on_progress,
            )
        )


def _cmd_fetch(args: argparse.Namespace) -> int:
    """
    Full import: listing page, every detail page, then save into the pool.
    """
    client = FirecrawlClient()
    result = _fetch_with_progress(client, _request_from_args(args), args)

    if not args.dry_run:
        save_course_records(result.records, args.pool)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
        return 0

    print(f"Imported {result.success_count} of {result.total_urls} syllabi")
    for record in result.records:
        print(f"{record.id} | {record.name} | {record.credits} credits | {record.class_type}")

    if result.failures:
        print(f"Failed: {result.failure_count}")
        _print_failures(result.failures)

    if args.dry_run:
        print("Dry run: course pool not modified.")
    return 0


def _cmd_extract(args: argparse.Namespace) -> int:
    """
    Offline extraction of one saved markdown page (no network).
    """
    path = Path(args.file)
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        print(f"Could not read {path}: {exc}")
        return 1

    candidate = extract_candidate(RawDocument(url=args.url or "", content=content))
    result = validate_candidate(candidate)

    out = {
        "candidate": candidate.to_dict(),
        "valid": result.valid,
        "errors": result.errors,
        "warnings": result.warnings,
    }
    if result.data is not None:
        out["record"] = result.data.model_dump(mode="json")

    print(json.dumps(out, indent=2, ensure_ascii=False))
    return 0 if result.valid else 1


def _cmd_pool(args: argparse.Namespace) -> int:
    """
    List the course pool with current grade status.
    """
    records = load_course_records(args.pool)
    if not records:
        print("Course pool is empty.")
        return 0

    for r in records:
        status = grade_status(r)
        print(
            f"{r.id} | {r.name} | {r.credits} credits | {r.class_type} | "
            f"absences {r.absences}/{r.absence_ceiling} | {status.status} ({status.value})"
        )
    print(f"{len(records)} courses")
    return 0


def _cmd_remove(args: argparse.Namespace) -> int:
    course_id = (args.course_id or "").strip()
    if not course_id:
        print("Please provide a course id.")
        return 1

    if not delete_course_record(course_id, args.pool):
        print(f"Not in pool: {course_id}")
        return 0

    print(f"Removed: {course_id}")
    return 0


def _add_target_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--school", default="20", help="Syllabus school id (default: 20, Nagano)")
    p.add_argument("--department", required=True, help="Department id or name (e.g. 31 or 電気電子工学科)")
    p.add_argument("--grade", type=int, default=1, help="Grade level 1-5 (default: 1)")
    p.add_argument("--year", type=int, default=current_academic_year(), help="Academic year (default: current)")
    p.add_argument("--term", choices=["spring", "fall"], default="spring", help="Semester to file courses under")
    p.add_argument("--json", action="store_true", help="Print machine-readable JSON")


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser with sub-commands.
    """
    parser = argparse.ArgumentParser(prog="kosengrade", description="KOSEN syllabus importer")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--pool", default=None, help="Course pool JSON file (default: package data dir)")
    sub = parser.add_subparsers(dest="command", required=True)

    p_urls = sub.add_parser("urls", help="List syllabus detail URLs of a department")
    _add_target_args(p_urls)

    p_fetch = sub.add_parser("fetch", help="Import a department's syllabi into the course pool")
    _add_target_args(p_fetch)
    p_fetch.add_argument("--chunk-size", type=int, default=CHUNK_SIZE, help="Detail pages fetched concurrently")
    p_fetch.add_argument("--delay-ms", type=float, default=CHUNK_DELAY_MS, help="Pause between chunks")
    p_fetch.add_argument("--dry-run", action="store_true", help="Do not write the course pool")

    p_extract = sub.add_parser("extract", help="Extract and validate a saved markdown syllabus page")
    p_extract.add_argument("file", type=str, help="Markdown file")
    p_extract.add_argument("--url", type=str, default=None, help="Source URL (used for the title fallback)")

    sub.add_parser("pool", help="List imported courses")

    p_remove = sub.add_parser("remove", help="Remove a course from the pool")
    p_remove.add_argument("course_id", type=str, help="Course id (e.g. course-3f2a...)")

    return parser


COMMANDS = {
    "urls": _cmd_urls,
    "fetch": _cmd_fetch,
    "extract": _cmd_extract,
    "pool": _cmd_pool,
    "remove": _cmd_remove,
}


def main(argv: Optional[list[str]] = None) -> None:
    """
    CLI entry point. Parses args, dispatches to command handlers,
    and exits via SystemExit with a return code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    handler = COMMANDS.get(args.command)
    if handler is None:
        raise SystemExit(2)

    try:
        code = handler(args)
    except AllDetailsFailedError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        _print_failures(exc.failures, file=sys.stderr)
        raise SystemExit(1)
    except SyllabusError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1)

    raise SystemExit(code)

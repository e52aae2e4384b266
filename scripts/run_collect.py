from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Sequence

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR / "src") not in sys.path:
    sys.path.insert(0, str(ROOT_DIR / "src"))

from bidharvest.config import (
    CollectorSettings,
    DateWindow,
    OutputLayout,
    SiteConfig,
    parse_date_range,
    today_window,
    yesterday_window,
)
from bidharvest.errors import UsageError
from bidharvest.extract.accessor import SoupDocument
from bidharvest.ingest.collector import CollectionController, CollectionStats
from bidharvest.ingest.downloads import DocumentDownloader
from bidharvest.ingest.http import PoliteHttpClient
from bidharvest.ingest.registry import get_site
from bidharvest.io.batches import BatchWriter, create_session_directory, generate_session_name, write_json_atomic

logger = logging.getLogger("run_collect")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Collect procurement listings into raw batch files.")
    window_group = parser.add_mutually_exclusive_group()
    window_group.add_argument("--today", action="store_true", help="Collect listings opened today (UTC).")
    window_group.add_argument(
        "--date-range",
        type=str,
        default=None,
        help="Inclusive window in YYYY-MM-DD,YYYY-MM-DD format. Defaults to yesterday (UTC).",
    )
    parser.add_argument("--source", type=str, default="cherokee")
    parser.add_argument("--output-dir", type=Path, default=ROOT_DIR / "data")
    parser.add_argument("--page-size", type=int, default=50)
    parser.add_argument("--max-pages", type=int, default=10)
    parser.add_argument("--requests-per-second", type=float, default=1.0)
    parser.add_argument("--no-downloads", action="store_true")
    parser.add_argument("--no-early-stop", action="store_true")
    return parser.parse_args(argv)


def resolve_window(args: argparse.Namespace, now: datetime | None = None) -> DateWindow:
    if args.today:
        return today_window(now)
    if args.date_range:
        return parse_date_range(args.date_range)
    return yesterday_window(now)


def _resolve_repo_path(path: Path) -> Path:
    if path.is_absolute():
        return path
    return ROOT_DIR / path


def _exception_summary(exc: Exception) -> dict[str, str]:
    return {"type": type(exc).__name__, "message": str(exc)}


def run_collect(
    *,
    site: SiteConfig,
    window: DateWindow,
    output_dir: Path,
    settings: CollectorSettings,
    requests_per_second: float = 1.0,
) -> dict[str, Any]:
    started_at = datetime.now(tz=UTC)
    layout = OutputLayout(_resolve_repo_path(output_dir))
    report_path = layout.reports_dir / f"collect_{started_at.strftime('%Y%m%dT%H%M%SZ')}.json"

    session_name = generate_session_name(site.name, window, started_at)
    session_dir: Path | None = None
    stats = CollectionStats()
    writer: BatchWriter | None = None
    run_exception: dict[str, str] | None = None

    try:
        session_dir = create_session_directory(layout, session_name)
        writer = BatchWriter(
            session_dir=session_dir,
            session_id=session_name,
            source=site.name,
            source_url=site.search_url,
            window=window,
        )
        with PoliteHttpClient(requests_per_second=requests_per_second) as client:
            downloader = DocumentDownloader(
                client,
                layout.documents_dir,
                max_retries=settings.download_max_retries,
                initial_delay_seconds=settings.download_initial_delay_seconds,
            )
            controller = CollectionController(
                site,
                settings,
                window,
                document=SoupDocument(client.get_text),
                writer=writer,
                downloader=downloader,
            )
            stats = asyncio.run(controller.run())
    except Exception as exc:
        run_exception = _exception_summary(exc)
        logger.exception("Collection run failed.")
    finally:
        finished_at = datetime.now(tz=UTC)
        batches = [str(path.resolve()) for path in writer.written] if writer is not None else []
        if run_exception is not None:
            status = "failed"
        elif stats.items_failed or stats.pages_failed:
            status = "partial" if stats.items_succeeded else "failed"
        else:
            status = "success"

        report_payload = {
            "status": status,
            "run_started_at": started_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "run_finished_at": finished_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "duration_seconds": round((finished_at - started_at).total_seconds(), 3),
            "source": site.name,
            "date_range": window.to_dict(),
            "config": {
                "page_size": settings.page_size,
                "max_pages": settings.max_pages,
                "requests_per_second": requests_per_second,
                "download_documents": settings.download_documents,
                "early_stop": settings.early_stop_for(site),
            },
            "session_id": session_name,
            "progress": stats.to_dict(),
            "artifact_paths": {
                "session_dir": str(session_dir.resolve()) if session_dir else None,
                "batches": batches,
                "report": str(report_path.resolve()),
            },
            "exception_summary": run_exception,
        }
        write_json_atomic(report_payload, report_path)
    return report_payload


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        window = resolve_window(args)
        site = get_site(args.source)
    except UsageError as exc:
        logger.error("%s", exc)
        print(f"Usage error: {exc}", file=sys.stderr)
        return 2

    settings = CollectorSettings(
        page_size=args.page_size,
        max_pages=args.max_pages,
        early_stop=False if args.no_early_stop else None,
        download_documents=not args.no_downloads,
    )
    logger.info("Collecting %s for %s..%s", site.name, window.start.isoformat(), window.end.isoformat())
    report = run_collect(
        site=site,
        window=window,
        output_dir=args.output_dir,
        settings=settings,
        requests_per_second=args.requests_per_second,
    )

    print(f"Run status: {report['status']}")
    print(f"Session: {report['artifact_paths']['session_dir']}")
    print(f"Batches written: {len(report['artifact_paths']['batches'])}")
    print(f"Wrote collect report: {report['artifact_paths']['report']}")
    return 0 if report["status"] != "failed" else 1


if __name__ == "__main__":
    raise SystemExit(main())

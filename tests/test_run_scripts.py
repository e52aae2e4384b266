from __future__ import annotations

import json
from datetime import UTC, date, datetime
from pathlib import Path

from bidharvest.config import CollectorSettings, DateWindow, OutputLayout
from bidharvest.errors import StorageError
from bidharvest.ingest.collector import CollectionStats
from bidharvest.ingest.sources import CHEROKEE
from bidharvest.io.batches import BatchWriter, create_session_directory, generate_session_name
from bidharvest.normalize.schema import BatchItem, RawDocument, RawOpportunity
from scripts.run_collect import main as collect_main
from scripts.run_collect import parse_args, resolve_window, run_collect
from scripts.run_intake import run_intake, source_from_session

NOW = datetime(2024, 1, 8, 15, 30, tzinfo=UTC)
WINDOW = DateWindow(start=date(2024, 1, 1), end=date(2024, 1, 7))


def _item(event_id: str, title: str) -> BatchItem:
    opportunity_id = f"www-cherokeebids-org-{event_id}"
    return BatchItem(
        opportunity=RawOpportunity(
            id=opportunity_id,
            event_id=event_id,
            title=title,
            status="Open",
            close_date="01/20/2024 05:00 PM",
            entity="Cherokee Nation",
            buyer_name="Jane Doe",
            buyer_email="JANE@X.COM",
            estimated_value="$1,234.56",
            source_url=f"https://www.cherokeebids.org/WebsiteAdmin/Procurement/Details/{event_id}",
        ),
        documents=[
            RawDocument(
                id=f"doc-{event_id}",
                file_name="specs.pdf",
                download_url=f"https://www.cherokeebids.org/files/{event_id}/specs.pdf",
                parent_id=opportunity_id,
            )
        ],
    )


def _session(root: Path) -> Path:
    name = generate_session_name("cherokee", WINDOW, NOW)
    session_dir = create_session_directory(OutputLayout(root), name)
    writer = BatchWriter(
        session_dir=session_dir,
        session_id=name,
        source="cherokee",
        source_url=CHEROKEE.search_url,
        window=WINDOW,
    )
    writer.write([_item("164192", "Roof Repair"), _item("164180", "Paving Services")])
    writer.write([_item("164192", "Roof Repair")])
    return session_dir


def test_resolve_window_defaults_to_yesterday() -> None:
    window = resolve_window(parse_args([]), now=NOW)

    assert window == DateWindow(start=date(2024, 1, 7), end=date(2024, 1, 7))


def test_resolve_window_today_and_explicit_range() -> None:
    assert resolve_window(parse_args(["--today"]), now=NOW) == DateWindow(start=date(2024, 1, 8), end=date(2024, 1, 8))
    assert resolve_window(parse_args(["--date-range", "2024-01-01,2024-01-07"]), now=NOW) == WINDOW


def test_collect_main_rejects_bad_input_before_any_fetch() -> None:
    assert collect_main(["--date-range=bad"]) == 2
    assert collect_main(["--date-range=2024-02-01,2024-01-01"]) == 2
    assert collect_main(["--source", "nowhere"]) == 2


def test_run_collect_writes_report_with_progress(monkeypatch, tmp_path: Path) -> None:
    class _FakeController:
        def __init__(self, site, settings, window, *, document, writer, downloader):  # noqa: ANN001
            self.writer = writer

        async def run(self) -> CollectionStats:
            self.writer.write([_item("164192", "Roof Repair")])
            return CollectionStats(pages_fetched=1, items_succeeded=1, batches_written=1, stop_reason="last_page")

    monkeypatch.setattr("scripts.run_collect.CollectionController", _FakeController)

    report = run_collect(
        site=CHEROKEE,
        window=WINDOW,
        output_dir=tmp_path,
        settings=CollectorSettings(download_documents=False),
        requests_per_second=0,
    )

    assert report["status"] == "success"
    assert report["progress"]["stop_reason"] == "last_page"
    assert report["date_range"] == {"from": "2024-01-01", "to": "2024-01-07"}
    assert len(report["artifact_paths"]["batches"]) == 1
    session_dir = Path(report["artifact_paths"]["session_dir"])
    assert session_dir.parent == (tmp_path / "source").resolve()
    assert (session_dir / "batch_1.json").exists()
    assert Path(report["artifact_paths"]["report"]).exists()


def test_run_collect_reports_failure(monkeypatch, tmp_path: Path) -> None:
    class _BrokenController:
        def __init__(self, *args, **kwargs):  # noqa: ANN002, ANN003
            pass

        async def run(self) -> CollectionStats:
            raise TimeoutError("forced timeout")

    monkeypatch.setattr("scripts.run_collect.CollectionController", _BrokenController)

    report = run_collect(
        site=CHEROKEE,
        window=WINDOW,
        output_dir=tmp_path,
        settings=CollectorSettings(download_documents=False),
        requests_per_second=0,
    )

    assert report["status"] == "failed"
    assert report["exception_summary"] == {"type": "TimeoutError", "message": "forced timeout"}
    saved = json.loads(Path(report["artifact_paths"]["report"]).read_text(encoding="utf-8"))
    assert saved["status"] == "failed"


def test_source_from_session_name() -> None:
    assert source_from_session(Path("session_cherokee_2024-01-07_1704693600000")) == "cherokee"
    assert source_from_session(Path("batch_dump")) is None


def test_run_intake_normalizes_session(tmp_path: Path) -> None:
    session_dir = _session(tmp_path)

    report = run_intake(session_dir)

    assert report["status"] == "success"
    assert report["source"] == "cherokee"
    assert report["records"]["batches_read"] == 2
    assert report["records"]["raw_items"] == 3
    assert report["records"]["contracts"] == 2
    assert report["records"]["agencies"] == 1
    assert report["records"]["documents"] == 2
    assert report["records"]["people"] == 1
    assert report["delta_counts"] == {"added": 2, "removed": 0, "changed": 0}
    assert report["guardrail_warnings"] == []

    intake_path = Path(report["artifact_paths"]["intake"])
    assert intake_path.parent == (tmp_path / "intake").resolve()
    payload = json.loads(intake_path.read_text(encoding="utf-8"))
    assert payload["metadata"]["totalContracts"] == 2
    assert payload["metadata"]["sessionId"] == session_dir.name
    assert {contract["externalId"] for contract in payload["contracts"]} == {"164192", "164180"}
    assert all(contract["agencyId"] == payload["agencies"][0]["id"] for contract in payload["contracts"])


def test_run_intake_reports_missing_session(tmp_path: Path) -> None:
    report = run_intake(tmp_path / "source" / "session_cherokee_2024-01-07_1", output_dir=tmp_path)

    assert report["status"] == "failed"
    assert report["exception_summary"]["type"] == "StorageError"
    assert report["artifact_paths"]["intake"] is None
    assert Path(report["artifact_paths"]["report"]).exists()


def test_storage_failure_after_a_written_batch_fails_the_run(monkeypatch, tmp_path: Path) -> None:
    class _DiskFullController:
        def __init__(self, site, settings, window, *, document, writer, downloader):  # noqa: ANN001
            self.writer = writer

        async def run(self) -> CollectionStats:
            path = self.writer.write([_item("164192", "Roof Repair")])
            raise StorageError(path.with_name("batch_2.json"), "write", "disk full")

    monkeypatch.setattr("scripts.run_collect.CollectionController", _DiskFullController)

    exit_code = collect_main(
        [
            "--date-range=2024-01-01,2024-01-07",
            "--output-dir",
            str(tmp_path),
            "--requests-per-second",
            "0",
            "--no-downloads",
        ]
    )

    assert exit_code == 1
    [report_path] = list((tmp_path / "reports").glob("collect_*.json"))
    report = json.loads(report_path.read_text(encoding="utf-8"))
    assert report["status"] == "failed"
    assert report["exception_summary"]["type"] == "StorageError"
    assert [Path(path).name for path in report["artifact_paths"]["batches"]] == ["batch_1.json"]

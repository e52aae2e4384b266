from __future__ import annotations

import argparse
import logging
import re
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Sequence

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR / "src") not in sys.path:
    sys.path.insert(0, str(ROOT_DIR / "src"))

from bidharvest.config import OutputLayout
from bidharvest.errors import SchemaValidationError
from bidharvest.io.batches import read_batches, write_json_atomic
from bidharvest.io.intake_output import (
    build_delta,
    build_guardrail_warnings,
    contracts_frame,
    find_prior_intake,
    load_intake_contracts,
    missing_title_or_source_count,
    write_changes,
    write_intake_output,
)
from bidharvest.normalize.engine import TransformationEngine
from bidharvest.normalize.gate import build_output

logger = logging.getLogger("run_intake")

_SESSION_SOURCE = re.compile(r"^session_(?P<source>[a-z0-9-]+)_\d{4}-\d{2}-\d{2}")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Normalize one collection session into an intake file.")
    parser.add_argument("session_dir", type=Path)
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Output root holding intake/ and reports/. Defaults to the root the session lives under.",
    )
    parser.add_argument("--source", type=str, default=None)
    return parser.parse_args(argv)


def source_from_session(session_dir: Path) -> str | None:
    match = _SESSION_SOURCE.match(session_dir.name)
    return match.group("source") if match else None


def _exception_summary(exc: Exception) -> dict[str, str]:
    return {"type": type(exc).__name__, "message": str(exc)}


def run_intake(
    session_dir: Path,
    *,
    output_dir: Path | None = None,
    source: str | None = None,
) -> dict[str, Any]:
    started_at = datetime.now(tz=UTC)
    layout = OutputLayout(output_dir or session_dir.resolve().parent.parent)
    report_path = layout.reports_dir / f"intake_{started_at.strftime('%Y%m%dT%H%M%SZ')}.json"

    batch_count = 0
    raw_items = 0
    totals: dict[str, int] = {}
    effective_source = source or source_from_session(session_dir)
    intake_path: Path | None = None
    changes_path: Path | None = None
    prior_path: Path | None = None
    prior_count: int | None = None
    guardrail_warnings: list[str] = []
    delta: dict[str, Any] = {"added": [], "removed": [], "changed": []}
    violations: list[str] = []
    run_exception: dict[str, str] | None = None

    try:
        batches = read_batches(session_dir)
        batch_count = len(batches)
        raw_items = sum(len(batch.items) for batch in batches)
        if effective_source is None:
            effective_source = batches[0].metadata.source if batches else "unknown"

        result = TransformationEngine().transform_batches(batches)
        aggregate = build_output(result, source=effective_source, session_id=session_dir.name)
        totals = {
            "contracts": aggregate.metadata.total_contracts,
            "agencies": aggregate.metadata.total_agencies,
            "documents": aggregate.metadata.total_documents,
            "people": aggregate.metadata.total_people,
        }

        prior_path = find_prior_intake(layout.intake_dir, effective_source)
        prior_df = load_intake_contracts(prior_path) if prior_path is not None else None
        prior_count = len(prior_df) if prior_df is not None else None

        current_df = contracts_frame([contract.to_wire() for contract in aggregate.contracts])
        guardrail_warnings = build_guardrail_warnings(
            prior_count=prior_count,
            current_count=len(current_df),
            missing_title_or_source_count=missing_title_or_source_count(current_df),
        )
        for warning in guardrail_warnings:
            logger.warning("Guardrail: %s", warning)

        intake_path = write_intake_output(layout, aggregate, written_at=started_at)
        delta = build_delta(current_df, prior_df)
        changes_path = write_changes(layout, effective_source, delta, written_at=started_at)
    except SchemaValidationError as exc:
        violations = exc.violations
        run_exception = _exception_summary(exc)
        logger.exception("Intake output failed validation; nothing was written.")
    except Exception as exc:
        run_exception = _exception_summary(exc)
        logger.exception("Intake run failed.")
    finally:
        finished_at = datetime.now(tz=UTC)
        report_payload = {
            "status": "failed" if run_exception is not None else "success",
            "run_started_at": started_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "run_finished_at": finished_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "duration_seconds": round((finished_at - started_at).total_seconds(), 3),
            "source": effective_source,
            "session_dir": str(session_dir.resolve()),
            "records": {
                "batches_read": batch_count,
                "raw_items": raw_items,
                "prior_intake_contracts": prior_count,
                **totals,
            },
            "artifact_paths": {
                "intake": str(intake_path.resolve()) if intake_path else None,
                "delta": str(changes_path.resolve()) if changes_path else None,
                "prior_intake": str(prior_path.resolve()) if prior_path else None,
                "report": str(report_path.resolve()),
            },
            "guardrail_warnings": guardrail_warnings,
            "delta_counts": {
                "added": len(delta["added"]),
                "removed": len(delta["removed"]),
                "changed": len(delta["changed"]),
            },
            "validation_errors": violations,
            "exception_summary": run_exception,
        }
        write_json_atomic(report_payload, report_path)
    return report_payload


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    report = run_intake(args.session_dir, output_dir=args.output_dir, source=args.source)

    print(f"Run status: {report['status']}")
    print(f"Wrote intake: {report['artifact_paths']['intake']}")
    print(f"Wrote intake report: {report['artifact_paths']['report']}")
    print(
        "Delta counts: "
        f"added={report['delta_counts']['added']}, "
        f"removed={report['delta_counts']['removed']}, "
        f"changed={report['delta_counts']['changed']}"
    )
    return 0 if report["status"] == "success" else 1


if __name__ == "__main__":
    raise SystemExit(main())

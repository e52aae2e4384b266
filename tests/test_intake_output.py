from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pandas as pd
import pytest

from bidharvest.config import OutputLayout
from bidharvest.errors import StorageError
from bidharvest.io.intake_output import (
    build_delta,
    build_guardrail_warnings,
    contracts_frame,
    find_prior_intake,
    intake_filename,
    list_intake_files,
    load_intake_contracts,
    missing_title_or_source_count,
    write_intake_output,
)
from bidharvest.normalize.schema import IntakeMetadata, NormalizedContract, OutputAggregate


def _contract(contract_id: str, title: str, amount: int | None = None) -> NormalizedContract:
    return NormalizedContract(
        id=contract_id,
        external_id=contract_id.rsplit("-", 1)[-1],
        source="cherokee",
        title=title,
        description="",
        status="open",
        amount=amount,
        source_url=f"https://www.cherokeebids.org/WebsiteAdmin/Procurement/Details/{contract_id}",
        scraped_at="2024-01-08T00:00:00.000Z",
    )


def _aggregate(*contracts: NormalizedContract) -> OutputAggregate:
    return OutputAggregate(
        contracts=list(contracts),
        metadata=IntakeMetadata(
            processed_at="2024-01-08T00:00:00Z",
            source="cherokee",
            total_contracts=len(contracts),
            total_agencies=0,
            total_documents=0,
            total_people=0,
        ),
    )


def test_build_delta_reports_added_removed_and_changed() -> None:
    prior_df = pd.DataFrame(
        [
            {"id": "c-1", "title": "Roof Repair", "status": "open", "closingAt": None, "amount": 100},
            {"id": "c-2", "title": "Paving", "status": "open", "closingAt": None, "amount": None},
        ]
    )
    current_df = pd.DataFrame(
        [
            {"id": "c-1", "title": "Roof Repair", "status": "closed", "closingAt": None, "amount": 100},
            {"id": "c-3", "title": "Fencing", "status": "open", "closingAt": None, "amount": 50},
        ]
    )

    delta = build_delta(current_df, prior_df)

    assert [row["id"] for row in delta["added"]] == ["c-3"]
    assert [row["id"] for row in delta["removed"]] == ["c-2"]
    assert delta["changed"] == [{"id": "c-1", "fields_changed": {"status": {"old": "open", "new": "closed"}}}]


def test_build_delta_without_prior_marks_everything_added() -> None:
    current_df = contracts_frame([_contract("c-1", "Roof Repair").to_wire()])

    delta = build_delta(current_df, None)

    assert [row["id"] for row in delta["added"]] == ["c-1"]
    assert delta["removed"] == []
    assert delta["changed"] == []


def test_guardrail_warnings_flag_large_drop_and_missing_fields() -> None:
    warnings = build_guardrail_warnings(prior_count=10, current_count=4, missing_title_or_source_count=1)

    assert len(warnings) == 2
    assert "dropped by more than 50%" in warnings[0]
    assert "missing title or sourceUrl" in warnings[1]


def test_guardrail_warnings_quiet_for_healthy_run() -> None:
    assert build_guardrail_warnings(prior_count=10, current_count=9, missing_title_or_source_count=0) == []
    assert build_guardrail_warnings(prior_count=None, current_count=0, missing_title_or_source_count=0) == []


def test_missing_title_or_source_count_treats_blank_as_missing() -> None:
    df = contracts_frame(
        [
            {"id": "a", "title": "Roof", "sourceUrl": "https://x"},
            {"id": "b", "title": "  ", "sourceUrl": "https://x"},
            {"id": "c", "title": "Paving", "sourceUrl": None},
        ]
    )

    assert missing_title_or_source_count(df) == 2


def test_write_intake_output_and_find_prior(tmp_path: Path) -> None:
    layout = OutputLayout(tmp_path)
    first_at = datetime(2024, 1, 8, 6, 0, 0, tzinfo=UTC)
    second_at = datetime(2024, 1, 8, 6, 0, 1, tzinfo=UTC)

    first = write_intake_output(layout, _aggregate(_contract("c-1", "Roof Repair", 100)), written_at=first_at)
    second = write_intake_output(layout, _aggregate(_contract("c-2", "Paving")), written_at=second_at)
    (layout.intake_dir / intake_filename("other", second_at)).write_text("{}", encoding="utf-8")

    assert first.name == "intake_cherokee_20240108T060000000Z.json"
    assert list_intake_files(layout.intake_dir, "cherokee") == [first, second]
    assert find_prior_intake(layout.intake_dir, "cherokee") == second
    assert find_prior_intake(layout.intake_dir, "cherokee", exclude=second) == first

    loaded = load_intake_contracts(first)
    assert loaded["id"].tolist() == ["c-1"]
    assert loaded["amount"].tolist() == [100]


def test_intake_runs_within_one_second_keep_separate_files(tmp_path: Path) -> None:
    layout = OutputLayout(tmp_path)
    first_at = datetime(2024, 1, 8, 6, 0, 0, 120000, tzinfo=UTC)
    second_at = datetime(2024, 1, 8, 6, 0, 0, 870000, tzinfo=UTC)

    first = write_intake_output(layout, _aggregate(_contract("c-1", "Roof Repair")), written_at=first_at)
    second = write_intake_output(layout, _aggregate(_contract("c-2", "Paving")), written_at=second_at)

    assert first.name == "intake_cherokee_20240108T060000120Z.json"
    assert second.name == "intake_cherokee_20240108T060000870Z.json"
    assert list_intake_files(layout.intake_dir, "cherokee") == [first, second]


def test_intake_file_is_never_replaced(tmp_path: Path) -> None:
    layout = OutputLayout(tmp_path)
    written_at = datetime(2024, 1, 8, 6, 0, 0, tzinfo=UTC)
    path = write_intake_output(layout, _aggregate(_contract("c-1", "Roof Repair")), written_at=written_at)
    original = path.read_text(encoding="utf-8")

    with pytest.raises(StorageError):
        write_intake_output(layout, _aggregate(_contract("c-2", "Paving")), written_at=written_at)

    assert path.read_text(encoding="utf-8") == original

from __future__ import annotations

import json
from datetime import UTC, date, datetime
from pathlib import Path

import pytest

from bidharvest.config import DateWindow, OutputLayout
from bidharvest.errors import StorageError
from bidharvest.io.batches import (
    BatchWriter,
    create_session_directory,
    generate_session_name,
    read_batch,
    read_batches,
    write_batch,
)
from bidharvest.normalize.schema import Batch, BatchItem, BatchMetadata, RawDocument, RawOpportunity

WINDOW = DateWindow(start=date(2024, 1, 1), end=date(2024, 1, 7))


def _item(event_id: str) -> BatchItem:
    opportunity = RawOpportunity(
        id=f"www-cherokeebids-org-{event_id}",
        event_id=event_id,
        title=f"Bid {event_id}",
        source_url=f"https://www.cherokeebids.org/WebsiteAdmin/Procurement/Details/{event_id}",
    )
    document = RawDocument(
        id=f"doc-{event_id}",
        file_name="specs.pdf",
        download_url=f"https://www.cherokeebids.org/files/{event_id}/specs.pdf",
        parent_id=opportunity.id,
    )
    return BatchItem(opportunity=opportunity, documents=[document])


def _writer(session_dir: Path) -> BatchWriter:
    return BatchWriter(
        session_dir=session_dir,
        session_id=session_dir.name,
        source="cherokee",
        source_url="https://www.cherokeebids.org/WebsiteAdmin/Procurement",
        window=WINDOW,
    )


def test_generate_session_name_includes_source_window_and_epoch_ms() -> None:
    started_at = datetime(2024, 1, 8, 6, 0, tzinfo=UTC)

    assert generate_session_name("Cherokee", WINDOW, started_at) == "session_cherokee_2024-01-01_2024-01-07_1704693600000"
    single_day = DateWindow(start=date(2024, 1, 7), end=date(2024, 1, 7))
    assert generate_session_name("cherokee", single_day, started_at) == "session_cherokee_2024-01-07_1704693600000"


def test_create_session_directory_under_source_dir(tmp_path: Path) -> None:
    session_dir = create_session_directory(OutputLayout(tmp_path), "session_cherokee_2024-01-07_1")

    assert session_dir == tmp_path / "source" / "session_cherokee_2024-01-07_1"
    assert session_dir.is_dir()


def test_batch_writer_numbers_batches_and_round_trips(tmp_path: Path) -> None:
    writer = _writer(tmp_path)

    first = writer.write([_item("1"), _item("2")], scraped_at=datetime(2024, 1, 8, tzinfo=UTC))
    second = writer.write([_item("3")])

    assert [first.name, second.name] == ["batch_1.json", "batch_2.json"]
    payload = json.loads(first.read_text(encoding="utf-8"))
    assert payload["metadata"]["scrapedAt"] == "2024-01-08T00:00:00.000Z"
    assert payload["metadata"]["batchNumber"] == 1
    assert payload["metadata"]["sessionId"] == tmp_path.name
    assert payload["items"][0]["opportunity"]["sourceUrl"].endswith("/1")
    assert payload["items"][0]["documents"][0]["parentId"] == "www-cherokeebids-org-1"

    batches = read_batches(tmp_path)
    assert [batch.metadata.batch_number for batch in batches] == [1, 2]
    assert [item.opportunity.event_id for batch in batches for item in batch.items] == ["1", "2", "3"]


def test_batches_are_read_in_numeric_order(tmp_path: Path) -> None:
    writer = _writer(tmp_path)
    for index in range(1, 12):
        writer.write([_item(str(index))])

    numbers = [batch.metadata.batch_number for batch in read_batches(tmp_path)]

    assert numbers == list(range(1, 12))


def test_existing_batch_is_never_overwritten(tmp_path: Path) -> None:
    batch = Batch(
        metadata=BatchMetadata(scraped_at="2024-01-08T00:00:00.000Z", source="cherokee", source_url=""),
        items=[_item("1")],
    )
    path = write_batch(tmp_path, 1, batch)
    original = path.read_text(encoding="utf-8")

    with pytest.raises(StorageError) as excinfo:
        write_batch(tmp_path, 1, batch.model_copy(update={"items": []}))

    assert excinfo.value.path == path
    assert path.read_text(encoding="utf-8") == original


def test_read_batch_raises_storage_error_for_bad_json(tmp_path: Path) -> None:
    path = tmp_path / "batch_1.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(StorageError) as excinfo:
        read_batches(tmp_path)

    assert excinfo.value.operation == "read batch"
    assert str(path) in str(excinfo.value)


def test_read_batch_skips_invalid_items_and_keeps_valid_ones(tmp_path: Path) -> None:
    path = tmp_path / "batch_1.json"
    payload = {
        "metadata": {"scrapedAt": "2024-01-08T00:00:00Z", "source": "cherokee", "sourceUrl": ""},
        "items": [
            {"opportunity": {"title": "No id or url"}, "documents": []},
            {"opportunity": _item("2").opportunity.to_wire(), "documents": []},
        ],
    }
    path.write_text(json.dumps(payload), encoding="utf-8")

    batch = read_batch(path)

    assert [item.opportunity.event_id for item in batch.items] == ["2"]


def test_read_batches_accepts_legacy_field_names(tmp_path: Path) -> None:
    payload = {
        "metadata": {
            "scrapedAt": "2024-01-08T00:00:00Z",
            "source": "cherokee",
            "sourceUrl": "https://www.cherokeebids.org",
            "dateRange": {"from": "2024-01-01", "to": "2024-01-07"},
            "totalItems": 1,
        },
        "items": [
            {
                "opportunity": {
                    "id": "www-cherokeebids-org-9",
                    "externalId": "9",
                    "detailUrl": "https://www.cherokeebids.org/WebsiteAdmin/Procurement/Details/9",
                },
                "documents": [
                    {
                        "id": "doc-9",
                        "fileName": "a.pdf",
                        "downloadUrl": "https://www.cherokeebids.org/a.pdf",
                        "fileSize": 10,
                        "contractId": "www-cherokeebids-org-9",
                    }
                ],
            }
        ],
    }
    (tmp_path / "batch_1.json").write_text(json.dumps(payload), encoding="utf-8")

    [batch] = read_batches(tmp_path)
    item = batch.items[0]

    assert batch.metadata.date_range is not None
    assert batch.metadata.date_range.start == "2024-01-01"
    assert item.opportunity.event_id == "9"
    assert item.opportunity.status == "Unknown"
    assert item.documents[0].file_size_bytes == 10
    assert item.documents[0].parent_id == "www-cherokeebids-org-9"


def test_read_batches_requires_directory(tmp_path: Path) -> None:
    with pytest.raises(StorageError):
        read_batches(tmp_path / "missing")

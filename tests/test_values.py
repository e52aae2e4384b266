from __future__ import annotations

from datetime import UTC, datetime

import pytest

from bidharvest.normalize.values import (
    clean_text,
    extract_file_extension,
    normalize_agency_type,
    normalize_email,
    normalize_phone,
    normalize_status,
    parse_flexible_date,
    parse_monetary_value,
    to_iso,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("2024-01-05", datetime(2024, 1, 5, tzinfo=UTC)),
        ("2024-01-05T14:30:00Z", datetime(2024, 1, 5, 14, 30, tzinfo=UTC)),
        ("01/05/2024", datetime(2024, 1, 5, tzinfo=UTC)),
        ("1/20/2024 @ 05:00 PM ET", datetime(2024, 1, 20, 17, 0, tzinfo=UTC)),
        ("Jan 15, 2024", datetime(2024, 1, 15, tzinfo=UTC)),
        ("Sept 3, 2024", datetime(2024, 9, 3, tzinfo=UTC)),
        ("December 1 2023", datetime(2023, 12, 1, tzinfo=UTC)),
    ],
)
def test_parse_flexible_date_formats(raw: str, expected: datetime) -> None:
    assert parse_flexible_date(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "TBD", "13/45/2024", "soon"])
def test_parse_flexible_date_returns_none_on_failure(raw: str | None) -> None:
    assert parse_flexible_date(raw) is None


def test_to_iso_uses_z_suffix() -> None:
    assert to_iso(datetime(2024, 1, 5, 17, 0, tzinfo=UTC)) == "2024-01-05T17:00:00Z"
    assert to_iso(None) is None


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("$1M - $5M", 1000000),
        ("$1,234.56", 1235),
        ("$250K", 250000),
        ("2.5 million", 2500000),
        ("USD 1,000", 1000),
        ("$0.50", 1),
        ("N/A", None),
        (None, None),
    ],
)
def test_parse_monetary_value(raw: str | None, expected: int | None) -> None:
    assert parse_monetary_value(raw) == expected


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Open", "open"),
        (" ACTIVE ", "open"),
        ("Posted", "open"),
        ("Expired", "closed"),
        ("Completed", "awarded"),
        ("Canceled", "cancelled"),
        ("Under Review", "Under Review"),
        (None, "unknown"),
    ],
)
def test_normalize_status(raw: str | None, expected: str) -> None:
    assert normalize_status(raw) == expected


def test_normalize_email_lowercases_and_validates() -> None:
    assert normalize_email("JANE@X.COM") == "jane@x.com"
    assert normalize_email("mailto:Buyer@Example.org?subject=Bid") == "buyer@example.org"
    assert normalize_email("not an email") is None
    assert normalize_email(None) is None


def test_normalize_phone_formats_us_numbers_only() -> None:
    assert normalize_phone("918-555-0100") == "(918) 555-0100"
    assert normalize_phone("+1 (918) 555 0100") == "(918) 555-0100"
    assert normalize_phone("555-0100") is None
    assert normalize_phone(None) is None


def test_extract_file_extension() -> None:
    assert extract_file_extension("Specs.PDF") == "pdf"
    assert extract_file_extension("archive.tar.gz") == "gz"
    assert extract_file_extension("README") == "unknown"
    assert extract_file_extension("weird.extension") == "unknown"
    assert extract_file_extension(None) == "unknown"


def test_normalize_agency_type_keywords() -> None:
    assert normalize_agency_type("Cherokee Nation") == "tribal"
    assert normalize_agency_type("Tulsa County") == "county"
    assert normalize_agency_type("City of Tahlequah") == "city"
    assert normalize_agency_type("Acme") is None


def test_clean_text_collapses_whitespace() -> None:
    assert clean_text("  Roof \n Repair ") == "Roof Repair"
    assert clean_text("   ") is None

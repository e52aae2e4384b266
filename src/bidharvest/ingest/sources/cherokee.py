from __future__ import annotations

from bidharvest.config import SiteConfig

BASE_URL = "https://www.cherokeebids.org"
SEARCH_URL = f"{BASE_URL}/WebsiteAdmin/Procurement"

# Listing table: Id | Title | Description | OpenDate | CloseDate | Status,
# sometimes with a leading checkbox column.
CHEROKEE = SiteConfig(
    name="cherokee",
    base_url=BASE_URL,
    search_url=SEARCH_URL,
    listing_row_selectors=(
        "table tbody tr",
        ".table tbody tr",
        "table.table tr",
        "tbody tr",
        "table tr",
    ),
    link_selectors=(
        "td:nth-of-type(2) a",
        "td a[href*='Procurement']",
        "td a",
        "a[href]",
    ),
    id_column=1,
    title_column=2,
    date_columns=(3, 6),
    sort_params=(("field", "opendate"), ("isDesc", "desc"), ("switchSort", "True")),
    descending_by_date=True,
    field_labels={
        "event_id": ("Event ID",),
        "entity": ("Entity",),
        "open_date": ("Open Date", "OpenDate"),
        "close_date": ("Close Date", "CloseDate"),
    },
)

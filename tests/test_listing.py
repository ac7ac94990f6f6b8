from __future__ import annotations

from datetime import date, datetime
from types import SimpleNamespace

import pytest

from assetdesk.errors import ValidationFailed
from assetdesk.models import AssetStatus
from assetdesk.services.listing import (
    DATETIME,
    DESCENDING,
    ENUM,
    NUMBER,
    Column,
    ListState,
    ViewDefinition,
    filter_and_sort,
    paginate,
    pagination_window,
    run_list_view,
)

VIEW = ViewDefinition(
    entity="things",
    title="Things",
    columns=(
        Column("id", "ID", lambda r: r.id, kind=NUMBER, filterable=False),
        Column("name", "Name", lambda r: r.name),
        Column("status", "Status", lambda r: r.status, kind=ENUM),
        Column("seen_at", "Seen", lambda r: r.seen_at, kind=DATETIME),
    ),
    default_sort=("id", "ascending"),
    multi_select="status",
)


def rec(id, name, status=AssetStatus.IN_USE, seen_at=None):
    return SimpleNamespace(id=id, name=name, status=status, seen_at=seen_at)


def ids(rows):
    return [r.id for r in rows]


# =========================================================
# Filtering
# =========================================================
def test_date_range_is_inclusive_at_day_granularity():
    rows = [
        rec(1, "before", seen_at=datetime(2024, 3, 14, 23, 59)),
        rec(2, "start", seen_at=datetime(2024, 3, 15, 0, 0)),
        rec(3, "end of day", seen_at=datetime(2024, 3, 15, 23, 59)),
        rec(4, "next day", seen_at=datetime(2024, 3, 16, 0, 1)),
        rec(5, "undated"),
    ]
    state = ListState(attribute="seen_at", date_from=date(2024, 3, 15), date_to=date(2024, 3, 15))
    assert ids(filter_and_sort(rows, VIEW, state)) == [2, 3]


def test_open_ended_date_ranges():
    rows = [rec(i, str(i), seen_at=datetime(2024, 3, i)) for i in (1, 10, 20)]
    assert ids(filter_and_sort(rows, VIEW, ListState(attribute="seen_at", date_from=date(2024, 3, 10)))) == [10, 20]
    assert ids(filter_and_sort(rows, VIEW, ListState(attribute="seen_at", date_to=date(2024, 3, 10)))) == [1, 10]


def test_text_search_uses_display_label_not_raw_key():
    rows = [rec(1, "a", AssetStatus.IN_STORAGE), rec(2, "b", AssetStatus.IN_USE)]
    assert ids(filter_and_sort(rows, VIEW, ListState(attribute="status", search="in storage"))) == [1]
    assert ids(filter_and_sort(rows, VIEW, ListState(attribute="status", search="in_storage"))) == []


def test_search_is_case_insensitive_substring():
    rows = [rec(1, "Dell Latitude"), rec(2, "HP ProBook"), rec(3, "dell monitor")]
    assert ids(filter_and_sort(rows, VIEW, ListState(attribute="name", search="DELL"))) == [1, 3]


def test_search_without_attribute_scans_text_columns():
    rows = [rec(1, "Printer", AssetStatus.LOST), rec(2, "Lost and found box")]
    assert ids(filter_and_sort(rows, VIEW, ListState(search="lost"))) == [1, 2]


def test_multi_select_is_anded_with_primary_filter():
    rows = [
        rec(1, "dell a", AssetStatus.IN_USE),
        rec(2, "dell b", AssetStatus.LOST),
        rec(3, "hp c", AssetStatus.IN_USE),
    ]
    state = ListState(attribute="name", search="dell", selected=frozenset({"in_use"}))
    assert ids(filter_and_sort(rows, VIEW, state)) == [1]

    state = ListState(selected=frozenset({"in_use", "lost"}))
    assert ids(filter_and_sort(rows, VIEW, state)) == [1, 2, 3]


# =========================================================
# Sorting
# =========================================================
def test_missing_values_sort_after_present_ones():
    rows = [rec(1, None), rec(2, "beta"), rec(3, "Alpha"), rec(4, "")]
    asc = filter_and_sort(rows, VIEW, ListState(sort_column="name"))
    desc = filter_and_sort(rows, VIEW, ListState(sort_column="name", sort_direction=DESCENDING))
    assert ids(asc) == [3, 2, 1, 4]
    assert ids(desc) == [1, 4, 2, 3]


def test_dates_sort_by_timestamp():
    rows = [
        rec(1, "x", seen_at=datetime(2024, 1, 2, 9, 0)),
        rec(2, "y", seen_at=datetime(2023, 12, 31)),
        rec(3, "z", seen_at=datetime(2024, 1, 2, 8, 0)),
    ]
    assert ids(filter_and_sort(rows, VIEW, ListState(sort_column="seen_at"))) == [2, 3, 1]


def test_ties_keep_fetch_order():
    rows = [rec(i, "same") for i in (5, 3, 9, 1)]
    assert ids(filter_and_sort(rows, VIEW, ListState(sort_column="name"))) == [5, 3, 9, 1]


def test_enum_columns_sort_by_label():
    rows = [rec(1, "a", AssetStatus.UNDER_REPAIR), rec(2, "b", AssetStatus.DISPOSED), rec(3, "c", AssetStatus.LOST)]
    assert ids(filter_and_sort(rows, VIEW, ListState(sort_column="status"))) == [2, 3, 1]


# =========================================================
# State / pagination
# =========================================================
def test_changes_to_what_is_shown_reset_page():
    state = ListState(page=4, page_size=10)
    assert state.with_filter(search="x").page == 1
    assert state.with_sort("name", "desc") == ListState(sort_column="name", sort_direction=DESCENDING, page=1)
    assert state.with_page_size(25).page == 1
    assert state.with_page(3).page == 3


def test_from_mapping_parses_query_args():
    state = ListState.from_mapping(
        {
            "attribute": "seen_at",
            "date_from": "2024-03-01",
            "date_to": "2024-03-15",
            "selected": "in_use,lost",
            "sort": "name",
            "direction": "desc",
            "page": "2",
            "page_size": "25",
        },
        VIEW,
    )
    assert state.attribute == "seen_at"
    assert state.date_to == date(2024, 3, 15)
    assert state.selected == frozenset({"in_use", "lost"})
    assert state.sort_direction == DESCENDING
    assert (state.page, state.page_size) == (2, 25)


def test_from_mapping_rejects_bad_input():
    with pytest.raises(ValidationFailed) as exc:
        ListState.from_mapping(
            {
                "attribute": "id",
                "page_size": "30",
                "date_from": "2024-03-20",
                "date_to": "2024-03-01",
                "direction": "sideways",
            },
            VIEW,
        )
    errors = exc.value.errors
    assert set(errors) == {"attribute", "page_size", "date_to", "direction"}


def test_page_past_the_end_is_empty():
    rows = list(range(23))
    page = paginate(rows, ListState(page=3, page_size=10))
    assert page.items == [20, 21, 22]
    assert page.pages == 3
    empty = paginate(rows, ListState(page=4, page_size=10))
    assert empty.items == [] and empty.total == 23


def test_failed_fetch_gives_empty_page_and_error():
    def broken():
        raise RuntimeError("db down")

    result = run_list_view(broken, VIEW, ListState(page=2))
    assert not result.ok
    assert result.page.items == []
    assert result.page.total == 0
    assert "things" in result.error


@pytest.mark.parametrize(
    "current, total, expected",
    [
        (1, 5, [1, 2, 3, 4, 5]),
        (2, 7, [1, 2, 3, 4, 5, 6, 7]),
        (3, 20, [1, 2, 3, 4, 5, None, 20]),
        (10, 20, [1, None, 9, 10, 11, None, 20]),
        (19, 20, [1, None, 16, 17, 18, 19, 20]),
    ],
)
def test_pagination_window(current, total, expected):
    assert pagination_window(current, total) == expected

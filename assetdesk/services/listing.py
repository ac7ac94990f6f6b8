# assetdesk/services/listing.py
"""
Shared filter / sort / paginate engine.

List endpoints and both exporters call `filter_and_sort` with the same
`ListState`, so an export always contains exactly the rows, in exactly the
order, that the list view shows.
"""
from __future__ import annotations

import dataclasses
import enum
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping, Sequence

from ..errors import ValidationFailed
from .status import DerivedStatus, as_utc_date

logger = logging.getLogger(__name__)

TEXT = "text"
ENUM = "enum"
NUMBER = "number"
DATE = "date"
DATETIME = "datetime"

DATE_KINDS = (DATE, DATETIME)

ASCENDING = "ascending"
DESCENDING = "descending"
_DIRECTIONS = {
    "asc": ASCENDING,
    "ascending": ASCENDING,
    "desc": DESCENDING,
    "descending": DESCENDING,
}


# =========================================================
# Formatting
# =========================================================
def format_value(value: Any, kind: str = TEXT) -> str:
    if value is None:
        return ""
    if isinstance(value, DerivedStatus):
        return value.label
    if isinstance(value, enum.Enum):
        return getattr(value, "label", None) or str(value.value)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        if kind == DATE:
            return value.date().isoformat()
        return value.strftime("%Y-%m-%d %H:%M")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    return str(value)


def _raw_key(value: Any) -> str:
    if isinstance(value, DerivedStatus):
        return value.key
    if isinstance(value, enum.Enum):
        return str(value.value)
    return "" if value is None else str(value)


def _timestamp(value: Any) -> float:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc).timestamp()


# =========================================================
# Columns / views
# =========================================================
@dataclass(frozen=True)
class Column:
    uid: str
    label: str
    value: Callable[[Any], Any]
    kind: str = TEXT
    display: Callable[[Any], str] | None = None
    filterable: bool = True
    sortable: bool = True
    default_visible: bool = True

    def raw(self, record: Any) -> Any:
        return self.value(record)

    def text(self, record: Any) -> str:
        if self.display is not None:
            return self.display(record) or ""
        return format_value(self.raw(record), self.kind)

    def sort_key(self, record: Any) -> tuple:
        """Missing values rank after every present value."""
        raw = self.raw(record)
        if raw is None or raw == "":
            return (1, 0)
        if self.kind in DATE_KINDS:
            return (0, _timestamp(raw))
        if self.kind == NUMBER:
            return (0, raw)
        # text and enum/derived columns compare on what the user reads
        return (0, self.text(record).casefold())


@dataclass(frozen=True)
class ViewDefinition:
    entity: str
    title: str
    columns: tuple[Column, ...]
    default_sort: tuple[str, str] = ("id", ASCENDING)
    multi_select: str | None = None

    def column(self, uid: str) -> Column:
        for col in self.columns:
            if col.uid == uid:
                return col
        raise KeyError(uid)

    def has_column(self, uid: str) -> bool:
        return any(col.uid == uid for col in self.columns)

    @property
    def filterable(self) -> list[Column]:
        return [c for c in self.columns if c.filterable]

    def visible(self, uids: Sequence[str] | None = None) -> list[Column]:
        if not uids:
            return [c for c in self.columns if c.default_visible]
        unknown = [u for u in uids if not self.has_column(u)]
        if unknown:
            raise ValidationFailed(
                "Unknown export column.",
                errors={"columns": [f"Unknown column '{u}'." for u in unknown]},
            )
        return [self.column(u) for u in uids]

    def describe(self) -> dict[str, Any]:
        return {
            "entity": self.entity,
            "columns": [
                {
                    "uid": c.uid,
                    "label": c.label,
                    "kind": c.kind,
                    "filterable": c.filterable,
                    "sortable": c.sortable,
                    "default_visible": c.default_visible,
                }
                for c in self.columns
            ],
            "default_sort": {"column": self.default_sort[0], "direction": self.default_sort[1]},
            "multi_select": self.multi_select,
        }


# =========================================================
# Filter specification
# =========================================================
@dataclass(frozen=True)
class ListState:
    attribute: str | None = None
    search: str = ""
    date_from: date | None = None
    date_to: date | None = None
    selected: frozenset[str] = field(default_factory=frozenset)
    sort_column: str | None = None
    sort_direction: str = ASCENDING
    page: int = 1
    page_size: int = 10

    # Any change to what is shown starts again at page 1.
    def with_filter(self, **changes) -> "ListState":
        if "selected" in changes:
            changes["selected"] = frozenset(changes["selected"] or ())
        return dataclasses.replace(self, page=1, **changes)

    def with_sort(self, column: str, direction: str = ASCENDING) -> "ListState":
        return dataclasses.replace(self, sort_column=column, sort_direction=_DIRECTIONS.get(direction, direction), page=1)

    def with_page_size(self, page_size: int) -> "ListState":
        return dataclasses.replace(self, page_size=page_size, page=1)

    def with_page(self, page: int) -> "ListState":
        return dataclasses.replace(self, page=max(1, int(page)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "attribute": self.attribute,
            "search": self.search,
            "date_from": self.date_from.isoformat() if self.date_from else None,
            "date_to": self.date_to.isoformat() if self.date_to else None,
            "selected": sorted(self.selected),
            "sort": self.sort_column,
            "direction": self.sort_direction,
            "page": self.page,
            "page_size": self.page_size,
        }

    @classmethod
    def from_mapping(
        cls,
        data: Mapping[str, Any] | None,
        view: ViewDefinition,
        *,
        page_sizes: Sequence[int] = (10, 15, 25, 50),
        default_page_size: int = 10,
    ) -> "ListState":
        """
        Build a state from query args or a JSON body. Accepts:
        attribute, q|search, date_from, date_to, selected (list or comma
        separated), sort, direction, page, page_size.
        """
        data = data or {}
        errors: dict[str, list[str]] = {}

        def get(key: str, *aliases: str):
            for k in (key, *aliases):
                v = data.get(k)
                if v not in (None, ""):
                    return v
            return None

        attribute = get("attribute", "filter_by")
        if attribute is not None:
            attribute = str(attribute)
            if not view.has_column(attribute) or not view.column(attribute).filterable:
                errors.setdefault("attribute", []).append(f"'{attribute}' is not a filterable attribute.")

        search = str(get("q", "search") or "").strip()

        date_from = _parse_day(get("date_from"), "date_from", errors)
        date_to = _parse_day(get("date_to"), "date_to", errors)
        if date_from and date_to and date_from > date_to:
            errors.setdefault("date_to", []).append("End date must be on or after start date.")

        selected = _parse_selected(data)
        if selected and not view.multi_select:
            errors.setdefault("selected", []).append("This view has no multi-select filter.")

        default_col, default_dir = view.default_sort
        sort_column = str(get("sort") or default_col)
        if not view.has_column(sort_column) or not view.column(sort_column).sortable:
            errors.setdefault("sort", []).append(f"'{sort_column}' is not a sortable column.")

        raw_direction = str(get("direction", "order") or default_dir).lower()
        sort_direction = _DIRECTIONS.get(raw_direction)
        if sort_direction is None:
            errors.setdefault("direction", []).append("Direction must be 'ascending' or 'descending'.")

        page = _parse_positive_int(get("page"), "page", errors, default=1)
        page_size = _parse_positive_int(get("page_size", "per_page"), "page_size", errors, default=default_page_size)
        if page_size not in page_sizes and "page_size" not in errors:
            errors.setdefault("page_size", []).append(
                f"Page size must be one of {', '.join(str(s) for s in page_sizes)}."
            )

        if errors:
            raise ValidationFailed("Invalid list parameters.", errors=errors)

        return cls(
            attribute=attribute,
            search=search,
            date_from=date_from,
            date_to=date_to,
            selected=selected,
            sort_column=sort_column,
            sort_direction=sort_direction or ASCENDING,
            page=page,
            page_size=page_size,
        )


def _parse_day(raw: Any, key: str, errors: dict[str, list[str]]) -> date | None:
    if raw is None:
        return None
    if isinstance(raw, date) and not isinstance(raw, datetime):
        return raw
    try:
        return date.fromisoformat(str(raw).strip()[:10])
    except ValueError:
        errors.setdefault(key, []).append("Date must use the YYYY-MM-DD format.")
        return None


def _parse_positive_int(raw: Any, key: str, errors: dict[str, list[str]], *, default: int) -> int:
    if raw is None:
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        errors.setdefault(key, []).append("Must be a whole number.")
        return default
    if value < 1:
        errors.setdefault(key, []).append("Must be 1 or greater.")
        return default
    return value


def _parse_selected(data: Mapping[str, Any]) -> frozenset[str]:
    if hasattr(data, "getlist"):
        values = data.getlist("selected")
    else:
        values = data.get("selected") or []
        if isinstance(values, str):
            values = [values]
    out: set[str] = set()
    for v in values:
        for part in str(v).split(","):
            part = part.strip()
            if part:
                out.add(part)
    return frozenset(out)


# =========================================================
# Engine
# =========================================================
def _matches_text(view: ViewDefinition, state: ListState, record: Any) -> bool:
    needle = state.search.casefold()
    if not needle:
        return True
    if state.attribute:
        columns = [view.column(state.attribute)]
    else:
        columns = [c for c in view.filterable if c.kind not in DATE_KINDS]
    return any(needle in c.text(record).casefold() for c in columns)


def _matches_range(column: Column, state: ListState, record: Any) -> bool:
    if state.date_from is None and state.date_to is None:
        return True
    day = as_utc_date(column.raw(record))
    if day is None:
        return False
    if state.date_from is not None and day < state.date_from:
        return False
    if state.date_to is not None and day > state.date_to:
        return False
    return True


def _matches_selected(view: ViewDefinition, state: ListState, record: Any) -> bool:
    if not state.selected or not view.multi_select:
        return True
    return _raw_key(view.column(view.multi_select).raw(record)) in state.selected


def matches(view: ViewDefinition, state: ListState, record: Any) -> bool:
    column = view.column(state.attribute) if state.attribute else None
    if column is not None and column.kind in DATE_KINDS:
        primary = _matches_range(column, state, record)
    else:
        primary = _matches_text(view, state, record)
    return primary and _matches_selected(view, state, record)


def filter_and_sort(records: Iterable[Any], view: ViewDefinition, state: ListState) -> list[Any]:
    """Apply the primary filter, the multi-select filter and the sort. Stable."""
    rows = [r for r in records if matches(view, state, r)]

    sort_uid = state.sort_column or view.default_sort[0]
    if not view.has_column(sort_uid):
        return rows
    column = view.column(sort_uid)

    if state.sort_direction == DESCENDING:
        # Missing values are "greater", so they lead a descending sort.
        rows.sort(key=column.sort_key, reverse=True)
    else:
        rows.sort(key=column.sort_key)
    return rows


@dataclass(frozen=True)
class Page:
    items: list[Any]
    page: int
    page_size: int
    total: int

    @property
    def pages(self) -> int:
        return max(1, math.ceil(self.total / self.page_size)) if self.page_size else 1

    @classmethod
    def empty(cls, state: ListState) -> "Page":
        return cls(items=[], page=state.page, page_size=state.page_size, total=0)


def paginate(rows: Sequence[Any], state: ListState) -> Page:
    start = (state.page - 1) * state.page_size
    return Page(
        items=list(rows[start:start + state.page_size]),
        page=state.page,
        page_size=state.page_size,
        total=len(rows),
    )


@dataclass(frozen=True)
class ListResult:
    page: Page
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def run_list_view(fetch: Callable[[], Iterable[Any]], view: ViewDefinition, state: ListState) -> ListResult:
    """
    Fetch, filter, sort and paginate. A failed fetch yields an empty page and
    the error; results from an earlier state are never reused.
    """
    try:
        records = list(fetch())
    except Exception:
        logger.exception("Fetching %s failed", view.entity)
        return ListResult(page=Page.empty(state), error=f"Could not load {view.title.lower()}.")
    return ListResult(page=paginate(filter_and_sort(records, view, state), state))


def pagination_window(current: int, total: int) -> list[int | None]:
    """Page numbers for the pager strip; None marks an ellipsis."""
    if total <= 7:
        return list(range(1, total + 1))
    if current <= 4:
        return [1, 2, 3, 4, 5, None, total]
    if current >= total - 3:
        return [1, None] + list(range(total - 4, total + 1))
    return [1, None, current - 1, current, current + 1, None, total]

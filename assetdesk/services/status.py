# assetdesk/services/status.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any

from flask import current_app, has_app_context

DEFAULT_EXPIRING_SOON_DAYS = 30


@dataclass(frozen=True)
class DerivedStatus:
    key: str
    label: str
    severity: str

    def to_dict(self) -> dict[str, str]:
        return {"key": self.key, "label": self.label, "severity": self.severity}


LICENSE_LABELS = {
    "deleted": "Deleted",
    "perpetual": "Perpetual",
    "expired": "Expired",
    "expiring_soon": "Expiring Soon",
    "active": "Active",
}

WARRANTY_LABELS = {
    "deleted": "Deleted",
    "perpetual": "No Warranty",
    "expired": "Out of Warranty",
    "expiring_soon": "Warranty Expiring",
    "active": "Under Warranty",
}

_SEVERITY = {
    "deleted": "default",
    "perpetual": "success",
    "expired": "danger",
    "expiring_soon": "warning",
    "active": "success",
}


# =========================================================
# UTC day helpers
# =========================================================
def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def as_utc_date(value: Any) -> date | None:
    """
    Reduce a date/datetime/ISO string to its UTC calendar day.
    Naive datetimes are taken as UTC (that is how they are stored).
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        text = value.strip()
        if len(text) == 10:
            return date.fromisoformat(text)
        value = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    raise TypeError(f"Cannot read a date from {type(value).__name__}")


def expiring_soon_days() -> int:
    if has_app_context():
        return int(current_app.config.get("EXPIRING_SOON_DAYS", DEFAULT_EXPIRING_SOON_DAYS))
    return DEFAULT_EXPIRING_SOON_DAYS


# =========================================================
# Calculator
# =========================================================
def expiry_status(
    expiry: Any,
    deleted_at: Any = None,
    *,
    today: date | None = None,
    threshold_days: int | None = None,
    labels: dict[str, str] = LICENSE_LABELS,
) -> DerivedStatus:
    """
    Single rule used everywhere an expiry-driven status is shown, filtered,
    sorted or exported:

        deleted -> no expiry -> expired (< today) -> expiring soon (<= today + N) -> active

    Both sides are compared as UTC calendar days.
    """
    if deleted_at is not None:
        key = "deleted"
    else:
        expiry_day = as_utc_date(expiry)
        if expiry_day is None:
            key = "perpetual"
        else:
            current = as_utc_date(today) if today is not None else utc_today()
            window = expiring_soon_days() if threshold_days is None else threshold_days
            if expiry_day < current:
                key = "expired"
            elif expiry_day <= current + timedelta(days=window):
                key = "expiring_soon"
            else:
                key = "active"

    return DerivedStatus(key=key, label=labels[key], severity=_SEVERITY[key])


def license_status(lic: Any, **kwargs) -> DerivedStatus:
    return expiry_status(getattr(lic, "expiry_date", None), getattr(lic, "deleted_at", None), **kwargs)


def warranty_status(asset: Any, **kwargs) -> DerivedStatus:
    kwargs.setdefault("labels", WARRANTY_LABELS)
    return expiry_status(
        getattr(asset, "warranty_expiry_date", None),
        getattr(asset, "deleted_at", None),
        **kwargs,
    )

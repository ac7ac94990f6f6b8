from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from assetdesk.services.status import (
    as_utc_date,
    expiry_status,
    license_status,
    utc_today,
    warranty_status,
)

TODAY = date(2024, 3, 15)


@pytest.mark.parametrize(
    "offset, key",
    [
        (-1, "expired"),
        (0, "expiring_soon"),
        (30, "expiring_soon"),
        (31, "active"),
    ],
)
def test_expiry_boundaries(offset, key):
    status = expiry_status(TODAY + timedelta(days=offset), today=TODAY)
    assert status.key == key


def test_boundaries_against_real_today():
    today = utc_today()
    assert expiry_status(today + timedelta(days=30)).label == "Expiring Soon"
    assert expiry_status(today + timedelta(days=31)).label == "Active"
    assert expiry_status(today - timedelta(days=1)).label == "Expired"


def test_no_expiry_is_perpetual_and_deleted_wins():
    assert expiry_status(None, today=TODAY).key == "perpetual"
    deleted = expiry_status(TODAY - timedelta(days=400), datetime(2024, 1, 1), today=TODAY)
    assert deleted.key == "deleted"
    assert deleted.severity == "default"


def test_threshold_is_configurable():
    expiry = TODAY + timedelta(days=45)
    assert expiry_status(expiry, today=TODAY).key == "active"
    assert expiry_status(expiry, today=TODAY, threshold_days=60).key == "expiring_soon"


def test_threshold_read_from_app_config(app):
    expiry = utc_today() + timedelta(days=45)
    with app.app_context():
        assert expiry_status(expiry).key == "active"
        app.config["EXPIRING_SOON_DAYS"] = 60
        assert expiry_status(expiry).key == "expiring_soon"


def test_aware_datetimes_compare_on_utc_day():
    # 23:30 on the 14th at UTC-3 is already the 15th in UTC
    late_evening = datetime(2024, 3, 14, 23, 30, tzinfo=timezone(timedelta(hours=-3)))
    assert as_utc_date(late_evening) == date(2024, 3, 15)
    assert expiry_status(late_evening, today=TODAY).key == "expiring_soon"

    # 01:00 on the 15th at UTC+5 is still the 14th in UTC
    early_morning = datetime(2024, 3, 15, 1, 0, tzinfo=timezone(timedelta(hours=5)))
    assert expiry_status(early_morning, today=TODAY).key == "expired"


def test_license_and_warranty_share_the_rule():
    lic = SimpleNamespace(expiry_date=TODAY + timedelta(days=10), deleted_at=None)
    asset = SimpleNamespace(warranty_expiry_date=TODAY + timedelta(days=10), deleted_at=None)

    lic_status = license_status(lic, today=TODAY)
    warranty = warranty_status(asset, today=TODAY)

    assert lic_status.key == warranty.key == "expiring_soon"
    assert lic_status.label == "Expiring Soon"
    assert warranty.label == "Warranty Expiring"
    assert warranty_status(SimpleNamespace(warranty_expiry_date=None, deleted_at=None)).label == "No Warranty"


def test_to_dict_shape():
    assert expiry_status(TODAY - timedelta(days=3), today=TODAY).to_dict() == {
        "key": "expired",
        "label": "Expired",
        "severity": "danger",
    }

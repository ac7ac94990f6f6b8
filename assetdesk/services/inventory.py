# assetdesk/services/inventory.py
"""
Asset writes shared by the single create, batch create, CSV import and move
endpoints. Nothing here commits; callers wrap the calls in
`repository.transaction` (or a savepoint) and own the boundary.
"""
from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from .. import repository as repo
from ..errors import ValidationFailed
from ..models import (
    Asset,
    AssetStatus,
    AssetTransfer,
    Company,
    Location,
    MovementType,
    Section,
    User,
    utcnow_naive,
)
from ..schemas import AssetBatchCreate, AssetCreate, AssetMove, AssetUpdate, TransferReceipt


# =========================================================
# Checks
# =========================================================
def _check_location(location: Optional[Location], section_id: Optional[int], field: str) -> None:
    if location is None:
        return
    if section_id is None or location.section_id != section_id:
        raise ValidationFailed(
            "Location does not belong to the selected section.",
            errors={field: ["Location does not belong to the selected section."]},
            field=field,
        )


def _check_codes(session: Session, inventory_code, serial_number, *, exclude_id: Optional[int] = None) -> None:
    repo.ensure_unique(session, Asset, Asset.inventory_code, inventory_code, "inventory_code", exclude_id=exclude_id)
    repo.ensure_unique(session, Asset, Asset.serial_number, serial_number, "serial_number", exclude_id=exclude_id)


# =========================================================
# Create / update
# =========================================================
def create_asset(session: Session, data: AssetCreate) -> Asset:
    values = data.model_dump()

    repo.require_reference(session, Section, values["current_section_id"], "current_section_id")
    location = repo.require_reference(session, Location, values.get("current_location_id"), "current_location_id")
    _check_location(location, values["current_section_id"], "current_location_id")
    repo.require_reference(session, Company, values.get("supplier_company_id"), "supplier_company_id")
    _check_codes(session, values["inventory_code"], values.get("serial_number"))

    asset = Asset(**values)
    session.add(asset)
    session.flush()
    return asset


def batch_codes(base: str, count: int) -> list[str]:
    """INV-7 with three serials -> INV-7-01, INV-7-02, INV-7-03."""
    width = max(2, len(str(count)))
    return [f"{base}-{n:0{width}d}" for n in range(1, count + 1)]


def create_asset_batch(session: Session, data: AssetBatchCreate) -> list[Asset]:
    common = data.common.model_dump()
    codes = batch_codes(common["inventory_code"], len(data.serial_numbers))

    assets = []
    for code, serial in zip(codes, data.serial_numbers):
        item = AssetCreate.model_validate({**common, "inventory_code": code, "serial_number": serial})
        try:
            assets.append(create_asset(session, item))
        except ValidationFailed as exc:
            exc.message = f"Serial {serial}: {exc.message}"
            raise
    return assets


def update_asset(session: Session, asset: Asset, data: AssetUpdate) -> Asset:
    changes = data.changes()

    section_id = changes.get("current_section_id", asset.current_section_id)
    if "current_section_id" in changes:
        repo.require_reference(session, Section, section_id, "current_section_id")

    if "current_location_id" in changes or "current_section_id" in changes:
        location_id = changes.get("current_location_id", asset.current_location_id)
        location = repo.require_reference(session, Location, location_id, "current_location_id")
        _check_location(location, section_id, "current_location_id")

    if "supplier_company_id" in changes:
        repo.require_reference(session, Company, changes["supplier_company_id"], "supplier_company_id")

    _check_codes(
        session,
        changes.get("inventory_code"),
        changes.get("serial_number"),
        exclude_id=asset.id,
    )

    repo.apply_changes(asset, changes)
    session.flush()
    return asset


# =========================================================
# Movements
# =========================================================
def move_asset(session: Session, asset: Asset, data: AssetMove, *, authorized_by_id: Optional[int]) -> AssetTransfer:
    """
    Record a transfer and update the asset's current place in the same unit
    of work. A disposal marks the asset disposed and clears its place.
    """
    to_section = repo.require_reference(session, Section, data.to_section_id, "to_section_id")
    to_location = repo.require_reference(session, Location, data.to_location_id, "to_location_id")
    _check_location(to_location, data.to_section_id, "to_location_id")
    for field in ("from_user_id", "to_user_id", "received_by_user_id"):
        repo.require_reference(session, User, getattr(data, field), field)

    transfer = AssetTransfer(
        asset_id=asset.id,
        transfer_date=data.transfer_date or utcnow_naive(),
        movement_type=data.movement_type,
        from_section_id=asset.current_section_id,
        from_location_id=asset.current_location_id,
        to_section_id=to_section.id if to_section else None,
        to_location_id=to_location.id if to_location else None,
        from_user_id=data.from_user_id,
        to_user_id=data.to_user_id,
        authorized_by_user_id=authorized_by_id,
        received_by_user_id=data.received_by_user_id,
        received_date=data.received_date,
        transfer_reason=data.transfer_reason,
        notes=data.notes,
        signature_image_url=data.signature_image_url,
    )
    session.add(transfer)

    if data.movement_type == MovementType.DISPOSAL:
        asset.status = AssetStatus.DISPOSED
        asset.current_section_id = None
        asset.current_location_id = None
    else:
        asset.current_section_id = to_section.id
        asset.current_location_id = to_location.id if to_location else None

    session.flush()
    return transfer


def record_receipt(session: Session, transfer: AssetTransfer, data: TransferReceipt) -> AssetTransfer:
    changes = data.changes()
    if "received_by_user_id" in changes:
        repo.require_reference(session, User, changes["received_by_user_id"], "received_by_user_id")

    received = changes.get("received_date", transfer.received_date)
    if received is not None and received < transfer.transfer_date:
        raise ValidationFailed(
            "received_date cannot be before the transfer date.",
            errors={"received_date": ["Cannot be before the transfer date."]},
            field="received_date",
        )

    repo.apply_changes(transfer, {k: v for k, v in changes.items() if k in AssetTransfer.RECEIPT_FIELDS})
    session.flush()
    return transfer

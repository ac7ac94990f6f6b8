# assetdesk/services/views.py
"""Column definitions for every list view (and therefore every export)."""
from __future__ import annotations

from typing import Any

from .listing import (
    ASCENDING,
    DATE,
    DATETIME,
    DESCENDING,
    ENUM,
    NUMBER,
    Column,
    ViewDefinition,
)
from .status import license_status, warranty_status


def _name(obj: Any, attr: str = "name") -> str | None:
    return getattr(obj, attr, None) if obj is not None else None


def _person(user: Any) -> str | None:
    return user.full_name if user is not None else None


def _id_column() -> Column:
    return Column("id", "ID", lambda r: r.id, kind=NUMBER, filterable=False, default_visible=False)


# =========================================================
# Assets
# =========================================================
ASSETS = ViewDefinition(
    entity="assets",
    title="Assets",
    columns=(
        _id_column(),
        Column("inventory_code", "Inventory Code", lambda a: a.inventory_code),
        Column("product_name", "Product Name", lambda a: a.product_name),
        Column("serial_number", "Serial Number", lambda a: a.serial_number),
        Column("status", "Status", lambda a: a.status, kind=ENUM),
        Column("section", "Section", lambda a: _name(a.current_section)),
        Column("location", "Location", lambda a: _name(a.current_location)),
        Column("supplier", "Supplier", lambda a: _name(a.supplier_company, "display_name")),
        Column(
            "supplier_tax_id",
            "Supplier Tax ID",
            lambda a: _name(a.supplier_company, "tax_id"),
            default_visible=False,
        ),
        Column("purchase_date", "Purchase Date", lambda a: a.purchase_date, kind=DATE),
        Column("invoice_number", "Invoice Number", lambda a: a.invoice_number, default_visible=False),
        Column("warranty_expiry_date", "Warranty Expiry", lambda a: a.warranty_expiry_date, kind=DATE),
        Column("warranty_status", "Warranty Status", warranty_status, kind=ENUM),
        Column("acquisition_procedure", "Acquisition Procedure", lambda a: a.acquisition_procedure, default_visible=False),
        Column("description", "Description", lambda a: a.description, default_visible=False),
        Column("image_url", "Image URL", lambda a: a.image_url, filterable=False, sortable=False, default_visible=False),
        Column("created_at", "Created", lambda a: a.created_at, kind=DATETIME, default_visible=False),
    ),
    default_sort=("inventory_code", ASCENDING),
    multi_select="status",
)


# =========================================================
# Movements (asset transfers)
# =========================================================
MOVEMENTS = ViewDefinition(
    entity="movements",
    title="Asset Movements",
    columns=(
        _id_column(),
        Column("transfer_date", "Transfer Date", lambda t: t.transfer_date, kind=DATETIME),
        Column("movement_type", "Type", lambda t: t.movement_type, kind=ENUM),
        Column("inventory_code", "Inventory Code", lambda t: t.asset.inventory_code),
        Column("product_name", "Product", lambda t: t.asset.product_name),
        Column("from_section", "From Section", lambda t: _name(t.from_section)),
        Column("from_location", "From Location", lambda t: _name(t.from_location)),
        Column("to_section", "To Section", lambda t: _name(t.to_section)),
        Column("to_location", "To Location", lambda t: _name(t.to_location)),
        Column("from_user", "From User", lambda t: _person(t.from_user), default_visible=False),
        Column("to_user", "To User", lambda t: _person(t.to_user), default_visible=False),
        Column("authorized_by", "Authorized By", lambda t: _person(t.authorized_by)),
        Column("received_by", "Received By", lambda t: _person(t.received_by)),
        Column("received_date", "Received Date", lambda t: t.received_date, kind=DATETIME),
        Column("transfer_reason", "Reason", lambda t: t.transfer_reason, default_visible=False),
        Column("notes", "Notes", lambda t: t.notes, default_visible=False),
    ),
    default_sort=("transfer_date", DESCENDING),
    multi_select="movement_type",
)


# =========================================================
# Software licenses
# =========================================================
def _seats_used(lic: Any) -> int:
    return len(lic.assignments)


LICENSES = ViewDefinition(
    entity="software_licenses",
    title="Software Licenses",
    columns=(
        _id_column(),
        Column("software_name", "Software", lambda s: s.software_name),
        Column("software_version", "Version", lambda s: s.software_version),
        Column("license_key", "License Key", lambda s: s.license_key, default_visible=False),
        Column("license_type", "License Type", lambda s: s.license_type, kind=ENUM),
        Column("seats", "Seats", lambda s: s.seats, kind=NUMBER, filterable=False),
        Column("seats_used", "Installations", _seats_used, kind=NUMBER, filterable=False),
        Column("purchase_date", "Purchase Date", lambda s: s.purchase_date, kind=DATE),
        Column("purchase_cost", "Cost", lambda s: s.purchase_cost, kind=NUMBER, filterable=False, default_visible=False),
        Column("expiry_date", "Expiry Date", lambda s: s.expiry_date, kind=DATE),
        Column("status", "Status", license_status, kind=ENUM),
        Column("supplier", "Supplier", lambda s: _name(s.supplier_company, "display_name")),
        Column("assigned_to", "Assigned User", lambda s: _person(s.assigned_to_user)),
        Column("invoice_number", "Invoice Number", lambda s: s.invoice_number, default_visible=False),
        Column("notes", "Notes", lambda s: s.notes, default_visible=False),
    ),
    default_sort=("software_name", ASCENDING),
    multi_select="status",
)


# =========================================================
# Users
# =========================================================
USERS = ViewDefinition(
    entity="users",
    title="Users",
    columns=(
        _id_column(),
        Column("full_name", "Name", lambda u: u.full_name),
        Column("email", "Email", lambda u: u.email),
        Column("national_id", "National ID", lambda u: u.national_id),
        Column("status", "Status", lambda u: u.status, kind=ENUM),
        Column("section", "Section", lambda u: _name(u.section)),
        Column("roles", "Roles", lambda u: ", ".join(u.role_names)),
        Column("birth_date", "Birth Date", lambda u: u.birth_date, kind=DATE, default_visible=False),
        Column("last_login_at", "Last Login", lambda u: u.last_login_at, kind=DATETIME),
        Column("created_at", "Created", lambda u: u.created_at, kind=DATETIME, default_visible=False),
    ),
    default_sort=("full_name", ASCENDING),
    multi_select="status",
)


# =========================================================
# Places
# =========================================================
COMPANIES = ViewDefinition(
    entity="companies",
    title="Companies",
    columns=(
        _id_column(),
        Column("tax_id", "Tax ID", lambda c: c.tax_id),
        Column("legal_name", "Legal Name", lambda c: c.legal_name),
        Column("trade_name", "Trade Name", lambda c: c.trade_name),
        Column("email", "Email", lambda c: c.email),
        Column("phone_number", "Phone", lambda c: c.phone_number),
        Column("created_at", "Created", lambda c: c.created_at, kind=DATETIME, default_visible=False),
    ),
    default_sort=("legal_name", ASCENDING),
)

SECTIONS = ViewDefinition(
    entity="sections",
    title="Sections",
    columns=(
        _id_column(),
        Column("name", "Name", lambda s: s.name),
        Column("management_level", "Management Level", lambda s: s.management_level, kind=NUMBER),
        Column("email", "Email", lambda s: s.email),
        Column("parent_section", "Parent Section", lambda s: _name(s.parent_section)),
        Column("created_at", "Created", lambda s: s.created_at, kind=DATETIME, default_visible=False),
    ),
    default_sort=("name", ASCENDING),
)

LOCATIONS = ViewDefinition(
    entity="locations",
    title="Locations",
    columns=(
        _id_column(),
        Column("name", "Name", lambda loc: loc.name),
        Column("section", "Section", lambda loc: _name(loc.section)),
        Column("description", "Description", lambda loc: loc.description),
        Column("created_at", "Created", lambda loc: loc.created_at, kind=DATETIME, default_visible=False),
    ),
    default_sort=("name", ASCENDING),
)

VIEWS = {
    v.entity: v
    for v in (ASSETS, MOVEMENTS, LICENSES, USERS, COMPANIES, SECTIONS, LOCATIONS)
}

# Assets CSV layout that import accepts back unchanged.
ASSET_IMPORT_COLUMNS = (
    "product_name",
    "serial_number",
    "inventory_code",
    "description",
    "section",
    "location",
    "supplier_tax_id",
    "purchase_date",
    "invoice_number",
    "warranty_expiry_date",
    "acquisition_procedure",
    "status",
    "image_url",
)

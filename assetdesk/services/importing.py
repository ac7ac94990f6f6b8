# assetdesk/services/importing.py
"""
CSV asset import.

Headers are matched by field key, by the export label, or by the legacy
column names, ignoring case, accents and spacing. Every row is validated and
written on its own savepoint, so one bad row never blocks the rest.
"""
from __future__ import annotations

import csv
import io
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import repository as repo
from ..errors import AppError, ValidationFailed
from ..models import AssetStatus, Company, Location, Section
from ..schemas import AssetCreate, validate_payload
from .inventory import create_asset
from .views import ASSET_IMPORT_COLUMNS, ASSETS

REQUIRED_COLUMNS = ("product_name", "inventory_code", "section")

# Extra spellings on top of the field key and the export label.
_ALIASES = {
    "product_name": ["producto", "nombre_producto"],
    "serial_number": ["serial", "numero_serie", "número de serie"],
    "inventory_code": ["codigo_inventario", "código de inventario"],
    "description": ["descripcion", "descripción"],
    "section": ["current_section_name", "section_name", "seccion", "sección"],
    "location": ["current_location_name", "location_name", "ubicacion", "ubicación"],
    "supplier_tax_id": ["supplier_company_tax_id", "tax_id", "rut"],
    "purchase_date": ["fecha_compra"],
    "invoice_number": ["factura", "numero_factura"],
    "warranty_expiry_date": ["warranty_expiry", "fin_garantia"],
    "acquisition_procedure": ["procedimiento_adquisicion"],
    "status": ["estado"],
    "image_url": ["imagen"],
}


def _norm(s: Optional[str]) -> str:
    if s is None:
        return ""
    s = str(s).strip().lstrip("\ufeff")
    s = unicodedata.normalize("NFKD", s).encode("ascii", "ignore").decode("ascii")
    return "_".join(s.lower().replace("-", " ").split())


def _header_aliases() -> Dict[str, List[str]]:
    out: Dict[str, List[str]] = {}
    for key in ASSET_IMPORT_COLUMNS:
        out[key] = [key, ASSETS.column(key).label, *_ALIASES.get(key, [])]
    return out


def match_headers(headers: List[str]) -> Dict[str, str]:
    """Map field key -> header as it appears in the file."""
    out: Dict[str, str] = {}
    norm_headers = {_norm(h): h for h in headers}
    for key, aliases in _header_aliases().items():
        for al in aliases:
            if _norm(al) in norm_headers:
                out[key] = norm_headers[_norm(al)]
                break
    return out


# =========================================================
# Results
# =========================================================
@dataclass
class RowResult:
    line: int
    inventory_code: Optional[str] = None
    asset_id: Optional[int] = None
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"line": self.line, "inventory_code": self.inventory_code, "ok": self.ok}
        if self.ok:
            out["asset_id"] = self.asset_id
        else:
            out["errors"] = self.errors
        return out


@dataclass
class ImportReport:
    rows: List[RowResult] = field(default_factory=list)

    @property
    def created(self) -> int:
        return sum(1 for r in self.rows if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.rows if not r.ok)

    @property
    def status_code(self) -> int:
        if self.failed == 0:
            return 201
        if self.created == 0:
            return 400
        return 207

    def to_dict(self) -> Dict[str, Any]:
        if self.failed == 0:
            message = f"Imported {self.created} asset(s)."
        elif self.created == 0:
            message = "No rows could be imported."
        else:
            message = f"Imported {self.created} asset(s); {self.failed} row(s) failed."
        return {
            "message": message,
            "created": self.created,
            "failed": self.failed,
            "rows": [r.to_dict() for r in self.rows],
        }


# =========================================================
# Parsing
# =========================================================
def _decode(raw: bytes) -> str:
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ValidationFailed("The file must be a UTF-8 encoded CSV.", field="file") from exc


def _read_rows(text: str) -> tuple[Dict[str, str], List[tuple[int, Dict[str, str]]]]:
    try:
        dialect = csv.Sniffer().sniff(text[:4096], delimiters=",;\t")
    except csv.Error:
        dialect = csv.excel
    reader = csv.DictReader(io.StringIO(text), dialect=dialect)
    headers = list(reader.fieldnames or [])
    if not headers:
        raise ValidationFailed("The CSV file has no header row.", field="file")

    header_map = match_headers(headers)
    missing = [c for c in REQUIRED_COLUMNS if c not in header_map]
    if missing:
        raise ValidationFailed(
            "Required columns are missing.",
            errors={"file": [f"Missing column: {c}" for c in missing]},
            field="file",
        )
    # line_num is the physical line the record ended on; blank lines are skipped
    return header_map, [(reader.line_num, row) for row in reader]


def _cell(row: Dict[str, str], header_map: Dict[str, str], key: str) -> Optional[str]:
    header = header_map.get(key)
    if header is None:
        return None
    value = row.get(header)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _flatten(errors: Dict[str, List[str]]) -> List[str]:
    return [f"{k}: {m}" for k, msgs in errors.items() for m in msgs]


# =========================================================
# Row import
# =========================================================
def _resolve_row(session: Session, values: Dict[str, Optional[str]]) -> Dict[str, Any]:
    errors: Dict[str, List[str]] = {}
    payload: Dict[str, Any] = {
        k: values.get(k)
        for k in (
            "product_name",
            "serial_number",
            "inventory_code",
            "description",
            "purchase_date",
            "invoice_number",
            "warranty_expiry_date",
            "acquisition_procedure",
            "image_url",
        )
    }

    section = repo.find_active_by(session, Section, Section.name, values.get("section"), ci=True)
    if values.get("section") and section is None:
        errors.setdefault("section", []).append(f"Section '{values['section']}' not found.")
    payload["current_section_id"] = section.id if section else None

    location_name = values.get("location")
    if location_name and section is not None:
        location = repo.find_active_by(
            session,
            Location,
            Location.name,
            location_name,
            ci=True,
            extra=(Location.section_id == section.id,),
        )
        if location is None:
            errors.setdefault("location", []).append(
                f"Location '{location_name}' not found in section '{section.name}'."
            )
        payload["current_location_id"] = location.id if location else None

    tax_id = values.get("supplier_tax_id")
    if tax_id:
        company = repo.find_active_by(session, Company, Company.tax_id, tax_id)
        if company is None:
            errors.setdefault("supplier_tax_id", []).append(f"Company with tax ID '{tax_id}' not found.")
        payload["supplier_company_id"] = company.id if company else None

    status = values.get("status")
    if status:
        try:
            payload["status"] = AssetStatus.parse(status)
        except ValueError:
            errors.setdefault("status", []).append(
                f"Unknown status '{status}'. Use one of: {', '.join(s.value for s in AssetStatus)}."
            )

    if errors:
        raise ValidationFailed("Row has unresolved references.", errors=errors)
    return payload


def import_assets_csv(session: Session, raw: bytes) -> ImportReport:
    """
    Create one asset per data row. Rows that fail keep their line number
    (header is line 1) and messages; the others are still written. The
    caller commits.
    """
    header_map, rows = _read_rows(_decode(raw))
    if not rows:
        raise ValidationFailed("The CSV file has no data rows.", field="file")

    report = ImportReport()
    for line, row in rows:
        values = {key: _cell(row, header_map, key) for key in header_map}
        if not any(values.values()):
            continue

        result = RowResult(line=line, inventory_code=values.get("inventory_code"))
        missing = [c for c in REQUIRED_COLUMNS if not values.get(c)]
        if missing:
            result.errors = [f"{c}: value is required." for c in missing]
            report.rows.append(result)
            continue

        try:
            data = validate_payload(AssetCreate, _resolve_row(session, values))
            with session.begin_nested():
                asset = create_asset(session, data)
            result.asset_id = asset.id
        except AppError as exc:
            result.errors = _flatten(exc.errors) or [exc.message]
        except IntegrityError:
            result.errors = ["A record with the same unique value already exists."]
        report.rows.append(result)

    current_app.logger.info("CSV import: %s created, %s failed", report.created, report.failed)
    return report

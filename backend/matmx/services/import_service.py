# Overview: Service-layer operations for CSV inventory import and export.

from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Iterable, Mapping

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import ServiceError, ValidationError
from ..extensions import db
from ..models import InventoryImportLog, Product
from .concurrency import atomic, lock_for_update
from .inventory_service import record_stock_change
from ..validation import ModelValidationPolicy, enforce_rules_product, validate_payload
from matmx.money import to_money_str

"""
Import Invariants

- Rows are independent: each valid row is upserted in its own transaction, and
  a row that fails validation or its write is counted and skipped. Nothing a
  row does can roll back another row.
- Upsert key is sku. A matching sku overwrites every column in the file; a
  new sku inserts a product.
- Stock set by an import is recorded as a "csv_import" adjustment so the
  adjustment history still explains the current level.
- One InventoryImportLog row is written per batch, after the rows.
"""

CSV_COLUMNS = ("name", "sku", "vendor", "stock", "reorder_threshold", "unit_price", "category", "notes")

IMPORT_REASON = "csv_import"


@dataclass
class ImportSummary:
    success_count: int
    failure_count: int
    log: InventoryImportLog
    errors: list[dict]

    def to_dict(self) -> dict:
        return {
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "import_log_id": self.log.id,
            "errors": self.errors,
        }


def _clean_header(key: Any) -> str:
    if key is None:
        return ""
    return str(key).lstrip("\ufeff").strip().lower()


def read_csv_rows(raw: bytes | str) -> list[dict[str, str]]:
    """
    Decode an uploaded CSV into dict rows keyed by normalized header names.

    A byte-order mark and surrounding whitespace on header cells are stripped.
    """
    if isinstance(raw, bytes):
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            raise ValidationError("CSV file must be UTF-8 encoded")
    else:
        text = raw

    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames:
        raise ValidationError("CSV file has no header row")

    headers = [_clean_header(h) for h in reader.fieldnames]
    if "sku" not in headers or "name" not in headers:
        raise ValidationError("CSV header must include sku and name")
    reader.fieldnames = headers

    rows = []
    for row in reader:
        # Extra cells beyond the header land under the None key; drop them
        rows.append({k: v for k, v in row.items() if k})
    return rows


def _cell(row: Mapping[str, Any], key: str) -> str:
    value = row.get(key)
    if value is None:
        return ""
    return str(value).strip()


# Same column rules as the product API; blank cells count as absent
IMPORT_ROW_POLICY = ModelValidationPolicy(
    writable_fields=set(CSV_COLUMNS),
    required_on_create={"sku", "name", "stock"},
)

IMPORT_ROW_DEFAULTS = {
    "vendor": None,
    "reorder_threshold": 0,
    "unit_price": None,
    "category": None,
    "notes": None,
}


def normalize_import_row(row: Mapping[str, Any]) -> dict:
    """
    Validate one CSV row and return product fields.

    Rows go through the same payload validation and product rules as
    POST /api/inventory: nothing is truncated or rounded, integers must fit
    their column and prices carry at most two decimals.
    """
    payload = {key: _cell(row, key) for key in CSV_COLUMNS}
    payload = {key: value for key, value in payload.items() if value}

    fields = validate_payload(model=Product, payload=payload, policy=IMPORT_ROW_POLICY, partial=False)
    enforce_rules_product(fields)
    return {**IMPORT_ROW_DEFAULTS, **fields}


def _upsert_product(fields: dict, *, filename: str | None, actor_id: int | None) -> Product:
    """Insert or overwrite by sku. Runs inside the caller's atomic() block."""
    product = (
        lock_for_update(db.session.query(Product).filter(Product.sku == fields["sku"]))
        .populate_existing()
        .first()
    )
    if product is None:
        product = Product(sku=fields["sku"], stock=0)
        db.session.add(product)

    for k in ("name", "vendor", "reorder_threshold", "unit_price", "category", "notes"):
        setattr(product, k, fields[k])
    db.session.flush()

    record_stock_change(
        product,
        fields["stock"],
        reason=IMPORT_REASON,
        note=filename,
        actor_id=actor_id,
    )
    return product


def import_inventory(
    rows: Iterable[Mapping[str, Any]],
    *,
    filename: str | None = None,
    note: str | None = None,
    actor_id: int | None = None,
) -> ImportSummary:
    """
    Best-effort batch upsert. Returns counts plus per-row error messages.

    Row numbers in errors are 1-based data rows (the header is row 0).
    """
    success = 0
    failed = 0
    errors: list[dict] = []

    for row_number, raw in enumerate(rows, start=1):
        try:
            fields = normalize_import_row(raw)
            with atomic():
                _upsert_product(fields, filename=filename, actor_id=actor_id)
        except (ServiceError, SQLAlchemyError) as exc:
            message = getattr(exc, "message", None) or str(exc)
        except Exception:
            # Driver errors outside SQLAlchemy; atomic() already rolled the row back
            current_app.logger.exception("Inventory import row %s failed unexpectedly", row_number)
            message = "Row could not be written"
        else:
            success += 1
            continue

        failed += 1
        errors.append({"row": row_number, "sku": _cell(raw, "sku") or None, "error": message})
        current_app.logger.warning("Inventory import row %s rejected: %s", row_number, message)

    with atomic():
        log = InventoryImportLog(
            uploaded_by=actor_id,
            filename=filename,
            success_count=success,
            failure_count=failed,
            note=note.strip() if isinstance(note, str) and note.strip() else None,
        )
        db.session.add(log)

    current_app.logger.info(
        "Inventory import %r finished: %s succeeded, %s failed", filename, success, failed
    )
    return ImportSummary(success_count=success, failure_count=failed, log=log, errors=errors)


def list_import_logs(
    *,
    uploaded_by: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[InventoryImportLog]:
    """Import summaries, newest first. Date bounds are inclusive calendar days."""
    q = db.session.query(InventoryImportLog)
    if uploaded_by is not None:
        q = q.filter(InventoryImportLog.uploaded_by == uploaded_by)
    if start_date is not None:
        q = q.filter(InventoryImportLog.created_at >= datetime.combine(start_date, time.min))
    if end_date is not None:
        q = q.filter(InventoryImportLog.created_at <= datetime.combine(end_date, time.max))
    return q.order_by(InventoryImportLog.created_at.desc(), InventoryImportLog.id.desc()).all()


def export_inventory_csv() -> str:
    """All products as CSV (import column set), sorted by name."""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS, lineterminator="\n")
    writer.writeheader()
    products = db.session.query(Product).order_by(Product.name.asc(), Product.id.asc()).all()
    for p in products:
        writer.writerow({
            "name": p.name,
            "sku": p.sku,
            "vendor": p.vendor or "",
            "stock": p.stock,
            "reorder_threshold": p.reorder_threshold,
            "unit_price": to_money_str(p.unit_price) or "",
            "category": p.category or "",
            "notes": p.notes or "",
        })
    return buffer.getvalue()

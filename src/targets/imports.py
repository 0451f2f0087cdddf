"""Bulk import of targets from spreadsheets.

Validation and commit share one code path (:func:`run_import`): every row
is parsed, validated and priced the same way in both modes. A commit
writes nothing unless every row is valid; once it does write, each row is
upserted on its own (by exact account and product name) and a failing row
is reported without stopping the others.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from io import BytesIO

import openpyxl
from django.conf import settings
from django.db import DatabaseError, transaction
from django.http import HttpResponse
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from core.exceptions import ImportValidationError
from targets import pricing
from targets.consistency import system_actor
from targets.models import PRICING_INPUT_FIELDS, StageHistory, Target
from targets.stages import Stage

logger = logging.getLogger("sourcing")

# Spreadsheet layout, in column order.
IMPORT_COLUMNS = [
    ("id", "ID"),
    ("year", "Year"),
    ("account_name", "Account"),
    ("product_name", "Product"),
    ("quantity_kg", "Quantity (kg)"),
    ("owner_name", "Owner"),
    ("prior_year_sales", "Prior-year sales (local)"),
    ("segment", "Segment"),
    ("current_currency", "Current currency"),
    ("current_unit_price_foreign", "Current unit price"),
    ("current_fx_rate", "Current FX rate"),
    ("current_tariff_rate", "Current tariff (%)"),
    ("current_additional_cost_rate", "Current additional cost (%)"),
    ("current_unit_price_local", "Current unit price (local)"),
    ("current_total_local", "Current total (local)"),
    ("estimate_currency", "Estimate currency"),
    ("estimate_unit_price_foreign", "Estimate unit price"),
    ("estimate_fx_rate", "Estimate FX rate"),
    ("estimate_tariff_rate", "Estimate tariff (%)"),
    ("estimate_additional_cost_rate", "Estimate additional cost (%)"),
    ("estimate_unit_price_local", "Estimate unit price (local)"),
    ("estimate_revenue_local", "Estimated revenue (local)"),
    ("saving_per_unit", "Saving per kg (local)"),
    ("total_saving", "Total saving (local)"),
    ("saving_rate", "Saving rate"),
    ("note", "Note"),
]
COLUMN_KEYS = [key for key, _ in IMPORT_COLUMNS]

# Computed columns: present in the file, ignored on import.
DERIVED_COLUMNS = frozenset({
    "current_unit_price_local",
    "current_total_local",
    "estimate_unit_price_local",
    "estimate_revenue_local",
    "saving_per_unit",
    "total_saving",
    "saving_rate",
})

# Fields an import may overwrite on an existing target.
MUTABLE_FIELDS = (
    "year",
    "quantity_kg",
    "owner_name",
    "prior_year_sales",
    "segment",
    "current_currency",
    "current_unit_price_foreign",
    "current_fx_rate",
    "current_tariff_rate",
    "current_additional_cost_rate",
    "estimate_currency",
    "estimate_unit_price_foreign",
    "estimate_fx_rate",
    "estimate_tariff_rate",
    "estimate_additional_cost_rate",
    "note",
)

_NULL_STRINGS = {"null", "none"}


@dataclass
class RowVerdict:
    row: int
    data: dict
    errors: list = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def as_dict(self) -> dict:
        return {
            "row": self.row,
            "is_valid": self.is_valid,
            "errors": self.errors,
            "data": {key: _jsonable(value) for key, value in self.data.items()},
        }


@dataclass
class ImportResult:
    verdicts: list = field(default_factory=list)
    skipped_rows: int = 0
    committed: bool = False
    created: int = 0
    updated: int = 0
    errors: list = field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return len(self.verdicts)

    @property
    def valid_rows(self) -> int:
        return sum(1 for verdict in self.verdicts if verdict.is_valid)

    @property
    def invalid_rows(self) -> int:
        return self.total_rows - self.valid_rows

    def validation_errors(self) -> list:
        return [
            {"row": verdict.row, **error}
            for verdict in self.verdicts
            for error in verdict.errors
        ]

    def as_validation_dict(self) -> dict:
        return {
            "total_rows": self.total_rows,
            "valid_rows": self.valid_rows,
            "invalid_rows": self.invalid_rows,
            "skipped_rows": self.skipped_rows,
            "rows": [verdict.as_dict() for verdict in self.verdicts],
        }

    def as_commit_dict(self) -> dict:
        return {
            "committed": self.committed,
            "total_rows": self.total_rows,
            "created": self.created,
            "updated": self.updated,
            "errors": self.errors,
        }


def _jsonable(value):
    if isinstance(value, Decimal):
        return str(value)
    return value


def _is_blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        text = value.strip()
        return not text or text.lower() in _NULL_STRINGS
    return False


def _text(values: dict, key: str) -> str:
    value = values.get(key)
    if _is_blank(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


class _RowParser:
    """Collects every field error of one row instead of stopping at the first."""

    def __init__(self, row_number: int, values: dict):
        self.row_number = row_number
        self.values = values
        self.errors = []

    def error(self, field_name: str, message: str) -> None:
        self.errors.append({"field": field_name, "message": message})

    def text(self, key: str, *, required: bool = False, label: str = "") -> str:
        value = _text(self.values, key)
        if required and not value:
            self.error(key, f"{label or key} is required.")
        return value

    def number(
        self,
        key: str,
        *,
        label: str,
        required: bool = False,
        positive: bool = False,
        non_negative: bool = False,
    ) -> Decimal | None:
        raw = self.values.get(key)
        if _is_blank(raw):
            if required:
                self.error(key, f"{label} is required.")
            return None
        try:
            value = pricing.to_decimal(raw, key)
        except ValueError:
            self.error(key, f"{label} must be a number (got {raw!r}).")
            return None
        if positive and value <= 0:
            self.error(key, f"{label} must be greater than 0.")
        elif non_negative and value < 0:
            self.error(key, f"{label} cannot be negative.")
        return value

    def year(self) -> int | None:
        value = self.number("year", label="Year")
        if value is None:
            return None
        if value != value.to_integral_value() or not 1900 <= value <= 2100:
            self.error("year", f"Year {value} is not a valid year.")
            return None
        return int(value)

    def price_block(self, prefix: str, *, label: str, required: bool) -> dict:
        """Parse one price block; all of it or none of it must be given."""
        keys = {
            "currency": f"{prefix}_currency",
            "price": f"{prefix}_unit_price_foreign",
            "fx": f"{prefix}_fx_rate",
            "tariff": f"{prefix}_tariff_rate",
            "cost": f"{prefix}_additional_cost_rate",
        }
        empty = {name: None for name in keys.values()}
        present = any(
            not _is_blank(self.values.get(keys[name])) for name in ("currency", "price", "fx")
        )
        if not present:
            if required:
                self.error(keys["currency"], f"{label}: currency is required.")
                self.error(keys["price"], f"{label}: unit price is required.")
            return empty

        currency = self.text(keys["currency"]).upper()
        if not currency:
            self.error(keys["currency"], f"{label}: currency is required when a price is given.")
        elif len(currency) != 3 or not currency.isalpha():
            self.error(keys["currency"], f"{label}: {currency!r} is not a currency code.")
        price = self.number(keys["price"], label=f"{label}: unit price", required=True, positive=True)

        if currency and pricing.is_local_currency(currency):
            fx_rate = pricing.ONE
        else:
            fx_rate = self.number(keys["fx"], label=f"{label}: exchange rate", required=True, positive=True)

        tariff = self.number(keys["tariff"], label=f"{label}: tariff rate", non_negative=True)
        cost = self.number(keys["cost"], label=f"{label}: additional cost rate", non_negative=True)
        return {
            keys["currency"]: currency or None,
            keys["price"]: price,
            keys["fx"]: fx_rate,
            keys["tariff"]: tariff if tariff is not None else pricing.ZERO,
            keys["cost"]: cost if cost is not None else pricing.ZERO,
        }


def is_blank_row(values: dict) -> bool:
    """Trailing rows with no account, product or quantity are skipped."""
    return all(_is_blank(values.get(key)) for key in ("account_name", "product_name", "quantity_kg"))


def validate_row(row_number: int, values: dict) -> RowVerdict:
    parser = _RowParser(row_number, values)
    data = {
        "year": parser.year(),
        "account_name": parser.text("account_name", required=True, label="Account"),
        "product_name": parser.text("product_name", required=True, label="Product"),
        "quantity_kg": parser.number("quantity_kg", label="Quantity", required=True, positive=True),
        "owner_name": parser.text("owner_name", required=True, label="Owner"),
        "prior_year_sales": parser.number("prior_year_sales", label="Prior-year sales", non_negative=True),
        "segment": parser.text("segment").upper(),
        "note": parser.text("note"),
    }
    if data["segment"] and data["segment"] not in Target.Segment.values:
        parser.error(
            "segment",
            f"Segment {data['segment']!r} must be one of {', '.join(Target.Segment.values)}.",
        )
    data.update(parser.price_block("current", label="Current purchase price", required=False))
    data.update(parser.price_block("estimate", label="Estimated sale price", required=True))

    verdict = RowVerdict(row=row_number, data=data, errors=parser.errors)
    if verdict.is_valid:
        verdict.data.update(derive_fields(data))
    return verdict


def derive_fields(data: dict) -> dict:
    """Rounded inputs and derived columns exactly as ``Target.save`` would store them."""
    target = Target(**{key: data[key] for key in MUTABLE_FIELDS})
    target.apply_pricing()
    return {
        name: getattr(target, name)
        for name in (
            *PRICING_INPUT_FIELDS,
            "current_unit_price_local",
            "current_total_local",
            "estimate_unit_price_local",
            "estimate_revenue_local",
            "saving_per_unit",
            "total_saving",
            "saving_rate",
        )
    }


def _upsert_row(verdict: RowVerdict, result: ImportResult, actor_name: str) -> None:
    data = verdict.data
    with transaction.atomic():
        target = (
            Target.objects.select_for_update()
            .filter(account_name=data["account_name"], product_name=data["product_name"])
            .first()
        )
        if target is not None:
            for name in MUTABLE_FIELDS:
                setattr(target, name, data[name])
            target.save()
            result.updated += 1
            return

        target = Target(
            account_name=data["account_name"],
            product_name=data["product_name"],
            current_stage=Stage.MARKET_RESEARCH,
            created_by=actor_name,
            **{name: data[name] for name in MUTABLE_FIELDS},
        )
        target.save()
        StageHistory.objects.create(
            target=target,
            stage=Stage.MARKET_RESEARCH,
            changed_at=target.created_at,
            actor_name=actor_name,
            comment="Registered by bulk import",
        )
        result.created += 1


def run_import(rows, *, persist: bool = False, actor_name: str | None = None) -> ImportResult:
    """Validate ``rows`` and, when ``persist`` is set, upsert them.

    ``rows`` is an iterable of ``(row_number, values)`` pairs where
    ``values`` maps column keys to raw cell values.
    """
    result = ImportResult()
    for row_number, values in rows:
        if is_blank_row(values):
            result.skipped_rows += 1
            continue
        result.verdicts.append(validate_row(row_number, values))

    if not persist:
        return result

    if result.invalid_rows:
        result.errors = result.validation_errors()
        logger.warning(
            "Target import rejected: %d invalid row(s) out of %d, nothing written.",
            result.invalid_rows, result.total_rows,
        )
        return result

    actor_name = actor_name or system_actor()
    for verdict in result.verdicts:
        try:
            _upsert_row(verdict, result, actor_name)
        except (DatabaseError, InvalidOperation, ValueError) as exc:
            logger.exception("Target import - row %d could not be saved.", verdict.row)
            result.errors.append({"row": verdict.row, "field": "", "message": str(exc)})

    result.committed = True
    logger.info(
        "Target import finished: %d created, %d updated, %d error(s).",
        result.created, result.updated, len(result.errors),
    )
    return result


def validate_import_batch(rows) -> ImportResult:
    return run_import(rows, persist=False)


def commit_import_batch(rows, *, actor_name: str | None = None) -> ImportResult:
    return run_import(rows, persist=True, actor_name=actor_name)


# =========================================================================
# SPREADSHEET I/O
# =========================================================================

def _max_rows() -> int:
    return getattr(settings, "SOURCING_IMPORT_MAX_ROWS", 5000)


def _check_row_count(count: int) -> None:
    if count > _max_rows():
        raise ImportValidationError(
            f"The file has {count} rows; at most {_max_rows()} can be imported at once.",
            field="file",
        )


def read_workbook_rows(file) -> list:
    """Read the first sheet of an ``.xlsx`` upload into ``(row, values)`` pairs.

    Columns are positional (see ``IMPORT_COLUMNS``); the header row is skipped.
    """
    try:
        wb = openpyxl.load_workbook(file, read_only=True, data_only=True)
    except Exception as exc:
        raise ImportValidationError("The file is not a readable .xlsx workbook.", field="file") from exc

    try:
        ws = wb.active
        rows = []
        for row_idx, row in enumerate(ws.iter_rows(min_row=2, values_only=True), start=2):
            padded = list(row)[: len(COLUMN_KEYS)]
            padded += [None] * (len(COLUMN_KEYS) - len(padded))
            values = {
                key: value
                for key, value in zip(COLUMN_KEYS, padded)
                if key not in DERIVED_COLUMNS
            }
            rows.append((row_idx, values))
    finally:
        wb.close()

    # Trailing blank rows do not count against the limit.
    while rows and is_blank_row(rows[-1][1]):
        rows.pop()
    _check_row_count(len(rows))
    return rows


def records_to_rows(records) -> list:
    """Number JSON records (dicts keyed by column key) from 1."""
    if not isinstance(records, (list, tuple)):
        raise ImportValidationError("rows must be a list of objects.", field="rows")
    rows = []
    for index, record in enumerate(records, start=1):
        if not isinstance(record, dict):
            raise ImportValidationError(f"Row {index} must be an object.", field="rows", row=index)
        rows.append((index, {key: record.get(key) for key in COLUMN_KEYS if key not in DERIVED_COLUMNS}))
    _check_row_count(len(rows))
    return rows


def _styled_workbook(title: str):
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = title

    header_font = Font(bold=True, color="FFFFFF", size=11)
    header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
    derived_fill = PatternFill(start_color="A5A5A5", end_color="A5A5A5", fill_type="solid")

    for col_num, (key, header) in enumerate(IMPORT_COLUMNS, 1):
        cell = ws.cell(row=1, column=col_num, value=header)
        cell.font = header_font
        cell.fill = derived_fill if key in DERIVED_COLUMNS else header_fill
        cell.alignment = Alignment(horizontal="center", vertical="center")
    ws.freeze_panes = "A2"
    return wb, ws


def _autosize(ws) -> None:
    for col_num, (_, header) in enumerate(IMPORT_COLUMNS, 1):
        col_letter = get_column_letter(col_num)
        max_length = len(header)
        for row in ws.iter_rows(min_row=2, min_col=col_num, max_col=col_num):
            for cell in row:
                if cell.value is not None:
                    max_length = max(max_length, len(str(cell.value)))
        ws.column_dimensions[col_letter].width = min(max_length + 4, 40)


def _xlsx_response(wb, filename: str) -> HttpResponse:
    buffer = BytesIO()
    wb.save(buffer)
    buffer.seek(0)
    response = HttpResponse(
        buffer.getvalue(),
        content_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )
    response["Content-Disposition"] = f'attachment; filename="{filename}"'
    return response


def _cell_value(value):
    if isinstance(value, Decimal):
        return float(value)
    return value


TEMPLATE_EXAMPLE_ROW = {
    "year": 2025,
    "account_name": "Hanmi Pharm",
    "product_name": "Cefaclor API",
    "quantity_kg": 1200,
    "owner_name": "Kim Minji",
    "prior_year_sales": 150000000,
    "segment": "S",
    "current_currency": "USD",
    "current_unit_price_foreign": 95,
    "current_fx_rate": 1350,
    "current_tariff_rate": 6.5,
    "current_additional_cost_rate": 2,
    "estimate_currency": "USD",
    "estimate_unit_price_foreign": 88,
    "estimate_fx_rate": 1350,
    "estimate_tariff_rate": 6.5,
    "estimate_additional_cost_rate": 2,
    "note": "Example row, delete before importing",
}


def build_import_template() -> HttpResponse:
    """Empty import sheet with one example row; grey headers are computed."""
    wb, ws = _styled_workbook("Targets")
    for col_num, key in enumerate(COLUMN_KEYS, 1):
        ws.cell(row=2, column=col_num, value=TEMPLATE_EXAMPLE_ROW.get(key))
    _autosize(ws)
    return _xlsx_response(wb, "target_import_template.xlsx")


def export_targets_to_excel(queryset) -> HttpResponse:
    """Export targets in the import layout so the file can be re-imported."""
    wb, ws = _styled_workbook("Targets")
    for row_num, target in enumerate(queryset.iterator(), start=2):
        for col_num, key in enumerate(COLUMN_KEYS, 1):
            value = str(target.pk) if key == "id" else getattr(target, key)
            ws.cell(row=row_num, column=col_num, value=_cell_value(value))
    _autosize(ws)
    return _xlsx_response(wb, "targets.xlsx")

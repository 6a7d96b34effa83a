"""ERP export generators for claims.

Everything here is a pure function of a claim's locked state plus the ERP
settings, so exporting the same claim twice yields identical output. The
invoice date is the submission date, falling back to the creation date.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Sequence

from app.backend.src.core.config import Settings, get_settings
from app.backend.src.models import Claim, ClaimLineItem
from app.backend.src.services.calculations import format_money, to_money

HEADER_COLUMNS: tuple[str, ...] = (
    "INVOICE_NUM",
    "VENDOR_NUM",
    "VENDOR_SITE_CODE",
    "INVOICE_AMOUNT",
    "INVOICE_DATE",
    "INVOICE_TYPE_LOOKUP_CODE",
    "SOURCE",
    "ORG_ID",
    "DESCRIPTION",
    "TERMS_NAME",
    "GL_DATE",
    "INVOICE_CURRENCY_CODE",
    "EXCHANGE_RATE",
    "EXCHANGE_RATE_TYPE",
    "EXCHANGE_DATE",
    "PO_NUMBER",
    "ATTRIBUTE1",
    "ATTRIBUTE2",
    "ATTRIBUTE3",
    "ATTRIBUTE4",
    "ATTRIBUTE_CATEGORY",
)

LINE_COLUMNS: tuple[str, ...] = (
    "INVOICE_NUM",
    "LINE_NUMBER",
    "LINE_TYPE_LOOKUP_CODE",
    "AMOUNT",
    "QUANTITY_INVOICED",
    "UNIT_PRICE",
    "DESCRIPTION",
    "DIST_CODE_COMBINATION_ID",
    "PROJECT_ID",
    "TASK_ID",
    "EXPENDITURE_TYPE",
    "EXPENDITURE_ITEM_DATE",
    "EXPENDITURE_ORGANIZATION_ID",
    "LINE_ATTRIBUTE1",
    "LINE_ATTRIBUTE2",
    "LINE_ATTRIBUTE3",
    "LINE_ATTRIBUTE4",
    "LINE_ATTRIBUTE5",
    "LINE_ATTRIBUTE6",
    "LINE_ATTRIBUTE_CATEGORY",
)

LINE_ITEM_CSV_COLUMNS: tuple[str, ...] = (
    "Line#",
    "ItemCode",
    "Description",
    "Quantity",
    "Unit",
    "UnitPrice",
    "TotalAmount",
    "WorkDate",
    "PhotoCount",
    "HasGPS",
    "Tier",
    "SubContractor",
    "WorkCategory",
)

HEADER_SECTION = "# AP_INVOICES_INTERFACE - Invoice Headers"
LINE_SECTION = "# AP_INVOICE_LINES_INTERFACE - Invoice Lines"
MAX_LINE_DESCRIPTION = 240


@dataclass
class BulkInterface:
    """Header and line tables of the payables bulk-import interface."""

    headers: list[list[str]] = field(default_factory=list)
    lines: list[list[str]] = field(default_factory=list)
    header_columns: tuple[str, ...] = HEADER_COLUMNS
    line_columns: tuple[str, ...] = LINE_COLUMNS


def _iso(value: date | datetime | None) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    return value.isoformat()


def invoice_date(claim: Claim) -> str:
    return _iso(claim.submitted_at or claim.created_at)


def _quantity(value: Decimal) -> str:
    normalized = Decimal(value).normalize()
    return format(normalized, "f")


def _line_description(item: ClaimLineItem) -> str:
    return f"{item.item_code}: {item.description}"[:MAX_LINE_DESCRIPTION]


def _gps_status(claim: Claim) -> str:
    items = claim.line_items
    with_gps = sum(1 for item in items if item.has_gps)
    if items and with_gps == len(items):
        return "VERIFIED"
    if with_gps:
        return "PARTIAL"
    return "NONE"


def _evidence_count(claim: Claim) -> int:
    return sum(item.photo_count or 0 for item in claim.line_items)


def _expenditure_type(claim: Claim, settings: Settings) -> str:
    return claim.erp_expenditure_type or settings.erp_default_expenditure_type


def build_invoice_payload(claim: Claim, settings: Settings | None = None) -> dict[str, Any]:
    """Build the payables invoice REST payload for ``claim``."""

    settings = settings or get_settings()
    issued = invoice_date(claim)
    period = (
        f"{_iso(claim.period_start) or 'N/A'} to {_iso(claim.period_end) or 'N/A'}"
    )

    lines = [
        {
            "LineNumber": item.line_number,
            "LineType": "Item",
            "ItemDescription": _line_description(item),
            "Quantity": float(item.quantity),
            "UnitOfMeasure": item.unit or "EA",
            "UnitPrice": float(to_money(item.unit_price)),
            "Amount": float(to_money(item.total_amount)),
            "ProjectNumber": claim.erp_project_number,
            "TaskNumber": claim.erp_task_number,
            "ExpenditureType": _expenditure_type(claim, settings),
            "ExpenditureItemDate": _iso(item.work_date) or issued,
            "ExpenditureOrganization": claim.erp_expenditure_organization,
            "LineAttributeCategory": "UNIT_PRICE_ITEM",
            "LineAttribute1": item.item_code,
            "LineAttribute2": "" if item.price_book_item_id is None else str(item.price_book_item_id),
            "LineAttribute3": item.performer_tier or "prime",
            "LineAttribute4": item.sub_contractor_name or "",
            "LineAttribute5": item.work_category or "electrical",
            "LineAttribute9": "Y" if item.photo_count else "N",
            "LineAttribute10": _iso(item.work_date),
        }
        for item in claim.line_items
    ]

    return {
        "InvoiceNumber": claim.invoice_number or claim.claim_number,
        "InvoiceAmount": float(to_money(claim.amount_due)),
        "InvoiceCurrencyCode": settings.operating_currency,
        "InvoiceDate": issued,
        "InvoiceType": "Standard",
        "InvoiceSource": settings.erp_invoice_source,
        "VendorNumber": claim.erp_vendor_number,
        "VendorSiteCode": claim.erp_vendor_site_code,
        "BusinessUnit": claim.erp_business_unit or settings.erp_business_unit,
        "PaymentTerms": claim.erp_payment_terms or settings.erp_payment_terms,
        "TermsDate": issued,
        "GlDate": issued,
        "PurchaseOrderNumber": claim.po_number,
        "ContractNumber": claim.contract_number,
        "Description": (
            f"Unit Price Claim: {claim.claim_number} | "
            f"Job: {claim.job_number or 'N/A'} | Period: {period}"
        ),
        "AttributeCategory": "CONTRACTOR_INVOICE",
        "Attribute1": claim.job_number,
        "Attribute2": claim.contract_number,
        "Attribute3": claim.claim_number,
        "Attribute5": _gps_status(claim),
        "Attribute6": str(_evidence_count(claim)),
        "invoiceLines": lines,
    }


def build_bulk_interface(claim: Claim, settings: Settings | None = None) -> BulkInterface:
    """Build the fixed-column header and line rows for one claim."""

    settings = settings or get_settings()
    issued = invoice_date(claim)
    number = claim.claim_number

    header = [
        number,
        claim.erp_vendor_number or "",
        claim.erp_vendor_site_code or "",
        format_money(claim.amount_due),
        issued,
        "Standard",
        settings.erp_invoice_source,
        claim.erp_business_unit or settings.erp_business_unit,
        f"Unit Price Claim {number}",
        claim.erp_payment_terms or settings.erp_payment_terms,
        issued,
        settings.operating_currency,
        "",
        "",
        "",
        claim.po_number or "",
        claim.job_number or "",
        claim.contract_number or "",
        number,
        "",
        "CONTRACTOR_INVOICE",
    ]

    lines = [
        [
            number,
            str(item.line_number),
            "Item",
            format_money(item.total_amount),
            _quantity(item.quantity),
            format_money(item.unit_price),
            _line_description(item),
            "",
            claim.erp_project_number or "",
            claim.erp_task_number or "",
            _expenditure_type(claim, settings),
            _iso(item.work_date) or issued,
            claim.erp_expenditure_organization or "",
            item.item_code,
            item.performer_tier or "prime",
            item.sub_contractor_name or "",
            item.work_category or "",
            "Y" if item.photo_count else "N",
            "Y" if item.has_gps else "N",
            "UNIT_PRICE_ITEM",
        ]
        for item in claim.line_items
    ]
    return BulkInterface(headers=[header], lines=lines)


def merge_bulk_interfaces(interfaces: Iterable[BulkInterface]) -> BulkInterface:
    merged = BulkInterface()
    for interface in interfaces:
        merged.headers.extend(interface.headers)
        merged.lines.extend(interface.lines)
    return merged


def _write_rows(buffer: io.StringIO, columns: Sequence[str], rows: Iterable[Sequence[Any]]) -> None:
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(columns)
    writer.writerows(rows)


def render_bulk_interface_csv(interface: BulkInterface, *, bulk: bool = False) -> str:
    """Render the two interface sections as one CSV document.

    Bulk documents carry a claim count under the header section and a line
    count under the line section.
    """

    buffer = io.StringIO()
    buffer.write(HEADER_SECTION + "\n")
    if bulk:
        buffer.write(f"# Claims: {len(interface.headers)}\n")
    _write_rows(buffer, interface.header_columns, interface.headers)
    buffer.write("\n")
    buffer.write(LINE_SECTION + "\n")
    if bulk:
        buffer.write(f"# Total Lines: {len(interface.lines)}\n")
    _write_rows(buffer, interface.line_columns, interface.lines)
    return buffer.getvalue()


def render_line_items_csv(claim: Claim) -> str:
    buffer = io.StringIO()
    _write_rows(
        buffer,
        LINE_ITEM_CSV_COLUMNS,
        (
            [
                item.line_number,
                item.item_code,
                item.description,
                _quantity(item.quantity),
                item.unit,
                format_money(item.unit_price),
                format_money(item.total_amount),
                _iso(item.work_date),
                item.photo_count or 0,
                "Yes" if item.has_gps else "No",
                item.performer_tier or "prime",
                item.sub_contractor_name or "",
                item.work_category or "",
            ]
            for item in claim.line_items
        ),
    )
    return buffer.getvalue()


__all__ = [
    "BulkInterface",
    "HEADER_COLUMNS",
    "LINE_COLUMNS",
    "LINE_ITEM_CSV_COLUMNS",
    "build_bulk_interface",
    "build_invoice_payload",
    "invoice_date",
    "merge_bulk_interfaces",
    "render_bulk_interface_csv",
    "render_line_items_csv",
]

"""
Redemption proof document - styled XLSX (openpyxl)

One sheet summarising the payout (employee, amount, balance before/after) and
one sheet with the merged audit trail of the redemption and the credit it
consumes.
"""
import io
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Optional

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from creditflow.core.config import settings
from creditflow.core.logging import get_logger
from creditflow.db.models.redemption_request import RedemptionRequest
from creditflow.db.models.timeline_entry import TimelineEntry
from creditflow.db.models.user import Currency, User

logger = get_logger(__name__)

_HEADER_FILL = PatternFill(start_color="1F4E79", end_color="1F4E79", fill_type="solid")
_HEADER_FONT = Font(name="Arial", bold=True, color="FFFFFF", size=11)
_TITLE_FONT = Font(name="Arial", bold=True, size=14)
_SUBTITLE_FONT = Font(name="Arial", bold=False, size=10, color="666666")
_LABEL_FONT = Font(name="Arial", bold=True, size=11)

_CURRENCY_FORMATS = {
    Currency.USD: '"$"#,##0.00',
    Currency.INR: '"₹"#,##,##0.00',
}

_THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)
_LEFT_ALIGN = Alignment(horizontal="left", vertical="center", wrap_text=True)
_NUMBER_ALIGN = Alignment(horizontal="right", vertical="center")

# Excel treats these as the start of a formula
_FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def _sanitize_text(value: Any) -> Any:
    if isinstance(value, str) and value and value[0] in _FORMULA_PREFIXES:
        return f"'{value}"
    return value


def _auto_fit_columns(ws: Any) -> None:
    for col_cells in ws.columns:
        longest = max((len(str(cell.value)) for cell in col_cells if cell.value is not None), default=0)
        ws.column_dimensions[get_column_letter(col_cells[0].column)].width = min(max(longest + 4, 10), 60)


def _write_title(ws: Any, title: str, subtitle: str) -> int:
    ws.cell(row=1, column=1, value=title).font = _TITLE_FONT
    ws.cell(row=2, column=1, value=subtitle).font = _SUBTITLE_FONT
    return 4


def _style_header(ws: Any, row: int, col_count: int) -> None:
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        cell.font = _HEADER_FONT
        cell.fill = _HEADER_FILL
        cell.alignment = _LEFT_ALIGN
        cell.border = _THIN_BORDER


def build_proof_workbook(
    redemption: RedemptionRequest,
    employee: User,
    balance_before: Decimal,
    balance_after: Decimal,
    trail: Iterable[TimelineEntry],
) -> bytes:
    """
    Render the proof workbook for a redemption.

    Returns:
        bytes of an XLSX file
    """
    currency = Currency(redemption.currency)
    money_format = _CURRENCY_FORMATS[currency]

    wb = Workbook()
    ws = wb.active
    ws.title = "Redemption"
    row = _write_title(
        ws,
        f"Redemption #{redemption.id}",
        f"Generated: {datetime.utcnow().strftime('%Y-%m-%d %H:%M')} UTC",
    )

    summary = [
        ("Employee", _sanitize_text(employee.display_name)),
        ("Email", _sanitize_text(employee.email)),
        ("Credit transaction", redemption.credit_transaction_id),
        ("Currency", currency.value),
        ("Amount", float(redemption.amount)),
        ("Balance before", float(balance_before)),
        ("Balance after", float(balance_after)),
        ("Status", redemption.status.value if redemption.status else ""),
        ("Requested at", redemption.created_at.strftime("%Y-%m-%d %H:%M") if redemption.created_at else ""),
        ("Notes", _sanitize_text(redemption.notes or "")),
    ]
    money_labels = {"Amount", "Balance before", "Balance after"}
    for label, value in summary:
        ws.cell(row=row, column=1, value=label).font = _LABEL_FONT
        cell = ws.cell(row=row, column=2, value=value)
        cell.border = _THIN_BORDER
        if label in money_labels:
            cell.number_format = money_format
            cell.alignment = _NUMBER_ALIGN
        else:
            cell.alignment = _LEFT_ALIGN
        row += 1
    _auto_fit_columns(ws)

    trail_ws = wb.create_sheet("Audit trail")
    headers = ["When", "Step", "Role", "Actor", "Message"]
    for col, header in enumerate(headers, 1):
        trail_ws.cell(row=1, column=col, value=header)
    _style_header(trail_ws, 1, len(headers))
    for i, entry in enumerate(trail, start=2):
        values = [
            entry.created_at.strftime("%Y-%m-%d %H:%M:%S") if entry.created_at else "",
            entry.step,
            entry.role,
            _sanitize_text(entry.actor_name or entry.actor_email or ""),
            _sanitize_text(entry.message or ""),
        ]
        for col, value in enumerate(values, 1):
            cell = trail_ws.cell(row=i, column=col, value=value)
            cell.alignment = _LEFT_ALIGN
            cell.border = _THIN_BORDER
    _auto_fit_columns(trail_ws)

    output = io.BytesIO()
    wb.save(output)
    output.seek(0)
    return output.getvalue()


def write_proof_document(
    redemption: RedemptionRequest,
    employee: User,
    balance_before: Decimal,
    balance_after: Decimal,
    trail: Iterable[TimelineEntry],
    directory: Optional[str] = None,
) -> Path:
    """Write the workbook to ``directory`` (default PROOF_DOCUMENT_DIR) and return its path"""
    target_dir = Path(directory or settings.PROOF_DOCUMENT_DIR)
    target_dir.mkdir(parents=True, exist_ok=True)
    path = target_dir / f"redemption-{redemption.id}.xlsx"
    path.write_bytes(build_proof_workbook(redemption, employee, balance_before, balance_after, trail))
    logger.info(
        "Redemption proof written",
        extra_data={"redemption_id": redemption.id, "path": str(path)},
    )
    return path

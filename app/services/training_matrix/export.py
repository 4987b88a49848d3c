import csv
import io
from datetime import datetime, timezone

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from app.services.training_matrix.builder import TrainingMatrix
from app.services.training_matrix.keys import ItemKind, TrainingItem
from app.services.training_matrix.status import CellStatus, ResolvedCell

INCOMPLETE_MARKER = "NO"
HISTORICAL_PREFIX = "H "
DATE_FORMAT = "%d/%m/%y"
DOCUMENT_SUFFIX = " (Document)"
USER_HEADER = "User"

STATUS_FILLS = {
    CellStatus.COMPLETE: PatternFill(start_color="27AE60", end_color="27AE60", fill_type="solid"),
    CellStatus.INCOMPLETE: PatternFill(start_color="E74C3C", end_color="E74C3C", fill_type="solid"),
    CellStatus.HISTORICAL: PatternFill(start_color="95A5A6", end_color="95A5A6", fill_type="solid"),
}
STATUS_FONTS = {
    CellStatus.COMPLETE: Font(color="FFFFFF", bold=True),
    CellStatus.INCOMPLETE: Font(color="FFFFFF"),
    CellStatus.HISTORICAL: Font(color="2C3E50", bold=True, italic=True),
}
MODULE_HEADER_FILL = PatternFill(start_color="00E0FF", end_color="00E0FF", fill_type="solid")
DOCUMENT_HEADER_FILL = PatternFill(start_color="FFB300", end_color="FFB300", fill_type="solid")
HEADER_FONT = Font(color="00313A", bold=True, size=11)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)


def format_cell(cell: ResolvedCell) -> str:
    """Render one cell the way the grid and the CSV show it."""
    if cell.status is CellStatus.COMPLETE:
        return cell.completed_on.strftime(DATE_FORMAT)
    if cell.status is CellStatus.INCOMPLETE:
        return INCOMPLETE_MARKER
    if cell.status is CellStatus.HISTORICAL:
        return HISTORICAL_PREFIX + cell.completed_on.strftime(DATE_FORMAT)
    return ""


def column_header(item: TrainingItem) -> str:
    if item.kind is ItemKind.DOCUMENT:
        return item.title + DOCUMENT_SUFFIX
    return item.title


def matrix_rows(matrix: TrainingMatrix) -> list[list[str]]:
    """Flatten the matrix to text rows: header first, then one row per person."""
    rows = [[USER_HEADER] + [column_header(item) for item in matrix.columns]]
    for row in matrix.rows:
        rows.append([row.person.name] + [format_cell(cell) for cell in row.cells])
    return rows


def generate_matrix_csv(matrix: TrainingMatrix) -> str:
    """Return the visible matrix as CSV text."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerows(matrix_rows(matrix))
    return buf.getvalue()


def generate_matrix_excel(matrix: TrainingMatrix) -> bytes:
    """
    Generate a styled Excel workbook of the visible matrix.
    Returns raw .xlsx bytes ready for a Flask Response.
    """
    wb = Workbook()
    ws = wb.active
    ws.title = "Training Matrix"

    title = "Training Matrix"
    if matrix.has_history:
        title += " (with History)"
    ws["A1"] = title
    ws["A1"].font = Font(size=16, bold=True)
    ws["A2"] = f"Generated: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}"
    ws["A2"].font = Font(size=10, italic=True, color="666666")

    header_row = 4
    user_cell = ws.cell(row=header_row, column=1, value=USER_HEADER)
    user_cell.fill = MODULE_HEADER_FILL
    user_cell.font = HEADER_FONT
    user_cell.border = THIN_BORDER
    for col, item in enumerate(matrix.columns, 2):
        cell = ws.cell(row=header_row, column=col, value=column_header(item))
        cell.fill = DOCUMENT_HEADER_FILL if item.kind is ItemKind.DOCUMENT else MODULE_HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        cell.alignment = Alignment(wrap_text=True, vertical="top")

    for offset, row in enumerate(matrix.rows, 1):
        excel_row = header_row + offset
        ws.cell(row=excel_row, column=1, value=row.person.name).border = THIN_BORDER
        for col, resolved in enumerate(row.cells, 2):
            cell = ws.cell(row=excel_row, column=col, value=format_cell(resolved) or None)
            cell.border = THIN_BORDER
            cell.alignment = Alignment(horizontal="center")
            if resolved.status in STATUS_FILLS:
                cell.fill = STATUS_FILLS[resolved.status]
                cell.font = STATUS_FONTS[resolved.status]

    ws.column_dimensions["A"].width = 24
    for col in range(2, len(matrix.columns) + 2):
        ws.column_dimensions[get_column_letter(col)].width = 14
    ws.freeze_panes = ws.cell(row=header_row + 1, column=2)

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()

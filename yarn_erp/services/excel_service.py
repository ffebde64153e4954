"""
Excel export of ASU production.
Builds the workbook from scratch: a 'Production' sheet with one row per
machine-day and a 'Yarn Summary' sheet with the per-date yarn breakdown.
"""
import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from io import BytesIO

HEADER_FILL = PatternFill(start_color='1F4E78', end_color='1F4E78', fill_type='solid')
HEADER_FONT = Font(bold=True, color='FFFFFF')
TOTAL_FONT = Font(bold=True)

PRODUCTION_COLUMNS = [
    ('Date', 'date', 12),
    ('Machine', 'machineNumber', 10),
    ('Yarn Type', 'yarnType', 18),
    ('Day Shift (kg)', 'dayShift', 15),
    ('Night Shift (kg)', 'nightShift', 15),
    ('Total (kg)', 'total', 12),
    ('Production @100 (kg)', 'productionAt100', 20),
    ('Efficiency %', 'percentage', 13),
    ('Remarks', 'remarks', 30),
]


def _write_header(ws, titles):
    for col_idx, title in enumerate(titles, start=1):
        cell = ws.cell(row=1, column=col_idx, value=title)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.alignment = Alignment(horizontal='center', vertical='center')
    ws.freeze_panes = 'A2'


def generate_production_excel(unit, daily_rows, yarn_rows, date_from=None, date_to=None) -> BytesIO:
    """
    Generates the production workbook of an ASU unit.

    Args:
        unit: ASU unit number, used in the sheet title
        daily_rows: Output of production_service.group_daily_rows
        yarn_rows: Output of production_service.yarn_summary
        date_from, date_to: Range printed in the document properties

    Returns:
        BytesIO: Buffer with the .xlsx ready for download
    """
    wb = openpyxl.Workbook()

    # =========================================================================
    # 1. PRODUCTION
    # =========================================================================
    ws = wb.active
    ws.title = 'Production'
    _write_header(ws, [c[0] for c in PRODUCTION_COLUMNS])

    for row_idx, row in enumerate(daily_rows, start=2):
        for col_idx, (_, key, _) in enumerate(PRODUCTION_COLUMNS, start=1):
            ws.cell(row=row_idx, column=col_idx, value=row.get(key))

    total_row = len(daily_rows) + 2
    ws.cell(row=total_row, column=1, value='TOTAL').font = TOTAL_FONT
    total_day = sum(r.get('dayShift') or 0 for r in daily_rows)
    total_night = sum(r.get('nightShift') or 0 for r in daily_rows)
    for col_idx, value in ((4, total_day), (5, total_night), (6, total_day + total_night)):
        cell = ws.cell(row=total_row, column=col_idx, value=round(value, 2))
        cell.font = TOTAL_FONT

    for col_idx, (_, _, width) in enumerate(PRODUCTION_COLUMNS, start=1):
        ws.column_dimensions[get_column_letter(col_idx)].width = width

    # =========================================================================
    # 2. YARN SUMMARY
    # =========================================================================
    ws_yarn = wb.create_sheet('Yarn Summary')
    yarn_types = sorted({t for r in yarn_rows for t in r['yarnBreakdown']})
    _write_header(ws_yarn, ['Date'] + yarn_types + ['Total (kg)', 'Machines', 'Avg Efficiency %'])

    for row_idx, row in enumerate(yarn_rows, start=2):
        ws_yarn.cell(row=row_idx, column=1, value=row['date'])
        for offset, yarn in enumerate(yarn_types, start=2):
            ws_yarn.cell(row=row_idx, column=offset, value=row['yarnBreakdown'].get(yarn, 0))
        base = len(yarn_types) + 2
        ws_yarn.cell(row=row_idx, column=base, value=row['totalProduction'])
        ws_yarn.cell(row=row_idx, column=base + 1, value=row['machines'])
        ws_yarn.cell(row=row_idx, column=base + 2, value=row['avgEfficiency'])

    for col_idx in range(1, len(yarn_types) + 5):
        ws_yarn.column_dimensions[get_column_letter(col_idx)].width = 16

    period = f"{date_from.isoformat() if date_from else '...'} to {date_to.isoformat() if date_to else '...'}"
    wb.properties.title = f'ASU Unit {unit} production {period}'

    buffer = BytesIO()
    wb.save(buffer)
    buffer.seek(0)
    return buffer

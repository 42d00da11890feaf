"""Tabular exports (CSV / JSON / XLSX) returned as Flask download responses.

Columns are (key, header, formatter) tuples; formatter may be None, in which
case format_cell_value() is applied.
"""
import io
import csv
import json
import re
from datetime import date, datetime

from flask import Response
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment
from openpyxl.utils import get_column_letter

_ISO_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}([T ]\d{2}:\d{2}(:\d{2}(\.\d+)?)?([+-]\d{2}:?\d{2}|Z)?)?$')

XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


def _parse_date(value):
    if isinstance(value, (date, datetime)):
        return value
    if isinstance(value, str) and _ISO_DATE_RE.match(value):
        try:
            return datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            return None
    return None


def format_date(value, date_format='short'):
    """'short' → YYYY-MM-DD, 'iso' → full ISO 8601. Non-dates pass through as str."""
    if value is None or value == '':
        return ''
    parsed = _parse_date(value)
    if parsed is None:
        return str(value)
    if date_format == 'short':
        return parsed.strftime('%Y-%m-%d')
    return parsed.isoformat()


def format_cell_value(value, date_format='iso'):
    if value is None:
        return ''
    if isinstance(value, bool):
        return str(value).lower()
    if _parse_date(value) is not None:
        return format_date(value, date_format)
    if isinstance(value, (list, tuple)):
        return '; '.join(str(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, default=str)
    return str(value)


def format_money(value):
    if value is None or value == '':
        return ''
    return f'${float(value):.2f}'


def _nested_name(value):
    if isinstance(value, dict):
        return value.get('store_name') or ''
    return value or ''


def _short_date(value):
    return format_date(value, 'short')


# Predefined column sets
CUSTOMER_COLUMNS = [
    ('store_name', 'Store Name', None),
    ('email', 'Email', None),
    ('phone', 'Phone', None),
    ('city', 'City', None),
    ('province', 'Province', None),
    ('postal_code', 'Postal Code', None),
    ('status', 'Status', None),
    ('type', 'Type', None),
    ('created_at', 'Created Date', _short_date),
]

DEAL_COLUMNS = [
    ('title', 'Deal Title', None),
    ('customer', 'Customer', _nested_name),
    ('value', 'Value', format_money),
    ('stage', 'Stage', None),
    ('probability', 'Probability (%)', lambda p: f'{p}%' if p is not None else ''),
    ('expected_close_date', 'Expected Close Date', _short_date),
    ('created_at', 'Created Date', _short_date),
]

INVOICE_COLUMNS = [
    ('invoice_number', 'Invoice Number', None),
    ('customer', 'Customer', _nested_name),
    ('total', 'Total', format_money),
    ('status', 'Status', None),
    ('due_date', 'Due Date', _short_date),
    ('created_at', 'Created Date', _short_date),
]


def export_filename(name, ext, include_timestamp=True, today=None):
    if not include_timestamp:
        return f'{name}.{ext}'
    today = today or date.today()
    return f'{name}_{today.isoformat()}.{ext}'


def _require_rows(rows):
    if not rows:
        raise ValueError('No data to export')


def _row_values(row, columns, date_format):
    values = []
    for key, _header, formatter in columns:
        value = row.get(key)
        values.append(formatter(value) if formatter else format_cell_value(value, date_format))
    return values


def _download(body, filename, mimetype):
    return Response(
        body,
        mimetype=mimetype,
        headers={'Content-Disposition': f'attachment; filename={filename}'},
    )


def export_csv(rows, columns, name='export', include_timestamp=True, date_format='iso'):
    """Rows → CSV download. Raises ValueError on empty input."""
    _require_rows(rows)
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL)
    writer.writerow([header for _key, header, _fmt in columns])
    for row in rows:
        writer.writerow(_row_values(row, columns, date_format))
    return _download(
        output.getvalue(),
        export_filename(name, 'csv', include_timestamp),
        'text/csv; charset=utf-8',
    )


def export_json(rows, name='export', include_timestamp=True):
    """Rows → pretty-printed JSON download. Raises ValueError on empty input."""
    _require_rows(rows)
    return _download(
        json.dumps(rows, indent=2, default=str),
        export_filename(name, 'json', include_timestamp),
        'application/json',
    )


def build_workbook(rows, columns, title='Export', date_format='iso'):
    """Build an openpyxl Workbook with a styled header row and auto-width columns."""
    wb = Workbook()
    ws = wb.active
    ws.title = title[:31]

    header_fill = PatternFill(start_color='4F46E5', end_color='4F46E5', fill_type='solid')
    header_font = Font(bold=True, color='FFFFFF')

    for col, (_key, header, _fmt) in enumerate(columns, 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.fill = header_fill
        cell.font = header_font
        cell.alignment = Alignment(horizontal='center')

    for row_idx, row in enumerate(rows, 2):
        for col, value in enumerate(_row_values(row, columns, date_format), 1):
            ws.cell(row=row_idx, column=col, value=value)

    for col in range(1, len(columns) + 1):
        letter = get_column_letter(col)
        max_length = max(len(str(c.value or '')) for c in ws[letter])
        ws.column_dimensions[letter].width = min(max_length + 2, 50)

    return wb


def export_xlsx(rows, columns, name='export', include_timestamp=True, date_format='iso'):
    """Rows → XLSX download. Raises ValueError on empty input."""
    _require_rows(rows)
    wb = build_workbook(rows, columns, title=name.replace('_', ' ').title(), date_format=date_format)
    buffer = io.BytesIO()
    wb.save(buffer)
    buffer.seek(0)
    return _download(buffer.getvalue(), export_filename(name, 'xlsx', include_timestamp), XLSX_MIMETYPE)


def export_rows(rows, columns, name, fmt='csv', **options):
    """Dispatch on ?format=csv|json|xlsx."""
    if fmt == 'csv':
        return export_csv(rows, columns, name, **options)
    if fmt == 'json':
        return export_json(rows, name, options.get('include_timestamp', True))
    if fmt == 'xlsx':
        return export_xlsx(rows, columns, name, **options)
    raise ValueError(f'Unsupported export format: {fmt}')

"""Invoice helpers: totals, Canadian sales tax, status formatting, due-date math."""

from datetime import date
from typing import Dict, Iterable, Optional

from core.utils.dates import to_date

# Combined GST/HST/PST percentage per province
PROVINCIAL_TAX_RATES = {
    'AB': 5,       # GST only
    'BC': 12,      # GST + PST
    'MB': 12,      # GST + PST
    'NB': 15,      # HST
    'NL': 15,      # HST
    'NT': 5,       # GST only
    'NS': 15,      # HST
    'NU': 5,       # GST only
    'ON': 13,      # HST
    'PE': 15,      # HST
    'QC': 14.975,  # GST + QST
    'SK': 11,      # GST + PST
    'YT': 5,       # GST only
}

INVOICE_STATUS_LABELS = {
    'draft': 'Draft',
    'sent': 'Sent',
    'paid': 'Paid',
    'overdue': 'Overdue',
    'cancelled': 'Cancelled',
}

INVOICE_STATUS_COLORS = {
    'draft': 'gray',
    'sent': 'blue',
    'paid': 'green',
    'overdue': 'red',
    'cancelled': 'gray',
}

CURRENCY_SYMBOLS = {'CAD': '$', 'USD': 'US$', 'EUR': '€', 'GBP': '£'}

CLOSED_INVOICE_STATUSES = ('paid', 'cancelled')


def _round2(value: float) -> float:
    return round(float(value), 2)


def normalize_line_item(item: Dict) -> Dict:
    """quantity / unit_price / total for one line item.

    A missing quantity means one unit, matching the column default.

    Raises:
        ValueError: quantity is not a positive whole number, or unit_price is invalid
    """
    raw_quantity = item.get('quantity')
    try:
        quantity = float(1 if raw_quantity in (None, '') else raw_quantity)
        unit_price = float(item.get('unit_price') or 0)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid line item: {item.get('description') or item.get('product_sku') or item}")
    if quantity <= 0 or quantity != int(quantity):
        raise ValueError(f'Item quantity must be a positive whole number, got {raw_quantity}')
    if unit_price < 0:
        raise ValueError(f'Item unit_price cannot be negative, got {unit_price}')
    quantity = int(quantity)
    return {'quantity': quantity, 'unit_price': unit_price, 'total': _round2(quantity * unit_price)}


def calculate_invoice_totals(items: Iterable[Dict], tax: float = 0, shipping: float = 0,
                             discount: float = 0) -> Dict[str, float]:
    """Subtotal from quantity × unit_price; total = subtotal + tax + shipping - discount."""
    subtotal = sum(normalize_line_item(item)['total'] for item in items)
    total = subtotal + tax + shipping - discount
    return {
        'subtotal': _round2(subtotal),
        'tax': _round2(tax),
        'shipping': _round2(shipping),
        'discount': _round2(discount),
        'total': _round2(total),
    }


def calculate_tax(subtotal: float, tax_rate: float) -> float:
    return _round2(subtotal * (tax_rate / 100))


def get_provincial_tax_rate(province: Optional[str]) -> float:
    """Combined sales tax % for a Canadian province code; 0 when unknown."""
    if not province:
        return 0
    return PROVINCIAL_TAX_RATES.get(province.strip().upper(), 0)


def format_currency(amount: float, currency: str = 'CAD') -> str:
    symbol = CURRENCY_SYMBOLS.get(currency.upper(), f'{currency.upper()} ')
    sign = '-' if amount < 0 else ''
    return f'{sign}{symbol}{abs(float(amount)):,.2f}'


def format_invoice_status(status: str) -> str:
    return INVOICE_STATUS_LABELS.get(status, status)


def get_invoice_status_color(status: str) -> str:
    return INVOICE_STATUS_COLORS.get(status, 'gray')


def is_invoice_overdue(invoice: Dict, today: Optional[date] = None) -> bool:
    """Open invoice whose due date is before today."""
    if invoice.get('status') in CLOSED_INVOICE_STATUSES:
        return False
    due = to_date(invoice.get('due_date'))
    if due is None:
        return False
    return due < (today or date.today())


def days_until_due(due_date, today: Optional[date] = None) -> Optional[int]:
    """Days from today to the due date (negative once past due); None without a due date."""
    due = to_date(due_date)
    if due is None:
        return None
    return (due - (today or date.today())).days


def format_invoice_number(year: int, sequence: int) -> str:
    """INV-YYYY-NNNN."""
    return f'INV-{year}-{sequence:04d}'

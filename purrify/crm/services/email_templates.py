"""
Email Templates

{{variable}} rendering for stored email templates and the context builders
used by the invoice and shipment notifications. Sending is done elsewhere.
"""

import re
from typing import Dict, List

from core.utils.dates import to_datetime
from .invoice_utils import format_currency

VARIABLE_RE = re.compile(r'\{\{(\w+)\}\}')
EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')

# Variables offered in the template editor
EMAIL_VARIABLES = [
    {'key': 'customer_name', 'label': 'Customer Name', 'example': 'Paws & Claws Pet Store'},
    {'key': 'customer_email', 'label': 'Customer Email', 'example': 'contact@pawsandclaws.com'},
    {'key': 'contact_name', 'label': 'Contact Name', 'example': 'Jane Smith'},
    {'key': 'invoice_number', 'label': 'Invoice Number', 'example': 'INV-2025-0001'},
    {'key': 'invoice_total', 'label': 'Invoice Total', 'example': '$1,250.00'},
    {'key': 'invoice_due_date', 'label': 'Invoice Due Date', 'example': 'January 31, 2025'},
    {'key': 'tracking_number', 'label': 'Tracking Number', 'example': '1Z99-9AA1-0123-4567'},
    {'key': 'shipment_carrier', 'label': 'Carrier', 'example': 'Canada Post'},
    {'key': 'estimated_delivery', 'label': 'Estimated Delivery', 'example': 'February 3, 2025'},
    {'key': 'deal_title', 'label': 'Deal Title', 'example': 'Spring restock'},
    {'key': 'deal_value', 'label': 'Deal Value', 'example': '$4,800.00'},
]

_HTML_ESCAPES = {
    '&': '&amp;',
    '<': '&lt;',
    '>': '&gt;',
    '"': '&quot;',
    "'": '&#039;',
}


def render_template(template: str, context: Dict) -> str:
    """Replace {{var}} with context values; missing or empty values keep the placeholder."""
    def _sub(match):
        value = context.get(match.group(1))
        return str(value) if value not in (None, '') else match.group(0)
    return VARIABLE_RE.sub(_sub, template)


def extract_template_variables(template: str) -> List[str]:
    return VARIABLE_RE.findall(template)


def validate_template_context(template: str, context: Dict) -> Dict:
    missing = [key for key in extract_template_variables(template) if not context.get(key)]
    return {'is_valid': not missing, 'missing': missing}


def escape_html(text: str) -> str:
    return ''.join(_HTML_ESCAPES.get(ch, ch) for ch in text)


def text_to_html(text: str) -> str:
    return ''.join(f'<p>{escape_html(line)}</p>' for line in text.split('\n'))


def html_to_text(html: str) -> str:
    text = re.sub(r'<style[^>]*>.*?</style>', '', html, flags=re.IGNORECASE | re.DOTALL)
    text = re.sub(r'<script[^>]*>.*?</script>', '', text, flags=re.IGNORECASE | re.DOTALL)
    text = re.sub(r'<[^>]+>', '', text)
    return re.sub(r'\s+', ' ', text).strip()


def is_valid_email(email: str) -> bool:
    return bool(email) and bool(EMAIL_RE.match(email))


def filter_valid_emails(emails: List[str]) -> List[str]:
    return [email for email in emails if is_valid_email(email)]


def format_email_date(value) -> str:
    """'January 5, 2025'."""
    parsed = to_datetime(value)
    if parsed is None:
        return ''
    return f'{parsed.strftime("%B")} {parsed.day}, {parsed.year}'


def build_invoice_context(invoice: Dict, customer: Dict) -> Dict:
    """Context for the 'Invoice Notification' template."""
    return {
        'customer_name': customer.get('store_name'),
        'customer_email': customer.get('email'),
        'invoice_number': invoice.get('invoice_number'),
        'invoice_total': format_currency(float(invoice.get('total') or 0), invoice.get('currency') or 'CAD'),
        'invoice_due_date': format_email_date(invoice['due_date']) if invoice.get('due_date') else 'Upon receipt',
    }


def build_shipment_context(shipment: Dict, customer: Dict) -> Dict:
    """Context for the 'Shipment Notification' template."""
    estimated = shipment.get('estimated_delivery_date')
    return {
        'customer_name': customer.get('store_name'),
        'tracking_number': shipment.get('tracking_number') or 'Pending',
        'shipment_carrier': shipment.get('carrier'),
        'estimated_delivery': format_email_date(estimated) if estimated else 'TBD',
    }


def render_email(template: Dict, context: Dict) -> Dict:
    """Render a stored template row into subject/html/text plus any unfilled variables."""
    subject = render_template(template.get('subject') or '', context)
    html = render_template(template.get('body') or '', context)
    missing = validate_template_context(f"{template.get('subject') or ''} {template.get('body') or ''}", context)['missing']
    return {
        'subject': subject,
        'html': html,
        'text': html_to_text(html),
        'missing': sorted(set(missing)),
    }

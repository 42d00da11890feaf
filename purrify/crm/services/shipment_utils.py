"""Shipment helpers: weight and cost estimates, delivery dates, package limits, display."""

import math
import re
from datetime import date, timedelta
from typing import Dict, Optional

# Distance multipliers from the Ontario warehouse
PROVINCE_MULTIPLIERS = {
    'ON': 1.0,
    'QC': 1.1,
    'BC': 1.5,
    'AB': 1.4,
    'SK': 1.3,
    'MB': 1.3,
    'NS': 1.2,
    'NB': 1.2,
    'PE': 1.2,
    'NL': 1.6,
    'YT': 2.0,
    'NT': 2.0,
    'NU': 2.0,
}

DISTANT_PROVINCES = ('BC', 'AB', 'SK', 'MB', 'NL', 'YT', 'NT', 'NU')

DIM_WEIGHT_DIVISOR = 166  # cubic inches per lb
MAX_LENGTH_IN = 108
MAX_GIRTH_IN = 165
MAX_WEIGHT_LB = 150

STATUS_LABELS = {
    'pending': 'Pending',
    'label_created': 'Label Created',
    'picked_up': 'Picked Up',
    'in_transit': 'In Transit',
    'out_for_delivery': 'Out for Delivery',
    'delivered': 'Delivered',
    'exception': 'Exception',
    'cancelled': 'Cancelled',
    'returned': 'Returned',
}

STATUS_COLORS = {
    'pending': 'gray',
    'label_created': 'blue',
    'picked_up': 'blue',
    'in_transit': 'purple',
    'out_for_delivery': 'yellow',
    'delivered': 'green',
    'exception': 'red',
    'cancelled': 'gray',
    'returned': 'orange',
}

SHIPMENT_STATUSES = tuple(STATUS_LABELS)


def calculate_dimensional_weight(length: float, width: float, height: float) -> int:
    """Billable weight in lb for a box measured in inches."""
    return math.ceil(length * width * height / DIM_WEIGHT_DIVISOR)


def estimate_shipping_cost(weight: float, province: str, service_level: str = 'ground') -> float:
    """Rough pre-quote; real rates come from the carrier."""
    base_rate = 15 if service_level == 'express' else 10
    multiplier = PROVINCE_MULTIPLIERS.get((province or '').upper(), 1.0)
    return round((base_rate + weight * 0.5) * multiplier, 2)


def format_tracking_number(tracking_number: Optional[str]) -> str:
    """Strip spaces/dashes and regroup in blocks of 4: 1Z99-9AA1-..."""
    if not tracking_number:
        return ''
    cleaned = re.sub(r'[\s-]', '', tracking_number)
    return '-'.join(cleaned[i:i + 4] for i in range(0, len(cleaned), 4))


def delivery_business_days(service_level: str, destination_province: str) -> int:
    level = (service_level or '').lower()
    if 'express' in level:
        return 1
    if 'priority' in level:
        return 2
    return 7 if (destination_province or '').upper() in DISTANT_PROVINCES else 5


def add_business_days(start: date, days: int) -> date:
    current = start
    added = 0
    while added < days:
        current += timedelta(days=1)
        if current.weekday() < 5:
            added += 1
    return current


def get_estimated_delivery(service_level: str, destination_province: str,
                           start: Optional[date] = None) -> date:
    """Ship date plus the service level's business days, weekends skipped."""
    return add_business_days(start or date.today(), delivery_business_days(service_level, destination_province))


def validate_package_dimensions(length: float, width: float, height: float, weight: float) -> Dict:
    """Carrier limits check. Returns {'valid': bool, 'errors': [str]}."""
    errors = []

    if length <= 0 or width <= 0 or height <= 0:
        errors.append('All dimensions must be greater than 0')
    if length > MAX_LENGTH_IN:
        errors.append(f'Length cannot exceed {MAX_LENGTH_IN} inches')
    if length + 2 * (width + height) > MAX_GIRTH_IN:
        errors.append(f'Girth (L + 2W + 2H) cannot exceed {MAX_GIRTH_IN} inches')
    if weight <= 0:
        errors.append('Weight must be greater than 0')
    if weight > MAX_WEIGHT_LB:
        errors.append(f'Weight cannot exceed {MAX_WEIGHT_LB} lbs')

    return {'valid': not errors, 'errors': errors}


def get_status_label(status: str) -> str:
    return STATUS_LABELS.get(status, status)


def get_status_color(status: str) -> str:
    return STATUS_COLORS.get(status, 'gray')


def can_cancel_shipment(status: str) -> bool:
    return status in ('pending', 'label_created')


def can_edit_shipment(status: str) -> bool:
    return status == 'pending'


def format_shipment(shipment: Dict) -> Dict:
    """Shipment row plus display fields."""
    status = shipment.get('status')
    return {
        **shipment,
        'formatted_tracking': format_tracking_number(shipment.get('tracking_number')),
        'status_label': get_status_label(status),
        'status_color': get_status_color(status),
        'can_cancel': can_cancel_shipment(status),
        'can_edit': can_edit_shipment(status),
    }


def packing_slip_data(shipment: Dict) -> Dict:
    return {
        'order_number': shipment.get('order_number'),
        'tracking_number': shipment.get('tracking_number'),
        'carrier': shipment.get('carrier'),
        'ship_date': shipment.get('shipped_date'),
        'customer': shipment.get('customer'),
        'package_count': shipment.get('package_count'),
        'weight': shipment.get('actual_weight'),
    }

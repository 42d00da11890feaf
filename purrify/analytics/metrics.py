"""
Analytics Metrics

Pure aggregation helpers over fetched rows (lists of dicts): revenue series,
forecasting, RFM segmentation, pipeline and delivery statistics.

Date fields may be ISO strings (as returned by dict_from_row), date or
datetime values. Timezone-aware values are normalised to naive UTC.
"""

import math
from collections import OrderedDict
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from core.utils.dates import to_datetime, utcnow, days_between  # noqa: F401
from core.utils.numbers import round_half_up  # noqa: F401


def _amount(row: Dict, key: str = 'total') -> float:
    return float(row.get(key) or 0)


def _paid(invoices: List[Dict]) -> List[Dict]:
    return [inv for inv in invoices if inv.get('status') == 'paid']


# ============== Rates ==============

def calculate_conversion_rate(converted: float, total: float) -> float:
    if total == 0:
        return 0
    return converted / total * 100


def calculate_customer_lifetime_value(invoices: List[Dict]) -> float:
    """Sum of paid invoice totals."""
    return sum(_amount(inv) for inv in _paid(invoices))


def calculate_churn_rate(total_customers: int, churned_customers: int) -> float:
    if total_customers == 0:
        return 0
    return churned_customers / total_customers * 100


def calculate_average_order_value(invoices: List[Dict]) -> float:
    paid = _paid(invoices)
    if not paid:
        return 0
    return sum(_amount(inv) for inv in paid) / len(paid)


def calculate_growth(current: float, previous: float) -> float:
    if previous == 0:
        return 100 if current > 0 else 0
    return (current - previous) / previous * 100


def format_growth_percentage(growth: float) -> str:
    sign = '+' if growth >= 0 else ''
    return f'{sign}{growth:.1f}%'


# ============== Revenue series ==============

def period_key(value: datetime, period_type: str = 'month') -> str:
    """Bucket key: month YYYY-MM, week YYYY-Www (ISO), day YYYY-MM-DD."""
    if period_type == 'month':
        return value.strftime('%Y-%m')
    if period_type == 'week':
        iso_year, iso_week, _ = value.isocalendar()
        return f'{iso_year}-W{iso_week:02d}'
    if period_type == 'day':
        return value.strftime('%Y-%m-%d')
    raise ValueError(f'Unsupported period type: {period_type}')


def next_period(current: str, offset: int = 1) -> str:
    """Advance a period key by `offset` periods, keeping its format."""
    if '-W' in current:
        year, week = (int(part) for part in current.split('-W'))
        monday = date.fromisocalendar(year, week, 1) + timedelta(weeks=offset)
        iso_year, iso_week, _ = monday.isocalendar()
        return f'{iso_year}-W{iso_week:02d}'
    if len(current) == 7:
        year, month = (int(part) for part in current.split('-'))
        months = year * 12 + (month - 1) + offset
        return f'{months // 12}-{months % 12 + 1:02d}'
    day = date.fromisoformat(current) + timedelta(days=offset)
    return day.isoformat()


def aggregate_revenue_by_period(invoices: List[Dict], period_type: str = 'month') -> List[Dict]:
    """Group paid invoices with a paid_date into period buckets.

    Returns:
        [{period, revenue, invoice_count, avg_order_value}] sorted by period.
    """
    grouped: Dict[str, List[float]] = {}
    for inv in _paid(invoices):
        paid_at = to_datetime(inv.get('paid_date'))
        if paid_at is None:
            continue
        grouped.setdefault(period_key(paid_at, period_type), []).append(_amount(inv))

    return [
        {
            'period': period,
            'revenue': sum(totals),
            'invoice_count': len(totals),
            'avg_order_value': sum(totals) / len(totals),
        }
        for period, totals in sorted(grouped.items())
    ]


def forecast_revenue(history: List[Dict], periods_ahead: int = 3) -> List[Dict]:
    """Project the moving average of the last 6 periods forward.

    Needs at least two historical points; returns [] otherwise.
    """
    if len(history) < 2:
        return []

    recent = history[-6:]
    avg_revenue = sum(point['revenue'] for point in recent) / len(recent)
    last_period = history[-1]['period']

    return [
        {
            'period': next_period(last_period, i),
            'revenue': avg_revenue,
            'invoice_count': 0,
            'avg_order_value': 0,
        }
        for i in range(1, periods_ahead + 1)
    ]


# ============== RFM segmentation ==============

SEGMENT_ORDER = [
    'Champions',
    'Loyal',
    'Potential Loyalists',
    'Recent Customers',
    'Promising',
    'Need Attention',
    'About to Sleep',
    'At Risk',
    'Cannot Lose',
    'Hibernating',
    'Lost',
]

SEGMENT_COLORS = {
    'Champions': '#16a34a',
    'Loyal': '#22c55e',
    'Potential Loyalists': '#84cc16',
    'Recent Customers': '#eab308',
    'Promising': '#f59e0b',
    'Need Attention': '#f97316',
    'About to Sleep': '#ef4444',
    'At Risk': '#dc2626',
    'Cannot Lose': '#991b1b',
    'Hibernating': '#6b7280',
    'Lost': '#374151',
}

SEGMENT_DESCRIPTIONS = {
    'Champions': 'Best customers - Buy often, spend most',
    'Loyal': 'Regular customers with good spend',
    'Potential Loyalists': 'Recent customers showing promise',
    'Recent Customers': 'New, need nurturing',
    'Promising': "Recent, haven't spent much yet",
    'Need Attention': 'Above average recency, frequency & spend',
    'About to Sleep': 'Below average recency, frequency & spend',
    'At Risk': 'Spent big, but long time ago',
    'Cannot Lose': "High spenders, but haven't purchased recently",
    'Hibernating': 'Low spenders, purchased long ago',
    'Lost': 'Lowest recency, frequency & spend',
}

NO_PURCHASE_RECENCY_DAYS = 999


def quartile_score(sorted_values: List[float], value: float) -> int:
    """1..4 from the value's first position in an already-sorted list."""
    index = sorted_values.index(value)
    return min(math.floor(index / len(sorted_values) * 4) + 1, 4)


def classify_rfm(r: int, f: int, m: int) -> str:
    """Map recency/frequency/monetary scores (1..4) to a segment name. First match wins."""
    if r >= 4 and f >= 4 and m >= 4:
        return 'Champions'
    if r >= 3 and f >= 3 and m >= 3:
        return 'Loyal'
    if r >= 4 and f <= 2:
        return 'Recent Customers'
    if r >= 3 and f <= 2 and m >= 3:
        return 'Promising'
    if r <= 2 and f >= 3 and m >= 3:
        return 'Cannot Lose'
    if r <= 2 and f >= 2:
        return 'At Risk'
    if r <= 1:
        return 'Lost'
    if r >= 3 and f <= 2:
        return 'Potential Loyalists'
    if r >= 2 and f >= 2:
        return 'Need Attention'
    if r <= 2 and f <= 2:
        return 'Hibernating'
    return 'About to Sleep'


def customer_rfm_metrics(customers: List[Dict], invoices: List[Dict],
                         now: Optional[datetime] = None) -> List[Dict]:
    """Raw recency (days), frequency and monetary value per customer."""
    now = now or utcnow()

    by_customer: Dict[Any, List[Dict]] = {}
    for inv in _paid(invoices):
        by_customer.setdefault(inv.get('customer_id'), []).append(inv)

    metrics = []
    for customer in customers:
        paid = by_customer.get(customer['id'], [])
        paid_dates = [d for d in (to_datetime(inv.get('paid_date')) for inv in paid) if d]
        recency = days_between(max(paid_dates), now) if paid_dates else NO_PURCHASE_RECENCY_DAYS
        metrics.append({
            'customer_id': customer['id'],
            'recency_days': recency,
            'frequency': len(paid),
            'monetary': sum(_amount(inv) for inv in paid),
        })
    return metrics


def segment_customers(customers: List[Dict], invoices: List[Dict],
                      now: Optional[datetime] = None) -> List[Dict]:
    """RFM segmentation.

    Returns non-empty segments in canonical order:
        [{segment, description, customers: [ids], color}]
    """
    metrics = customer_rfm_metrics(customers, invoices, now)
    if not metrics:
        return []

    recencies = sorted(m['recency_days'] for m in metrics)
    frequencies = sorted((m['frequency'] for m in metrics), reverse=True)
    monetaries = sorted((m['monetary'] for m in metrics), reverse=True)

    segments = OrderedDict((name, []) for name in SEGMENT_ORDER)
    for m in metrics:
        r = 5 - quartile_score(recencies, m['recency_days'])
        f = quartile_score(frequencies, m['frequency'])
        mon = quartile_score(monetaries, m['monetary'])
        segments[classify_rfm(r, f, mon)].append(m['customer_id'])

    return [
        {
            'segment': name,
            'description': SEGMENT_DESCRIPTIONS[name],
            'customers': ids,
            'color': SEGMENT_COLORS[name],
        }
        for name, ids in segments.items() if ids
    ]


# ============== Pipeline & operations ==============

def calculate_deal_velocity(deals: List[Dict], now: Optional[datetime] = None) -> Dict[str, int]:
    """Average whole days from created_at to closed_at (or now), per stage."""
    now = now or utcnow()
    durations: Dict[str, List[int]] = {}
    for deal in deals:
        created = to_datetime(deal.get('created_at'))
        if created is None:
            continue
        closed = to_datetime(deal.get('closed_at')) or now
        durations.setdefault(deal.get('stage'), []).append(days_between(created, closed))

    return {stage: round_half_up(sum(days) / len(days)) for stage, days in durations.items()}


def calculate_on_time_delivery_rate(shipments: List[Dict]) -> float:
    delivered = [
        (to_datetime(s.get('delivered_date')), to_datetime(s.get('estimated_delivery_date')))
        for s in shipments
        if s.get('status') == 'delivered'
    ]
    delivered = [(d, e) for d, e in delivered if d and e]
    if not delivered:
        return 0
    on_time = sum(1 for d, e in delivered if d <= e)
    return on_time / len(delivered) * 100


def calculate_average_delivery_days(shipments: List[Dict]) -> int:
    spans = [
        (to_datetime(s.get('shipped_date')), to_datetime(s.get('delivered_date')))
        for s in shipments
        if s.get('status') == 'delivered'
    ]
    days = [days_between(shipped, delivered) for shipped, delivered in spans if shipped and delivered]
    if not days:
        return 0
    return round_half_up(sum(days) / len(days))


def count_by(rows: List[Dict], key: str, skip_empty: bool = False) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for row in rows:
        value = row.get(key)
        if skip_empty and not value:
            continue
        counts[value] = counts.get(value, 0) + 1
    return counts


def count_by_month(rows: List[Dict], key: str = 'created_at') -> List[Dict]:
    """[{month: YYYY-MM, count}] ascending."""
    counts: Dict[str, int] = {}
    for row in rows:
        when = to_datetime(row.get(key))
        if when is None:
            continue
        month = when.strftime('%Y-%m')
        counts[month] = counts.get(month, 0) + 1
    return [{'month': month, 'count': count} for month, count in sorted(counts.items())]

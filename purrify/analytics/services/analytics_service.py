"""
Analytics Service - Dashboard aggregations.

Fetches rows through the CRM repositories and reduces them with
analytics.metrics. Data-layer errors are logged and re-raised; routes turn
them into JSON error responses.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from core.utils.logging_config import get_logger
from crm.repositories import CustomerRepository, DealRepository, InvoiceRepository, ShipmentRepository
from crm.repositories.deal_repository import CLOSED_STAGES
from analytics import metrics

logger = get_logger('purrify.analytics.service')

AGING_BUCKETS = ('current', 'overdue_30', 'overdue_60', 'overdue_90', 'overdue_90_plus')


def aging_bucket(days_overdue: int) -> str:
    if days_overdue < 0:
        return 'current'
    if days_overdue < 30:
        return 'overdue_30'
    if days_overdue < 60:
        return 'overdue_60'
    if days_overdue < 90:
        return 'overdue_90'
    return 'overdue_90_plus'


def _in_window(value, start: datetime, end: Optional[datetime] = None) -> bool:
    when = metrics.to_datetime(value)
    if when is None:
        return False
    return when >= start and (end is None or when < end)


def _is_open_invoice(invoice: Dict) -> bool:
    return invoice.get('status') not in ('paid', 'cancelled')


def _total(rows: List[Dict], key: str = 'total') -> float:
    return sum(float(r.get(key) or 0) for r in rows)


class AnalyticsService:
    """
    Service for analytics dashboards.

    Repositories are injectable for tests; `now` pins the clock.
    """

    def __init__(self, customers=None, deals=None, invoices=None, shipments=None):
        self.customers = customers or CustomerRepository()
        self.deals = deals or DealRepository()
        self.invoices = invoices or InvoiceRepository()
        self.shipments = shipments or ShipmentRepository()

    def _fetch(self, label: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except Exception as e:
            logger.error(f'Error fetching {label}: {e}')
            raise

    # ============== Dashboard ==============

    def dashboard_metrics(self, period_days: int = 30, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Headline numbers for the current period vs the one before it."""
        now = now or metrics.utcnow()
        period_start = now - timedelta(days=period_days)
        previous_start = period_start - timedelta(days=period_days)

        customers = self._fetch('customers', self.customers.list_for_analytics)
        deals = self._fetch('deals', self.deals.list_for_analytics)
        invoices = self._fetch('invoices', self.invoices.list_for_analytics)

        current_customers = sum(1 for c in customers if _in_window(c.get('created_at'), period_start))
        previous_customers = sum(
            1 for c in customers if _in_window(c.get('created_at'), previous_start, period_start))

        open_deals = [d for d in deals if not d.get('closed_at')]
        current_deals = sum(1 for d in open_deals if _in_window(d.get('created_at'), period_start))
        # every open deal older than the window counts as the previous figure
        previous_deals = len(open_deals) - current_deals

        paid = [i for i in invoices if i.get('status') == 'paid']
        current_revenue = _total([i for i in paid if _in_window(i.get('paid_date'), period_start)])
        previous_revenue = _total(
            [i for i in paid if _in_window(i.get('paid_date'), previous_start, period_start)])

        outstanding = [i for i in invoices if _is_open_invoice(i)]
        overdue = [
            i for i in outstanding
            if metrics.to_datetime(i.get('due_date')) and metrics.to_datetime(i.get('due_date')) < now
        ]

        return {
            'total_customers': len(customers),
            'customer_growth': metrics.calculate_growth(current_customers, previous_customers),
            'active_deals': len(open_deals),
            'active_deal_value': _total(open_deals, 'value'),
            'deal_growth': metrics.calculate_growth(current_deals, previous_deals),
            'period_revenue': current_revenue,
            'revenue_growth': metrics.calculate_growth(current_revenue, previous_revenue),
            'outstanding_invoices': len(outstanding),
            'outstanding_amount': _total(outstanding),
            'overdue_count': len(overdue),
            'period_days': period_days,
        }

    # ============== Sales ==============

    def sales_analytics(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        deals = self._fetch('deals', self.deals.list_for_analytics)

        by_stage: Dict[str, List[Dict]] = {}
        for deal in deals:
            by_stage.setdefault(deal.get('stage'), []).append(deal)

        pipeline = []
        for stage, stage_deals in by_stage.items():
            total_value = _total(stage_deals, 'value')
            pipeline.append({
                'stage': stage,
                'deal_count': len(stage_deals),
                'total_value': total_value,
                'avg_value': total_value / len(stage_deals),
                'probability': _total(stage_deals, 'probability') / len(stage_deals),
            })

        closed = [d for d in deals if d.get('closed_at')]
        won = [d for d in closed if d.get('stage') == CLOSED_STAGES[0]]
        lost = [d for d in closed if d.get('stage') == CLOSED_STAGES[1]]
        forecast = sum(
            float(d.get('value') or 0) * float(d.get('probability') or 0) / 100
            for d in deals if not d.get('closed_at')
        )

        return {
            'pipeline_metrics': pipeline,
            'deal_velocity': metrics.calculate_deal_velocity(deals, now),
            'forecasted_revenue': forecast,
            'win_rate': metrics.calculate_conversion_rate(len(won), len(closed)),
            'loss_rate': metrics.calculate_conversion_rate(len(lost), len(closed)),
        }

    # ============== Customers ==============

    def customer_analytics(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        customers = self._fetch('customers', self.customers.list_for_analytics)
        invoices = self._fetch('invoices', self.invoices.list_for_analytics)

        paid_revenue = metrics.calculate_customer_lifetime_value(invoices)
        return {
            'segments': metrics.segment_customers(customers, invoices, now),
            'acquisition_trend': metrics.count_by_month(customers),
            'customers_by_type': metrics.count_by(customers, 'type'),
            'customers_by_status': metrics.count_by(customers, 'status'),
            'customers_by_province': metrics.count_by(customers, 'province', skip_empty=True),
            'average_lifetime_value': paid_revenue / len(customers) if customers else 0,
        }

    # ============== Financial ==============

    def financial_analytics(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or metrics.utcnow()
        invoices = self._fetch('invoices', self.invoices.list_for_analytics, with_items=True)

        aging = {bucket: 0.0 for bucket in AGING_BUCKETS}
        for invoice in invoices:
            if not _is_open_invoice(invoice):
                continue
            due = metrics.to_datetime(invoice.get('due_date'))
            bucket = 'current' if due is None else aging_bucket(metrics.days_between(due, now))
            aging[bucket] += float(invoice.get('total') or 0)

        product_revenue: Dict[str, Dict[str, float]] = {}
        for invoice in invoices:
            for item in invoice.get('items') or []:
                entry = product_revenue.setdefault(item.get('product_sku') or 'N/A', {'revenue': 0.0, 'count': 0})
                entry['revenue'] += float(item.get('total') or 0)
                entry['count'] += int(item.get('quantity') or 0)
        revenue_by_product = sorted(
            ({'sku': sku, **data} for sku, data in product_revenue.items()),
            key=lambda p: p['revenue'], reverse=True,
        )

        tax_by_province: Dict[str, float] = {}
        for invoice in invoices:
            province = invoice.get('customer_province') or 'Unknown'
            tax_by_province[province] = tax_by_province.get(province, 0) + float(invoice.get('tax') or 0)

        payment_days = [
            metrics.days_between(metrics.to_datetime(i['sent_date']), metrics.to_datetime(i['paid_date']))
            for i in invoices
            if i.get('status') == 'paid' and metrics.to_datetime(i.get('sent_date'))
            and metrics.to_datetime(i.get('paid_date'))
        ]

        total_invoiced = _total(invoices)
        total_collected = metrics.calculate_customer_lifetime_value(invoices)

        return {
            'revenue_by_month': metrics.aggregate_revenue_by_period(invoices, 'month'),
            'invoice_aging': aging,
            'revenue_by_product': revenue_by_product,
            'tax_by_province': tax_by_province,
            'average_payment_time': sum(payment_days) / len(payment_days) if payment_days else 0,
            'collection_rate': metrics.calculate_conversion_rate(total_collected, total_invoiced),
        }

    # ============== Operations ==============

    def operational_analytics(self) -> Dict[str, Any]:
        shipments = self._fetch('shipments', self.shipments.list_for_analytics)

        cost_by_province: Dict[str, float] = {}
        carriers: Dict[str, Dict[str, float]] = {}
        for s in shipments:
            cost = float(s.get('shipping_cost') or 0)
            if cost:
                province = s.get('customer_province') or 'Unknown'
                cost_by_province[province] = cost_by_province.get(province, 0) + cost
            stats = carriers.setdefault(s.get('carrier') or 'Unknown', {'count': 0, 'total_cost': 0.0})
            stats['count'] += 1
            stats['total_cost'] += cost

        return {
            'shipments_by_month': metrics.count_by_month(shipments),
            'on_time_delivery_rate': metrics.calculate_on_time_delivery_rate(shipments),
            'average_delivery_days': metrics.calculate_average_delivery_days(shipments),
            'shipping_cost_by_province': cost_by_province,
            'carrier_performance': [
                {'carrier': carrier, 'count': stats['count'], 'avg_cost': stats['total_cost'] / stats['count']}
                for carrier, stats in carriers.items()
            ],
            'shipments_by_status': metrics.count_by(shipments, 'status'),
        }

    # ============== Revenue series ==============

    def revenue_series(self, period_type: str = 'month', forecast_periods: int = 0) -> Dict[str, Any]:
        invoices = self._fetch('invoices', self.invoices.list_for_analytics)
        history = metrics.aggregate_revenue_by_period(invoices, period_type)
        return {
            'period': period_type,
            'history': history,
            'forecast': metrics.forecast_revenue(history, forecast_periods) if forecast_periods else [],
            'average_order_value': metrics.calculate_average_order_value(invoices),
        }

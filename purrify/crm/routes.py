"""CRM API routes — customers, pipeline board, deals, products, invoices, shipments, tasks, email templates."""

import logging
from functools import wraps
from flask import jsonify, request
from flask_login import login_required, current_user

from . import crm_bp
from .repositories import (
    CustomerRepository, DealRepository, InvoiceRepository,
    ShipmentRepository, CampaignRepository, TaskRepository, ProductRepository,
)
from .services.pipeline_service import PipelineBoard, ToastCollector
from .services.invoice_utils import (
    calculate_invoice_totals, calculate_tax, get_provincial_tax_rate,
    format_invoice_status, get_invoice_status_color, is_invoice_overdue, days_until_due,
)
from .services.shipment_utils import format_shipment, packing_slip_data
from .services.email_templates import (
    render_email, build_invoice_context, build_shipment_context, EMAIL_VARIABLES,
)
from core.utils.api_helpers import (
    get_json_or_error, get_int_arg, error_response, safe_error_response, rate_limited,
)
from core.utils.export_utils import (
    export_rows, CUSTOMER_COLUMNS, DEAL_COLUMNS, INVOICE_COLUMNS,
)

logger = logging.getLogger('purrify.crm.routes')

_customer_repo = CustomerRepository()
_deal_repo = DealRepository()
_invoice_repo = InvoiceRepository()
_shipment_repo = ShipmentRepository()
_campaign_repo = CampaignRepository()
_task_repo = TaskRepository()
_product_repo = ProductRepository()


def crm_required(f):
    """Require can_access_crm permission."""
    @wraps(f)
    def decorated(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({'success': False, 'error': 'Authentication required'}), 401
        if not getattr(current_user, 'can_access_crm', False):
            return jsonify({'success': False, 'error': 'CRM access denied'}), 403
        return f(*args, **kwargs)
    return decorated


def _with_customer(rows):
    """Nest customer_name as customer.store_name for the export column sets."""
    for row in rows:
        row['customer'] = {'store_name': row.get('customer_name')}
    return rows


# ════════════════════════════════════════════════════════════════
# Customers
# ════════════════════════════════════════════════════════════════

def _customer_filters():
    return dict(
        name=request.args.get('name'),
        email=request.args.get('email'),
        customer_type=request.args.get('type'),
        status=request.args.get('status'),
        province=request.args.get('province'),
        tag_id=request.args.get('tag_id', type=int),
    )


@crm_bp.route('/api/crm/customers', methods=['GET'])
@login_required
@crm_required
def api_customers():
    try:
        rows, total = _customer_repo.search(
            sort_by=request.args.get('sort_by'),
            sort_order=request.args.get('sort_order'),
            limit=get_int_arg('limit', 50, minimum=1, maximum=500),
            offset=get_int_arg('offset', 0, minimum=0),
            **_customer_filters(),
        )
        return jsonify({'customers': rows, 'total': total})
    except Exception as e:
        return safe_error_response(e)


@crm_bp.route('/api/crm/customers/export', methods=['GET'])
@login_required
@crm_required
def api_customers_export():
    try:
        rows = _customer_repo.list_for_export(**_customer_filters())
        return export_rows(rows, CUSTOMER_COLUMNS, 'customers', request.args.get('format', 'csv'),
                           date_format='short')
    except Exception as e:
        return safe_error_response(e)


@crm_bp.route('/api/crm/customers/<int:customer_id>', methods=['GET'])
@login_required
@crm_required
def api_customer_detail(customer_id):
    try:
        customer = _customer_repo.get_by_id(customer_id)
        if not customer:
            return error_response('Not found', 404)
        deals = _deal_repo.list(customer_id=customer_id)
        invoices, _ = _invoice_repo.search(customer_id=customer_id, limit=100)
        shipments = _shipment_repo.list(customer_id=customer_id)
        tasks = _task_repo.list(customer_id=customer_id)
        return jsonify({
            'customer': customer,
            'deals': deals,
            'invoices': invoices,
            'shipments': [format_shipment(s) for s in shipments],
            'tasks': tasks,
        })
    except Exception as e:
        return safe_error_response(e)


@crm_bp.route('/api/crm/tags', methods=['GET'])
@login_required
@crm_required
def api_tags():
    try:
        return jsonify({'tags': _customer_repo.get_tags()})
    except Exception as e:
        return safe_error_response(e)


@crm_bp.route('/api/crm/stats', methods=['GET'])
@login_required
@crm_required
def api_stats():
    try:
        return jsonify({'customers': _customer_repo.get_stats()})
    except Exception as e:
        return safe_error_response(e)


# ════════════════════════════════════════════════════════════════
# Pipeline (Kanban)
# ════════════════════════════════════════════════════════════════

@crm_bp.route('/api/crm/pipeline', methods=['GET'])
@login_required
@crm_required
def api_pipeline():
    try:
        stages = _deal_repo.get_stages()
        board = PipelineBoard(stages, _deal_repo.list(), _deal_repo.update)
        return jsonify({'stages': stages, 'columns': board.columns()})
    except Exception as e:
        return safe_error_response(e)


def _single_deal_board(deal_id, toasts):
    """Board holding just one deal, or None when the deal does not exist."""
    deal = _deal_repo.get_by_id(deal_id)
    if not deal:
        return None
    return PipelineBoard(_deal_repo.get_stages(), [deal], _deal_repo.update, notify=toasts)


@crm_bp.route('/api/crm/deals/<int:deal_id>/stage', methods=['POST'])
@login_required
@crm_required
def api_deal_move(deal_id):
    """Drop a deal card on a new column.
    Body: {stage}. A failed save rolls the card back and returns an error toast.
    """
    data, error = get_json_or_error()
    if error:
        return error
    new_stage = data.get('stage')
    if not new_stage:
        return error_response('stage is required')

    toasts = ToastCollector()
    try:
        board = _single_deal_board(deal_id, toasts)
        if board is None:
            return error_response('Not found', 404)
        result = board.move_deal(deal_id, new_stage)
    except Exception as e:
        return safe_error_response(e)

    body = {
        'success': result.success,
        'deal': result.deal,
        'previous_stage': result.previous_stage,
        'changed': result.changed,
        'toast': toasts.toast,
    }
    if not result.success:
        body['error'] = result.error
        return jsonify(body), 500
    return jsonify(body)


# ════════════════════════════════════════════════════════════════
# Deals
# ════════════════════════════════════════════════════════════════

@crm_bp.route('/api/crm/deals', methods=['GET'])
@login_required
@crm_required
def api_deals():
    try:
        deals = _deal_repo.list(customer_id=request.args.get('customer_id', type=int))
        return jsonify({'deals': deals, 'total': len(deals)})
    except Exception as e:
        return safe_error_response(e)


@crm_bp.route('/api/crm/deals', methods=['POST'])
@login_required
@crm_required
def api_deal_create():
    data, error = get_json_or_error()
    if error:
        return error
    title = (data.get('title') or '').strip()
    if not title:
        return error_response('title is required')

    try:
        stage = data.get('stage') or 'Lead'
        if stage not in _deal_repo.get_stage_names():
            return error_response(f'Unknown stage: {stage}')
        deal = _deal_repo.create(
            title=title,
            stage=stage,
            customer_id=data.get('customer_id'),
            value=data.get('value') or 0,
            probability=data.get('probability') or 0,
            expected_close_date=data.get('expected_close_date') or None,
            notes=data.get('notes'),
        )
        return jsonify({'success': True, 'deal': deal,
                        'toast': {'type': 'success', 'message': 'Deal created successfully'}}), 201
    except Exception as e:
        return safe_error_response(e)


@crm_bp.route('/api/crm/deals/export', methods=['GET'])
@login_required
@crm_required
def api_deals_export():
    try:
        rows = _with_customer(_deal_repo.list(customer_id=request.args.get('customer_id', type=int)))
        return export_rows(rows, DEAL_COLUMNS, 'deals', request.args.get('format', 'csv'))
    except Exception as e:
        return safe_error_response(e)


@crm_bp.route('/api/crm/deals/<int:deal_id>', methods=['GET'])
@login_required
@crm_required
def api_deal_detail(deal_id):
    try:
        deal = _deal_repo.get_by_id(deal_id)
        if not deal:
            return error_response('Not found', 404)
        return jsonify({'deal': deal})
    except Exception as e:
        return safe_error_response(e)


@crm_bp.route('/api/crm/deals/<int:deal_id>', methods=['PUT'])
@login_required
@crm_required
def api_deal_update(deal_id):
    data, error = get_json_or_error()
    if error:
        return error
    updates = {k: v for k, v in data.items() if k in DealRepository._EDITABLE}
    if not updates:
        return error_response('No editable fields')

    toasts = ToastCollector()
    try:
        board = _single_deal_board(deal_id, toasts)
        if board is None:
            return error_response('Not found', 404)
        result = board.update_fields(deal_id, updates)
    except Exception as e:
        return safe_error_response(e)

    if not result.success:
        return jsonify({'success': False, 'error': result.error, 'deal': result.deal,
                        'toast': toasts.toast}), 500
    return jsonify({'success': True, 'deal': result.deal, 'toast': toasts.toast})


@crm_bp.route('/api/crm/deals/<int:deal_id>', methods=['DELETE'])
@login_required
@crm_required
def api_deal_delete(deal_id):
    try:
        if _deal_repo.delete(deal_id):
            return jsonify({'success': True})
        return error_response('Not found', 404)
    except Exception as e:
        return safe_error_response(e)


# ════════════════════════════════════════════════════════════════
# Products
# ════════════════════════════════════════════════════════════════

@crm_bp.route('/api/crm/products', methods=['GET'])
@login_required
@crm_required
def api_products():
    try:
        products = _product_repo.list(include_inactive=request.args.get('include_inactive') == 'true')
        return jsonify({'products': products, 'total': len(products)})
    except Exception as e:
        return safe_error_response(e)


@crm_bp.route('/api/crm/products/<int:product_id>', methods=['GET'])
@login_required
@crm_required
def api_product_detail(product_id):
    try:
        product = _product_repo.get_by_id(product_id)
        if not product:
            return error_response('Not found', 404)
        return jsonify({'product': product})
    except Exception as e:
        return safe_error_response(e)


def _apply_catalog(items):
    """Items picked by SKU take the catalog id, name and price unless given explicitly."""
    skus = {item['product_sku'] for item in items if item.get('product_sku')}
    if not skus:
        return items
    products = _product_repo.get_by_skus(skus)
    for item in items:
        product = products.get(item.get('product_sku'))
        if not product:
            continue
        item.setdefault('product_id', product['id'])
        if not item.get('description'):
            item['description'] = product['name']
        if item.get('unit_price') in (None, ''):
            item['unit_price'] = product['unit_price']
    return items


# ════════════════════════════════════════════════════════════════
# Invoices
# ════════════════════════════════════════════════════════════════

def _invoice_filters():
    return dict(
        customer_id=request.args.get('customer_id', type=int),
        status=request.args.get('status'),
        date_from=request.args.get('date_from'),
        date_to=request.args.get('date_to'),
    )


def _decorate_invoice(invoice):
    invoice['status_label'] = format_invoice_status(invoice.get('status'))
    invoice['status_color'] = get_invoice_status_color(invoice.get('status'))
    invoice['is_overdue'] = is_invoice_overdue(invoice)
    invoice['days_until_due'] = days_until_due(invoice.get('due_date'))
    return invoice


@crm_bp.route('/api/crm/invoices', methods=['GET'])
@login_required
@crm_required
def api_invoices():
    try:
        rows, total = _invoice_repo.search(
            limit=get_int_arg('limit', 50, minimum=1, maximum=500),
            offset=get_int_arg('offset', 0, minimum=0),
            **_invoice_filters(),
        )
        return jsonify({'invoices': [_decorate_invoice(r) for r in rows], 'total': total})
    except Exception as e:
        return safe_error_response(e)


@crm_bp.route('/api/crm/invoices', methods=['POST'])
@login_required
@crm_required
def api_invoice_create():
    """Create a draft invoice.
    Body: {customer_id, items: [{product_id?, product_sku?, description, quantity, unit_price}],
           tax?, shipping?, discount?, due_date?, currency?, notes?}
    Items with a product_sku take missing description and unit_price from the catalog.
    Without an explicit tax, the customer's provincial rate is applied to the subtotal.
    """
    data, error = get_json_or_error()
    if error:
        return error
    customer_id = data.get('customer_id')
    items = data.get('items') or []
    if not customer_id:
        return error_response('customer_id is required')

    try:
        customer = _customer_repo.get_by_id(customer_id)
        if not customer:
            return error_response('Customer not found', 404)

        items = _apply_catalog(items)
        tax = data.get('tax')
        if tax is None:
            subtotal = calculate_invoice_totals(items)['subtotal']
            tax = calculate_tax(subtotal, get_provincial_tax_rate(customer.get('province')))

        invoice = _invoice_repo.create(
            customer_id=customer_id,
            items=items,
            tax=float(tax),
            shipping=float(data.get('shipping') or 0),
            discount=float(data.get('discount') or 0),
            due_date=data.get('due_date') or None,
            currency=data.get('currency') or 'CAD',
            notes=data.get('notes'),
        )
        logger.info(f"Invoice {invoice.get('invoice_number')} created for customer {customer_id}")
        return jsonify({'success': True, 'invoice': invoice,
                        'toast': {'type': 'success', 'message': 'Invoice created successfully'}}), 201
    except Exception as e:
        return safe_error_response(e)


@crm_bp.route('/api/crm/invoices/export', methods=['GET'])
@login_required
@crm_required
def api_invoices_export():
    try:
        rows = _invoice_repo.list_for_export(**_invoice_filters())
        return export_rows(rows, INVOICE_COLUMNS, 'invoices', request.args.get('format', 'csv'))
    except Exception as e:
        return safe_error_response(e)


@crm_bp.route('/api/crm/invoices/<int:invoice_id>', methods=['GET'])
@login_required
@crm_required
def api_invoice_detail(invoice_id):
    try:
        invoice = _invoice_repo.get_by_id(invoice_id)
        if not invoice:
            return error_response('Not found', 404)
        return jsonify({'invoice': _decorate_invoice(invoice)})
    except Exception as e:
        return safe_error_response(e)


@crm_bp.route('/api/crm/invoices/<int:invoice_id>/send', methods=['POST'])
@login_required
@crm_required
@rate_limited('email')
def api_invoice_send(invoice_id):
    """Mark an invoice sent and return the rendered notification email."""
    try:
        invoice = _invoice_repo.get_by_id(invoice_id)
        if not invoice:
            return error_response('Not found', 404)
        customer = _customer_repo.get_by_id(invoice['customer_id']) or {}

        updated = _invoice_repo.mark_sent(invoice_id)
        if not updated:
            return error_response(f"Invoice in status '{invoice.get('status')}' cannot be sent")

        email = None
        template = _campaign_repo.get_template_by_name('Invoice Notification')
        if template:
            email = render_email(template, build_invoice_context(updated, customer))
            email['to'] = customer.get('email')
        return jsonify({'success': True, 'invoice': updated, 'email': email,
                        'toast': {'type': 'success', 'message': 'Invoice sent'}})
    except Exception as e:
        return safe_error_response(e)


@crm_bp.route('/api/crm/invoices/<int:invoice_id>/mark-paid', methods=['POST'])
@login_required
@crm_required
def api_invoice_mark_paid(invoice_id):
    try:
        updated = _invoice_repo.mark_paid(invoice_id)
        if not updated:
            return error_response('Not found or cancelled', 404)
        return jsonify({'success': True, 'invoice': updated,
                        'toast': {'type': 'success', 'message': 'Invoice marked as paid'}})
    except Exception as e:
        return safe_error_response(e)


# ════════════════════════════════════════════════════════════════
# Shipments
# ════════════════════════════════════════════════════════════════

@crm_bp.route('/api/crm/shipments', methods=['GET'])
@login_required
@crm_required
def api_shipments():
    try:
        rows = _shipment_repo.list(
            customer_id=request.args.get('customer_id', type=int),
            status=request.args.get('status'),
        )
        return jsonify({'shipments': [format_shipment(r) for r in rows], 'total': len(rows)})
    except Exception as e:
        return safe_error_response(e)


@crm_bp.route('/api/crm/shipments/<int:shipment_id>', methods=['GET'])
@login_required
@crm_required
def api_shipment_detail(shipment_id):
    try:
        shipment = _shipment_repo.get_by_id(shipment_id)
        if not shipment:
            return error_response('Not found', 404)
        shipment['customer'] = {'store_name': shipment.get('customer_name'),
                                'city': shipment.get('customer_city'),
                                'province': shipment.get('customer_province')}
        return jsonify({
            'shipment': format_shipment(shipment),
            'events': _shipment_repo.get_events(shipment_id),
            'packing_slip': packing_slip_data(shipment),
        })
    except Exception as e:
        return safe_error_response(e)


@crm_bp.route('/api/crm/shipments/<int:shipment_id>/status', methods=['POST'])
@login_required
@crm_required
@rate_limited('shipments')
def api_shipment_status(shipment_id):
    """Body: {status, message?, location?}. A tracking event is recorded when message is set."""
    data, error = get_json_or_error()
    if error:
        return error
    status = data.get('status')
    if not status:
        return error_response('status is required')
    try:
        shipment = _shipment_repo.update_status(
            shipment_id, status,
            message=data.get('message'), location=data.get('location'),
        )
        return jsonify({'success': True, 'shipment': format_shipment(shipment)})
    except KeyError as e:
        return error_response(str(e.args[0]), 404)
    except Exception as e:
        return safe_error_response(e)


# ════════════════════════════════════════════════════════════════
# Tasks
# ════════════════════════════════════════════════════════════════

@crm_bp.route('/api/crm/tasks', methods=['GET'])
@login_required
@crm_required
def api_tasks():
    try:
        tasks = _task_repo.list(
            customer_id=request.args.get('customer_id', type=int),
            status=request.args.get('status'),
        )
        return jsonify({'tasks': tasks, 'total': len(tasks)})
    except Exception as e:
        return safe_error_response(e)


@crm_bp.route('/api/crm/tasks', methods=['POST'])
@login_required
@crm_required
def api_task_create():
    """Body: {title, due_date, customer_id?, type?, priority?, notes?, reminder_time?}"""
    data, error = get_json_or_error()
    if error:
        return error
    title = (data.get('title') or '').strip()
    if not title:
        return error_response('title is required')
    if not data.get('due_date'):
        return error_response('due_date is required')

    try:
        task = _task_repo.create(
            title=title,
            due_date=data['due_date'],
            customer_id=data.get('customer_id'),
            task_type=data.get('type') or 'other',
            priority=data.get('priority') or 'medium',
            notes=data.get('notes'),
            reminder_time=data.get('reminder_time') or None,
        )
        return jsonify({'success': True, 'task': task,
                        'toast': {'type': 'success', 'message': 'Task created successfully'}}), 201
    except Exception as e:
        return safe_error_response(e)


@crm_bp.route('/api/crm/tasks/<int:task_id>', methods=['GET'])
@login_required
@crm_required
def api_task_detail(task_id):
    try:
        task = _task_repo.get_by_id(task_id)
        if not task:
            return error_response('Not found', 404)
        return jsonify({'task': task})
    except Exception as e:
        return safe_error_response(e)


@crm_bp.route('/api/crm/tasks/<int:task_id>/complete', methods=['POST'])
@login_required
@crm_required
def api_task_complete(task_id):
    try:
        task = _task_repo.complete(task_id)
        if not task:
            return error_response('Not found', 404)
        return jsonify({'success': True, 'task': task,
                        'toast': {'type': 'success', 'message': 'Task completed'}})
    except Exception as e:
        return safe_error_response(e)


# ════════════════════════════════════════════════════════════════
# Campaigns & email templates
# ════════════════════════════════════════════════════════════════

@crm_bp.route('/api/crm/campaigns', methods=['GET'])
@login_required
@crm_required
def api_campaigns():
    try:
        return jsonify({'campaigns': _campaign_repo.list_campaigns(request.args.get('status'))})
    except Exception as e:
        return safe_error_response(e)


@crm_bp.route('/api/crm/email-templates', methods=['GET'])
@login_required
@crm_required
def api_email_templates():
    try:
        active_only = request.args.get('all') != 'true'
        return jsonify({'templates': _campaign_repo.list_templates(active_only=active_only),
                        'variables': EMAIL_VARIABLES})
    except Exception as e:
        return safe_error_response(e)


def _preview_context(data):
    """Explicit context, or one built from an invoice or shipment."""
    context = dict(data.get('context') or {})
    if data.get('invoice_id'):
        invoice = _invoice_repo.get_by_id(data['invoice_id'])
        if not invoice:
            raise KeyError('Invoice not found')
        customer = _customer_repo.get_by_id(invoice['customer_id']) or {}
        context = {**build_invoice_context(invoice, customer), **context}
    elif data.get('shipment_id'):
        shipment = _shipment_repo.get_by_id(data['shipment_id'])
        if not shipment:
            raise KeyError('Shipment not found')
        customer = _customer_repo.get_by_id(shipment['customer_id']) or {}
        context = {**build_shipment_context(shipment, customer), **context}
    return context


@crm_bp.route('/api/crm/email-templates/preview', methods=['POST'])
@login_required
@crm_required
def api_email_template_preview():
    """Render a stored template.
    Body: {template_id | template_name, context?, invoice_id?, shipment_id?}
    """
    data, error = get_json_or_error()
    if error:
        return error
    try:
        if data.get('template_id'):
            template = _campaign_repo.get_template(data['template_id'])
        elif data.get('template_name'):
            template = _campaign_repo.get_template_by_name(data['template_name'])
        else:
            return error_response('template_id or template_name is required')
        if not template:
            return error_response('Template not found', 404)
        return jsonify({'success': True, 'preview': render_email(template, _preview_context(data))})
    except Exception as e:
        return safe_error_response(e)

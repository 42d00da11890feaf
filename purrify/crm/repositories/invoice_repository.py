"""CRM Invoice Repository — invoices with line items, numbering and status transitions."""

from datetime import date

from core.base_repository import BaseRepository
from database import dict_from_row
from crm.services.invoice_utils import calculate_invoice_totals, format_invoice_number, normalize_line_item

_INVOICE_SELECT = '''
    SELECT i.*, c.store_name as customer_name, c.email as customer_email,
           c.province as customer_province
'''
_INVOICE_FROM = 'FROM invoices i LEFT JOIN customers c ON c.id = i.customer_id'


class InvoiceRepository(BaseRepository):

    def get_by_id(self, invoice_id):
        invoice = self.query_one(f'{_INVOICE_SELECT} {_INVOICE_FROM} WHERE i.id = %s', (invoice_id,))
        if invoice:
            invoice['items'] = self.get_items(invoice_id)
        return invoice

    def get_items(self, invoice_id):
        return self.query_all(
            '''SELECT ii.*, p.name as product_name
               FROM invoice_items ii
               LEFT JOIN products p ON p.id = ii.product_id
               WHERE ii.invoice_id = %s
               ORDER BY ii.id''',
            (invoice_id,)
        )

    def search(self, customer_id=None, status=None, date_from=None, date_to=None,
               limit=50, offset=0):
        conditions, params = ['1=1'], []
        if customer_id:
            conditions.append('i.customer_id = %s')
            params.append(customer_id)
        if status:
            conditions.append('i.status = %s')
            params.append(status)
        if date_from:
            conditions.append('i.created_at >= %s')
            params.append(date_from)
        if date_to:
            conditions.append("i.created_at < (%s::date + INTERVAL '1 day')")
            params.append(date_to)
        where = ' AND '.join(conditions)
        return self.query_page(
            _INVOICE_SELECT,
            f'{_INVOICE_FROM} WHERE {where}',
            params,
            order_by='i.created_at DESC, i.id DESC',
            limit=limit, offset=offset,
        )

    @staticmethod
    def _next_number(cursor, year):
        """Next INV-YYYY-NNNN. Caller holds the numbering lock."""
        cursor.execute(
            '''SELECT COALESCE(MAX(CAST(SUBSTRING(invoice_number FROM 10) AS INTEGER)), 0) as last_seq
               FROM invoices WHERE invoice_number LIKE %s''',
            (f'INV-{year}-%',)
        )
        return format_invoice_number(year, cursor.fetchone()['last_seq'] + 1)

    def create(self, customer_id, items, tax=0, shipping=0, discount=0, due_date=None,
               currency='CAD', notes=None, today=None):
        """Insert invoice + items in one transaction. Totals are computed from the items."""
        if not items:
            raise ValueError('Invoice must have at least one item')
        lines = [normalize_line_item(item) for item in items]
        totals = calculate_invoice_totals(items, tax, shipping, discount)
        year = (today or date.today()).year

        def _work(cursor):
            # Serialise numbering across workers for the rest of this transaction
            cursor.execute("SELECT pg_advisory_xact_lock(hashtext('invoice_number'))")
            number = self._next_number(cursor, year)
            cursor.execute(
                '''INSERT INTO invoices
                   (invoice_number, customer_id, status, subtotal, tax, shipping, discount,
                    total, currency, due_date, notes)
                   VALUES (%s, %s, 'draft', %s, %s, %s, %s, %s, %s, %s, %s)
                   RETURNING *''',
                (number, customer_id, totals['subtotal'], totals['tax'], totals['shipping'],
                 totals['discount'], totals['total'], currency, due_date, notes)
            )
            invoice = dict_from_row(cursor.fetchone())
            for item, line in zip(items, lines):
                cursor.execute(
                    '''INSERT INTO invoice_items
                       (invoice_id, product_id, product_sku, description, quantity, unit_price, total)
                       VALUES (%s, %s, %s, %s, %s, %s, %s)''',
                    (invoice['id'], item.get('product_id'), item.get('product_sku'),
                     item.get('description'), line['quantity'], line['unit_price'], line['total'])
                )
            return invoice

        return self.execute_many(_work)

    _EDITABLE = {'due_date', 'notes', 'tax', 'shipping', 'discount', 'currency', 'status'}

    def update(self, invoice_id, data):
        fields = {k: (None if v == '' else v) for k, v in data.items() if k in self._EDITABLE}
        if not fields:
            return None
        sets = ', '.join(f'{k} = %s' for k in fields)
        if fields.keys() & {'tax', 'shipping', 'discount'}:
            sets += ', total = subtotal + COALESCE(tax, 0) + COALESCE(shipping, 0) - COALESCE(discount, 0)'
        vals = list(fields.values()) + [invoice_id]
        return self.execute(
            f'UPDATE invoices SET {sets}, updated_at = NOW() WHERE id = %s RETURNING *',
            tuple(vals), returning=True
        )

    def delete(self, invoice_id):
        """Only drafts can be deleted."""
        return self.execute(
            "DELETE FROM invoices WHERE id = %s AND status = 'draft'", (invoice_id,)
        ) > 0

    def mark_sent(self, invoice_id):
        return self.execute(
            '''UPDATE invoices SET status = 'sent', sent_date = NOW(), updated_at = NOW()
               WHERE id = %s AND status IN ('draft', 'sent', 'overdue')
               RETURNING *''',
            (invoice_id,), returning=True
        )

    def mark_paid(self, invoice_id):
        return self.execute(
            '''UPDATE invoices SET status = 'paid', paid_date = NOW(), updated_at = NOW()
               WHERE id = %s AND status != 'cancelled'
               RETURNING *''',
            (invoice_id,), returning=True
        )

    def mark_overdue(self, today=None):
        """Flip sent invoices past their due date to overdue. Returns the count."""
        return self.execute(
            '''UPDATE invoices SET status = 'overdue', updated_at = NOW()
               WHERE status = 'sent' AND due_date IS NOT NULL AND due_date < %s''',
            (today or date.today(),)
        )

    def list_for_analytics(self, with_items=False):
        invoices = self.query_all(
            '''SELECT i.id, i.customer_id, i.invoice_number, i.status, i.subtotal, i.tax,
                      i.total, i.due_date, i.sent_date, i.paid_date, i.created_at,
                      c.province as customer_province
               FROM invoices i
               LEFT JOIN customers c ON c.id = i.customer_id'''
        )
        if with_items and invoices:
            items_by_invoice = {}
            for item in self.query_all(
                'SELECT invoice_id, product_sku, quantity, total FROM invoice_items'
            ):
                items_by_invoice.setdefault(item['invoice_id'], []).append(item)
            for invoice in invoices:
                invoice['items'] = items_by_invoice.get(invoice['id'], [])
        return invoices

    def list_for_export(self, **filters):
        rows, _total = self.search(limit=10000, offset=0, **filters)
        for row in rows:
            row['customer'] = {'store_name': row.get('customer_name')}
        return rows

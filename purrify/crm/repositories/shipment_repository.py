"""CRM Shipment Repository — shipments, tracking events and status changes."""

from core.base_repository import BaseRepository
from database import dict_from_row
from crm.services.shipment_utils import SHIPMENT_STATUSES

_SHIPMENT_SELECT = '''
    SELECT s.*, c.store_name as customer_name, c.city as customer_city,
           c.province as customer_province, i.invoice_number
    FROM shipments s
    LEFT JOIN customers c ON c.id = s.customer_id
    LEFT JOIN invoices i ON i.id = s.invoice_id
'''


class ShipmentRepository(BaseRepository):

    def list(self, customer_id=None, status=None):
        conditions, params = ['1=1'], []
        if customer_id:
            conditions.append('s.customer_id = %s')
            params.append(customer_id)
        if status:
            conditions.append('s.status = %s')
            params.append(status)
        where = ' AND '.join(conditions)
        return self.query_all(
            f'{_SHIPMENT_SELECT} WHERE {where} ORDER BY s.created_at DESC',
            tuple(params)
        )

    def get_by_id(self, shipment_id):
        return self.query_one(f'{_SHIPMENT_SELECT} WHERE s.id = %s', (shipment_id,))

    def get_events(self, shipment_id):
        return self.query_all(
            'SELECT * FROM shipping_events WHERE shipment_id = %s ORDER BY timestamp ASC',
            (shipment_id,)
        )

    def update_status(self, shipment_id, status, message=None, location=None):
        """Set status and, when a message is given, record a tracking event. One transaction."""
        if status not in SHIPMENT_STATUSES:
            raise ValueError(f'Invalid shipment status: {status}')

        def _work(cursor):
            extra = ''
            if status == 'delivered':
                extra = ', delivered_date = COALESCE(delivered_date, NOW())'
            elif status == 'picked_up':
                extra = ', shipped_date = COALESCE(shipped_date, NOW())'
            cursor.execute(
                f'''UPDATE shipments SET status = %s{extra}, updated_at = NOW()
                    WHERE id = %s RETURNING *''',
                (status, shipment_id)
            )
            row = cursor.fetchone()
            if not row:
                raise KeyError(f'Shipment {shipment_id} not found')
            if message:
                cursor.execute(
                    '''INSERT INTO shipping_events (shipment_id, status, message, location)
                       VALUES (%s, %s, %s, %s)''',
                    (shipment_id, status, message, location)
                )
            return dict_from_row(row)

        return self.execute_many(_work)

    def list_for_analytics(self):
        return self.query_all(
            '''SELECT s.id, s.status, s.carrier, s.shipping_cost, s.shipped_date,
                      s.estimated_delivery_date, s.delivered_date, s.created_at,
                      c.province as customer_province
               FROM shipments s
               LEFT JOIN customers c ON c.id = s.customer_id'''
        )

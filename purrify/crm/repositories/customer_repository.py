"""CRM Customer Repository — search, detail with tags, analytics rows."""

from core.base_repository import BaseRepository


class CustomerRepository(BaseRepository):

    def get_by_id(self, customer_id):
        customer = self.query_one('SELECT * FROM customers WHERE id = %s', (customer_id,))
        if customer:
            customer['tags'] = self.get_customer_tags(customer_id)
        return customer

    def get_customer_tags(self, customer_id):
        return self.query_all(
            '''SELECT t.* FROM tags t
               JOIN customer_tags ct ON ct.tag_id = t.id
               WHERE ct.customer_id = %s
               ORDER BY t.name''',
            (customer_id,)
        )

    _ALLOWED_SORT = {
        'store_name', 'email', 'type', 'status', 'province', 'city',
        'created_at', 'updated_at', 'id',
    }

    def search(self, name=None, email=None, customer_type=None, status=None,
               province=None, tag_id=None, sort_by=None, sort_order=None,
               limit=50, offset=0):
        conditions, params = ['1=1'], []
        if name:
            conditions.append('c.store_name ILIKE %s')
            params.append(f'%{name}%')
        if email:
            conditions.append('c.email ILIKE %s')
            params.append(f'%{email}%')
        if customer_type:
            conditions.append('c.type = %s')
            params.append(customer_type)
        if status:
            conditions.append('c.status = %s')
            params.append(status)
        if province:
            conditions.append('c.province = %s')
            params.append(province.upper())
        if tag_id:
            conditions.append('EXISTS (SELECT 1 FROM customer_tags ct WHERE ct.customer_id = c.id AND ct.tag_id = %s)')
            params.append(tag_id)
        where = ' AND '.join(conditions)
        col = sort_by if sort_by in self._ALLOWED_SORT else 'created_at'
        direction = 'ASC' if sort_order and sort_order.upper() == 'ASC' else 'DESC'
        return self.query_page(
            'SELECT c.*',
            f'FROM customers c WHERE {where}',
            params,
            order_by=f'c.{col} {direction} NULLS LAST, c.id DESC',
            limit=limit, offset=offset,
        )

    def list_for_analytics(self):
        return self.query_all(
            'SELECT id, store_name, type, status, province, created_at FROM customers'
        )

    def list_for_export(self, **filters):
        rows, _total = self.search(limit=10000, offset=0, **filters)
        return rows

    def get_tags(self):
        return self.query_all('''
            SELECT t.*, COUNT(ct.customer_id) as customer_count
            FROM tags t
            LEFT JOIN customer_tags ct ON ct.tag_id = t.id
            GROUP BY t.id
            ORDER BY t.name
        ''')

    def get_stats(self):
        return self.query_one('''
            SELECT
                COUNT(*) as total,
                COUNT(*) FILTER (WHERE type = 'B2B') as b2b,
                COUNT(*) FILTER (WHERE type = 'B2C') as b2c,
                COUNT(*) FILTER (WHERE type = 'Affiliate') as affiliate,
                COUNT(*) FILTER (WHERE status = 'Qualified') as qualified,
                COUNT(DISTINCT province) as provinces
            FROM customers
        ''')

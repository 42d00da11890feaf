"""CRM Product Repository — the product catalog invoice items are picked from."""

from core.base_repository import BaseRepository


class ProductRepository(BaseRepository):

    def list(self, include_inactive=False):
        where = '' if include_inactive else 'WHERE active = TRUE'
        return self.query_all(f'SELECT * FROM products {where} ORDER BY name')

    def get_by_id(self, product_id):
        return self.query_one('SELECT * FROM products WHERE id = %s', (product_id,))

    def get_by_skus(self, skus):
        """Active products keyed by SKU."""
        if not skus:
            return {}
        rows = self.query_all(
            'SELECT * FROM products WHERE sku = ANY(%s) AND active = TRUE',
            (list(skus),)
        )
        return {row['sku']: row for row in rows}

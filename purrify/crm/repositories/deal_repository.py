"""CRM Deal Repository — pipeline stages and deal CRUD."""

from core.base_repository import BaseRepository

CLOSED_STAGES = ('Closed Won', 'Closed Lost')


class DealRepository(BaseRepository):

    def get_stages(self):
        return self.query_all('SELECT * FROM deal_stages ORDER BY order_index')

    def get_stage_names(self):
        return [s['name'] for s in self.get_stages()]

    def get_by_id(self, deal_id):
        return self.query_one(
            '''SELECT d.*, c.store_name as customer_name
               FROM deals d
               LEFT JOIN customers c ON c.id = d.customer_id
               WHERE d.id = %s''',
            (deal_id,)
        )

    def list(self, customer_id=None):
        conditions, params = ['1=1'], []
        if customer_id:
            conditions.append('d.customer_id = %s')
            params.append(customer_id)
        where = ' AND '.join(conditions)
        return self.query_all(
            f'''SELECT d.*, c.store_name as customer_name
                FROM deals d
                LEFT JOIN customers c ON c.id = d.customer_id
                WHERE {where}
                ORDER BY d.created_at DESC''',
            tuple(params)
        )

    def create(self, title, stage='Lead', customer_id=None, value=0, probability=0,
               expected_close_date=None, notes=None):
        closed_at_sql = 'NOW()' if stage in CLOSED_STAGES else 'NULL'
        return self.execute(
            f'''INSERT INTO deals
                (title, stage, customer_id, value, probability, expected_close_date, notes, closed_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, {closed_at_sql})
                RETURNING *''',
            (title, stage, customer_id, value, probability, expected_close_date, notes),
            returning=True
        )

    _EDITABLE = {
        'title', 'value', 'stage', 'probability', 'expected_close_date',
        'notes', 'customer_id',
    }

    def update(self, deal_id, data):
        """Update whitelisted fields. Entering a closed stage stamps closed_at; leaving one clears it."""
        fields = {k: (None if v == '' else v) for k, v in data.items() if k in self._EDITABLE}
        if not fields:
            return None
        sets = [f'{k} = %s' for k in fields]
        if 'stage' in fields:
            if fields['stage'] in CLOSED_STAGES:
                sets.append('closed_at = COALESCE(closed_at, NOW())')
            else:
                sets.append('closed_at = NULL')
        vals = list(fields.values()) + [deal_id]
        return self.execute(
            f'UPDATE deals SET {", ".join(sets)}, updated_at = NOW() WHERE id = %s RETURNING *',
            tuple(vals), returning=True
        )

    def delete(self, deal_id):
        return self.execute('DELETE FROM deals WHERE id = %s', (deal_id,)) > 0

    def list_for_analytics(self):
        return self.query_all(
            'SELECT id, customer_id, title, value, stage, probability, created_at, closed_at FROM deals'
        )

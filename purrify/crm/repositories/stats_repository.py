"""Row counts used by the detailed health check."""

from core.base_repository import BaseRepository

COUNTED_TABLES = ('customers', 'deals', 'invoices')


class StatsRepository(BaseRepository):

    def count_rows(self, tables=COUNTED_TABLES):
        """{table: row count}. Table names come from the fixed whitelist only."""
        counts = {}
        for table in tables:
            if table not in COUNTED_TABLES:
                raise ValueError(f'Table not countable: {table}')
            counts[table] = self.query_value(f'SELECT COUNT(*) as count FROM {table}', default=0)
        return counts

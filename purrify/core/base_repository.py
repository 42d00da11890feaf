"""Base Repository — eliminates connection boilerplate across all repos.

Provides query_one(), query_all(), execute(), execute_many() that handle
get_db()/get_cursor()/release_db() and try/finally automatically.

Usage:
    class TagRepository(BaseRepository):
        def get_tag(self, tag_id):
            return self.query_one('SELECT * FROM tags WHERE id = %s', (tag_id,))

        def create_tag(self, name, color):
            return self.execute(
                'INSERT INTO tags (name, color) VALUES (%s, %s) RETURNING id',
                (name, color), returning=True
            )

        def create_invoice_with_items(self, ...):
            def _work(cursor):
                cursor.execute('INSERT INTO invoices ...')
                cursor.execute('INSERT INTO invoice_items ...')
                return cursor.fetchone()
            return self.execute_many(_work)
"""

from database import get_db, get_cursor, release_db, dict_from_row


class BaseRepository:

    def query_one(self, sql, params=None):
        """Execute a SELECT and return a single row as dict, or None."""
        conn = get_db()
        try:
            cursor = get_cursor(conn)
            cursor.execute(sql, params or ())
            row = cursor.fetchone()
            return dict_from_row(row) if row else None
        finally:
            release_db(conn)

    def query_all(self, sql, params=None):
        """Execute a SELECT and return all rows as list of dicts."""
        conn = get_db()
        try:
            cursor = get_cursor(conn)
            cursor.execute(sql, params or ())
            return [dict_from_row(r) for r in cursor.fetchall()]
        finally:
            release_db(conn)

    def query_value(self, sql, params=None, default=None):
        """Execute a SELECT and return the first column of the first row."""
        row = self.query_one(sql, params)
        if not row:
            return default
        value = next(iter(row.values()))
        return default if value is None else value

    def query_page(self, select_sql, from_where_sql, params=None, order_by='id DESC',
                   limit=50, offset=0):
        """Run a paginated SELECT plus its COUNT(*) over the same FROM/WHERE.

        Args:
            select_sql: Column list, e.g. 'SELECT c.*'
            from_where_sql: 'FROM ... WHERE ...' shared by both queries
            params: Parameters for the WHERE clause only

        Returns:
            (rows, total) tuple
        """
        params = tuple(params or ())
        rows = self.query_all(
            f'{select_sql} {from_where_sql} ORDER BY {order_by} LIMIT %s OFFSET %s',
            params + (limit, offset)
        )
        total = self.query_value(f'SELECT COUNT(*) as count {from_where_sql}', params, default=0)
        return rows, total

    def execute(self, sql, params=None, returning=False):
        """Execute an INSERT/UPDATE/DELETE with auto-commit.

        Args:
            sql: SQL statement
            params: Query parameters
            returning: If True, fetchone() and return dict. If False, return rowcount.

        Returns:
            dict if returning=True, else int (rowcount)
        """
        conn = get_db()
        try:
            cursor = get_cursor(conn)
            cursor.execute(sql, params or ())
            if returning:
                result = cursor.fetchone()
                conn.commit()
                return dict_from_row(result) if result else None
            conn.commit()
            return cursor.rowcount
        except Exception:
            conn.rollback()
            raise
        finally:
            release_db(conn)

    def execute_many(self, callback):
        """Execute multiple statements in a single transaction.

        Args:
            callback: Function that receives (cursor) and returns a result.
                      All statements within callback share one connection/transaction.

        Returns:
            Whatever callback returns
        """
        conn = get_db()
        try:
            conn.autocommit = False
            cursor = get_cursor(conn)
            result = callback(cursor)
            conn.commit()
            return result
        except Exception:
            conn.rollback()
            raise
        finally:
            release_db(conn)

"""CRM Task Repository — follow-up tasks and their reminders."""

from core.base_repository import BaseRepository
from database import dict_from_row

TASK_TYPES = ('call', 'email', 'follow_up', 'other')
TASK_PRIORITIES = ('low', 'medium', 'high')
TASK_STATUSES = ('pending', 'completed', 'cancelled')

_TASK_SELECT = '''
    SELECT t.*, c.store_name as customer_name
    FROM tasks t
    LEFT JOIN customers c ON c.id = t.customer_id
'''


class TaskRepository(BaseRepository):

    def list(self, customer_id=None, status=None):
        """Tasks soonest-due first."""
        conditions, params = ['1=1'], []
        if customer_id:
            conditions.append('t.customer_id = %s')
            params.append(customer_id)
        if status:
            if status not in TASK_STATUSES:
                raise ValueError(f'Invalid task status: {status}')
            conditions.append('t.status = %s')
            params.append(status)
        where = ' AND '.join(conditions)
        return self.query_all(
            f'{_TASK_SELECT} WHERE {where} ORDER BY t.due_date ASC, t.id ASC',
            tuple(params)
        )

    def get_by_id(self, task_id):
        return self.query_one(f'{_TASK_SELECT} WHERE t.id = %s', (task_id,))

    def create(self, title, due_date, customer_id=None, task_type='other', priority='medium',
               notes=None, reminder_time=None):
        if task_type not in TASK_TYPES:
            raise ValueError(f'Invalid task type: {task_type}')
        if priority not in TASK_PRIORITIES:
            raise ValueError(f'Invalid task priority: {priority}')
        return self.execute(
            '''INSERT INTO tasks (title, due_date, customer_id, type, priority, notes, reminder_time)
               VALUES (%s, %s, %s, %s, %s, %s, %s)
               RETURNING *''',
            (title, due_date, customer_id, task_type, priority, notes, reminder_time),
            returning=True
        )

    def complete(self, task_id):
        """Mark completed. Keeps the first completion time; None when the task does not exist."""
        return self.execute(
            '''UPDATE tasks SET status = 'completed', completed_at = COALESCE(completed_at, NOW())
               WHERE id = %s RETURNING *''',
            (task_id,), returning=True
        )

    def claim_due_reminders(self):
        """Flag every pending task whose reminder time has passed as reminded and return those tasks.

        Flagging and selecting happen in one statement, so concurrent callers
        never receive the same task twice.
        """
        def _work(cursor):
            cursor.execute(
                '''UPDATE tasks SET reminder_sent = TRUE
                   WHERE status = 'pending' AND reminder_sent = FALSE
                     AND reminder_time IS NOT NULL AND reminder_time <= NOW()
                   RETURNING id, title, priority, due_date, customer_id, reminder_time'''
            )
            return [dict_from_row(row) for row in cursor.fetchall()]

        return self.execute_many(_work)

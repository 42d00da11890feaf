"""
Scheduled jobs for Purrify.

Uses APScheduler BackgroundScheduler to run periodic invoice maintenance
and task reminders.
Only one worker starts the scheduler (file-lock guard) to avoid
duplicate execution and wasted DB connections.
"""

import os
import atexit
import fcntl
from apscheduler.schedulers.background import BackgroundScheduler
from core.utils.logging_config import get_logger

logger = get_logger('purrify.tasks.scheduler')

scheduler = BackgroundScheduler(daemon=True)
_lock_file = None


def mark_overdue_invoices():
    """Flip sent invoices past their due date to overdue."""
    try:
        from crm.repositories import InvoiceRepository
        count = InvoiceRepository().mark_overdue()
        if count > 0:
            logger.info(f"Invoices: marked {count} sent invoice(s) as overdue")
    except Exception as e:
        logger.error(f"Overdue invoice task failed: {e}")


def send_task_reminders():
    """Announce pending tasks whose reminder time has passed. Each task is reminded once."""
    try:
        from crm.repositories import TaskRepository
        due = TaskRepository().claim_due_reminders()
        for task in due:
            logger.info(
                f"Task reminder: {task.get('title')} "
                f"(id={task.get('id')}, priority={task.get('priority')}, due={task.get('due_date')})"
            )
        if due:
            logger.info(f"Tasks: sent {len(due)} reminder(s)")
    except Exception as e:
        logger.error(f"Task reminder job failed: {e}")


def _acquire_scheduler_lock():
    """Try to acquire an exclusive file lock. Returns True if this process won."""
    global _lock_file
    try:
        lock_path = os.path.join(os.path.dirname(__file__), '..', '.scheduler.lock')
        _lock_file = open(lock_path, 'w')
        fcntl.flock(_lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        _lock_file.write(str(os.getpid()))
        _lock_file.flush()
        return True
    except (IOError, OSError):
        if _lock_file:
            _lock_file.close()
            _lock_file = None
        return False


def start_scheduler():
    """Start the background scheduler.

    Uses a file lock so only one gunicorn worker runs the scheduler.
    Other workers skip silently.
    """
    if scheduler.running:
        return

    if not _acquire_scheduler_lock():
        logger.debug(f"Scheduler lock held by another worker, skipping (pid={os.getpid()})")
        return

    scheduler.add_job(
        mark_overdue_invoices,
        'interval',
        hours=1,
        id='mark_overdue_invoices',
        replace_existing=True,
        misfire_grace_time=300,
        coalesce=True,
    )
    scheduler.add_job(
        send_task_reminders,
        'interval',
        minutes=1,
        id='task_reminders',
        replace_existing=True,
        misfire_grace_time=60,
        coalesce=True,
    )

    scheduler.start()
    atexit.register(lambda: scheduler.shutdown(wait=False))
    logger.info(f"Background scheduler started (pid={os.getpid()})")


def stop_scheduler():
    """Stop the background scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Background scheduler stopped")

"""
Transaction boundary for public service operations.

Each decorated call is one unit of work: commit on success, rollback and
re-raise on any exception.  Audit rows are flushed inside the same unit,
so a failed operation never leaves one behind.

Usage:
    @transactional
    def start_task(task_id, acting_user_id): ...
"""

import functools
import logging

from orderflow.models import db

logger = logging.getLogger(__name__)


def transactional(fn):
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            result = fn(*args, **kwargs)
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.debug("Rolled back %s", fn.__name__)
            raise
        return result

    return wrapper

import functools
import logging

from django.db import DatabaseError, transaction

from .exceptions import TransactionAborted

logger = logging.getLogger(__name__)


def stock_transaction(func):
    """Run ``func`` in one atomic block; storage failures surface as TransactionAborted.

    Engine errors raised inside propagate unchanged after the rollback. There is no retry.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            with transaction.atomic():
                return func(*args, **kwargs)
        except DatabaseError as exc:
            logger.exception("Stock transaction %s aborted by the storage layer", func.__qualname__)
            raise TransactionAborted(operation=func.__qualname__) from exc

    return wrapper

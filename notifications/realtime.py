"""Post-commit change announcements.

Views call ``announce("inventory", "sales")`` after a successful write. Nothing
is sent until the surrounding transaction commits, and a rolled back write
announces nothing. Broadcast transports (websocket fan-out, cache busting)
connect to ``change_announced``.
"""
import logging

from django.db import transaction
from django.dispatch import Signal

logger = logging.getLogger(__name__)

TOPICS = {"inventory", "sales", "reservations", "notifications"}

# sent with topics=<tuple of str>
change_announced = Signal()


def _send(topics):
    results = change_announced.send_robust(sender=None, topics=topics)
    for receiver, response in results:
        if isinstance(response, Exception):
            logger.error("Change receiver %r failed for topics=%s: %s", receiver, topics, response)


def announce(*topics):
    unknown = set(topics) - TOPICS
    if unknown:
        raise ValueError(f"Unknown change topics: {sorted(unknown)}")
    if not topics:
        return
    topics = tuple(dict.fromkeys(topics))
    transaction.on_commit(lambda: _send(topics))

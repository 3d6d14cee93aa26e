# services/subscriber_watcher.py
"""
Document-creation trigger for the ``subscribers`` collection

Listens to Firestore snapshots and dispatches the welcome-email task for
every document added after the listener started. Documents that already
existed when the listener attached are ignored.
"""

import logging
import threading
from typing import Callable, Optional

from core.models import SUBSCRIBERS

logger = logging.getLogger(__name__)


class SubscriberWatcher:
    def __init__(self, db, dispatch: Callable[[str], None]):
        """
        Args:
            db: Firestore client
            dispatch: Called with the new document id
        """
        self.collection = db.collection(SUBSCRIBERS)
        self.dispatch = dispatch
        self._watch = None
        self._primed = False
        self._stopped = threading.Event()

    def on_snapshot(self, docs, changes, read_time) -> None:
        if not self._primed:
            self._primed = True
            logger.info(f"Subscriber watcher attached ({len(docs)} existing documents)")
            return

        for change in changes:
            if change.type.name != 'ADDED':
                continue
            doc_id = change.document.id
            try:
                self.dispatch(doc_id)
                logger.info(f"Welcome email queued for subscriber {doc_id}")
            except Exception as e:
                logger.error(f"Failed to queue welcome email for {doc_id}: {e}", exc_info=True)

    def start(self) -> None:
        self._watch = self.collection.on_snapshot(self.on_snapshot)
        logger.info("Subscriber watcher started")

    def stop(self) -> None:
        if self._watch is not None:
            self._watch.unsubscribe()
            self._watch = None
        self._stopped.set()
        logger.info("Subscriber watcher stopped")

    def run_forever(self, timeout: Optional[float] = None) -> None:
        self.start()
        try:
            self._stopped.wait(timeout)
        except KeyboardInterrupt:
            pass
        finally:
            self.stop()

"""
Sync State — The one-way "initial sync done" barrier.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional

logger = logging.getLogger(__name__)


class SyncState:
    """Set once when the initial list lands in the mirror; never reset."""

    def __init__(self) -> None:
        self._synced = threading.Event()
        self._lock = threading.Lock()
        self.synced_at: Optional[float] = None

    def mark_synced(self) -> None:
        with self._lock:
            if self._synced.is_set():
                return
            self.synced_at = time.time()
            self._synced.set()
        logger.info("Cache synced")

    @property
    def is_synced(self) -> bool:
        return self._synced.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until synced. Returns False if ``timeout`` elapsed first."""
        return self._synced.wait(timeout)

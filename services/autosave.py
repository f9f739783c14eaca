"""
Debounced persistence.
Rapid successive edits collapse into a single save of the latest state.
"""

import logging
import threading
from typing import Any, Callable, Optional

from config import get_settings

logger = logging.getLogger(__name__)


class DebouncedSaver:
    """
    Delays a save until edits stop arriving for delay_ms milliseconds.
    Each schedule() replaces the pending state, so the last write wins.
    """

    def __init__(self, save_fn: Callable[[Any], Any], delay_ms: Optional[int] = None):
        self._save_fn = save_fn
        self._delay = (delay_ms if delay_ms is not None else get_settings().save_debounce_ms) / 1000
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._pending: Any = None
        self._has_pending = False

    @property
    def has_pending(self) -> bool:
        with self._lock:
            return self._has_pending

    def schedule(self, state: Any) -> None:
        """Queue state for saving, restarting the quiet period."""
        with self._lock:
            self._pending = state
            self._has_pending = True
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self._delay, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _take(self):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if not self._has_pending:
                return False, None
            state = self._pending
            self._pending = None
            self._has_pending = False
            return True, state

    def _fire(self) -> None:
        found, state = self._take()
        if not found:
            return
        try:
            self._save_fn(state)
        except Exception as e:
            logger.error(f"Debounced save failed: {e}")

    def flush(self) -> bool:
        """
        Save the pending state now, if any.

        Returns:
            True if a save ran
        """
        found, state = self._take()
        if found:
            self._save_fn(state)
        return found

    def cancel(self) -> None:
        """Drop the pending state without saving it."""
        self._take()

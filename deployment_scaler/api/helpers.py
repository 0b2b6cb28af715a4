"""
API helpers — JSON envelopes and in-flight request tracking.
"""

from __future__ import annotations

import threading
import time

from flask import current_app, jsonify


def json_error(message: str, code: int):
    """Error envelope: {"message": ..., "code": ...} with matching status."""
    return jsonify({"message": message, "code": code}), code


def scaler_context():
    return current_app.config["SCALER"]


class InFlightTracker:
    """Counts requests between before_request and teardown_request."""

    def __init__(self) -> None:
        self._count = 0
        self._cond = threading.Condition()

    def enter(self) -> None:
        with self._cond:
            self._count += 1

    def exit(self) -> None:
        with self._cond:
            self._count = max(0, self._count - 1)
            if self._count == 0:
                self._cond.notify_all()

    @property
    def count(self) -> int:
        with self._cond:
            return self._count

    def wait_idle(self, timeout: float) -> bool:
        """Wait until no request is in flight. False if ``timeout`` ran out."""
        deadline = time.monotonic() + timeout
        with self._cond:
            while self._count > 0:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._cond.wait(remaining)
            return True
